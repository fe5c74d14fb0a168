"""Resolution client: query the relay for a domain's IPv4 addresses.

Brief:
  Issues ``GET <api_base>/resolve?domain=<domain>`` and turns the reply into
  a ResolutionOutcome. Asynchronous calls are bounded by a shared
  AdaptiveTimeout that grows after every observed timeout; synchronous calls
  apply no timeout of their own.

Inputs:
  - api_base: base URL of the relay.
  - timeout_state: AdaptiveTimeout shared by every client in the session.

Outputs:
  - concurrent.futures.Future objects settled exactly once with a
    ResolutionOutcome.
"""

from __future__ import annotations

import enum
import importlib.metadata
import logging
import re
import threading
from concurrent.futures import Executor, Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Optional, Tuple

import requests

logger = logging.getLogger(__name__)

try:
    HNSBRIDGE_VERSION = importlib.metadata.version("hnsbridge")
except importlib.metadata.PackageNotFoundError:  # pragma: no cover - source checkout
    HNSBRIDGE_VERSION = "unknown"

DEFAULT_TIMEOUT_MS = 5000.0
MAX_TIMEOUT_MS = 30000.0
TIMEOUT_GROWTH = 1.5

# Digits, dots and separators only; the relay joins with commas, older
# resolvers answer one address per line.
_BODY_RE = re.compile(r"^[0-9.,\r\n]+$")
_SPLIT_RE = re.compile(r"\r\n|\r|\n|,")


class TransportFailure(Exception):
    """Network error, non-200 status or malformed body from the relay."""


class TimeoutExceeded(TransportFailure):
    """The relay did not answer within the adaptive timeout."""


class AdaptiveTimeout:
    """Brief: Session-scoped request timeout that only ever grows.

    Inputs (constructor):
      - initial_ms: starting value in milliseconds.
      - ceiling_ms: upper bound in milliseconds.
      - factor: multiplier applied on each timeout event.

    Outputs:
      - AdaptiveTimeout whose value after N timeouts equals
        min(initial_ms * factor**N, ceiling_ms).

    Example:
      >>> t = AdaptiveTimeout()
      >>> t.record_timeout()
      7500.0
    """

    def __init__(
        self,
        initial_ms: float = DEFAULT_TIMEOUT_MS,
        ceiling_ms: float = MAX_TIMEOUT_MS,
        factor: float = TIMEOUT_GROWTH,
    ) -> None:
        if initial_ms <= 0:
            raise ValueError("initial_ms must be positive")
        if ceiling_ms < initial_ms:
            raise ValueError("ceiling_ms must be >= initial_ms")
        if factor < 1.0:
            raise ValueError("factor must be >= 1.0")
        self._value = float(initial_ms)
        self._ceiling = float(ceiling_ms)
        self._factor = float(factor)
        self._lock = threading.Lock()

    @property
    def current_ms(self) -> float:
        with self._lock:
            return self._value

    @property
    def ceiling_ms(self) -> float:
        return self._ceiling

    @property
    def seconds(self) -> float:
        """Current value in seconds, as expected by requests."""
        return self.current_ms / 1000.0

    def record_timeout(self) -> float:
        """Grow the value after a timeout event and return the new value."""
        with self._lock:
            self._value = min(self._value * self._factor, self._ceiling)
            return self._value


class ResolveMode(enum.Enum):
    """How a resolution request is run.

    ASYNC runs on the client's executor with the adaptive timeout applied.
    SYNC blocks the calling thread with no timeout.
    """

    ASYNC = "async"
    SYNC = "sync"


class OutcomeKind(enum.Enum):
    NXDOMAIN = "nxdomain"
    RESOLVED = "resolved"
    ERROR = "error"


@dataclass(frozen=True)
class ResolutionOutcome:
    """Brief: Terminal result of one resolution request.

    Inputs:
      - kind: OutcomeKind tag.
      - addresses: IPv4 literals in received order (RESOLVED only).
      - reason: short failure description (ERROR only).
    """

    kind: OutcomeKind
    addresses: Tuple[str, ...] = field(default_factory=tuple)
    reason: Optional[str] = None

    @classmethod
    def nxdomain(cls) -> "ResolutionOutcome":
        return cls(OutcomeKind.NXDOMAIN)

    @classmethod
    def resolved(cls, addresses) -> "ResolutionOutcome":
        return cls(OutcomeKind.RESOLVED, tuple(addresses))

    @classmethod
    def error(cls, reason: str) -> "ResolutionOutcome":
        return cls(OutcomeKind.ERROR, reason=reason)

    @property
    def ok(self) -> bool:
        return self.kind is not OutcomeKind.ERROR


def interpret_response(status: int, text: Optional[str]) -> ResolutionOutcome:
    """Brief: Map a relay reply to a ResolutionOutcome.

    Inputs:
      - status: HTTP status code.
      - text: response body (may be None).

    Outputs:
      - NXDOMAIN for 200 with an empty body (separators only counts as
        empty), RESOLVED for 200 with address lines, ERROR otherwise.

    Example:
      >>> interpret_response(200, "8.8.8.8\\n8.8.4.4").addresses
      ('8.8.8.8', '8.8.4.4')
    """
    body = (text or "").strip()
    if status != 200:
        return ResolutionOutcome.error(f"HTTP {status}")
    if not body:
        return ResolutionOutcome.nxdomain()
    if not _BODY_RE.match(body):
        return ResolutionOutcome.error("malformed response body")
    addresses = [a for a in _SPLIT_RE.split(body) if a]
    if not addresses:
        return ResolutionOutcome.nxdomain()
    return ResolutionOutcome.resolved(addresses)


class ResolutionClient:
    """Brief: HTTP client for the resolution relay.

    Inputs (constructor):
      - api_base: relay base URL, e.g. https://namebase.now.sh/
      - timeout_state: shared AdaptiveTimeout; a fresh one when omitted.
      - executor: optional Executor for ASYNC requests.

    Outputs:
      - ResolutionClient with resolve() and close().
    """

    def __init__(
        self,
        api_base: str,
        timeout_state: Optional[AdaptiveTimeout] = None,
        *,
        executor: Optional[Executor] = None,
        max_workers: int = 8,
    ) -> None:
        self.api_base = api_base
        self.timeout_state = timeout_state or AdaptiveTimeout()
        self._owns_executor = executor is None
        self._executor = executor or ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="hnsbridge-resolve"
        )

    @property
    def endpoint(self) -> str:
        return self.api_base.rstrip("/") + "/resolve"

    def _fetch(self, domain: str, timeout: Optional[float]) -> requests.Response:
        """Brief: Send one GET to the relay, mapping requests errors.

        Inputs:
          - domain: name to resolve.
          - timeout: seconds, or None for no limit. requests applies it to
            the connect phase and to each wait between received bytes, not
            to the request as a whole; a relay trickling bytes can take
            longer than ``timeout`` in total.

        Outputs:
          - requests.Response

        Raises:
          - TimeoutExceeded after growing the timeout state.
          - TransportFailure on any other requests error.
        """
        try:
            return requests.get(
                self.endpoint,
                params={"domain": domain},
                headers={"User-Agent": f"hnsbridge v{HNSBRIDGE_VERSION}"},
                timeout=timeout,
            )
        except requests.Timeout as exc:
            new_ms = self.timeout_state.record_timeout()
            logger.warning(
                "%s: resolver has timed out, increasing timeout to %dms",
                domain,
                new_ms,
            )
            raise TimeoutExceeded(str(exc)) from exc
        except requests.RequestException as exc:
            raise TransportFailure(str(exc)) from exc

    def _query(self, domain: str, timeout: Optional[float]) -> ResolutionOutcome:
        try:
            resp = self._fetch(domain, timeout)
        except TimeoutExceeded:
            return ResolutionOutcome.error("timeout")
        except TransportFailure as exc:
            logger.info("%s: from %s: transport failure: %s", domain, self.api_base, exc)
            return ResolutionOutcome.error(str(exc) or "transport failure")
        text = resp.text or ""
        logger.info(
            "%s: from %s: status=%s, response=%s",
            domain,
            self.api_base,
            resp.status_code,
            _SPLIT_RE.sub(",", text.strip()),
        )
        return interpret_response(resp.status_code, text)

    def _settle(self, future: Future, domain: str, timeout: Optional[float]) -> None:
        if not future.set_running_or_notify_cancel():  # pragma: no cover
            return
        try:
            outcome = self._query(domain, timeout)
        except Exception as exc:  # request setup errors (bad URL, encoding, ...)
            logger.exception("%s: resolution request failed", domain)
            outcome = ResolutionOutcome.error(str(exc) or exc.__class__.__name__)
        future.set_result(outcome)

    def resolve(
        self, domain: str, mode: ResolveMode = ResolveMode.ASYNC
    ) -> "Future[ResolutionOutcome]":
        """Brief: Resolve domain through the relay.

        Inputs:
          - domain: host name whose TLD is not standard.
          - mode: ResolveMode.ASYNC (executor, adaptive timeout) or
            ResolveMode.SYNC (calling thread, no timeout).

        Outputs:
          - Future settled exactly once with a ResolutionOutcome. In SYNC mode
            the future is already done on return.

        Example:
          >>> # client.resolve("mysite.hns").result()
        """
        future: Future = Future()
        if mode is ResolveMode.SYNC:
            self._settle(future, domain, None)
            return future
        timeout = self.timeout_state.seconds
        try:
            self._executor.submit(self._settle, future, domain, timeout)
        except RuntimeError as exc:
            # Executor already shut down.
            future.set_running_or_notify_cancel()
            future.set_result(ResolutionOutcome.error(str(exc)))
        return future

    def close(self) -> None:
        if self._owns_executor:
            self._executor.shutdown(wait=False)

    def __enter__(self) -> "ResolutionClient":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()
