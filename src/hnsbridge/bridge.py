from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, Tuple

from .classifier import ParsedURL, TLDAllowList, is_standard_tld, parse_url
from .client import ResolutionClient, ResolutionOutcome, ResolveMode

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BridgeDecision:
    """Brief: What the request interceptor needs to know about one URL.

    Inputs:
      - parsed: ParsedURL, or None for malformed input.
      - needs_resolution: True when the TLD is not standard.
      - outcome: ResolutionOutcome when a lookup was performed, else None.
    """

    parsed: Optional[ParsedURL]
    needs_resolution: bool
    outcome: Optional[ResolutionOutcome] = None


class ResolutionBridge:
    """Classifier and resolution client behind one call.

    Example:
      >>> bridge = ResolutionBridge(TLDAllowList(["xyz"]), client)  # doctest: +SKIP
      >>> bridge.lookup("https://mysite.hns/").outcome.addresses  # doctest: +SKIP
      ('203.0.113.7',)
    """

    def __init__(self, allow_list: TLDAllowList, client: ResolutionClient) -> None:
        self.allow_list = allow_list
        self.client = client

    def classify(self, url: Optional[str]) -> Tuple[Optional[ParsedURL], bool]:
        """Return (parsed, needs_resolution); malformed URLs never need it."""
        parsed = parse_url(url)
        if parsed is None:
            logger.debug("Ignoring malformed URL %r", url)
            return None, False
        return parsed, not is_standard_tld(parsed, self.allow_list)

    def lookup(
        self, url: Optional[str], mode: ResolveMode = ResolveMode.ASYNC
    ) -> BridgeDecision:
        """Brief: Classify url and, when needed, resolve its domain.

        Inputs:
          - url: navigated URL.
          - mode: ResolveMode passed through to the client.

        Outputs:
          - BridgeDecision; outcome is None when no resolution was attempted.
        """
        parsed, needed = self.classify(url)
        if not needed or parsed is None:
            return BridgeDecision(parsed, False)
        outcome = self.client.resolve(parsed.domain, mode).result()
        return BridgeDecision(parsed, True, outcome)
