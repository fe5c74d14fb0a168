"""URL classification against the standard TLD allow-list.

Brief:
  Decides whether a navigated URL needs external resolution. A URL is parsed
  into scheme/domain/tld/port and its final label is looked up in an
  immutable table of standard delegated-root TLDs. Hosts outside that table
  are handed to the resolution client.

Inputs:
  - URL strings and a TLDAllowList built once at startup.

Outputs:
  - ParsedURL values and boolean classification results.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from importlib import resources
from typing import FrozenSet, Iterable, Iterator, Optional

logger = logging.getLogger(__name__)

# scheme://[anything-but-slash, lazily]host[:port](/|end)
_URL_RE = re.compile(r"^(\w+)://[^/]*?([\w.-]+)(?::(\d+))?(?:/|$)", re.ASCII)

_DEFAULT_TABLE = "standard_tlds.txt"


class MalformedURL(ValueError):
    """Raised when a string does not have a scheme://host[:port][/...] shape."""


@dataclass(frozen=True)
class ParsedURL:
    """Brief: Immutable decomposition of a URL.

    Inputs:
      - raw_url: original URL string.
      - scheme: URL scheme without '://'.
      - domain: host portion.
      - tld: final dot-delimited label of domain (whole host when dotless).
      - port: optional explicit port.
    """

    raw_url: str
    scheme: str
    domain: str
    tld: str
    port: Optional[int] = None

    @classmethod
    def from_url(cls, url: str) -> "ParsedURL":
        """Brief: Parse url or raise MalformedURL.

        Inputs:
          - url: candidate URL string.

        Outputs:
          - ParsedURL instance.

        Example:
          >>> ParsedURL.from_url("https://shop.xyz:8443/a").port
          8443
        """
        match = _URL_RE.match(url or "")
        if not match:
            raise MalformedURL(f"not a scheme://host URL: {url!r}")
        scheme, domain, port = match.group(1), match.group(2), match.group(3)
        return cls(
            raw_url=url,
            scheme=scheme,
            domain=domain,
            tld=domain.rsplit(".", 1)[-1],
            port=int(port) if port is not None else None,
        )


def parse_url(url: Optional[str]) -> Optional[ParsedURL]:
    """Brief: Non-raising form of ParsedURL.from_url.

    Inputs:
      - url: candidate URL string (None is accepted).

    Outputs:
      - ParsedURL, or None when the input is malformed.

    Example:
      >>> parse_url("https://mysite.hns/").tld
      'hns'
      >>> parse_url("not a url") is None
      True
    """
    try:
        return ParsedURL.from_url(url or "")
    except MalformedURL:
        return None


class TLDAllowList:
    """Read-only set of standard TLD labels.

    Built once at process start and passed by reference to the classifier.
    Matching is exact and case-sensitive against the labels as stored.
    """

    __slots__ = ("_labels",)

    def __init__(self, labels: Iterable[str]) -> None:
        self._labels: FrozenSet[str] = frozenset(labels)

    @staticmethod
    def _iter_lines(lines: Iterable[str]) -> Iterator[str]:
        for line in lines:
            label = line.strip()
            if label and not label.startswith("#"):
                yield label

    @classmethod
    def from_lines(cls, lines: Iterable[str]) -> "TLDAllowList":
        return cls(cls._iter_lines(lines))

    @classmethod
    def from_file(cls, path: str) -> "TLDAllowList":
        """Brief: Load labels from a text file, one label per line.

        Inputs:
          - path: filesystem path; blank lines and '#' comments are skipped.

        Outputs:
          - TLDAllowList instance.
        """
        with open(path, "r", encoding="utf-8") as f:
            table = cls.from_lines(f)
        logger.debug("Loaded %d standard TLDs from %s", len(table), path)
        return table

    @classmethod
    def load_default(cls) -> "TLDAllowList":
        """Brief: Load the table packaged with hnsbridge."""
        text = (
            resources.files("hnsbridge.data")
            .joinpath(_DEFAULT_TABLE)
            .read_text(encoding="utf-8")
        )
        return cls.from_lines(text.splitlines())

    @property
    def labels(self) -> FrozenSet[str]:
        return self._labels

    def __contains__(self, label: object) -> bool:
        return label in self._labels

    def __len__(self) -> int:
        return len(self._labels)

    def __repr__(self) -> str:
        return f"TLDAllowList({len(self._labels)} labels)"


def is_standard_tld(parsed: ParsedURL, allow_list: TLDAllowList) -> bool:
    """Return True iff parsed.tld is a member of allow_list."""
    return parsed.tld in allow_list


def needs_external_resolution(url: Optional[str], allow_list: TLDAllowList) -> bool:
    """Brief: Decide whether url must be resolved through the bridge.

    Inputs:
      - url: navigated URL.
      - allow_list: standard TLD table.

    Outputs:
      - bool: False for malformed URLs and standard TLDs, True otherwise.

    Example:
      >>> table = TLDAllowList(["xyz"])
      >>> needs_external_resolution("https://shop.xyz/path", table)
      False
      >>> needs_external_resolution("https://mysite.hns/", table)
      True
    """
    parsed = parse_url(url)
    if parsed is None:
        return False
    return not is_standard_tld(parsed, allow_list)
