from __future__ import annotations

import logging
import socket
from typing import List, Optional, Sequence, Tuple

import dns.exception
import dns.resolver

logger = logging.getLogger(__name__)


class LookupFailed(Exception):
    """DNS lookup produced no usable answer (NXDOMAIN, timeout, bad name)."""


def _resolver(
    nameservers: Optional[Sequence[str]], port: int, lifetime: float
) -> dns.resolver.Resolver:
    r = dns.resolver.Resolver(configure=not nameservers)
    # port first: nameserver entries capture it when assigned
    r.port = int(port)
    if nameservers:
        r.nameservers = list(nameservers)
    r.lifetime = float(lifetime)
    return r


class DnsLookup:
    """Brief: Address lookup requesting every record family for a name.

    Inputs (constructor):
      - nameservers: optional list of resolver IPs (system config when empty).
      - port: resolver port.
      - lifetime: total seconds allowed per lookup.

    Outputs:
      - Callable object; ``lookup_all(name)`` returns [(family, address), ...].

    Example:
      >>> lookup = DnsLookup(["127.0.0.1"], port=5350)
      >>> # lookup.lookup_all("mysite.hns") -> [(2, '203.0.113.7')]
    """

    def __init__(
        self,
        nameservers: Optional[Sequence[str]] = None,
        *,
        port: int = 53,
        lifetime: float = 5.0,
    ) -> None:
        self._resolver = _resolver(nameservers, port, lifetime)

    def lookup_all(self, name: str) -> List[Tuple[int, str]]:
        """Brief: Resolve name to (address_family, address) pairs.

        Inputs:
          - name: domain name.

        Outputs:
          - list of (family, address) in answer order.

        Raises:
          - LookupFailed for any resolver error.
        """
        try:
            answers = self._resolver.resolve_name(name, family=socket.AF_UNSPEC)
        except (dns.exception.DNSException, ValueError) as exc:
            raise LookupFailed(f"{name}: {exc}") from exc
        return [(family, addr) for addr, family in answers.addresses_and_families()]

    __call__ = lookup_all


def ipv4_only(records: Sequence[Tuple[int, str]]) -> List[str]:
    """Keep IPv4 entries, preserving order."""
    return [addr for family, addr in records if family == socket.AF_INET]
