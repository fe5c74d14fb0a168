"""
Brief: Tests for hnsbridge.bridge classification plus resolution, including an
end-to-end run of the client against the threaded relay on loopback.

Inputs:
  - None

Outputs:
  - None
"""

import socket

import pytest

import hnsbridge.client as client_mod
from hnsbridge.bridge import ResolutionBridge
from hnsbridge.classifier import TLDAllowList
from hnsbridge.client import OutcomeKind, ResolutionClient, ResolveMode
from hnsbridge.relay import start_relay_server


class DummyResp:
    def __init__(self, status_code=200, text=""):
        self.status_code = status_code
        self.text = text


@pytest.fixture
def bridge():
    c = ResolutionClient("https://relay.example/")
    yield ResolutionBridge(TLDAllowList(["xyz"]), c)
    c.close()


def test_standard_tld_skips_resolution(monkeypatch, bridge):
    """Brief: shop.xyz is standard; no request is made and outcome is None.

    Inputs:
      - monkeypatch: pytest fixture.
      - bridge: ResolutionBridge fixture.

    Outputs:
      - None; asserts decision fields.
    """

    def fail_get(*args, **kwargs):  # pragma: no cover - must not be called
        raise AssertionError("requests.get should not be called for standard TLDs")

    monkeypatch.setattr(client_mod.requests, "get", fail_get)
    decision = bridge.lookup("https://shop.xyz/path")
    assert decision.parsed.tld == "xyz"
    assert decision.needs_resolution is False
    assert decision.outcome is None


def test_malformed_url_is_ineligible(bridge):
    """Brief: Malformed URLs are not resolved and carry no ParsedURL."""
    decision = bridge.lookup("not a url")
    assert decision.parsed is None
    assert decision.needs_resolution is False
    assert decision.outcome is None


def test_non_standard_tld_queries_domain(monkeypatch, bridge):
    """Brief: mysite.hns triggers a query for exactly 'mysite.hns'."""
    seen = {}

    def fake_get(url, params=None, headers=None, timeout=None):
        seen["params"] = params
        return DummyResp(200, "203.0.113.7")

    monkeypatch.setattr(client_mod.requests, "get", fake_get)
    decision = bridge.lookup("https://mysite.hns/", ResolveMode.SYNC)

    assert seen["params"] == {"domain": "mysite.hns"}
    assert decision.needs_resolution is True
    assert decision.outcome.kind is OutcomeKind.RESOLVED
    assert decision.outcome.addresses == ("203.0.113.7",)


def test_classify_returns_parsed_and_flag(bridge):
    """Brief: classify pairs the ParsedURL with the needs-resolution flag."""
    parsed, needed = bridge.classify("https://mysite.hns:8443/")
    assert parsed.port == 8443
    assert needed is True
    assert bridge.classify("https://shop.xyz/")[1] is False


@pytest.mark.parametrize("mode", [ResolveMode.ASYNC, ResolveMode.SYNC])
def test_end_to_end_against_threaded_relay(monkeypatch, mode):
    """Brief: Client talks to a real threaded relay; IPv6 is dropped en route.

    Inputs:
      - monkeypatch: pytest fixture (clears proxy environment).
      - mode: ResolveMode under test.

    Outputs:
      - None; asserts RESOLVED and NXDOMAIN outcomes.
    """
    for var in ("HTTP_PROXY", "http_proxy", "HTTPS_PROXY", "https_proxy", "ALL_PROXY", "all_proxy"):
        monkeypatch.delenv(var, raising=False)
    monkeypatch.setenv("NO_PROXY", "127.0.0.1,localhost")

    table = {
        "mysite.hns": [
            (socket.AF_INET, "10.1.1.1"),
            (socket.AF_INET6, "fd00::1"),
            (socket.AF_INET, "10.1.1.2"),
        ],
    }
    handle = start_relay_server(
        "127.0.0.1", 0, lambda name: table.get(name, []), use_asyncio=False
    )
    assert handle is not None
    host, port = handle.server.server_address[:2]
    c = ResolutionClient(f"http://{host}:{port}/")
    b = ResolutionBridge(TLDAllowList(["xyz"]), c)
    try:
        found = b.lookup("https://mysite.hns/", mode)
        missing = b.lookup("https://nothing.hns/", mode)
    finally:
        c.close()
        handle.stop()

    assert found.outcome.addresses == ("10.1.1.1", "10.1.1.2")
    assert missing.outcome.kind is OutcomeKind.NXDOMAIN
