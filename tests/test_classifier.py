"""
Brief: Tests for hnsbridge.classifier URL parsing and TLD classification.

Inputs:
  - None

Outputs:
  - None
"""

import dataclasses

import pytest

from hnsbridge.classifier import (
    MalformedURL,
    ParsedURL,
    TLDAllowList,
    is_standard_tld,
    needs_external_resolution,
    parse_url,
)


@pytest.mark.parametrize(
    "url,domain,tld,port",
    [
        ("https://shop.xyz/path", "shop.xyz", "xyz", None),
        ("http://a.b.example.com:8080/x?y=1", "a.b.example.com", "com", 8080),
        ("https://mysite.hns", "mysite.hns", "hns", None),
        ("https://localhost/", "localhost", "localhost", None),
        ("ftp://user@files.nic.test/pub", "files.nic.test", "test", None),
    ],
)
def test_parse_extracts_domain_tld_and_port(url, domain, tld, port):
    """Brief: parse_url returns host as domain and its final label as tld.

    Inputs:
      - url, domain, tld, port: parametrized expectations.

    Outputs:
      - None; asserts ParsedURL fields.
    """
    parsed = parse_url(url)
    assert parsed is not None
    assert parsed.raw_url == url
    assert parsed.domain == domain
    assert parsed.tld == tld
    assert parsed.port == port


def test_parse_scheme_is_captured():
    """Brief: The scheme is returned without the '://' separator."""
    assert parse_url("wss://chat.hns/socket").scheme == "wss"


@pytest.mark.parametrize("url", ["", None, "not a url", "mailto:x@y.com", "//host/path"])
def test_parse_malformed_returns_none(url):
    """Brief: Inputs without scheme://host shape yield None.

    Inputs:
      - url: malformed candidate.

    Outputs:
      - None; asserts parse_url(url) is None.
    """
    assert parse_url(url) is None


def test_from_url_raises_malformed():
    """Brief: ParsedURL.from_url raises MalformedURL (a ValueError)."""
    with pytest.raises(MalformedURL):
        ParsedURL.from_url("nope")
    assert issubclass(MalformedURL, ValueError)


def test_parsed_url_is_immutable():
    """Brief: ParsedURL is a frozen dataclass."""
    parsed = parse_url("https://mysite.hns/")
    with pytest.raises(dataclasses.FrozenInstanceError):
        parsed.tld = "com"  # type: ignore[misc]


def test_is_standard_tld_membership_and_purity():
    """Brief: Membership is exact and repeated calls give the same answer.

    Inputs:
      - None

    Outputs:
      - None; asserts True for 'xyz', False for 'hns' and for 'XYZ'.
    """
    table = TLDAllowList(["xyz", "com"])
    shop = parse_url("https://shop.xyz/path")
    hns = parse_url("https://mysite.hns/")
    upper = parse_url("https://SHOP.XYZ/")

    assert is_standard_tld(shop, table) is True
    assert is_standard_tld(shop, table) is True
    assert is_standard_tld(hns, table) is False
    # No case normalisation is performed.
    assert is_standard_tld(upper, table) is False


def test_allow_list_has_no_mutation_path():
    """Brief: TLDAllowList exposes a frozenset and rejects attribute assignment."""
    table = TLDAllowList(["xyz"])
    assert isinstance(table.labels, frozenset)
    with pytest.raises(AttributeError):
        table.labels.add("hns")  # type: ignore[attr-defined]
    with pytest.raises(AttributeError):
        table.extra = 1  # type: ignore[attr-defined]


def test_from_lines_skips_comments_and_blanks():
    """Brief: from_lines ignores '#' comments and blank lines."""
    table = TLDAllowList.from_lines(["# header", "", "  xyz  ", "com"])
    assert len(table) == 2
    assert "xyz" in table and "com" in table


def test_from_file(tmp_path):
    """Brief: from_file reads one label per line.

    Inputs:
      - tmp_path: pytest temporary directory.

    Outputs:
      - None; asserts labels loaded.
    """
    p = tmp_path / "tlds.txt"
    p.write_text("xyz\nio\n", encoding="utf-8")
    table = TLDAllowList.from_file(str(p))
    assert "io" in table
    assert "hns" not in table


def test_load_default_contains_common_tlds():
    """Brief: The packaged table covers common delegated TLDs but not 'hns'."""
    table = TLDAllowList.load_default()
    for label in ("com", "org", "net", "xyz", "io"):
        assert label in table
    assert "hns" not in table
    assert len(table) > 1000


def test_needs_external_resolution_end_to_end():
    """Brief: shop.xyz is standard; mysite.hns needs resolution; junk does not.

    Inputs:
      - None

    Outputs:
      - None; asserts classification results.
    """
    table = TLDAllowList(["xyz"])
    assert needs_external_resolution("https://shop.xyz/path", table) is False
    assert needs_external_resolution("https://mysite.hns/", table) is True
    assert needs_external_resolution("garbage", table) is False
