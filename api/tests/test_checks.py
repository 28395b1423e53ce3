import dns.exception
import pytest

from mailverdict.checks import check_blocklist, check_dkim, check_spf
from mailverdict.message import parse_message

from conftest import build_raw

SIGNATURE = (
    "DKIM-Signature: v=1; a=rsa-sha256; c=relaxed/relaxed; d={domain}; s={selector};\r\n"
    "\th=from:to:subject; bh=47DEQpj8HBSa+/TImW+5JCeuQeRkm5NMpJWZG3hSuFU=;\r\n"
    "\tb=dGVzdA==\r\n"
)


def no_key(name, timeout=5):
    return None


def test_dkim_without_signatures_is_empty():
    assert check_dkim(build_raw()) == ()


def test_dkim_unverifiable_signature_fails_with_detail():
    raw = build_raw(extra_headers=SIGNATURE.format(domain="example.org", selector="sel1"))
    results = check_dkim(raw, dnsfunc=no_key)
    assert len(results) == 1
    assert results[0].status == "fail"
    assert results[0].domain == "example.org"
    assert results[0].selector == "sel1"
    assert results[0].detail


def test_dkim_reports_each_signature():
    headers = SIGNATURE.format(domain="a.example", selector="one") + SIGNATURE.format(domain="b.example", selector="two")
    results = check_dkim(build_raw(extra_headers=headers), dnsfunc=no_key)
    assert [(r.domain, r.selector) for r in results] == [("a.example", "one"), ("b.example", "two")]
    assert all(not r.passed for r in results)


@pytest.mark.parametrize(
    "header, expected",
    [
        ("pass (example.org: domain of a@example.org designates 198.51.100.7 as permitted sender)", "pass"),
        ("softfail (transitioning domain)", "softfail"),
        ("Fail (example.org: domain does not designate 198.51.100.7)", "fail"),
        ("neutral", "neutral"),
        ("none", "none"),
        ("permerror (bad record)", "neutral"),
    ],
)
def test_spf_status_from_header(header, expected):
    message = parse_message(build_raw(extra_headers=f"Received-SPF: {header}\r\n"))
    result = check_spf(message)
    assert result.status == expected
    assert result.raw_evidence == header


def test_spf_without_header_is_none():
    result = check_spf(parse_message(build_raw()))
    assert result.status == "none"
    assert result.raw_evidence == "no Received-SPF header"
    assert result.resolved_hostname is None


def test_spf_reverse_lookup_hostname():
    message = parse_message(build_raw(extra_headers="Received-SPF: pass\r\n"))
    result = check_spf(message, "198.51.100.7", reverse_lookup=lambda ip: "mx.example.org")
    assert result.resolved_hostname == "mx.example.org"
    assert result.lookup_error is None
    assert result.status == "pass"


def test_spf_lookup_failure_degrades_gracefully():
    def broken(ip):
        raise dns.exception.Timeout()

    message = parse_message(build_raw(extra_headers="Received-SPF: fail\r\n"))
    result = check_spf(message, "198.51.100.7", reverse_lookup=broken)
    assert result.status == "fail"
    assert result.resolved_hostname is None
    assert result.lookup_error


def test_spf_invalid_source_ip():
    result = check_spf(parse_message(build_raw()), "not-an-ip", reverse_lookup=lambda ip: "never")
    assert result.lookup_error == "invalid source IP"
    assert result.resolved_hostname is None


def test_blocklist_hit_is_case_insensitive():
    message = parse_message(build_raw(sender="Promo <deals@SPAM.com>"))
    result = check_blocklist(message, ["spam.com"])
    assert result.is_listed is True
    assert result.sender_domain == "spam.com"


def test_blocklist_miss():
    result = check_blocklist(parse_message(build_raw()), ["spam.com"])
    assert result.is_listed is False
    assert result.sender_domain == "example.org"
    assert result.reason_code == "not-listed"


def test_blocklist_invalid_sender():
    result = check_blocklist(parse_message(build_raw(sender="undisclosed")), ["spam.com"])
    assert result.is_listed is False
    assert result.reason_code == "invalid-sender"


def test_dkim_unexpected_verifier_error_counts_as_fail():
    def exploding_resolver(name, timeout=5):
        raise RuntimeError("resolver exploded")

    raw = build_raw(extra_headers=SIGNATURE.format(domain="example.org", selector="sel1"))
    results = check_dkim(raw, dnsfunc=exploding_resolver)
    assert len(results) == 1
    assert results[0].status == "fail"
    assert "resolver exploded" in results[0].detail
