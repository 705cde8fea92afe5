"""Tests for TOTP code generation, verification and enrollment URIs."""

from __future__ import annotations

import re
from datetime import UTC, datetime, timedelta
from urllib.parse import parse_qs, urlparse

import pyotp
import pytest

from familytable.auth import base32, totp

# RFC 6238 Appendix B seed ("12345678901234567890"), base32-encoded
RFC_SECRET = "GEZDGNBVGY3TQOJQGEZDGNBVGY3TQOJQ"

# (unix time, last 6 digits of the RFC's 8-digit SHA1 value)
RFC_VECTORS = [
    (59, "287082"),
    (1111111109, "081804"),
    (1111111111, "050471"),
    (1234567890, "005924"),
    (2000000000, "279037"),
    (20000000000, "353130"),
]


def _at_step(step: int) -> int:
    """A unix time well inside ``step``."""
    return step * totp.PERIOD + 10


def test_rfc_secret_encoding():
    assert base32.encode(b"12345678901234567890") == RFC_SECRET


@pytest.mark.parametrize("unix_time,expected", RFC_VECTORS)
def test_rfc6238_vectors(unix_time, expected):
    assert totp.compute_code(RFC_SECRET, totp.time_step(unix_time)) == expected


def test_matches_pyotp():
    secret = pyotp.random_base32()
    for t in (0, 59, 1_700_000_000, 1_700_000_029, 1_700_000_030):
        assert totp.compute_code(secret, totp.time_step(t)) == pyotp.TOTP(secret).at(t)


def test_matches_pyotp_with_our_secret():
    secret = totp.generate_secret()
    t = 1_750_000_000
    assert totp.compute_code(secret, totp.time_step(t)) == pyotp.TOTP(secret).at(t)


def test_compute_code_deterministic_and_formatted():
    secret = totp.generate_secret()
    for counter in range(0, 200, 7):
        first = totp.compute_code(secret, counter)
        assert first == totp.compute_code(secret, counter)
        assert re.fullmatch(r"\d{6}", first)


def test_empty_key_is_degenerate_but_deterministic():
    code = totp.compute_code("!!!", 1)
    assert re.fullmatch(r"\d{6}", code)
    assert code == totp.compute_code("", 1)


def test_time_step():
    assert totp.time_step(0) == 0
    assert totp.time_step(29.9) == 0
    assert totp.time_step(30) == 1
    assert totp.time_step(datetime(1970, 1, 1, 0, 1, tzinfo=UTC)) == 2
    # naive datetimes are UTC
    assert totp.time_step(datetime(1970, 1, 1, 0, 1)) == 2


def test_verify_accepts_whitespace():
    assert totp.verify_code(" 287 082\n", RFC_SECRET, at=59)
    assert totp.verify_code("287082", RFC_SECRET, at=59)


def test_window_tolerance():
    step = totp.time_step(1234567890)
    code = totp.compute_code(RFC_SECRET, step)
    for offset in (-1, 0, 1):
        assert totp.verify_code(code, RFC_SECRET, window=1, at=_at_step(step + offset))
    for offset in (-2, 2):
        assert not totp.verify_code(code, RFC_SECRET, window=1, at=_at_step(step + offset))


def test_zero_window_is_exact():
    step = totp.time_step(1234567890)
    code = totp.compute_code(RFC_SECRET, step)
    assert totp.verify_code(code, RFC_SECRET, window=0, at=_at_step(step))
    assert not totp.verify_code(code, RFC_SECRET, window=0, at=_at_step(step + 1))


def test_match_step_returns_counter():
    step = totp.time_step(1234567890)
    code = totp.compute_code(RFC_SECRET, step - 1)
    assert totp.match_step(code, RFC_SECRET, at=_at_step(step)) == step - 1
    assert totp.match_step("abcdef", RFC_SECRET, at=_at_step(step)) is None


@pytest.mark.parametrize("bad", ["12a456", "123", "", "1234567", "12345", "１２３４５６", "12345١"])
def test_rejects_malformed_codes(bad):
    assert totp.verify_code(bad, RFC_SECRET) is False


def test_verify_near_epoch_does_not_go_negative():
    code = totp.compute_code(RFC_SECRET, 0)
    assert totp.verify_code(code, RFC_SECRET, at=5)


def test_generate_secret():
    s = totp.generate_secret()
    assert len(s) == 32
    assert re.fullmatch(r"[A-Z2-7]{32}", s)
    assert len(base32.decode(s)) == totp.SECRET_BYTES
    assert s != totp.generate_secret()


def test_end_to_end_current_time():
    secret = totp.generate_secret()
    code = totp.get_code(secret)
    assert totp.verify_code(code, secret)
    # "000000" can collide with a real code with probability ~3e-6;
    # a failure here once is flaky-test evidence, not a bug.
    assert not totp.verify_code("000000", secret) or code == "000000"


def test_validate_secret():
    assert totp.validate_secret("JBSWY3DPEHPK3PXP") == "JBSWY3DPEHPK3PXP"
    with pytest.raises(ValueError, match="at least"):
        totp.validate_secret("")
    with pytest.raises(ValueError, match="at least"):
        totp.validate_secret("MZXW6")
    with pytest.raises(ValueError):
        totp.validate_secret("JBSW Y3DP EHPK 3PXP")


def test_provisioning_uri_exact():
    uri = totp.get_provisioning_uri("JBSWY3DPEHPK3PXP", "alice@example.com", "Our Family Table")
    assert uri == (
        "otpauth://totp/Our%20Family%20Table%3Aalice%40example.com"
        "?secret=JBSWY3DPEHPK3PXP&issuer=Our+Family+Table&algorithm=SHA1&digits=6&period=30"
    )


def test_provisioning_uri_keeps_unreserved_marks():
    uri = totp.get_provisioning_uri("JBSWY3DPEHPK3PXP", "o'brien(1)!*@x.com", "Test")
    assert uri.startswith("otpauth://totp/Test%3Ao'brien(1)!*%40x.com?secret=")


def test_provisioning_uri_fields():
    secret = totp.generate_secret()
    parsed = urlparse(totp.get_provisioning_uri(secret, "bob@example.com", "Family & Friends"))
    assert parsed.scheme == "otpauth"
    assert parsed.netloc == "totp"
    qs = parse_qs(parsed.query)
    assert qs == {
        "secret": [secret],
        "issuer": ["Family & Friends"],
        "algorithm": ["SHA1"],
        "digits": ["6"],
        "period": ["30"],
    }


NOW = datetime(2026, 3, 1, 12, 0, tzinfo=UTC)


def test_verification_fresh():
    assert totp.is_verification_fresh(NOW - timedelta(minutes=4), now=NOW)
    assert not totp.is_verification_fresh(NOW - timedelta(minutes=6), now=NOW)
    assert not totp.is_verification_fresh(NOW - timedelta(minutes=5), now=NOW)
    assert not totp.is_verification_fresh(None, now=NOW)


def test_verification_fresh_custom_window_and_naive():
    naive = (NOW - timedelta(seconds=30)).replace(tzinfo=None)
    assert totp.is_verification_fresh(naive, now=NOW)
    assert not totp.is_verification_fresh(naive, validity=timedelta(seconds=10), now=NOW)


def test_verification_fresh_default_now():
    assert totp.is_verification_fresh(datetime.now(UTC) - timedelta(minutes=4))
    assert not totp.is_verification_fresh(datetime.now(UTC) - timedelta(minutes=6))
