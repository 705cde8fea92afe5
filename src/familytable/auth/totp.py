"""TOTP (RFC 6238) second factor: secrets, codes, verification and enrollment URIs.

HMAC-SHA1, 30-second steps, 6 digits — the defaults every authenticator app
(Google Authenticator, Authy, 1Password, Aegis) understands.
"""

from __future__ import annotations

import hashlib
import hmac
import re
import secrets
import struct
import time
from datetime import UTC, datetime, timedelta
from urllib.parse import quote, urlencode

from familytable.auth import base32

DIGITS = 6
PERIOD = 30
ALGORITHM = "SHA1"
SECRET_BYTES = 20
MIN_SECRET_BYTES = 10
VERIFICATION_VALIDITY = timedelta(minutes=5)

_CODE_RE = re.compile(r"^\d{6}$", re.ASCII)
_WHITESPACE_RE = re.compile(r"\s+")


def generate_secret() -> str:
    """Generate a new TOTP secret (20 random bytes, base32-encoded, 32 chars)."""
    return base32.encode(secrets.token_bytes(SECRET_BYTES))


def validate_secret(secret: str) -> str:
    """Reject secrets that are malformed or too short to be a real key."""
    key = base32.decode(secret, strict=True)
    if len(key) < MIN_SECRET_BYTES:
        raise ValueError(f"TOTP secret must decode to at least {MIN_SECRET_BYTES} bytes, got {len(key)}")
    return secret


def _unix_seconds(at: float | datetime | None) -> float:
    if at is None:
        return time.time()
    if isinstance(at, datetime):
        if at.tzinfo is None:
            at = at.replace(tzinfo=UTC)
        return at.timestamp()
    return float(at)


def time_step(at: float | datetime | None = None) -> int:
    """Counter for the 30s step containing ``at`` (default: now)."""
    return int(_unix_seconds(at) // PERIOD)


def compute_code(secret: str, counter: int) -> str:
    """HOTP value for ``counter`` (RFC 4226 dynamic truncation)."""
    key = base32.decode(secret)
    digest = hmac.new(key, struct.pack(">Q", counter), hashlib.sha1).digest()
    offset = digest[-1] & 0x0F
    binary = struct.unpack(">I", digest[offset:offset + 4])[0] & 0x7FFFFFFF
    return str(binary % 10**DIGITS).zfill(DIGITS)


def get_code(secret: str) -> str:
    """Get the current TOTP code for a secret."""
    return compute_code(secret, time_step())


def match_step(code: str, secret: str, window: int = 1, at: float | datetime | None = None) -> int | None:
    """Return the time step ``code`` was generated for, or None.

    Steps in ``[current - window, current + window]`` are tried.
    """
    normalized = _WHITESPACE_RE.sub("", code or "")
    if not _CODE_RE.match(normalized):
        return None

    current = time_step(at)
    for counter in range(max(current - window, 0), current + window + 1):
        if hmac.compare_digest(normalized, compute_code(secret, counter)):
            return counter
    return None


def verify_code(code: str, secret: str, window: int = 1, at: float | datetime | None = None) -> bool:
    """Verify a TOTP code against a secret (allows +-window steps of clock skew)."""
    return match_step(code, secret, window=window, at=at) is not None


def get_provisioning_uri(secret: str, account: str, issuer: str) -> str:
    """Get the otpauth:// URI for QR code enrollment."""
    label = quote(f"{issuer}:{account}", safe="!'()*")
    params = urlencode(
        {
            "secret": secret,
            "issuer": issuer,
            "algorithm": ALGORITHM,
            "digits": str(DIGITS),
            "period": str(PERIOD),
        }
    )
    return f"otpauth://totp/{label}?{params}"


def is_verification_fresh(
    verified_at: datetime | None,
    validity: timedelta = VERIFICATION_VALIDITY,
    now: datetime | None = None,
) -> bool:
    """True if the last successful verification is recent enough to skip re-prompting."""
    if verified_at is None:
        return False
    if verified_at.tzinfo is None:
        verified_at = verified_at.replace(tzinfo=UTC)
    now = now or datetime.now(UTC)
    if now.tzinfo is None:
        now = now.replace(tzinfo=UTC)
    return now - verified_at < validity
