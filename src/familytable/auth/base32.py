"""RFC 4648 base32 codec for TOTP secrets (unpadded, as authenticator apps expect).

Decoding is lenient by default: anything outside the alphabet is skipped so
secrets copied with spaces or dashes still work. Pass ``strict=True`` where
corruption should be caught instead (enrollment-time validation).
"""

from __future__ import annotations

import math

ALPHABET = "ABCDEFGHIJKLMNOPQRSTUVWXYZ234567"
_LOOKUP = {ch: i for i, ch in enumerate(ALPHABET)}


class Base32Error(ValueError):
    pass


def encode(data: bytes) -> str:
    """Encode bytes as base32 without ``=`` padding."""
    out: list[str] = []
    value = 0
    bits = 0
    for byte in data:
        value = ((value << 8) | byte) & 0xFFFF
        bits += 8
        while bits >= 5:
            out.append(ALPHABET[(value >> (bits - 5)) & 31])
            bits -= 5
    if bits > 0:
        out.append(ALPHABET[(value << (5 - bits)) & 31])
    return "".join(out)


def decode(text: str, strict: bool = False) -> bytes:
    """Decode base32 text, case-insensitively.

    Trailing partial bits (fewer than 8) are dropped.
    """
    if strict:
        body = text.rstrip("=")
        for pos, ch in enumerate(body):
            if ch.upper() not in _LOOKUP:
                raise Base32Error(f"Invalid base32 character {ch!r} at position {pos}")

    out = bytearray(math.ceil(len(text) * 5 / 8))
    value = 0
    bits = 0
    index = 0
    for ch in text:
        v = _LOOKUP.get(ch.upper())
        if v is None:
            continue
        value = ((value << 5) | v) & 0xFFFF
        bits += 5
        if bits >= 8:
            out[index] = (value >> (bits - 8)) & 0xFF
            index += 1
            bits -= 8
    return bytes(out[:index])
