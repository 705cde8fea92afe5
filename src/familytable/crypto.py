"""AES-256-GCM envelope encryption for TOTP secrets at rest.

Envelope format (one text column): ``hex(iv):hex(tag):hex(ciphertext)``
with a 16-byte IV and a 16-byte authentication tag.
"""

from __future__ import annotations

import binascii
import os
import re
from dataclasses import dataclass

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from familytable.config import settings

KEY_SIZE = 32
IV_SIZE = 16
TAG_SIZE = 16

_HEX_RE = re.compile(r"[0-9a-fA-F]*")


class CryptoError(Exception):
    """Base class for envelope encryption failures."""


class MasterKeyError(CryptoError, RuntimeError):
    """The master key is unset or malformed."""


class EnvelopeFormatError(CryptoError, ValueError):
    """The stored envelope is not ``iv:tag:ciphertext`` hex."""


class IntegrityError(CryptoError):
    """Authentication tag check failed: tampered envelope or wrong key."""


@dataclass(frozen=True)
class Envelope:
    iv: bytes
    tag: bytes
    ciphertext: bytes

    @classmethod
    def parse(cls, text: str) -> Envelope:
        parts = text.split(":")
        if len(parts) != 3:
            raise EnvelopeFormatError("Envelope must have exactly 3 colon-delimited segments")
        if not all(_HEX_RE.fullmatch(p) for p in parts):
            raise EnvelopeFormatError("Envelope segments must be hex")
        try:
            iv, tag, ct = (bytes.fromhex(p) for p in parts)
        except ValueError as e:
            raise EnvelopeFormatError("Envelope segments must be hex") from e
        if len(iv) != IV_SIZE:
            raise EnvelopeFormatError(f"IV must be {IV_SIZE} bytes, got {len(iv)}")
        if len(tag) != TAG_SIZE:
            raise EnvelopeFormatError(f"Auth tag must be {TAG_SIZE} bytes, got {len(tag)}")
        return cls(iv=iv, tag=tag, ciphertext=ct)

    def __str__(self) -> str:
        return f"{self.iv.hex()}:{self.tag.hex()}:{self.ciphertext.hex()}"


def load_key(raw: str) -> bytes:
    """Decode a hex master key and check its length."""
    if not raw:
        raise MasterKeyError("FAMILYTABLE_ENCRYPTION_KEY not set")
    try:
        key = binascii.unhexlify(raw.strip())
    except (binascii.Error, ValueError) as e:
        raise MasterKeyError("FAMILYTABLE_ENCRYPTION_KEY must be hex-encoded") from e
    if len(key) != KEY_SIZE:
        raise MasterKeyError("FAMILYTABLE_ENCRYPTION_KEY must be 32 bytes (64 hex chars)")
    return key


def _get_key(key: bytes | None) -> bytes:
    if key is None:
        return settings.master_key()
    if len(key) != KEY_SIZE:
        raise MasterKeyError(f"Master key must be {KEY_SIZE} bytes, got {len(key)}")
    return key


def generate_key() -> str:
    """New random master key as 64 hex chars."""
    return os.urandom(KEY_SIZE).hex()


def encrypt_secret(secret: str, key: bytes | None = None) -> str:
    """Encrypt a base32 secret. Returns ``hex(iv):hex(tag):hex(ciphertext)``."""
    k = _get_key(key)
    iv = os.urandom(IV_SIZE)
    sealed = AESGCM(k).encrypt(iv, secret.encode("utf-8"), None)
    # AESGCM appends the tag to the ciphertext
    env = Envelope(iv=iv, tag=sealed[-TAG_SIZE:], ciphertext=sealed[:-TAG_SIZE])
    return str(env)


def decrypt_secret(envelope: str, key: bytes | None = None) -> str:
    """Decrypt an envelope produced by :func:`encrypt_secret`."""
    k = _get_key(key)
    env = Envelope.parse(envelope)
    try:
        plain = AESGCM(k).decrypt(env.iv, env.ciphertext + env.tag, None)
    except InvalidTag as e:
        raise IntegrityError("Envelope failed authentication") from e
    return plain.decode("utf-8")
