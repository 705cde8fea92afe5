"""Our Family Table — account security: TOTP second factor and secret storage."""

__version__ = "0.1.0"
