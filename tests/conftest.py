"""Shared fixtures."""

from __future__ import annotations

import os

import pytest


@pytest.fixture
def master_key() -> bytes:
    return os.urandom(32)


@pytest.fixture
def configured_key(monkeypatch, master_key):
    """Point the module-level settings at a fresh hex master key."""
    from familytable.config import Settings

    monkeypatch.setattr(
        "familytable.crypto.settings",
        Settings(_env_file=None, familytable_encryption_key=master_key.hex()),
    )
    return master_key
