"""Pydantic models for account security records and the 2FA API."""

from __future__ import annotations

from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, Field

from familytable.config import Role

__all__ = [
    "ActionResponse",
    "AuditEntry",
    "Role",
    "SetupResponse",
    "StatusResponse",
    "TwoFactorAccount",
    "TwoFactorAction",
    "TwoFactorRequest",
    "TwoFactorState",
]


# === Enums ===


class TwoFactorState(StrEnum):
    NOT_ENROLLED = "not_enrolled"
    PENDING_CONFIRMATION = "pending_confirmation"
    ENABLED = "enabled"


class TwoFactorAction(StrEnum):
    SETUP = "setup"
    ENABLE = "enable"
    DISABLE = "disable"
    VERIFY = "verify"


# === Records ===


class TwoFactorAccount(BaseModel):
    """The 2FA columns of a user row. ``two_factor_secret`` is an encrypted envelope."""

    user_id: str
    email: str
    role: Role = Role.MEMBER
    two_factor_secret: str | None = None
    two_factor_enabled: bool = False
    two_factor_verified_at: datetime | None = None
    two_factor_last_step: int | None = None

    @property
    def state(self) -> TwoFactorState:
        if self.two_factor_enabled and self.two_factor_secret:
            return TwoFactorState.ENABLED
        if self.two_factor_secret:
            return TwoFactorState.PENDING_CONFIRMATION
        return TwoFactorState.NOT_ENROLLED


class AuditEntry(BaseModel):
    user_id: str
    action: str = "UPDATE"
    entity_type: str = "User"
    entity_id: str
    changes: dict[str, Any] = Field(default_factory=dict)
    ip_address: str | None = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))


# === API ===


class TwoFactorRequest(BaseModel):
    action: TwoFactorAction
    code: str | None = None


class SetupResponse(BaseModel):
    secret: str
    qr_code_url: str
    message: str = "Scan QR code with authenticator app and verify to enable 2FA"


class ActionResponse(BaseModel):
    success: bool = True
    message: str
    valid_for: str | None = None


class StatusResponse(BaseModel):
    enabled: bool
    verified_at: datetime | None = None
    is_verification_valid: bool = False
