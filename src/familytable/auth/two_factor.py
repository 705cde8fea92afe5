"""Two-factor enrollment and verification for privileged accounts.

Drives the per-account state machine::

    not_enrolled --setup--> pending_confirmation --enable(code)--> enabled
    enabled --disable(code)--> not_enrolled

A wrong code on ``enable`` leaves the account pending; ``setup`` can be
repeated until the account is enabled. Secrets are only ever stored
encrypted (see :mod:`familytable.crypto`).
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from datetime import UTC, datetime, timedelta

from familytable import events
from familytable.auth import totp
from familytable.auth.store import TwoFactorStore
from familytable.config import Role, settings
from familytable.crypto import decrypt_secret, encrypt_secret
from familytable.events import AuditSink, emit_audit
from familytable.models import (
    ActionResponse,
    AuditEntry,
    SetupResponse,
    StatusResponse,
    TwoFactorAccount,
    TwoFactorAction,
    TwoFactorRequest,
)
from familytable.ratelimit import TWO_FACTOR_ATTEMPTS, RateLimiter

logger = logging.getLogger(__name__)


class TwoFactorError(Exception):
    """A 2FA request that cannot be honoured. ``status_code`` is the HTTP mapping."""

    status_code = 400

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class AccountNotFoundError(TwoFactorError):
    status_code = 404


class UnauthorizedError(TwoFactorError):
    status_code = 401


class PermissionDeniedError(TwoFactorError):
    status_code = 403


class CodeRequiredError(TwoFactorError):
    pass


class NotEnrolledError(TwoFactorError):
    pass


class AlreadyEnabledError(TwoFactorError):
    pass


class InvalidCodeError(TwoFactorError):
    pass


class RateLimitedError(TwoFactorError):
    status_code = 429

    def __init__(self, message: str, *, retry_after: float) -> None:
        super().__init__(message)
        self.retry_after = retry_after


def _utcnow() -> datetime:
    return datetime.now(UTC)


class TwoFactorManager:
    def __init__(
        self,
        store: TwoFactorStore,
        *,
        key: bytes | None = None,
        issuer: str | None = None,
        window: int | None = None,
        limiter: RateLimiter | None = None,
        audit: AuditSink = emit_audit,
        replay_protection: bool | None = None,
        validity: timedelta | None = None,
        allowed_roles: Iterable[Role] | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.store = store
        self.key = key
        self.issuer = issuer or settings.totp_issuer
        self.window = settings.totp_window if window is None else window
        self.limiter = limiter or RateLimiter(TWO_FACTOR_ATTEMPTS)
        self.audit = audit
        self.replay_protection = (
            settings.totp_replay_protection if replay_protection is None else replay_protection
        )
        self.validity = validity or timedelta(seconds=settings.two_factor_validity_seconds)
        self.allowed_roles = frozenset(allowed_roles or settings.two_factor_roles)
        self.clock = clock

    # --- dispatch ---

    def handle(self, user_id: str, request: TwoFactorRequest, ip: str | None = None) -> SetupResponse | ActionResponse:
        if request.action == TwoFactorAction.SETUP:
            return self.setup(user_id, ip=ip)
        if request.action == TwoFactorAction.ENABLE:
            return self.enable(user_id, request.code, ip=ip)
        if request.action == TwoFactorAction.DISABLE:
            return self.disable(user_id, request.code, ip=ip)
        return self.verify(user_id, request.code, ip=ip)

    # --- transitions ---

    def setup(self, user_id: str, ip: str | None = None) -> SetupResponse:
        """Generate and store a new (unconfirmed) secret."""
        account = self._load(user_id)
        if account.two_factor_enabled:
            raise AlreadyEnabledError("2FA is already enabled; disable it before re-enrolling")

        secret = totp.validate_secret(totp.generate_secret())
        account.two_factor_secret = encrypt_secret(secret, self.key)
        account.two_factor_verified_at = None
        account.two_factor_last_step = None
        self.store.save(account)
        self._audit(account, events.SETUP_INITIATED, ip)
        logger.info("2FA setup initiated for user %s", user_id)

        return SetupResponse(
            secret=secret,
            qr_code_url=totp.get_provisioning_uri(secret, account.email, self.issuer),
        )

    def enable(self, user_id: str, code: str | None, ip: str | None = None) -> ActionResponse:
        account = self._load(user_id)
        if not code:
            raise CodeRequiredError("Verification code required")
        if not account.two_factor_secret:
            raise NotEnrolledError("Must setup 2FA before enabling")

        step = self._check_code(account, code, ip, fail_action=events.ENABLE_FAILED)
        account.two_factor_enabled = True
        account.two_factor_verified_at = self.clock()
        account.two_factor_last_step = step
        self.store.save(account)
        self._audit(account, events.ENABLED, ip)
        logger.info("2FA enabled for user %s", user_id)
        return ActionResponse(message="2FA enabled successfully")

    def disable(self, user_id: str, code: str | None, ip: str | None = None) -> ActionResponse:
        account = self._load(user_id)
        if not code:
            raise CodeRequiredError("Verification code required to disable 2FA")
        if not account.two_factor_secret or not account.two_factor_enabled:
            raise NotEnrolledError("2FA is not enabled")

        self._check_code(account, code, ip)
        account.two_factor_enabled = False
        account.two_factor_secret = None
        account.two_factor_verified_at = None
        account.two_factor_last_step = None
        self.store.save(account)
        self._audit(account, events.DISABLED, ip)
        logger.info("2FA disabled for user %s", user_id)
        return ActionResponse(message="2FA disabled successfully")

    def verify(self, user_id: str, code: str | None, ip: str | None = None) -> ActionResponse:
        """Re-verify an enabled account, refreshing its grace period."""
        account = self._load(user_id)
        if not code:
            raise CodeRequiredError("Verification code required")
        if not account.two_factor_secret or not account.two_factor_enabled:
            raise NotEnrolledError("2FA is not enabled")

        step = self._check_code(account, code, ip, fail_action=events.VERIFY_FAILED, fail_status=401)
        account.two_factor_verified_at = self.clock()
        account.two_factor_last_step = step
        self.store.save(account)
        self._audit(account, events.VERIFIED, ip)
        minutes = int(self.validity.total_seconds() // 60)
        return ActionResponse(message="2FA verified successfully", valid_for=f"{minutes} minutes")

    def status(self, user_id: str) -> StatusResponse:
        account = self._load(user_id)
        return StatusResponse(
            enabled=account.two_factor_enabled,
            verified_at=account.two_factor_verified_at,
            is_verification_valid=totp.is_verification_fresh(
                account.two_factor_verified_at, self.validity, now=self.clock()
            ),
        )

    def is_recently_verified(self, user_id: str) -> bool:
        """Whether a sensitive action may skip the code prompt."""
        return self.status(user_id).is_verification_valid

    # --- internals ---

    def _load(self, user_id: str) -> TwoFactorAccount:
        account = self.store.get(user_id)
        if account is None:
            raise AccountNotFoundError("User not found")
        if account.role not in self.allowed_roles:
            raise PermissionDeniedError("Only Super Admins can manage 2FA")
        return account

    def _check_code(
        self,
        account: TwoFactorAccount,
        code: str,
        ip: str | None,
        fail_action: str | None = None,
        fail_status: int = 400,
    ) -> int:
        """Return the matched time step or raise InvalidCodeError."""
        limit = self.limiter.check(account.user_id)
        if not limit.allowed:
            logger.warning("2FA attempts throttled for user %s", account.user_id)
            raise RateLimitedError(self.limiter.config.message, retry_after=limit.reset_in)

        # IntegrityError / MasterKeyError propagate: a broken envelope is not a wrong code
        secret = decrypt_secret(account.two_factor_secret or "", self.key)
        step = totp.match_step(code, secret, window=self.window, at=self.clock())

        replayed = (
            step is not None
            and self.replay_protection
            and account.two_factor_last_step is not None
            and step <= account.two_factor_last_step
        )
        if step is None or replayed:
            if replayed:
                logger.warning("Rejected replayed 2FA code for user %s", account.user_id)
            if fail_action:
                self._audit(account, fail_action, ip, reason="Invalid code")
            raise InvalidCodeError("Invalid verification code", status_code=fail_status)

        self.limiter.reset(account.user_id)
        return step

    def _audit(self, account: TwoFactorAccount, action: str, ip: str | None, **extra: str) -> None:
        self.audit(
            AuditEntry(
                user_id=account.user_id,
                entity_id=account.user_id,
                changes={"action": action, **extra},
                ip_address=ip,
            )
        )
