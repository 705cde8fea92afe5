"""Where the 2FA columns of an account live.

The manager only needs ``get`` and ``save``; concurrent enrollments for the
same user are last-write-wins.
"""

from __future__ import annotations

import threading
from typing import Protocol

from familytable.db import sync_execute, sync_execute_one
from familytable.models import TwoFactorAccount


class TwoFactorStore(Protocol):
    def get(self, user_id: str) -> TwoFactorAccount | None: ...

    def save(self, account: TwoFactorAccount) -> None: ...


class InMemoryTwoFactorStore:
    """Dict-backed store. Each instance is independent."""

    def __init__(self, accounts: list[TwoFactorAccount] | None = None) -> None:
        self._lock = threading.Lock()
        self._accounts: dict[str, TwoFactorAccount] = {}
        for acct in accounts or []:
            self._accounts[acct.user_id] = acct.model_copy()

    def get(self, user_id: str) -> TwoFactorAccount | None:
        with self._lock:
            acct = self._accounts.get(user_id)
            return acct.model_copy() if acct else None

    def save(self, account: TwoFactorAccount) -> None:
        with self._lock:
            self._accounts[account.user_id] = account.model_copy()


class PostgresTwoFactorStore:
    """Reads and writes the ``users`` table 2FA columns."""

    def __init__(self, database_url: str | None = None) -> None:
        self.database_url = database_url

    def get(self, user_id: str) -> TwoFactorAccount | None:
        row = sync_execute_one(
            """SELECT id, email, role, two_factor_secret, two_factor_enabled,
                      two_factor_verified_at, two_factor_last_step
               FROM users
               WHERE id = %s""",
            (user_id,),
            database_url=self.database_url,
        )
        if row is None:
            return None
        return TwoFactorAccount(
            user_id=str(row["id"]),
            email=row["email"],
            role=row["role"],
            two_factor_secret=row["two_factor_secret"],
            two_factor_enabled=bool(row["two_factor_enabled"]),
            two_factor_verified_at=row["two_factor_verified_at"],
            two_factor_last_step=row["two_factor_last_step"],
        )

    def save(self, account: TwoFactorAccount) -> None:
        sync_execute(
            """UPDATE users
               SET two_factor_secret = %s,
                   two_factor_enabled = %s,
                   two_factor_verified_at = %s,
                   two_factor_last_step = %s
               WHERE id = %s""",
            (
                account.two_factor_secret,
                account.two_factor_enabled,
                account.two_factor_verified_at,
                account.two_factor_last_step,
                account.user_id,
            ),
            database_url=self.database_url,
        )
