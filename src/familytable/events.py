"""Audit log for security-sensitive account changes.

Every 2FA transition calls an audit sink. The default sink writes to the
``audit_logs`` table; a failed write is logged and never fails the request.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Protocol

from familytable.db import sync_execute
from familytable.models import AuditEntry

logger = logging.getLogger(__name__)

SETUP_INITIATED = "2FA_SETUP_INITIATED"
ENABLE_FAILED = "2FA_ENABLE_FAILED"
ENABLED = "2FA_ENABLED"
DISABLED = "2FA_DISABLED"
VERIFY_FAILED = "2FA_VERIFY_FAILED"
VERIFIED = "2FA_VERIFIED"


class AuditSink(Protocol):
    def __call__(self, entry: AuditEntry) -> Any: ...


def emit_audit(entry: AuditEntry) -> int | None:
    """Insert an audit entry into audit_logs.

    Returns the entry ID if successful, None on failure.
    """
    try:
        rows = sync_execute(
            """INSERT INTO audit_logs
               (user_id, action, entity_type, entity_id, changes, ip_address, created_at)
               VALUES (%s, %s, %s, %s, %s, %s, %s)
               RETURNING id""",
            (
                entry.user_id,
                entry.action,
                entry.entity_type,
                entry.entity_id,
                json.dumps(entry.changes),
                entry.ip_address,
                entry.created_at,
            ),
        )
        entry_id = rows[0]["id"] if rows else None
        logger.info("[audit] %s %s/%s: %s", entry.user_id, entry.entity_type, entry.entity_id, entry.changes)
        return entry_id
    except Exception:
        logger.warning("Failed to write audit entry: %s %s", entry.user_id, entry.changes, exc_info=True)
        return None


class MemoryAuditLog:
    """Collects audit entries in a list."""

    def __init__(self) -> None:
        self.entries: list[AuditEntry] = []

    def __call__(self, entry: AuditEntry) -> int:
        self.entries.append(entry)
        logger.info("[audit] %s %s/%s: %s", entry.user_id, entry.entity_type, entry.entity_id, entry.changes)
        return len(self.entries)

    def actions(self) -> list[str]:
        return [e.changes.get("action", "") for e in self.entries]
