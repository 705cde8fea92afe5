"""Database connection helpers (synchronous, one connection per call)."""

from __future__ import annotations

from typing import Any

import psycopg
import psycopg.rows

from familytable.config import settings


def sync_conn(database_url: str | None = None) -> psycopg.Connection[dict[str, Any]]:
    """Open a synchronous connection using project settings."""
    return psycopg.connect(database_url or settings.database_url, row_factory=psycopg.rows.dict_row)


def sync_execute(
    query: str,
    params: tuple[Any, ...] | None = None,
    database_url: str | None = None,
) -> list[dict[str, Any]]:
    """Execute query synchronously and return all rows as dicts."""
    with sync_conn(database_url) as conn:
        with conn.cursor() as cur:
            cur.execute(query, params)
            conn.commit()
            if cur.description is None:
                return []
            return cur.fetchall()


def sync_execute_one(
    query: str,
    params: tuple[Any, ...] | None = None,
    database_url: str | None = None,
) -> dict[str, Any] | None:
    """Execute query synchronously and return one row."""
    with sync_conn(database_url) as conn:
        with conn.cursor() as cur:
            cur.execute(query, params)
            conn.commit()
            if cur.description is None:
                return None
            return cur.fetchone()
