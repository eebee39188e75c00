"""
SQLite bootstrap and connection helpers
=======================================

- Path comes from ``config.database.DB_PATH`` unless given explicitly.
- WAL so the startup read never blocks on a concurrent refresh write.
"""

from __future__ import annotations

import pathlib
import sqlite3
from typing import Optional


def connect(path: Optional[str] = None) -> sqlite3.Connection:
    if path is None:
        from subscriptions_app.config import database

        path = database.DB_PATH

    if path != ":memory:":
        pathlib.Path(path).parent.mkdir(parents=True, exist_ok=True)

    # Autocommit; writes use explicit `with conn:` blocks in worker threads.
    conn = sqlite3.connect(
        path,
        isolation_level=None,
        check_same_thread=False,
    )

    conn.execute("PRAGMA journal_mode=WAL;")
    conn.execute("PRAGMA synchronous=NORMAL;")
    # Reduce SQLITE_BUSY errors under contention
    conn.execute("PRAGMA busy_timeout=3000;")

    # dict-like rows
    conn.row_factory = sqlite3.Row

    return conn


def migrate(conn: sqlite3.Connection) -> None:
    """
    Execute schema.sql (idempotent). The schema uses IF NOT EXISTS throughout.
    """
    schema_file = pathlib.Path(__file__).with_name("schema.sql")
    sql = schema_file.read_text(encoding="utf-8")
    with conn:  # single transaction for the whole migration
        conn.executescript(sql)
