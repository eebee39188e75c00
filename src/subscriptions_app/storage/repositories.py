"""
Repositories (SQL-only)
=======================
- No HTTP or token policy here; pure reads and writes of ``patreon_keys``.
"""

from __future__ import annotations

import asyncio
import sqlite3
import time
from datetime import datetime, timezone
from typing import Optional

from subscriptions_app.patreon.models import Credential


class TokensRepo:
    def __init__(self, conn: sqlite3.Connection, lock: asyncio.Lock):
        self.conn = conn
        self._lock = lock

    async def get(self, client_id: str) -> Optional[Credential]:
        """
        Return the stored credential for ``client_id``.

        :param client_id: Patreon OAuth client id.
        :returns: ``None`` when no row exists yet.
        """
        sql = """
            SELECT access_token, refresh_token, expires_at
            FROM patreon_keys
            WHERE client_id=?
        """

        def _query() -> Optional[Credential]:
            row = self.conn.execute(sql, (client_id,)).fetchone()
            if row is None:
                return None
            return Credential(
                access_token=row["access_token"],
                refresh_token=row["refresh_token"],
                expires_at=datetime.fromtimestamp(row["expires_at"], tz=timezone.utc),
            )

        async with self._lock:
            return await asyncio.to_thread(_query)

    async def upsert(self, client_id: str, credential: Credential) -> None:
        """Insert or overwrite the row for ``client_id`` in one transaction."""
        sql = """
            INSERT INTO patreon_keys (
              client_id, access_token, refresh_token, expires_at, updated_at
            ) VALUES (?, ?, ?, ?, ?)
            ON CONFLICT(client_id) DO UPDATE SET
              access_token=excluded.access_token,
              refresh_token=excluded.refresh_token,
              expires_at=excluded.expires_at,
              updated_at=excluded.updated_at
        """

        def _run() -> None:
            with self.conn:
                self.conn.execute(
                    sql,
                    (
                        client_id,
                        credential.access_token,
                        credential.refresh_token,
                        credential.expires_at.timestamp(),
                        time.time(),
                    ),
                )

        async with self._lock:
            await asyncio.to_thread(_run)
