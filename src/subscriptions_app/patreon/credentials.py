"""
Credential lifecycle for the Patreon creator token.

The store owns the single :class:`Credential` the process uses. It is replaced
wholesale, never mutated, and only after the new pair has been persisted, so
``current`` never runs ahead of the database.
"""

from __future__ import annotations

import asyncio
import json
import logging
import sqlite3
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Callable, Optional

import aiohttp

from .client import USER_AGENT, utcnow
from .errors import (
    DecodeError,
    PersistenceError,
    TransportError,
    UpstreamStatusError,
)
from .models import Credential
from .ratelimit import RateLimiter

if TYPE_CHECKING:
    from subscriptions_app.storage.repositories import TokensRepo

logger = logging.getLogger(__name__)

TOKEN_ENDPOINT = "https://www.patreon.com/api/oauth2/token"
DEFAULT_REFRESH_WINDOW = timedelta(days=3)


class CredentialStore:
    """Load, refresh and persist the OAuth token pair for one client id."""

    def __init__(
        self,
        repo: "TokensRepo",
        session: aiohttp.ClientSession,
        *,
        client_id: str,
        client_secret: str,
        limiter: RateLimiter | None = None,
        refresh_window: timedelta = DEFAULT_REFRESH_WINDOW,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._repo = repo
        self._session = session
        self.client_id = client_id
        self._client_secret = client_secret
        self._limiter = limiter
        self.refresh_window = refresh_window
        self._clock = clock
        self._refresh_lock = asyncio.Lock()
        self.current: Optional[Credential] = None

    # ------------------------------------------------------------------ #
    # Policy
    # ------------------------------------------------------------------ #

    def needs_refresh(self, credential: Credential) -> bool:
        return self._clock() >= credential.expires_at - self.refresh_window

    def is_expired(self, credential: Credential) -> bool:
        return self._clock() >= credential.expires_at

    # ------------------------------------------------------------------ #
    # Persistence
    # ------------------------------------------------------------------ #

    async def load(self) -> Optional[Credential]:
        """
        Read the persisted credential. A missing row is a valid initial state.

        :raises PersistenceError: If the database read itself fails.
        """
        try:
            credential = await self._repo.get(self.client_id)
        except sqlite3.Error as exc:
            logger.error("Failed to get Patreon keys from database: %s", exc)
            raise PersistenceError(f"failed to read Patreon keys: {exc}") from exc

        if credential is None:
            logger.info("No Patreon keys found in database for client %s", self.client_id)
        else:
            logger.info("Loaded Patreon keys (expires at %s)", credential.expires_at.isoformat())
        self.current = credential
        return credential

    async def seed(self, access_token: str, refresh_token: str, expires_in: int) -> Credential:
        """Persist an operator-supplied token pair, replacing any stored one."""
        credential = Credential(
            access_token=access_token,
            refresh_token=refresh_token,
            expires_at=self._clock() + timedelta(seconds=int(expires_in)),
        )
        await self._commit(credential)
        logger.info("Seeded Patreon keys (expires at %s)", credential.expires_at.isoformat())
        return credential

    async def _commit(self, credential: Credential) -> None:
        await self._persist(credential)
        self.current = credential

    async def _persist(self, credential: Credential) -> None:
        try:
            await self._repo.upsert(self.client_id, credential)
        except sqlite3.Error as exc:
            logger.error("Failed to update Patreon keys in database: %s", exc)
            raise PersistenceError(f"failed to update Patreon keys in database: {exc}") from exc

    # ------------------------------------------------------------------ #
    # Refresh
    # ------------------------------------------------------------------ #

    async def _request_refresh(self, refresh_token: str) -> dict:
        form = {
            "grant_type": "refresh_token",
            "refresh_token": refresh_token,
            "client_id": self.client_id,
            "client_secret": self._client_secret,
        }

        if self._limiter is not None:
            await self._limiter.acquire()

        try:
            async with self._session.post(
                TOKEN_ENDPOINT, data=form, headers={"User-Agent": USER_AGENT}
            ) as resp:
                if not 200 <= resp.status < 300:
                    body = await resp.text()
                    logger.error(
                        "OAuth response returned non-OK status code %d: %s",
                        resp.status,
                        body,
                    )
                    raise UpstreamStatusError(resp.status, body, action="oauth response")
                payload = await resp.json(content_type=None)
        except aiohttp.ContentTypeError as exc:
            raise DecodeError(f"oauth response was not JSON: {exc}") from exc
        except json.JSONDecodeError as exc:
            logger.error("Failed to decode Patreon refresh response: %s", exc)
            raise DecodeError(f"oauth response was not valid JSON: {exc}") from exc
        except aiohttp.ClientError as exc:
            logger.error("Failed to refresh Patreon credentials: %s", exc)
            raise TransportError(f"oauth request failed: {exc}") from exc

        if not isinstance(payload, dict):
            raise DecodeError("oauth response was not a JSON object")
        return payload

    async def refresh(self, credential: Credential | None = None) -> Credential:
        """
        Exchange the refresh token for a new pair and persist it.

        Concurrent callers are serialized. On any failure the stored credential
        and :attr:`current` are left untouched.

        :param credential: Credential whose refresh token to use; defaults to
            :attr:`current`.
        :raises PatreonError: Transport, status, decode or persistence failure.
        """
        async with self._refresh_lock:
            credential = credential or self.current
            if credential is None:
                raise PersistenceError("no stored credential to refresh")

            # A refresh that held the lock before us may have rotated this refresh token.
            current = self.current
            if current is not None and current != credential:
                logger.debug("Tokens already refreshed (expires at %s)", current.expires_at.isoformat())
                return current

            payload = await self._request_refresh(credential.refresh_token)
            received_at = self._clock()

            access_token = payload.get("access_token")
            if not access_token:
                raise DecodeError("no access_token returned by Patreon")
            try:
                expires_in = int(payload["expires_in"])
            except (KeyError, TypeError, ValueError) as exc:
                raise DecodeError("missing or invalid expires_in in refresh response") from exc

            refreshed = Credential(
                access_token=access_token,
                refresh_token=payload.get("refresh_token") or credential.refresh_token,
                expires_at=received_at + timedelta(seconds=expires_in),
            )

            # Database row and `current` change together even if the caller times out.
            await asyncio.shield(self._commit(refreshed))
            logger.info("Tokens refreshed (expires at %s)", refreshed.expires_at.isoformat())
            return refreshed


__all__ = ["CredentialStore", "TOKEN_ENDPOINT", "DEFAULT_REFRESH_WINDOW"]
