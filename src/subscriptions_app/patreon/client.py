"""
PageFetcher
===========
1. Reject the call when the access token is already past its expiry.
2. Take a :class:`RateLimiter` slot (the wait counts against the deadline).
3. GET the page with bearer auth and the fixed ``User-Agent``.
4. Non-2xx -> log body, raise :class:`UpstreamStatusError`.
5. Decode one :class:`Page` (``data``, ``included``, ``links.next``).
"""

from __future__ import annotations

import asyncio
import json
import logging
from datetime import datetime, timezone
from typing import Callable
from urllib.parse import urlencode

import aiohttp

from .errors import (
    CredentialExpiredError,
    DecodeError,
    SyncCancelledError,
    TransportError,
    UpstreamStatusError,
)
from .models import Credential, Page
from .ratelimit import RateLimiter

logger = logging.getLogger(__name__)

USER_AGENT = "tickets.bot/subscriptions-app (https://github.com/TicketsBot/subscriptions-app)"
API_BASE = "https://www.patreon.com/api/oauth2/v2"

MEMBER_FIELDS = (
    "last_charge_date",
    "last_charge_status",
    "patron_status",
    "email",
    "pledge_relationship_start",
)
MEMBER_INCLUDES = ("currently_entitled_tiers", "user")
USER_FIELDS = ("social_connections",)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def members_url(campaign_id: int) -> str:
    """First page of the campaign membership listing."""
    query = urlencode(
        {
            "include": ",".join(MEMBER_INCLUDES),
            "fields[member]": ",".join(MEMBER_FIELDS),
            "fields[user]": ",".join(USER_FIELDS),
        }
    )
    return f"{API_BASE}/campaigns/{campaign_id}/members?{query}"


class PageFetcher:
    """Fetch and decode single pages of the Patreon membership API."""

    def __init__(
        self,
        session: aiohttp.ClientSession,
        limiter: RateLimiter,
        *,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._session = session
        self._limiter = limiter
        self._clock = clock

    async def fetch_page(self, url: str, credential: Credential) -> Page:
        logger.debug("Fetching page %s", url)

        if credential.expires_at <= self._clock():
            raise CredentialExpiredError(credential.expires_at)

        headers = {
            "Authorization": f"Bearer {credential.access_token}",
            "User-Agent": USER_AGENT,
        }

        await self._limiter.acquire()

        try:
            async with self._session.get(url, headers=headers) as resp:
                if not 200 <= resp.status < 300:
                    body = await resp.text()
                    logger.error(
                        "Pledge response returned non-OK status code %d: %s",
                        resp.status,
                        body,
                    )
                    raise UpstreamStatusError(resp.status, body, action="pledge response")

                payload = await resp.json(content_type=None)
        except aiohttp.ContentTypeError as exc:
            raise DecodeError(f"pledge response was not JSON: {exc}") from exc
        except json.JSONDecodeError as exc:
            raise DecodeError(f"pledge response was not valid JSON: {exc}") from exc
        except aiohttp.ClientError as exc:
            raise TransportError(f"pledge request failed: {exc}") from exc

        page = Page.from_json(payload)
        logger.debug("Page fetched successfully (%d members) %s", len(page.data), url)
        return page

    async def fetch_page_with_timeout(
        self, url: str, credential: Credential, timeout: float
    ) -> Page:
        """Like :meth:`fetch_page`, bounded by ``timeout`` seconds."""
        try:
            return await asyncio.wait_for(self.fetch_page(url, credential), timeout)
        except asyncio.TimeoutError as exc:
            raise SyncCancelledError("page fetch", timeout) from exc


__all__ = ["PageFetcher", "members_url", "USER_AGENT", "utcnow"]
