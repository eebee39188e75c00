"""Discord bot bootstrap and process wiring."""

from __future__ import annotations

import asyncio
import logging
from datetime import timedelta
from typing import Optional

import aiohttp
import discord
from discord.ext import commands as discord_commands

from subscriptions_app import commands as app_commands_registry
from subscriptions_app import storage
from subscriptions_app.config import core, patreon as patreon_cfg
from subscriptions_app.event_hooks import ready_hook
from subscriptions_app.patreon import (
    CredentialStore,
    PageFetcher,
    PledgeAggregator,
    RateLimiter,
)
from subscriptions_app.snapshot import SnapshotStore
from subscriptions_app.sync import SyncScheduler

logger = logging.getLogger(__name__)

# --- Intents --------------------------------------------------------------- #
# Slash commands only; no privileged intents needed.
intents = discord.Intents.default()


class SubscriptionsBot(discord_commands.Bot):
    """Bot serving ``/lookup`` from the published patron snapshot."""

    def __init__(self, snapshots: SnapshotStore, scheduler: Optional[SyncScheduler] = None) -> None:
        super().__init__(command_prefix=discord_commands.when_mentioned, intents=intents)
        self.snapshots = snapshots
        self.scheduler = scheduler
        self.fatal: Optional[BaseException] = None
        self.shutdown_task: Optional[asyncio.Task] = None

    async def setup_hook(self) -> None:
        """Register slash commands and synchronise with Discord."""

        await app_commands_registry.setup(self)

        try:
            synced = await self.tree.sync()
            logger.info("Synced %d application command(s)", len(synced))
        except discord.HTTPException:
            logger.exception("Failed to sync application commands")

    async def on_ready(self) -> None:
        await ready_hook.handle(self)

    async def close(self) -> None:
        if self.scheduler is not None:
            await self.scheduler.stop()
        await super().close()


def open_credentials(
    conn, session: aiohttp.ClientSession, limiter: Optional[RateLimiter] = None
) -> CredentialStore:
    """Build the credential store for the configured OAuth client."""
    return CredentialStore(
        storage.TokensRepo(conn, asyncio.Lock()),
        session,
        client_id=patreon_cfg.CLIENT_ID,
        client_secret=patreon_cfg.CLIENT_SECRET,
        limiter=limiter,
        refresh_window=timedelta(days=patreon_cfg.REFRESH_WINDOW_DAYS),
    )


async def serve() -> int:
    """
    Run the bot and the sync loop until shutdown.

    :returns: Process exit status; non-zero after a fatal sync failure.
    """
    conn = storage.connect()
    storage.migrate(conn)

    try:
        # Phase deadlines bound every request; no session-wide timeout.
        async with aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=None)) as session:
            limiter = RateLimiter(patreon_cfg.REQUESTS_PER_MINUTE)
            credentials = open_credentials(conn, session, limiter)
            await credentials.load()

            aggregator = PledgeAggregator(
                PageFetcher(session, limiter),
                patreon_cfg.CAMPAIGN_ID,
                page_timeout=patreon_cfg.PAGE_TIMEOUT,
            )
            snapshots = SnapshotStore()
            scheduler = SyncScheduler(
                credentials,
                aggregator,
                snapshots,
                patreon_cfg.TIERS,
                interval=patreon_cfg.SYNC_INTERVAL,
                refresh_timeout=patreon_cfg.REFRESH_TIMEOUT,
                aggregate_timeout=patreon_cfg.AGGREGATE_TIMEOUT,
            )

            bot = SubscriptionsBot(snapshots, scheduler)
            async with bot:
                try:
                    await bot.start(core.DISCORD_API_TOKEN)
                except discord.LoginFailure as exc:
                    logger.error("Login failed: %s", exc)
                    return 1
    finally:
        conn.close()

    return 1 if bot.fatal is not None else 0


def run() -> int:
    """Start the Discord bot using configuration from the environment."""

    if not core.DISCORD_API_TOKEN:
        logger.error("No DISCORD_API_TOKEN configured. Cannot run client.")
        return 1

    try:
        return asyncio.run(serve())
    except KeyboardInterrupt:
        logger.info("Interrupted, shutting down")
        return 0
