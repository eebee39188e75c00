"""
Background sync loop.

Each cycle walks ``Idle -> Refreshing (conditional) -> Aggregating ->
Publishing -> Idle``. The next cycle starts ``interval`` seconds after the
previous one *finished*, so cycles never overlap. Every phase runs under its
own deadline; :class:`PatreonError` failures end the cycle without publishing
and the previous snapshot stays authoritative. Only
:class:`ExpiredCredentialFatal` escapes the loop.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Mapping, Optional

from subscriptions_app.patreon.aggregator import PledgeAggregator
from subscriptions_app.patreon.credentials import CredentialStore
from subscriptions_app.patreon.errors import (
    ExpiredCredentialFatal,
    PatreonError,
    SyncCancelledError,
)
from subscriptions_app.snapshot import Snapshot, SnapshotStore

logger = logging.getLogger(__name__)

DEFAULT_INTERVAL = 60.0
DEFAULT_REFRESH_TIMEOUT = 30.0
DEFAULT_AGGREGATE_TIMEOUT = 60.0 * 60


async def _with_deadline(aw: Awaitable, timeout: float, phase: str):
    """Await ``aw`` under ``timeout``; a missed deadline becomes :class:`SyncCancelledError`."""
    try:
        return await asyncio.wait_for(aw, timeout)
    except asyncio.TimeoutError as exc:
        raise SyncCancelledError(phase, timeout) from exc


class SyncScheduler:
    """Drive refresh-check, aggregation and publishing on a fixed interval."""

    def __init__(
        self,
        credentials: CredentialStore,
        aggregator: PledgeAggregator,
        snapshots: SnapshotStore,
        tier_names: Mapping[int, str],
        *,
        interval: float = DEFAULT_INTERVAL,
        refresh_timeout: float = DEFAULT_REFRESH_TIMEOUT,
        aggregate_timeout: float = DEFAULT_AGGREGATE_TIMEOUT,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.credentials = credentials
        self.aggregator = aggregator
        self.snapshots = snapshots
        self.tier_names = dict(tier_names)
        self.interval = interval
        self.refresh_timeout = refresh_timeout
        self.aggregate_timeout = aggregate_timeout
        self._sleep = sleep
        self._task: asyncio.Task | None = None
        self.state = "idle"

    # ------------------------------------------------------------------ #
    # Phases
    # ------------------------------------------------------------------ #

    async def _refresh_phase(self) -> None:
        self.state = "refreshing"
        credential = self.credentials.current

        if credential is None:
            logger.critical("No Patreon keys stored; seed them before starting the sync loop")
            raise ExpiredCredentialFatal("no Patreon credential stored")

        if self.credentials.is_expired(credential):
            logger.critical(
                "Refresh token has already expired (expired at %s)",
                credential.expires_at.isoformat(),
            )
            raise ExpiredCredentialFatal(
                f"refresh token has already expired (expired at {credential.expires_at.isoformat()})"
            )

        if not self.credentials.needs_refresh(credential):
            return

        logger.info(
            "Token expires in less than %s, refreshing (expires at %s)",
            self.credentials.refresh_window,
            credential.expires_at.isoformat(),
        )
        try:
            await _with_deadline(
                self.credentials.refresh(credential), self.refresh_timeout, "token refresh"
            )
        except PatreonError as exc:
            logger.error("Failed to refresh token: %s", exc)
        else:
            logger.info("Tokens refreshed successfully")

    async def _aggregate_phase(self) -> Optional[Snapshot]:
        self.state = "aggregating"
        # Re-read: a successful refresh has replaced the credential.
        credential = self.credentials.current
        try:
            return await _with_deadline(
                self.aggregator.aggregate(credential, self.tier_names),
                self.aggregate_timeout,
                "aggregation",
            )
        except PatreonError as exc:
            logger.error("Failed to fetch pledges: %s", exc)
        return None

    # ------------------------------------------------------------------ #
    # Cycle / loop
    # ------------------------------------------------------------------ #

    async def run_cycle(self) -> Optional[Snapshot]:
        """
        Run one full cycle.

        :returns: The published snapshot, or ``None`` when the cycle failed.
        :raises ExpiredCredentialFatal: If the credential expired before any
            refresh could succeed.
        """
        try:
            await self._refresh_phase()
            snapshot = await self._aggregate_phase()
            if snapshot is None:
                return None

            self.state = "publishing"
            self.snapshots.publish(snapshot)
            return snapshot
        finally:
            self.state = "idle"

    async def run_forever(self) -> None:
        """Loop :meth:`run_cycle` until cancelled or a fatal error occurs."""
        logger.info("Starting Patreon sync loop (interval=%ss)", self.interval)
        while True:
            try:
                await self.run_cycle()
            except ExpiredCredentialFatal:
                raise
            except Exception:
                logger.exception("Sync cycle failed")
            await self._sleep(self.interval)

    # ------------------------------------------------------------------ #
    # Task management
    # ------------------------------------------------------------------ #

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> asyncio.Task:
        """Schedule :meth:`run_forever` as a background task (idempotent)."""
        if not self.running:
            self._task = asyncio.create_task(self.run_forever(), name="patreon-sync")
        return self._task

    async def stop(self) -> None:
        """Cancel the background task if running and wait for it to finish."""
        task, self._task = self._task, None
        if not task:
            return

        task.cancel()
        try:
            await task
        except asyncio.CancelledError:  # pragma: no cover - normal cancellation
            pass
        except ExpiredCredentialFatal:
            pass  # already reported when the task finished


__all__ = [
    "SyncScheduler",
    "DEFAULT_INTERVAL",
    "DEFAULT_REFRESH_TIMEOUT",
    "DEFAULT_AGGREGATE_TIMEOUT",
]
