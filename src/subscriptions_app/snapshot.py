"""
Published patron index.

A :class:`Snapshot` is built whole at the end of a sync cycle and never
mutated afterwards. :class:`SnapshotStore` swaps the visible snapshot with a
single reference assignment, and every read grabs that reference once, so a
lookup sees either the previous snapshot or the new one and never a mix of the
email and Discord views.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from types import MappingProxyType
from typing import TYPE_CHECKING, Mapping, Optional

if TYPE_CHECKING:
    from subscriptions_app.patreon.models import Patron

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Snapshot:
    by_email: Mapping[str, Patron]
    by_discord_id: Mapping[int, Patron]

    @classmethod
    def build(cls, patrons_by_email: Mapping[str, Patron]) -> "Snapshot":
        """Freeze ``patrons_by_email`` and derive the Discord id view from it."""
        by_email = dict(patrons_by_email)
        by_discord_id = {
            patron.discord_id: patron
            for patron in by_email.values()
            if patron.discord_id is not None
        }
        return cls(
            by_email=MappingProxyType(by_email),
            by_discord_id=MappingProxyType(by_discord_id),
        )

    def __len__(self) -> int:
        return len(self.by_email)


class SnapshotStore:
    """Holds the currently visible :class:`Snapshot` for lookup callers."""

    def __init__(self) -> None:
        self._snapshot: Optional[Snapshot] = None

    def publish(self, snapshot: Snapshot) -> None:
        self._snapshot = snapshot
        logger.info(
            "Published snapshot: %d patrons, %d linked Discord accounts",
            len(snapshot.by_email),
            len(snapshot.by_discord_id),
        )

    def current(self) -> Optional[Snapshot]:
        return self._snapshot

    def has_data(self) -> bool:
        """``True`` once any snapshot (even an empty one) has been published."""
        return self._snapshot is not None

    def lookup_by_email(self, email: str) -> Optional[Patron]:
        snapshot = self._snapshot
        if snapshot is None:
            return None
        return snapshot.by_email.get(email)

    def lookup_by_discord_id(self, discord_id: int) -> Optional[Patron]:
        snapshot = self._snapshot
        if snapshot is None:
            return None
        return snapshot.by_discord_id.get(discord_id)


__all__ = ["Snapshot", "SnapshotStore"]
