"""SQLite persistence for the Patreon credential table."""

from .db import connect, migrate
from .repositories import TokensRepo

__all__ = ["connect", "migrate", "TokensRepo"]
