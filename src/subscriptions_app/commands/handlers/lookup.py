"""
/lookup slash command.

The command accepts exactly one kind of key per call, modelled as a closed set
of query variants (:class:`EmailQuery`, :class:`UserQuery`). Reply building
is kept free of Discord I/O so it can be exercised without a gateway.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional, Sequence, Union

import discord
from discord import app_commands
from discord.ext import commands

from subscriptions_app.config import core as core_cfg
from subscriptions_app.patreon.models import Patron
from subscriptions_app.snapshot import SnapshotStore

from .. import register_cog

logger = logging.getLogger(__name__)

RED = 0xEB4034
BLUE = 0x4287F5


@dataclass(frozen=True)
class EmailQuery:
    email: str


@dataclass(frozen=True)
class UserQuery:
    user_id: int


LookupQuery = Union[EmailQuery, UserQuery]


def parse_query(email: Optional[str], user: Optional[Any]) -> Optional[LookupQuery]:
    """Pick the query variant from the command options; email wins if both are set."""
    if email and email.strip():
        return EmailQuery(email.strip())
    if user is not None:
        return UserQuery(int(user.id))
    return None


def find_patron(store: SnapshotStore, query: LookupQuery) -> Optional[Patron]:
    if isinstance(query, EmailQuery):
        return store.lookup_by_email(query.email)
    if isinstance(query, UserQuery):
        return store.lookup_by_discord_id(query.user_id)
    raise TypeError(f"Unsupported lookup query: {query!r}")


# ----------------------------- Rendering ---------------------------------- #


def _timestamp(value: Optional[datetime]) -> str:
    if value is None:
        return "Unknown"
    return f"<t:{int(value.timestamp())}>"


def not_found_embed(query: LookupQuery) -> discord.Embed:
    if isinstance(query, EmailQuery):
        description = f"No Patreon account with email `{query.email}` found"
    else:
        description = f"No Patreon account with id `{query.user_id}` found"
    return discord.Embed(
        title="Account Not Found",
        description=description,
        colour=RED,
        timestamp=discord.utils.utcnow(),
    )


def patron_embed(patron: Patron, requester: Optional[Any] = None) -> discord.Embed:
    """Render a found patron the way support staff expect to read it."""
    embed = discord.Embed(
        title="Account Found",
        url=patron.profile_url,
        colour=BLUE,
        timestamp=discord.utils.utcnow(),
    )
    if requester is not None:
        avatar = getattr(requester, "display_avatar", None)
        embed.set_author(name=str(requester.name), icon_url=getattr(avatar, "url", None))

    attrs = patron.attributes
    discord_link = "Not linked"
    if patron.discord_id is not None:
        discord_link = f"<@{patron.discord_id}> ({patron.discord_id})"

    embed.add_field(name="Status", value=attrs.status or "Unknown", inline=True)
    embed.add_field(name="Last Charge Status", value=attrs.last_charge_status or "Unknown", inline=True)
    embed.add_field(name="Last Charge Date", value=_timestamp(attrs.last_charge_date), inline=True)
    embed.add_field(name="Join Date", value=_timestamp(attrs.pledge_start), inline=True)
    embed.add_field(name="Active Tiers", value=", ".join(patron.tier_names) or "None", inline=True)
    embed.add_field(name="Discord Account", value=discord_link, inline=True)
    return embed


def build_reply(
    store: Optional[SnapshotStore],
    *,
    guild_id: Optional[int],
    allowed_guilds: Sequence[int],
    query: Optional[LookupQuery],
    requester: Optional[Any] = None,
) -> Dict[str, Any]:
    """
    Decide the reply for one ``/lookup`` call.

    :returns: Keyword arguments for ``InteractionResponse.send_message``.
    """
    if guild_id is None or guild_id not in allowed_guilds:
        return {"content": "This guild is not in the allowed guilds list", "ephemeral": True}

    if query is None:
        return {"content": "Missing email or user", "ephemeral": True}

    if store is None or not store.has_data():
        return {
            "content": "Initial data not loaded yet, please try again in a few minutes",
            "ephemeral": True,
        }

    patron = find_patron(store, query)
    if patron is None:
        return {"embed": not_found_embed(query)}
    return {"embed": patron_embed(patron, requester)}


# ------------------------------- Cog -------------------------------------- #


@register_cog
class Lookup(commands.Cog):
    """Look up Patreon subscription details."""

    def __init__(self, bot: commands.Bot):
        self.bot = bot

    @app_commands.command(name="lookup", description="Look up information about a user's subscription")
    @app_commands.describe(
        email="The Patreon email address of the user to lookup",
        user="The Discord user to lookup",
    )
    async def lookup(
        self,
        interaction: discord.Interaction,
        email: Optional[str] = None,
        user: Optional[discord.User] = None,
    ) -> None:
        query = parse_query(email, user)
        logger.info(
            "Lookup by %s in guild %s (%s)",
            interaction.user.id,
            interaction.guild_id,
            type(query).__name__ if query else "no query",
        )

        reply = build_reply(
            getattr(self.bot, "snapshots", None),
            guild_id=interaction.guild_id,
            allowed_guilds=core_cfg.ALLOWED_GUILDS,
            query=query,
            requester=interaction.user,
        )
        await interaction.response.send_message(**reply)
