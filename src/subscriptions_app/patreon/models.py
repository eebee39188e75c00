"""Dataclass models for credentials, patrons and decoded API pages.

Membership pages follow the JSON:API layout returned by the Patreon v2 API::

    {
      "data": [
        {"id": "<member uuid>", "type": "member",
         "attributes": {"email": "...", "patron_status": "active_patron",
                        "last_charge_status": "Paid",
                        "last_charge_date": "2024-01-01T00:00:00.000+00:00",
                        "pledge_relationship_start": "..."},
         "relationships": {
           "user": {"data": {"id": "123", "type": "user"}},
           "currently_entitled_tiers": {"data": [{"id": "10", "type": "tier"}]}}}
      ],
      "included": [
        {"id": "123", "type": "user",
         "attributes": {"social_connections": {"discord": {"user_id": "456"}}}}
      ],
      "links": {"next": "https://..."}
    }

Decoding raises :class:`DecodeError` on anything structurally wrong so callers
only ever deal with one failure type for malformed bodies.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Mapping, Optional, Tuple

from .errors import DecodeError


def _parse_id(value: Any) -> Optional[int]:
    """Patreon serializes numeric ids as strings; ``None`` stays ``None``."""
    if value is None or value == "":
        return None
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise DecodeError(f"expected a numeric id, got {value!r}") from exc


def _parse_datetime(value: Any) -> Optional[datetime]:
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError as exc:
        raise DecodeError(f"invalid timestamp {value!r}") from exc
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _as_dict(value: Any, what: str) -> Dict[str, Any]:
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise DecodeError(f"expected an object for {what}, got {type(value).__name__}")
    return value


def _as_list(value: Any, what: str) -> list:
    if value is None:
        return []
    if not isinstance(value, list):
        raise DecodeError(f"expected an array for {what}, got {type(value).__name__}")
    return value


@dataclass(frozen=True)
class Credential:
    """OAuth token pair; ``expires_at`` is the server-reported access token expiry."""

    access_token: str
    refresh_token: str
    expires_at: datetime

    def __repr__(self) -> str:
        return f"Credential(expires_at={self.expires_at.isoformat()})"


@dataclass(frozen=True)
class PatronAttributes:
    status: Optional[str] = None
    last_charge_status: Optional[str] = None
    last_charge_date: Optional[datetime] = None
    pledge_start: Optional[datetime] = None

    @classmethod
    def from_json(cls, raw: Mapping[str, Any]) -> "PatronAttributes":
        return cls(
            status=raw.get("patron_status"),
            last_charge_status=raw.get("last_charge_status"),
            last_charge_date=_parse_datetime(raw.get("last_charge_date")),
            pledge_start=_parse_datetime(raw.get("pledge_relationship_start")),
        )


@dataclass(frozen=True)
class Patron:
    """A subscriber record as published in a snapshot; ``id`` is unset when Patreon sent no user."""

    id: Optional[int]
    email: str
    discord_id: Optional[int] = None
    tiers: Tuple[int, ...] = ()
    tier_names: Tuple[str, ...] = ()
    attributes: PatronAttributes = field(default_factory=PatronAttributes)

    @property
    def profile_url(self) -> Optional[str]:
        if self.id is None:
            return None
        return f"https://www.patreon.com/user?u={self.id}"


@dataclass(frozen=True)
class MemberEntry:
    """One ``data[]`` item of a membership page."""

    member_id: Optional[str]
    user_id: Optional[int]
    email: str
    attributes: PatronAttributes
    tier_ids: Tuple[int, ...] = ()

    @classmethod
    def from_json(cls, raw: Any) -> "MemberEntry":
        raw = _as_dict(raw, "member")
        attrs = _as_dict(raw.get("attributes"), "member.attributes")
        rels = _as_dict(raw.get("relationships"), "member.relationships")

        user = _as_dict(_as_dict(rels.get("user"), "user relationship").get("data"), "user data")
        tiers = _as_list(
            _as_dict(rels.get("currently_entitled_tiers"), "tiers relationship").get("data"),
            "tiers data",
        )

        return cls(
            member_id=raw.get("id"),
            user_id=_parse_id(user.get("id")),
            email=attrs.get("email") or "",
            attributes=PatronAttributes.from_json(attrs),
            tier_ids=tuple(
                tid for tid in (_parse_id(_as_dict(t, "tier").get("id")) for t in tiers) if tid is not None
            ),
        )


@dataclass(frozen=True)
class IncludedResource:
    """One ``included[]`` item; only the Discord link is retained."""

    id: Optional[int]
    type: Optional[str]
    discord_id: Optional[int] = None

    @classmethod
    def from_json(cls, raw: Any) -> "IncludedResource":
        raw = _as_dict(raw, "included resource")
        attrs = _as_dict(raw.get("attributes"), "included.attributes")
        socials = _as_dict(attrs.get("social_connections"), "social_connections")
        discord = _as_dict(socials.get("discord"), "discord connection")
        return cls(
            id=_parse_id(raw.get("id")),
            type=raw.get("type"),
            discord_id=_parse_id(discord.get("user_id")),
        )


@dataclass(frozen=True)
class Page:
    data: Tuple[MemberEntry, ...] = ()
    included: Tuple[IncludedResource, ...] = ()
    next_url: Optional[str] = None

    @classmethod
    def from_json(cls, raw: Any) -> "Page":
        raw = _as_dict(raw, "page")
        if "data" not in raw:
            raise DecodeError("page has no 'data' member")
        links = _as_dict(raw.get("links"), "links")
        return cls(
            data=tuple(MemberEntry.from_json(m) for m in _as_list(raw.get("data"), "data")),
            included=tuple(IncludedResource.from_json(i) for i in _as_list(raw.get("included"), "included")),
            next_url=links.get("next") or None,
        )

    def discord_id_for(self, user_id: int) -> Optional[int]:
        """Return the linked Discord id of the included user ``user_id``, if any."""
        for resource in self.included:
            if resource.type not in (None, "user"):
                continue
            if resource.id == user_id:
                return resource.discord_id
        return None


__all__ = [
    "Credential",
    "PatronAttributes",
    "Patron",
    "MemberEntry",
    "IncludedResource",
    "Page",
]
