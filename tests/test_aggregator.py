import asyncio
import logging

import pytest

from subscriptions_app.patreon.aggregator import PledgeAggregator
from subscriptions_app.patreon.client import members_url
from subscriptions_app.patreon.errors import UpstreamStatusError
from subscriptions_app.patreon.models import Credential, Page

from _fakes import expiring_in, member, page, user

TIERS = {10: "Gold", 20: "Silver"}
CRED = Credential("access", "refresh", expiring_in(days=20))


class FakeFetcher:
    """Serve raw pages keyed by URL; a page may be an exception to raise."""

    def __init__(self, pages):
        self.pages = pages
        self.calls = []

    async def fetch_page_with_timeout(self, url, credential, timeout):
        self.calls.append((url, credential, timeout))
        raw = self.pages[url]
        if isinstance(raw, Exception):
            raise raw
        return Page.from_json(raw)


def _aggregator(pages_by_index):
    """Chain ``pages_by_index`` through ``links.next`` starting at the first page URL."""
    urls = [members_url(42)] + [f"https://example.test/page/{i}" for i in range(1, len(pages_by_index))]
    pages = {}
    for i, (url, raw) in enumerate(zip(urls, pages_by_index)):
        if isinstance(raw, dict) and i + 1 < len(urls):
            raw = dict(raw, links={"next": urls[i + 1]})
        pages[url] = raw
    fetcher = FakeFetcher(pages)
    return PledgeAggregator(fetcher, 42, page_timeout=5), fetcher


def test_walks_every_page_once_and_skips_members_without_email():
    agg, fetcher = _aggregator(
        [
            page([member(1, "a@example.com", tiers=[10]), member(2, "b@example.com")]),
            page([member(3, "c@example.com"), member(4, "")]),
            page([member(5, "e@example.com", tiers=[20])]),
        ]
    )

    snapshot = asyncio.run(agg.aggregate(CRED, TIERS))

    assert len(fetcher.calls) == 3
    assert all(call[1] is CRED and call[2] == 5 for call in fetcher.calls)
    assert sorted(snapshot.by_email) == [
        "a@example.com",
        "b@example.com",
        "c@example.com",
        "e@example.com",
    ]
    assert snapshot.by_email["e@example.com"].tier_names == ("Silver",)


def test_unknown_tiers_are_dropped_with_warning(caplog):
    caplog.set_level(logging.WARNING, logger="subscriptions_app.patreon.aggregator")
    agg, _ = _aggregator([page([member(7, "g@example.com", tiers=[10, 99])])])

    patron = asyncio.run(agg.aggregate(CRED, TIERS)).by_email["g@example.com"]

    assert patron.tiers == (10,)
    assert patron.tier_names == ("Gold",)
    assert "Unknown tier 99 (patron_id=7)" in caplog.text


def test_discord_link_resolved_from_included_users():
    agg, _ = _aggregator(
        [
            page(
                [member(1, "linked@example.com"), member(2, "plain@example.com")],
                included=[user(1, discord_id=9001), user(2)],
            )
        ]
    )

    snapshot = asyncio.run(agg.aggregate(CRED, TIERS))

    assert snapshot.by_email["linked@example.com"].discord_id == 9001
    assert snapshot.by_email["plain@example.com"].discord_id is None
    assert dict(snapshot.by_discord_id) == {9001: snapshot.by_email["linked@example.com"]}


def test_later_member_with_same_email_wins():
    agg, _ = _aggregator(
        [
            page([member(1, "dup@example.com", tiers=[10])]),
            page([member(2, "dup@example.com", tiers=[20])]),
        ]
    )

    patron = asyncio.run(agg.aggregate(CRED, TIERS)).by_email["dup@example.com"]

    assert patron.id == 2


def test_members_without_user_relationship_are_kept_unlinked():
    agg, _ = _aggregator(
        [
            page(
                [member(None, "ghost@example.com", tiers=[10]), member(3, "real@example.com")],
                included=[user(3, discord_id=42)],
            )
        ]
    )

    snapshot = asyncio.run(agg.aggregate(CRED, TIERS))

    assert sorted(snapshot.by_email) == ["ghost@example.com", "real@example.com"]
    ghost = snapshot.by_email["ghost@example.com"]
    assert ghost.id is None
    assert ghost.discord_id is None
    assert ghost.tier_names == ("Gold",)
    assert ghost.profile_url is None
    assert dict(snapshot.by_discord_id) == {42: snapshot.by_email["real@example.com"]}


def test_page_failure_aborts_aggregation():
    agg, fetcher = _aggregator(
        [
            page([member(1, "a@example.com")]),
            UpstreamStatusError(502, "bad gateway", action="pledge response"),
        ]
    )

    with pytest.raises(UpstreamStatusError):
        asyncio.run(agg.aggregate(CRED, TIERS))

    assert len(fetcher.calls) == 2


def test_empty_campaign_yields_empty_snapshot():
    agg, _ = _aggregator([page([])])
    assert len(asyncio.run(agg.aggregate(CRED, TIERS))) == 0
