import asyncio

import pytest

from subscriptions_app.patreon.credentials import CredentialStore
from subscriptions_app.patreon.errors import DecodeError, ExpiredCredentialFatal
from subscriptions_app.patreon.models import Credential, Patron
from subscriptions_app.snapshot import Snapshot, SnapshotStore
from subscriptions_app.sync import SyncScheduler

from _fakes import NOW, FakeRepo, FakeResponse, FakeSession, expiring_in

TIERS = {10: "Gold"}
REFRESHED = {"access_token": "new-access", "refresh_token": "new-refresh", "expires_in": 2678400}


class FakeAggregator:
    def __init__(self, result=None, error=None, during=None):
        self.result = result if result is not None else Snapshot.build({})
        self.error = error
        self.during = during
        self.calls = []

    async def aggregate(self, credential, tier_names):
        self.calls.append(credential)
        if self.during is not None:
            self.during()
        if self.error is not None:
            raise self.error
        return self.result


def _credentials(expires_at, post=()):
    old = Credential("old-access", "old-refresh", expires_at)
    repo = FakeRepo({"cid": old})
    store = CredentialStore(
        repo,
        FakeSession(post=post),
        client_id="cid",
        client_secret="shh",
        clock=lambda: NOW,
    )
    store.current = old
    return store, repo


def _scheduler(credentials, aggregator, snapshots=None, **kwargs):
    return SyncScheduler(credentials, aggregator, snapshots or SnapshotStore(), TIERS, **kwargs)


def test_expired_credential_is_fatal_and_fetches_nothing():
    credentials, _ = _credentials(expiring_in(seconds=-1))
    aggregator = FakeAggregator()
    scheduler = _scheduler(credentials, aggregator)

    with pytest.raises(ExpiredCredentialFatal):
        asyncio.run(scheduler.run_cycle())

    assert aggregator.calls == []
    assert not scheduler.snapshots.has_data()
    assert scheduler.state == "idle"


def test_missing_credential_is_fatal():
    credentials, _ = _credentials(expiring_in(days=10))
    credentials.current = None

    with pytest.raises(ExpiredCredentialFatal):
        asyncio.run(_scheduler(credentials, FakeAggregator()).run_cycle())


def test_refresh_inside_window_runs_before_aggregation():
    credentials, repo = _credentials(expiring_in(days=2), post=[FakeResponse(200, REFRESHED)])
    aggregator = FakeAggregator()
    scheduler = _scheduler(credentials, aggregator)

    snapshot = asyncio.run(scheduler.run_cycle())

    assert snapshot is not None
    assert [c.access_token for c in aggregator.calls] == ["new-access"]
    assert repo.rows["cid"].access_token == "new-access"
    assert scheduler.snapshots.current() is snapshot


def test_no_refresh_outside_window():
    credentials, _ = _credentials(expiring_in(days=10))
    aggregator = FakeAggregator()

    asyncio.run(_scheduler(credentials, aggregator).run_cycle())

    assert credentials._session.post_calls == []
    assert [c.access_token for c in aggregator.calls] == ["old-access"]


def test_failed_refresh_still_aggregates_with_old_token():
    credentials, repo = _credentials(expiring_in(days=1), post=[FakeResponse(401, body="unauthorized")])
    aggregator = FakeAggregator()
    scheduler = _scheduler(credentials, aggregator)

    snapshot = asyncio.run(scheduler.run_cycle())

    assert snapshot is not None
    assert [c.access_token for c in aggregator.calls] == ["old-access"]
    assert repo.rows["cid"].access_token == "old-access"


def test_refresh_timeout_is_contained():
    credentials, _ = _credentials(
        expiring_in(days=1), post=[FakeResponse(200, REFRESHED, delay=5)]
    )
    aggregator = FakeAggregator()
    scheduler = _scheduler(credentials, aggregator, refresh_timeout=0.01)

    asyncio.run(scheduler.run_cycle())

    assert [c.access_token for c in aggregator.calls] == ["old-access"]
    assert credentials.current.access_token == "old-access"


def test_aggregation_error_keeps_previous_snapshot():
    previous = Snapshot.build({"a@example.com": Patron(id=1, email="a@example.com")})
    snapshots = SnapshotStore()
    snapshots.publish(previous)
    credentials, _ = _credentials(expiring_in(days=10))
    scheduler = _scheduler(credentials, FakeAggregator(error=DecodeError("bad page")), snapshots)

    assert asyncio.run(scheduler.run_cycle()) is None
    assert snapshots.current() is previous


def test_lookups_during_cycle_see_previous_snapshot():
    old = Patron(id=1, email="a@example.com", tiers=(10,), tier_names=("Gold",))
    new = Patron(id=1, email="a@example.com")
    snapshots = SnapshotStore()
    snapshots.publish(Snapshot.build({old.email: old}))
    seen = []

    credentials, _ = _credentials(expiring_in(days=10))
    aggregator = FakeAggregator(
        result=Snapshot.build({new.email: new}),
        during=lambda: seen.append(snapshots.lookup_by_email("a@example.com")),
    )

    asyncio.run(_scheduler(credentials, aggregator, snapshots).run_cycle())

    assert seen == [old]
    assert snapshots.lookup_by_email("a@example.com") is new


class _Stop(Exception):
    pass


def test_run_forever_sleeps_interval_after_each_cycle():
    credentials, _ = _credentials(expiring_in(days=10))
    aggregator = FakeAggregator(error=RuntimeError("boom"))
    sleeps = []

    async def fake_sleep(delay):
        sleeps.append((delay, len(aggregator.calls)))
        if len(sleeps) == 2:
            raise _Stop

    scheduler = _scheduler(credentials, aggregator, interval=60, sleep=fake_sleep)

    with pytest.raises(_Stop):
        asyncio.run(scheduler.run_forever())

    assert sleeps == [(60, 1), (60, 2)]


def test_run_forever_stops_on_fatal():
    credentials, _ = _credentials(expiring_in(seconds=-5))

    async def fake_sleep(delay):
        raise AssertionError("loop should not continue after a fatal error")

    scheduler = _scheduler(credentials, FakeAggregator(), sleep=fake_sleep)

    with pytest.raises(ExpiredCredentialFatal):
        asyncio.run(scheduler.run_forever())


@pytest.mark.asyncio
async def test_start_and_stop_background_task():
    credentials, _ = _credentials(expiring_in(days=10))
    scheduler = _scheduler(credentials, FakeAggregator(), interval=3600)

    task = scheduler.start()
    assert scheduler.start() is task
    for _ in range(20):
        await asyncio.sleep(0)

    assert scheduler.running
    assert scheduler.snapshots.has_data()

    await scheduler.stop()
    assert not scheduler.running
    assert task.cancelled()
