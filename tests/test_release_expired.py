import asyncio
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

import pytest

from app.cqrs.commands import raffle_numbers as commands
from app.models.raffle_number import Actor, ActorKind, NumberStatus
from app.services import reclaimer
from tests.fakes import InMemoryInventoryStore

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture(autouse=True)
def _settings(monkeypatch):
    monkeypatch.setattr(
        commands,
        "settings",
        SimpleNamespace(hold_ttl_minutes=15, max_hold_minutes=60, seed_chunk_size=1000),
    )


@pytest.fixture
def store():
    return InMemoryInventoryStore()


def test_expired_holds_are_reclaimed_and_live_ones_untouched(store):
    raffle = store.add_raffle(5)
    commands.reserve_numbers(store, raffle.id, [1, 2], Actor.user("u1"), ttl_minutes=5, now=NOW)
    commands.reserve_numbers(store, raffle.id, [3], Actor.user("u2"), ttl_minutes=30, now=NOW)

    released = commands.release_expired(store, raffle.id, now=NOW + timedelta(minutes=10))

    assert released == 2
    for number in (1, 2):
        row = store.row(raffle.id, number)
        assert row.status is NumberStatus.AVAILABLE
        assert row.holder_id is None
        assert row.hold_expires_at is None
        assert row.updated_by == "reclaimer"
        assert row.updated_by_kind is ActorKind.SYSTEM
    assert store.row(raffle.id, 3).holder_id == "u2"


def test_reclamation_is_idempotent(store):
    raffle = store.add_raffle(3)
    commands.reserve_numbers(store, raffle.id, [1], Actor.user("u1"), ttl_minutes=1, now=NOW)
    later = NOW + timedelta(minutes=5)

    assert commands.release_expired(store, raffle.id, now=later) == 1
    assert commands.release_expired(store, raffle.id, now=later) == 0


def test_release_expired_without_scope_covers_every_raffle(store):
    first = store.add_raffle(2)
    second = store.add_raffle(2)
    commands.reserve_numbers(store, first.id, [1], Actor.user("u1"), ttl_minutes=1, now=NOW)
    commands.reserve_numbers(store, second.id, [2], Actor.user("u2"), ttl_minutes=1, now=NOW)

    assert commands.release_expired(store, first.id, now=NOW + timedelta(minutes=2)) == 1
    assert store.row(second.id, 2).status is NumberStatus.HELD
    assert commands.release_expired(store, now=NOW + timedelta(minutes=2)) == 1
    assert store.row(second.id, 2).status is NumberStatus.AVAILABLE


def test_release_expired_skips_rows_sold_after_the_scan(store, monkeypatch):
    raffle = store.add_raffle(2)
    commands.reserve_numbers(store, raffle.id, [1], Actor.user("u1"), ttl_minutes=1, now=NOW)
    scan = store.expired_holds(NOW + timedelta(minutes=5))
    commands.force_mark_sold(store, raffle.id, [1], "T1", Actor.user("u1"), reason="late", now=NOW)
    monkeypatch.setattr(store, "expired_holds", lambda now, raffle_id=None: scan)

    assert commands.release_expired(store, raffle.id, now=NOW + timedelta(minutes=5)) == 0
    assert store.row(raffle.id, 1).status is NumberStatus.SOLD


def test_release_expired_records_audit_events(store):
    raffle = store.add_raffle(2)
    commands.reserve_numbers(store, raffle.id, [2], Actor.user("u1"), ttl_minutes=1, now=NOW)

    commands.release_expired(store, now=NOW + timedelta(minutes=2))

    event = store.events[-1]
    assert event["action"] == "release_expired"
    assert event["actor_kind"] == "system"
    assert event["previous_holder_id"] == "u1"


def test_run_reclaim_cycle_returns_count(store, monkeypatch):
    raffle = store.add_raffle(2)
    commands.reserve_numbers(store, raffle.id, [1], Actor.user("u1"), ttl_minutes=1, now=NOW)
    monkeypatch.setattr(
        reclaimer,
        "release_expired",
        lambda s, raffle_id=None: commands.release_expired(s, raffle_id, now=NOW + timedelta(minutes=2)),
    )

    assert reclaimer.run_reclaim_cycle(store) == 1


def test_reclaim_loop_survives_failed_cycles(monkeypatch):
    calls = {"count": 0}

    def fake_cycle(store):
        calls["count"] += 1
        if calls["count"] == 1:
            raise RuntimeError("database unavailable")
        raise asyncio.CancelledError

    monkeypatch.setattr(reclaimer, "run_reclaim_cycle", fake_cycle)

    with pytest.raises(asyncio.CancelledError):
        asyncio.run(reclaimer.reclaim_loop(object(), 0))

    assert calls["count"] == 2


def test_scheduled_handler_scopes_to_event_raffle(monkeypatch):
    seen = {}

    def fake_cycle(store, raffle_id=None):
        seen["raffle_id"] = raffle_id
        return 3

    monkeypatch.setattr(reclaimer, "run_reclaim_cycle", fake_cycle)
    monkeypatch.setattr(reclaimer, "get_store", lambda: "store")

    result = reclaimer.scheduled_handler(
        {"raffle_id": "6f1c1f4e-8a1f-4b0e-9a43-6d5a2b6f9d11"}, None
    )

    assert result == {"released": 3}
    assert str(seen["raffle_id"]) == "6f1c1f4e-8a1f-4b0e-9a43-6d5a2b6f9d11"
