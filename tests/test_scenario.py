"""End-to-end walk through the hold, sale and reclaim lifecycle."""
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

import pytest

from app.core.errors import Conflict
from app.cqrs.commands import raffle_numbers as commands
from app.cqrs.queries import raffle_numbers as queries
from app.models.raffle_number import Actor, NumberStatus
from tests.fakes import InMemoryInventoryStore

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture(autouse=True)
def _settings(monkeypatch):
    monkeypatch.setattr(
        commands,
        "settings",
        SimpleNamespace(hold_ttl_minutes=15, max_hold_minutes=60, seed_chunk_size=1000),
    )


def _holders(store, raffle_id):
    holders = {}
    for row in store.list_numbers(raffle_id, status=NumberStatus.HELD):
        holders.setdefault(row.number, set()).add(row.holder_id)
    return holders


def test_full_lifecycle():
    store = InMemoryInventoryStore()
    raffle = store.add_raffle(5)

    held = commands.reserve_numbers(store, raffle.id, {2, 3}, Actor.user("u1"), 15, now=NOW)
    assert [(row.number, row.status, row.holder_id) for row in held] == [
        (2, NumberStatus.HELD, "u1"),
        (3, NumberStatus.HELD, "u1"),
    ]

    with pytest.raises(Conflict) as excinfo:
        commands.reserve_numbers(store, raffle.id, {3, 4}, Actor.user("u2"), 15, now=NOW)
    assert excinfo.value.numbers == [3]
    assert store.row(raffle.id, 4).status is NumberStatus.AVAILABLE
    assert all(len(holders) == 1 for holders in _holders(store, raffle.id).values())

    sold = commands.mark_sold(store, raffle.id, [2, 3], "T100", Actor.user("u1"), now=NOW)
    assert [(row.number, row.status, row.ticket_id) for row in sold] == [
        (2, NumberStatus.SOLD, "T100"),
        (3, NumberStatus.SOLD, "T100"),
    ]

    assert commands.release_expired(store, raffle.id, now=NOW) == 0

    commands.reserve_numbers(store, raffle.id, [1], Actor.user("u3"), 15, now=NOW)
    later = NOW + timedelta(minutes=16)
    assert commands.release_expired(store, raffle.id, now=later) == 1
    row = store.row(raffle.id, 1)
    assert row.status is NumberStatus.AVAILABLE
    assert row.holder_id is None

    summary = queries.get_numbers(store, raffle.id)
    assert summary["counts"] == {"available": 3, "held": 0, "sold": 2}
    assert queries.get_sold_numbers(store, raffle.id) == [2, 3]
