from datetime import datetime, timezone
import uuid

import pytest

from app.core.errors import NotFound
from app.cqrs.commands import raffle_numbers as commands
from app.cqrs.queries import raffle_numbers as queries
from app.models.raffle_number import Actor
from tests.fakes import InMemoryInventoryStore

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def store():
    return InMemoryInventoryStore()


@pytest.fixture
def raffle(store):
    raffle = store.add_raffle(6)
    commands.reserve_numbers(store, raffle.id, [1, 2], Actor.user("u1"), ttl_minutes=10, now=NOW)
    commands.reserve_numbers(store, raffle.id, [5], Actor.user("u2"), ttl_minutes=10, now=NOW)
    commands.mark_sold(store, raffle.id, [2], "T1", Actor.user("u1"), now=NOW)
    store.soft_delete(raffle.id, 6)
    return raffle


def test_get_numbers_lists_visible_rows_with_counts(store, raffle):
    result = queries.get_numbers(store, raffle.id)

    assert result["raffle_id"] == str(raffle.id)
    assert result["total_numbers"] == 6
    assert result["counts"] == {"available": 2, "held": 2, "sold": 1}
    assert [n["number"] for n in result["numbers"]] == [1, 2, 3, 4, 5]
    assert result["numbers"][0]["status"] == "held"
    assert result["numbers"][1]["ticket_id"] == "T1"


def test_get_available_numbers(store, raffle):
    assert [n["number"] for n in queries.get_available_numbers(store, raffle.id)] == [3, 4]


def test_get_held_by(store, raffle):
    held = queries.get_held_by(store, raffle.id, "u1")
    assert [n["number"] for n in held] == [1]
    assert held[0]["holder_id"] == "u1"
    assert queries.get_held_by(store, raffle.id, "nobody") == []


def test_get_sold_numbers_is_a_bare_list(store, raffle):
    assert queries.get_sold_numbers(store, raffle.id) == [2]


@pytest.mark.parametrize(
    "query",
    [
        queries.get_numbers,
        queries.get_available_numbers,
        queries.get_sold_numbers,
        lambda store, raffle_id: queries.get_held_by(store, raffle_id, "u1"),
    ],
)
def test_unknown_raffle_is_not_found(store, query):
    with pytest.raises(NotFound):
        query(store, uuid.uuid4())
