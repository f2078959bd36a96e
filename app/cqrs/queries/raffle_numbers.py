from __future__ import annotations

import uuid

from app.core.errors import NotFound
from app.db.inventory import InventoryStore
from app.models.raffle_number import NumberStatus, RaffleInfo, RaffleNumber


def number_out(row: RaffleNumber) -> dict:
    return {
        "id": str(row.id),
        "raffle_id": str(row.raffle_id),
        "number": row.number,
        "status": row.status.value,
        "holder_id": row.holder_id,
        "hold_expires_at": row.hold_expires_at,
        "ticket_id": row.ticket_id,
        "enabled": row.enabled,
        "updated_at": row.updated_at,
    }


def _require_raffle(store: InventoryStore, raffle_id: uuid.UUID) -> RaffleInfo:
    raffle = store.get_raffle(raffle_id)
    if raffle is None or raffle.deleted:
        raise NotFound("Raffle not found")
    return raffle


def get_numbers(store: InventoryStore, raffle_id: uuid.UUID) -> dict:
    raffle = _require_raffle(store, raffle_id)
    rows = store.list_numbers(raffle_id)
    counts = {status.value: 0 for status in NumberStatus}
    for row in rows:
        counts[row.status.value] += 1
    return {
        "raffle_id": str(raffle_id),
        "total_numbers": raffle.total_numbers,
        "counts": counts,
        "numbers": [number_out(row) for row in rows],
    }


def get_available_numbers(store: InventoryStore, raffle_id: uuid.UUID) -> list[dict]:
    _require_raffle(store, raffle_id)
    rows = store.list_numbers(raffle_id, status=NumberStatus.AVAILABLE)
    return [number_out(row) for row in rows]


def get_held_by(store: InventoryStore, raffle_id: uuid.UUID, holder_id: str) -> list[dict]:
    _require_raffle(store, raffle_id)
    rows = store.list_numbers(raffle_id, status=NumberStatus.HELD, holder_id=holder_id)
    return [number_out(row) for row in rows]


def get_sold_numbers(store: InventoryStore, raffle_id: uuid.UUID) -> list[int]:
    _require_raffle(store, raffle_id)
    return [row.number for row in store.list_numbers(raffle_id, status=NumberStatus.SOLD)]
