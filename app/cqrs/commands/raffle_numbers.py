from __future__ import annotations

from datetime import datetime, timedelta, timezone
import logging
import uuid
from typing import Iterable, Iterator, Optional

from app.core.config import settings
from app.core.errors import Conflict, InvalidArgument, NotFound
from app.db.inventory import InventoryStore
from app.models.raffle_number import (
    SYSTEM_PROVISIONER,
    SYSTEM_RECLAIMER,
    Actor,
    AuditContext,
    NumberStatus,
    RaffleInfo,
    RaffleNumber,
    force_sell,
    hold,
    is_hold_expired,
    release,
    sell,
)

logger = logging.getLogger(__name__)

MAX_TOTAL_NUMBERS = 100_000
RECLAIM_BATCH_SIZE = 500


def _utcnow(now: Optional[datetime]) -> datetime:
    return now if now is not None else datetime.now(timezone.utc)


def _chunks(values: list[int], size: int) -> Iterator[list[int]]:
    for start in range(0, len(values), size):
        yield values[start : start + size]


def _validate_numbers(numbers: Iterable[int]) -> list[int]:
    requested = list(numbers)
    if not requested:
        raise InvalidArgument("At least one number is required")
    seen: set[int] = set()
    duplicates: set[int] = set()
    for number in requested:
        if number in seen:
            duplicates.add(number)
        seen.add(number)
    if duplicates:
        raise InvalidArgument("Duplicate numbers are not allowed", duplicates)
    return sorted(requested)


def _resolve_ttl(ttl_minutes: Optional[int]) -> int:
    if ttl_minutes is None:
        ttl_minutes = settings.hold_ttl_minutes
    if ttl_minutes <= 0:
        raise InvalidArgument("Hold TTL must be a positive number of minutes")
    return min(ttl_minutes, settings.max_hold_minutes)


def _require_raffle(store: InventoryStore, raffle_id: uuid.UUID, for_holds: bool = False) -> RaffleInfo:
    raffle = store.get_raffle(raffle_id)
    if raffle is None or raffle.deleted:
        raise NotFound("Raffle not found")
    if for_holds and not raffle.accepts_holds:
        raise NotFound("Raffle not found or inactive")
    return raffle


def _require_all_present(current: dict[int, RaffleNumber], numbers: list[int]) -> None:
    missing = [number for number in numbers if number not in current]
    if missing:
        raise NotFound("Numbers do not exist in this raffle", missing)


def seed_raffle_numbers(
    store: InventoryStore,
    raffle: RaffleInfo,
    actor: Actor = SYSTEM_PROVISIONER,
    chunk_size: Optional[int] = None,
) -> int:
    size = chunk_size or settings.seed_chunk_size
    if size <= 0:
        raise InvalidArgument("Seed chunk size must be positive")
    inserted = 0
    for start in range(1, raffle.total_numbers + 1, size):
        end = min(raffle.total_numbers, start + size - 1)
        inserted += store.seed_numbers(raffle.id, start, end, actor)
    logger.info("Seeded %s numbers for raffle %s", inserted, raffle.id)
    return inserted


def create_raffle(
    store: InventoryStore,
    title: str,
    total_numbers: int,
    actor: Actor = SYSTEM_PROVISIONER,
    chunk_size: Optional[int] = None,
) -> dict:
    if total_numbers <= 0 or total_numbers > MAX_TOTAL_NUMBERS:
        raise InvalidArgument(f"total_numbers must be between 1 and {MAX_TOTAL_NUMBERS}")
    raffle = store.create_raffle(title, total_numbers, actor)
    seeded = seed_raffle_numbers(store, raffle, actor=actor, chunk_size=chunk_size)
    return {
        "id": str(raffle.id),
        "title": raffle.title,
        "total_numbers": raffle.total_numbers,
        "enabled": raffle.enabled,
        "seeded_numbers": seeded,
    }


def reserve_numbers(
    store: InventoryStore,
    raffle_id: uuid.UUID,
    numbers: Iterable[int],
    holder: Actor,
    ttl_minutes: Optional[int] = None,
    now: Optional[datetime] = None,
) -> list[RaffleNumber]:
    requested = _validate_numbers(numbers)
    ttl = _resolve_ttl(ttl_minutes)
    _require_raffle(store, raffle_id, for_holds=True)
    now = _utcnow(now)
    expires_at = now + timedelta(minutes=ttl)

    def _plan(current: dict[int, RaffleNumber]) -> list[RaffleNumber]:
        _require_all_present(current, requested)
        unavailable = [
            number for number in requested if current[number].status is not NumberStatus.AVAILABLE
        ]
        if unavailable:
            raise Conflict("Some numbers are no longer available", unavailable)
        return [hold(current[number], holder, expires_at, now) for number in requested]

    held = store.transition(raffle_id, requested, _plan, AuditContext("reserve", holder))
    logger.info(
        "Held numbers %s of raffle %s for %s until %s",
        requested,
        raffle_id,
        holder.id,
        expires_at.isoformat(),
    )
    return held


def mark_sold(
    store: InventoryStore,
    raffle_id: uuid.UUID,
    numbers: Iterable[int],
    ticket_id: str,
    actor: Actor,
    now: Optional[datetime] = None,
) -> list[RaffleNumber]:
    requested = _validate_numbers(numbers)
    if not ticket_id:
        raise InvalidArgument("ticket_id is required")
    _require_raffle(store, raffle_id)
    now = _utcnow(now)

    def _plan(current: dict[int, RaffleNumber]) -> list[RaffleNumber]:
        _require_all_present(current, requested)
        not_held = [number for number in requested if not current[number].is_held_by(actor.id, now)]
        if not_held:
            raise Conflict("Numbers are not reserved by this actor", not_held)
        return [sell(current[number], ticket_id, actor, now) for number in requested]

    sold = store.transition(raffle_id, requested, _plan, AuditContext("sell", actor))
    logger.info(
        "Sold numbers %s of raffle %s to %s with ticket %s", requested, raffle_id, actor.id, ticket_id
    )
    return sold


def force_mark_sold(
    store: InventoryStore,
    raffle_id: uuid.UUID,
    numbers: Iterable[int],
    ticket_id: str,
    actor: Actor,
    reason: str,
    source_event_id: Optional[str] = None,
    now: Optional[datetime] = None,
) -> list[RaffleNumber]:
    """Sell numbers without checking who holds them.

    Only for trusted payment confirmations whose hold can no longer be
    verified. Active holds of other parties are overwritten; numbers that are
    already sold stay as they are. Every overwrite is recorded as a
    ``force_sell`` event with the reason and the source event id.
    """
    requested = _validate_numbers(numbers)
    if not ticket_id:
        raise InvalidArgument("ticket_id is required")
    if not reason:
        raise InvalidArgument("A reason is required to force a sale")
    now = _utcnow(now)
    skipped: dict[str, list[int]] = {"missing": [], "sold": []}
    overridden: dict[int, str] = {}

    def _plan(current: dict[int, RaffleNumber]) -> list[RaffleNumber]:
        skipped["missing"] = [number for number in requested if number not in current]
        skipped["sold"] = [
            number
            for number in requested
            if number in current and current[number].status is NumberStatus.SOLD
        ]
        changed = []
        for number in requested:
            row = current.get(number)
            if row is None or row.status is NumberStatus.SOLD:
                continue
            if row.status is NumberStatus.HELD and row.holder_id != actor.id:
                overridden[number] = row.holder_id
            changed.append(force_sell(row, ticket_id, actor, now))
        return changed

    audit = AuditContext("force_sell", actor, reason=reason, source_event_id=source_event_id)
    sold = store.transition(raffle_id, requested, _plan, audit)
    if skipped["missing"]:
        logger.warning(
            "Force sale for raffle %s skipped unknown numbers %s", raffle_id, skipped["missing"]
        )
    if skipped["sold"]:
        logger.warning(
            "Force sale for raffle %s skipped already sold numbers %s", raffle_id, skipped["sold"]
        )
    logger.warning(
        "Forced sale of numbers %s of raffle %s with ticket %s by %s:%s "
        "(reason=%s, source_event_id=%s, overridden_holders=%s)",
        [row.number for row in sold],
        raffle_id,
        ticket_id,
        actor.kind.value,
        actor.id,
        reason,
        source_event_id,
        overridden,
    )
    return sold


def release_expired(
    store: InventoryStore,
    raffle_id: Optional[uuid.UUID] = None,
    now: Optional[datetime] = None,
) -> int:
    now = _utcnow(now)
    audit = AuditContext("release_expired", SYSTEM_RECLAIMER)

    def _plan(current: dict[int, RaffleNumber]) -> list[RaffleNumber]:
        # A hold may have been sold or reclaimed since the scan.
        return [
            release(row, SYSTEM_RECLAIMER, now)
            for row in sorted(current.values(), key=lambda r: r.number)
            if is_hold_expired(row, now)
        ]

    reclaimed = 0
    for expired_raffle_id, numbers in store.expired_holds(now, raffle_id).items():
        for batch in _chunks(numbers, RECLAIM_BATCH_SIZE):
            released = store.transition(expired_raffle_id, batch, _plan, audit)
            reclaimed += len(released)
            if released:
                logger.info(
                    "Reclaimed expired holds %s of raffle %s",
                    [row.number for row in released],
                    expired_raffle_id,
                )
    return reclaimed
