"""Glue between payment confirmations and the number inventory."""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
import logging
import uuid
from typing import Callable, Optional

from app.core.errors import Conflict, InvalidArgument
from app.cqrs.commands import raffle_numbers as commands
from app.db.inventory import InventoryStore
from app.models.raffle_number import SYSTEM_PAYMENTS, Actor, NumberStatus

logger = logging.getLogger(__name__)

TicketMinter = Callable[[uuid.UUID, Optional[str]], str]

PAYMENT_COMPLETED = "completed"
PAYMENT_FAILED = "failed"
PAYMENT_EXPIRED = "expired"
PAYMENT_STATUSES = (PAYMENT_COMPLETED, PAYMENT_FAILED, PAYMENT_EXPIRED)

REASON_HOLD_NOT_VERIFIED = "hold_not_verified"
REASON_ANONYMOUS_PAYMENT = "anonymous_payment"


@dataclass(frozen=True)
class PaymentConfirmation:
    transaction_id: str
    raffle_id: uuid.UUID
    numbers: list[int]
    payer_id: Optional[str]
    status: str
    amount: Optional[Decimal] = None


def default_ticket_minter(raffle_id: uuid.UUID, buyer_id: Optional[str]) -> str:
    return str(uuid.uuid4())


def ensure_numbers_held(
    store: InventoryStore,
    raffle_id: uuid.UUID,
    holder_id: str,
    numbers: list[int],
    now: Optional[datetime] = None,
) -> None:
    now = now or datetime.now(timezone.utc)
    held = {
        row.number
        for row in store.list_numbers(raffle_id, status=NumberStatus.HELD, holder_id=holder_id)
        if row.is_held_by(holder_id, now)
    }
    missing = [number for number in numbers if number not in held]
    if missing:
        raise Conflict("Numbers must be reserved before paying", missing)


def confirm_payment(
    store: InventoryStore,
    confirmation: PaymentConfirmation,
    mint_ticket: TicketMinter = default_ticket_minter,
    now: Optional[datetime] = None,
) -> dict:
    status = confirmation.status.lower()
    if status not in PAYMENT_STATUSES:
        raise InvalidArgument(f"Unknown payment status: {confirmation.status}")
    if status != PAYMENT_COMPLETED:
        logger.info(
            "Payment %s for raffle %s ended as %s, reclaiming expired holds",
            confirmation.transaction_id,
            confirmation.raffle_id,
            status,
        )
        released = commands.release_expired(store, confirmation.raffle_id, now=now)
        return {
            "transaction_id": confirmation.transaction_id,
            "status": status,
            "ticket_id": None,
            "forced": False,
            "numbers": [],
            "released": released,
        }

    ticket_id = mint_ticket(confirmation.raffle_id, confirmation.payer_id)
    forced = False
    if confirmation.payer_id:
        try:
            rows = commands.mark_sold(
                store,
                confirmation.raffle_id,
                confirmation.numbers,
                ticket_id,
                Actor.user(confirmation.payer_id),
                now=now,
            )
        except Conflict as exc:
            logger.warning(
                "Payment %s could not verify holds of %s (%s), forcing sale",
                confirmation.transaction_id,
                confirmation.payer_id,
                exc,
            )
            rows = commands.force_mark_sold(
                store,
                confirmation.raffle_id,
                confirmation.numbers,
                ticket_id,
                Actor.user(confirmation.payer_id),
                reason=REASON_HOLD_NOT_VERIFIED,
                source_event_id=confirmation.transaction_id,
                now=now,
            )
            forced = True
    else:
        rows = commands.force_mark_sold(
            store,
            confirmation.raffle_id,
            confirmation.numbers,
            ticket_id,
            SYSTEM_PAYMENTS,
            reason=REASON_ANONYMOUS_PAYMENT,
            source_event_id=confirmation.transaction_id,
            now=now,
        )
        forced = True

    return {
        "transaction_id": confirmation.transaction_id,
        "status": status,
        "ticket_id": ticket_id,
        "forced": forced,
        "numbers": [row.number for row in rows],
        "released": 0,
    }
