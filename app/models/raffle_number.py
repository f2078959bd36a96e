"""Raffle number rows and their state transitions.

Transitions are pure: each takes the current row and returns a new one.
Whether the new row is actually written is decided by the store, which
only persists it if the row is still in the state it was read in.
"""
from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime
from enum import Enum
from typing import Optional
import uuid


class NumberStatus(str, Enum):
    AVAILABLE = "available"
    HELD = "held"
    SOLD = "sold"


class ActorKind(str, Enum):
    USER = "user"
    SYSTEM = "system"


@dataclass(frozen=True)
class Actor:
    id: str
    kind: ActorKind = ActorKind.USER

    @classmethod
    def user(cls, actor_id: str) -> "Actor":
        return cls(id=actor_id, kind=ActorKind.USER)

    @classmethod
    def system(cls, name: str) -> "Actor":
        return cls(id=name, kind=ActorKind.SYSTEM)

    @property
    def is_system(self) -> bool:
        return self.kind is ActorKind.SYSTEM


SYSTEM_RECLAIMER = Actor.system("reclaimer")
SYSTEM_PROVISIONER = Actor.system("provisioner")
SYSTEM_PAYMENTS = Actor.system("payments")


@dataclass(frozen=True)
class RaffleInfo:
    id: uuid.UUID
    total_numbers: int
    enabled: bool = True
    deleted: bool = False
    title: Optional[str] = None

    @property
    def accepts_holds(self) -> bool:
        return self.enabled and not self.deleted


@dataclass(frozen=True)
class RaffleNumber:
    id: uuid.UUID
    raffle_id: uuid.UUID
    number: int
    status: NumberStatus = NumberStatus.AVAILABLE
    holder_id: Optional[str] = None
    hold_expires_at: Optional[datetime] = None
    ticket_id: Optional[str] = None
    enabled: bool = True
    deleted: bool = False
    created_by: str = SYSTEM_PROVISIONER.id
    created_at: Optional[datetime] = None
    updated_by: str = SYSTEM_PROVISIONER.id
    updated_by_kind: ActorKind = ActorKind.SYSTEM
    updated_at: Optional[datetime] = None

    def is_held_by(self, holder_id: str, now: datetime) -> bool:
        return (
            self.status is NumberStatus.HELD
            and self.holder_id == holder_id
            and not is_hold_expired(self, now)
        )


@dataclass(frozen=True)
class AuditContext:
    """Who changed a batch of numbers and why; one event row per number."""

    action: str
    actor: Actor
    reason: Optional[str] = None
    source_event_id: Optional[str] = None


def new_number(raffle_id: uuid.UUID, number: int, actor: Actor = SYSTEM_PROVISIONER) -> RaffleNumber:
    return RaffleNumber(
        id=uuid.uuid4(),
        raffle_id=raffle_id,
        number=number,
        created_by=actor.id,
        updated_by=actor.id,
        updated_by_kind=actor.kind,
    )


def is_hold_expired(row: RaffleNumber, now: datetime) -> bool:
    if row.status is not NumberStatus.HELD or row.hold_expires_at is None:
        return False
    return row.hold_expires_at < now


def check_invariants(row: RaffleNumber) -> RaffleNumber:
    if row.status is NumberStatus.AVAILABLE:
        if row.holder_id is not None or row.hold_expires_at is not None or row.ticket_id is not None:
            raise ValueError(f"Available number {row.number} carries hold or ticket data")
    elif row.status is NumberStatus.HELD:
        if row.holder_id is None or row.hold_expires_at is None:
            raise ValueError(f"Held number {row.number} is missing holder or expiry")
        if row.ticket_id is not None:
            raise ValueError(f"Held number {row.number} already has a ticket")
    elif row.status is NumberStatus.SOLD:
        if row.ticket_id is None:
            raise ValueError(f"Sold number {row.number} has no ticket")
    return row


def _touch(row: RaffleNumber, actor: Actor, now: datetime, **changes) -> RaffleNumber:
    return check_invariants(
        replace(
            row,
            updated_by=actor.id,
            updated_by_kind=actor.kind,
            updated_at=now,
            **changes,
        )
    )


def hold(row: RaffleNumber, holder: Actor, expires_at: datetime, now: datetime) -> RaffleNumber:
    if row.status is not NumberStatus.AVAILABLE:
        raise ValueError(f"Number {row.number} is {row.status.value}, not available")
    return _touch(
        row,
        holder,
        now,
        status=NumberStatus.HELD,
        holder_id=holder.id,
        hold_expires_at=expires_at,
    )


def sell(row: RaffleNumber, ticket_id: str, actor: Actor, now: datetime) -> RaffleNumber:
    if row.status is not NumberStatus.HELD or row.holder_id != actor.id:
        raise ValueError(f"Number {row.number} is not held by {actor.id}")
    return _touch(
        row,
        actor,
        now,
        status=NumberStatus.SOLD,
        ticket_id=ticket_id,
        holder_id=None,
        hold_expires_at=None,
    )


def force_sell(row: RaffleNumber, ticket_id: str, actor: Actor, now: datetime) -> RaffleNumber:
    if row.status is NumberStatus.SOLD:
        raise ValueError(f"Number {row.number} is already sold")
    return _touch(
        row,
        actor,
        now,
        status=NumberStatus.SOLD,
        ticket_id=ticket_id,
        holder_id=None,
        hold_expires_at=None,
    )


def release(row: RaffleNumber, actor: Actor, now: datetime) -> RaffleNumber:
    if row.status is not NumberStatus.HELD:
        raise ValueError(f"Number {row.number} is not held")
    return _touch(
        row,
        actor,
        now,
        status=NumberStatus.AVAILABLE,
        holder_id=None,
        hold_expires_at=None,
    )
