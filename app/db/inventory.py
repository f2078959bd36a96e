"""Durable storage for raffle numbers.

Every read here goes through ``_VISIBLE`` so soft-deleted numbers never
reach the engine. Writes happen only in ``transition``: rows are locked in
number order, the caller's plan computes the new rows, and each one is
written with a conditional ``UPDATE ... WHERE status = <status read>``.
Any failure rolls the whole batch back.
"""
from __future__ import annotations

from datetime import datetime
import uuid
from typing import Callable, Iterable, Optional, Protocol

from app.core.errors import Conflict
from app.db.connection import fetch_all, fetch_one, rows_as_dicts, run_transaction
from app.models.raffle_number import (
    Actor,
    ActorKind,
    AuditContext,
    NumberStatus,
    RaffleInfo,
    RaffleNumber,
)

Plan = Callable[[dict[int, RaffleNumber]], list[RaffleNumber]]

_VISIBLE = "NOT deleted"

_COLUMNS = """
    id, raffle_id, number, status, holder_id, hold_expires_at, ticket_id,
    enabled, deleted, created_by, created_at, updated_by, updated_by_kind, updated_at
"""


class InventoryStore(Protocol):
    def get_raffle(self, raffle_id: uuid.UUID) -> Optional[RaffleInfo]:
        ...

    def create_raffle(self, title: str, total_numbers: int, actor: Actor) -> RaffleInfo:
        ...

    def seed_numbers(self, raffle_id: uuid.UUID, start: int, end: int, actor: Actor) -> int:
        ...

    def transition(
        self,
        raffle_id: uuid.UUID,
        numbers: Iterable[int],
        plan: Plan,
        audit: AuditContext,
    ) -> list[RaffleNumber]:
        ...

    def expired_holds(
        self, now: datetime, raffle_id: Optional[uuid.UUID] = None
    ) -> dict[uuid.UUID, list[int]]:
        ...

    def list_numbers(
        self,
        raffle_id: uuid.UUID,
        status: Optional[NumberStatus] = None,
        holder_id: Optional[str] = None,
    ) -> list[RaffleNumber]:
        ...


def _number_from_row(row: dict) -> RaffleNumber:
    return RaffleNumber(
        id=row["id"],
        raffle_id=row["raffle_id"],
        number=row["number"],
        status=NumberStatus(row["status"]),
        holder_id=row.get("holder_id"),
        hold_expires_at=row.get("hold_expires_at"),
        ticket_id=row.get("ticket_id"),
        enabled=row["enabled"],
        deleted=row["deleted"],
        created_by=row["created_by"],
        created_at=row.get("created_at"),
        updated_by=row["updated_by"],
        updated_by_kind=ActorKind(row.get("updated_by_kind") or ActorKind.SYSTEM.value),
        updated_at=row.get("updated_at"),
    )


def _raffle_from_row(row: dict) -> RaffleInfo:
    return RaffleInfo(
        id=row["id"],
        title=row.get("title"),
        total_numbers=row["total_numbers"],
        enabled=row["enabled"],
        deleted=row["deleted"],
    )


def _insert_events(
    cur,
    before: dict[int, RaffleNumber],
    after: list[RaffleNumber],
    audit: AuditContext,
) -> None:
    for row in after:
        previous = before[row.number]
        cur.execute(
            """
            INSERT INTO raffle_number_events (
                raffle_id, number, action, from_status, to_status, actor_id, actor_kind,
                previous_holder_id, ticket_id, reason, source_event_id
            ) VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
            """,
            (
                row.raffle_id,
                row.number,
                audit.action,
                previous.status.value,
                row.status.value,
                audit.actor.id,
                audit.actor.kind.value,
                previous.holder_id,
                row.ticket_id,
                audit.reason,
                audit.source_event_id,
            ),
        )


class PostgresInventoryStore:
    def get_raffle(self, raffle_id: uuid.UUID) -> Optional[RaffleInfo]:
        row = fetch_one(
            """
            SELECT id, title, total_numbers, enabled, deleted
            FROM raffles
            WHERE id = %s
            """,
            (raffle_id,),
        )
        if not row:
            return None
        return _raffle_from_row(row)

    def create_raffle(self, title: str, total_numbers: int, actor: Actor) -> RaffleInfo:
        def _handler(conn):
            cur = conn.cursor()
            cur.execute(
                """
                INSERT INTO raffles (id, title, total_numbers, created_by, updated_by)
                VALUES (%s, %s, %s, %s, %s)
                RETURNING id, title, total_numbers, enabled, deleted
                """,
                (uuid.uuid4(), title, total_numbers, actor.id, actor.id),
            )
            rows = rows_as_dicts(cur)
            cur.close()
            return _raffle_from_row(rows[0])

        return run_transaction(_handler)

    def seed_numbers(self, raffle_id: uuid.UUID, start: int, end: int, actor: Actor) -> int:
        def _handler(conn):
            cur = conn.cursor()
            cur.execute(
                """
                INSERT INTO raffle_numbers (
                    raffle_id, number, status, created_by, updated_by, updated_by_kind
                )
                SELECT %s, n, 'available', %s, %s, %s
                FROM generate_series(%s::int, %s::int) AS n
                ON CONFLICT (raffle_id, number) DO NOTHING
                """,
                (raffle_id, actor.id, actor.id, actor.kind.value, start, end),
            )
            inserted = cur.rowcount
            cur.close()
            return inserted

        return run_transaction(_handler)

    def transition(
        self,
        raffle_id: uuid.UUID,
        numbers: Iterable[int],
        plan: Plan,
        audit: AuditContext,
    ) -> list[RaffleNumber]:
        wanted = sorted(set(numbers))

        def _handler(conn):
            cur = conn.cursor()
            try:
                return _apply(cur)
            finally:
                cur.close()

        def _apply(cur):
            placeholders = ", ".join(["%s"] * len(wanted))
            cur.execute(
                f"""
                SELECT {_COLUMNS}
                FROM raffle_numbers
                WHERE raffle_id = %s AND number IN ({placeholders}) AND {_VISIBLE}
                ORDER BY number ASC
                FOR UPDATE
                """,
                [raffle_id, *wanted],
            )
            current = {row.number: row for row in map(_number_from_row, rows_as_dicts(cur))}
            updated = plan(current)
            for row in updated:
                cur.execute(
                    """
                    UPDATE raffle_numbers
                    SET status = %s,
                        holder_id = %s,
                        hold_expires_at = %s,
                        ticket_id = %s,
                        updated_by = %s,
                        updated_by_kind = %s,
                        updated_at = %s
                    WHERE id = %s AND status = %s
                    """,
                    (
                        row.status.value,
                        row.holder_id,
                        row.hold_expires_at,
                        row.ticket_id,
                        row.updated_by,
                        row.updated_by_kind.value,
                        row.updated_at,
                        row.id,
                        current[row.number].status.value,
                    ),
                )
                if cur.rowcount != 1:
                    raise Conflict("Numbers changed while being updated", [row.number])
            if updated:
                _insert_events(cur, current, updated, audit)
            return updated

        return run_transaction(_handler)

    def expired_holds(
        self, now: datetime, raffle_id: Optional[uuid.UUID] = None
    ) -> dict[uuid.UUID, list[int]]:
        sql = f"""
            SELECT raffle_id, number
            FROM raffle_numbers
            WHERE status = 'held'
              AND hold_expires_at IS NOT NULL
              AND hold_expires_at < %s
              AND {_VISIBLE}
        """
        params: list = [now]
        if raffle_id is not None:
            sql += " AND raffle_id = %s"
            params.append(raffle_id)
        sql += " ORDER BY raffle_id, number"
        expired: dict[uuid.UUID, list[int]] = {}
        for row in fetch_all(sql, params):
            expired.setdefault(row["raffle_id"], []).append(row["number"])
        return expired

    def list_numbers(
        self,
        raffle_id: uuid.UUID,
        status: Optional[NumberStatus] = None,
        holder_id: Optional[str] = None,
    ) -> list[RaffleNumber]:
        sql = f"SELECT {_COLUMNS} FROM raffle_numbers WHERE raffle_id = %s AND {_VISIBLE}"
        params: list = [raffle_id]
        if status is not None:
            sql += " AND status = %s"
            params.append(status.value)
        if holder_id is not None:
            sql += " AND holder_id = %s"
            params.append(holder_id)
        sql += " ORDER BY number ASC"
        return [_number_from_row(row) for row in fetch_all(sql, params)]


_store: Optional[PostgresInventoryStore] = None


def get_store() -> PostgresInventoryStore:
    global _store
    if _store is None:
        _store = PostgresInventoryStore()
    return _store
