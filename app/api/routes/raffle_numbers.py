import uuid

from fastapi import APIRouter, Depends

from app.api.dependencies import current_actor, inventory_store, require_trusted_caller
from app.cqrs.commands import raffle_numbers as numbers_commands
from app.cqrs.queries import raffle_numbers as numbers_queries
from app.db.inventory import InventoryStore
from app.models.raffle_number import Actor
from app.models.schemas import (
    ForceSaleRequest,
    RaffleCreate,
    RaffleCreated,
    RaffleNumberOut,
    RaffleNumbersResponse,
    ReleaseExpiredResponse,
    ReservationRequest,
    SaleRequest,
)

router = APIRouter(prefix="/v2/raffles", tags=["raffle-numbers"])
maintenance_router = APIRouter(prefix="/v2/raffle-numbers", tags=["raffle-numbers"])


@router.post("", response_model=RaffleCreated, status_code=201)
def create_raffle(
    payload: RaffleCreate,
    store: InventoryStore = Depends(inventory_store),
    actor: Actor = Depends(current_actor),
):
    return numbers_commands.create_raffle(store, payload.title, payload.total_numbers, actor)


@router.get("/{raffle_id}/numbers", response_model=RaffleNumbersResponse)
def get_numbers(raffle_id: uuid.UUID, store: InventoryStore = Depends(inventory_store)):
    return numbers_queries.get_numbers(store, raffle_id)


@router.get("/{raffle_id}/numbers/available", response_model=list[RaffleNumberOut])
def get_available_numbers(raffle_id: uuid.UUID, store: InventoryStore = Depends(inventory_store)):
    return numbers_queries.get_available_numbers(store, raffle_id)


@router.get("/{raffle_id}/numbers/sold", response_model=list[int])
def get_sold_numbers(raffle_id: uuid.UUID, store: InventoryStore = Depends(inventory_store)):
    return numbers_queries.get_sold_numbers(store, raffle_id)


@router.post(
    "/{raffle_id}/reservations", response_model=list[RaffleNumberOut], status_code=201
)
def reserve_numbers(
    raffle_id: uuid.UUID,
    payload: ReservationRequest,
    store: InventoryStore = Depends(inventory_store),
    actor: Actor = Depends(current_actor),
):
    rows = numbers_commands.reserve_numbers(
        store, raffle_id, payload.numbers, actor, ttl_minutes=payload.ttl_minutes
    )
    return [numbers_queries.number_out(row) for row in rows]


@router.get("/{raffle_id}/reservations/{holder_id}", response_model=list[RaffleNumberOut])
def get_held_by(
    raffle_id: uuid.UUID, holder_id: str, store: InventoryStore = Depends(inventory_store)
):
    return numbers_queries.get_held_by(store, raffle_id, holder_id)


@router.post("/{raffle_id}/sales", response_model=list[RaffleNumberOut])
def mark_sold(
    raffle_id: uuid.UUID,
    payload: SaleRequest,
    store: InventoryStore = Depends(inventory_store),
    actor: Actor = Depends(current_actor),
):
    rows = numbers_commands.mark_sold(store, raffle_id, payload.numbers, payload.ticket_id, actor)
    return [numbers_queries.number_out(row) for row in rows]


@router.post(
    "/{raffle_id}/sales/force",
    response_model=list[RaffleNumberOut],
    dependencies=[Depends(require_trusted_caller)],
)
def force_mark_sold(
    raffle_id: uuid.UUID,
    payload: ForceSaleRequest,
    store: InventoryStore = Depends(inventory_store),
    actor: Actor = Depends(current_actor),
):
    rows = numbers_commands.force_mark_sold(
        store,
        raffle_id,
        payload.numbers,
        payload.ticket_id,
        actor,
        reason=payload.reason,
        source_event_id=payload.source_event_id,
    )
    return [numbers_queries.number_out(row) for row in rows]


@router.post("/{raffle_id}/release-expired", response_model=ReleaseExpiredResponse)
def release_expired(raffle_id: uuid.UUID, store: InventoryStore = Depends(inventory_store)):
    released = numbers_commands.release_expired(store, raffle_id)
    return {"message": f"{released} expired holds released", "released": released}


@maintenance_router.post("/release-expired", response_model=ReleaseExpiredResponse)
def release_all_expired(store: InventoryStore = Depends(inventory_store)):
    released = numbers_commands.release_expired(store)
    return {"message": f"{released} expired holds released", "released": released}
