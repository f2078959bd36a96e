"""Background reclamation of expired holds."""
from __future__ import annotations

import asyncio
import logging
import uuid
from typing import Optional

from app.cqrs.commands.raffle_numbers import release_expired
from app.db.inventory import InventoryStore, get_store

logger = logging.getLogger(__name__)


def run_reclaim_cycle(store: InventoryStore, raffle_id: Optional[uuid.UUID] = None) -> int:
    reclaimed = release_expired(store, raffle_id)
    if reclaimed:
        logger.info("Reclaim cycle released %s expired holds", reclaimed)
    else:
        logger.debug("Reclaim cycle found no expired holds")
    return reclaimed


async def reclaim_loop(store: InventoryStore, interval_seconds: float) -> None:
    while True:
        try:
            await asyncio.to_thread(run_reclaim_cycle, store)
        except Exception:
            logger.exception("Reclaim cycle failed, retrying next tick")
        await asyncio.sleep(interval_seconds)


def scheduled_handler(event, context):
    """Entry point for a scheduled Lambda rule."""
    raffle_id = None
    if isinstance(event, dict) and event.get("raffle_id"):
        raffle_id = uuid.UUID(str(event["raffle_id"]))
    reclaimed = run_reclaim_cycle(get_store(), raffle_id)
    return {"released": reclaimed}
