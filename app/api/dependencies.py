import hmac
from typing import Optional

from fastapi import Header, HTTPException

from app.core.config import db_configured, settings
from app.db.inventory import InventoryStore, get_store
from app.models.raffle_number import Actor


def require_db() -> None:
    if not db_configured():
        raise HTTPException(status_code=500, detail="Database is not configured")


def inventory_store() -> InventoryStore:
    require_db()
    return get_store()


def current_actor(x_user_id: Optional[str] = Header(None)) -> Actor:
    if not x_user_id or not x_user_id.strip():
        raise HTTPException(status_code=401, detail="Missing user id")
    return Actor.user(x_user_id.strip())


def require_trusted_caller(x_webhook_secret: Optional[str] = Header(None)) -> None:
    # Closed until PAYMENTS_WEBHOOK_SECRET is set.
    if not settings.payments_webhook_secret:
        raise HTTPException(status_code=403, detail="Trusted callers are not configured")
    if not x_webhook_secret:
        raise HTTPException(status_code=401, detail="Missing webhook secret")
    if not hmac.compare_digest(x_webhook_secret, settings.payments_webhook_secret):
        raise HTTPException(status_code=403, detail="Invalid webhook secret")
