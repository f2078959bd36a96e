from fastapi import APIRouter, Depends

from app.api.dependencies import inventory_store, require_trusted_caller
from app.db.inventory import InventoryStore
from app.models.schemas import PaymentConfirmationRequest, PaymentConfirmationResponse
from app.services import payments

router = APIRouter(prefix="/v2/payments", tags=["payments"])


@router.post(
    "/confirmations",
    response_model=PaymentConfirmationResponse,
    dependencies=[Depends(require_trusted_caller)],
)
def confirm_payment(
    payload: PaymentConfirmationRequest, store: InventoryStore = Depends(inventory_store)
):
    confirmation = payments.PaymentConfirmation(
        transaction_id=payload.transaction_id,
        raffle_id=payload.raffle_id,
        numbers=payload.numbers,
        payer_id=payload.payer_id,
        status=payload.status,
        amount=payload.amount,
    )
    return payments.confirm_payment(store, confirmation)
