from __future__ import annotations

from datetime import datetime
from decimal import Decimal
import uuid
from typing import Literal, Optional

from pydantic import BaseModel, Field

MAX_NUMBERS_PER_REQUEST = 50


class HealthResponse(BaseModel):
    status: str
    time: datetime


class MigrationRunResponse(BaseModel):
    status: str
    applied_at: datetime


class RaffleCreate(BaseModel):
    title: str = Field(..., min_length=3, max_length=120)
    total_numbers: int = Field(..., gt=0, le=100000)


class RaffleCreated(BaseModel):
    id: str
    title: Optional[str]
    total_numbers: int
    enabled: bool
    seeded_numbers: int


class RaffleNumberOut(BaseModel):
    id: str
    raffle_id: str
    number: int
    status: str
    holder_id: Optional[str] = None
    hold_expires_at: Optional[datetime] = None
    ticket_id: Optional[str] = None
    enabled: bool = True
    updated_at: Optional[datetime] = None


class RaffleNumbersResponse(BaseModel):
    raffle_id: str
    total_numbers: int
    counts: dict[str, int]
    numbers: list[RaffleNumberOut]


class ReservationRequest(BaseModel):
    numbers: list[int] = Field(..., min_length=1, max_length=MAX_NUMBERS_PER_REQUEST)
    ttl_minutes: Optional[int] = Field(None, description="Defaults to HOLD_TTL_MINUTES")


class SaleRequest(BaseModel):
    numbers: list[int] = Field(..., min_length=1, max_length=MAX_NUMBERS_PER_REQUEST)
    ticket_id: str = Field(..., min_length=1, max_length=120)


class ForceSaleRequest(SaleRequest):
    reason: str = Field(..., min_length=1, max_length=60)
    source_event_id: Optional[str] = Field(None, max_length=120)


class ReleaseExpiredResponse(BaseModel):
    message: str
    released: int


class PaymentConfirmationRequest(BaseModel):
    transaction_id: str = Field(..., min_length=1, max_length=120)
    raffle_id: uuid.UUID
    numbers: list[int] = Field(..., min_length=1, max_length=MAX_NUMBERS_PER_REQUEST)
    payer_id: Optional[str] = Field(None, max_length=120)
    status: Literal["completed", "failed", "expired"]
    amount: Optional[Decimal] = Field(None, ge=0)


class PaymentConfirmationResponse(BaseModel):
    transaction_id: str
    status: str
    ticket_id: Optional[str]
    forced: bool
    numbers: list[int]
    released: int
