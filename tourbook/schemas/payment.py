"""Payment-related Pydantic schemas."""

from decimal import Decimal
from typing import Any
from uuid import UUID

from pydantic import BaseModel, Field, field_validator


class PaymentPrepareResponse(BaseModel):
    """What the customer will be charged, or why they cannot pay yet."""

    booking_id: UUID
    booking_number: str
    status: str
    can_pay: bool
    reason: str | None = None
    amount: Decimal | None = None
    currency: str | None = None


class PaymentWebhookPayload(BaseModel):
    """Capture notification sent by the payment provider."""

    booking_id: UUID
    provider: str = Field(..., min_length=1, max_length=30)
    provider_reference: str = Field(..., min_length=1, max_length=100)
    amount: Decimal = Field(..., gt=0)
    currency: str = Field(..., min_length=3, max_length=3)
    raw: dict[str, Any] | None = None

    @field_validator("currency")
    @classmethod
    def upper_currency(cls, v: str) -> str:
        return v.upper()


class ManualPaymentRequest(BaseModel):
    """Admin verification of an offline payment."""

    reference: str = Field(..., min_length=1, max_length=100)
    notes: str | None = Field(None, max_length=500)


class CaptureResponse(BaseModel):
    booking_id: UUID
    provider_reference: str
    outcome: str
    refund_required: bool
    replayed: bool
    reason: str | None = None
