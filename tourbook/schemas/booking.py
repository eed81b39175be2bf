"""Booking-related Pydantic schemas."""

from datetime import datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator

from tourbook.domain.service_types import normalize_service_type


class BookingCreate(BaseModel):
    """Schema for creating a draft booking."""

    service_type: str
    service_details: dict[str, Any] = Field(default_factory=dict)
    contact_info: dict[str, Any] | None = None
    special_requests: str | None = Field(None, max_length=1000)
    quoted_price: Decimal | None = Field(None, gt=0)
    quoted_currency: str | None = Field(None, min_length=3, max_length=3)

    @field_validator("service_type")
    @classmethod
    def validate_service_type(cls, v: str) -> str:
        return normalize_service_type(v).value

    @field_validator("quoted_currency")
    @classmethod
    def upper_currency(cls, v: str | None) -> str | None:
        return v.upper() if v else v


class BookingPriceResponse(BaseModel):
    """Admin price as shown to customers and admins."""

    model_config = ConfigDict(from_attributes=True)

    amount: Decimal
    currency: str
    locked: bool
    locked_at: datetime | None = None
    updated_at: datetime | None = None


class BookingResponse(BaseModel):
    """Schema for booking response."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    booking_number: str
    user_id: UUID
    service_type: str
    service_details: dict[str, Any]
    contact_info: dict[str, Any] | None = None
    special_requests: str | None = None

    # Estimate shown before the admin sets the price
    quoted_price: Decimal | None = None
    quoted_currency: str | None = None

    status: str
    status_label: str | None = None
    price: BookingPriceResponse | None = None

    assigned_driver_id: UUID | None = None
    assigned_guide_id: UUID | None = None

    cancelled_by: str | None = None
    cancellation_reason: str | None = None
    rejection_reason: str | None = None

    submitted_at: datetime | None = None
    paid_at: datetime | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None
    cancelled_at: datetime | None = None
    created_at: datetime
    updated_at: datetime


class BookingListResponse(BaseModel):
    """Paginated booking list."""

    items: list[BookingResponse]
    total: int
    page: int
    page_size: int


class BookingCancelRequest(BaseModel):
    reason: str | None = Field(None, max_length=500)


class BookingRejectRequest(BaseModel):
    reason: str = Field(..., min_length=1, max_length=500)


class SetPriceRequest(BaseModel):
    """Admin price for a booking."""

    amount: Decimal = Field(..., gt=0, max_digits=12, decimal_places=2)
    currency: str = Field(default="USD", min_length=3, max_length=3)
    admin_notes: str | None = Field(None, max_length=1000)

    @field_validator("currency")
    @classmethod
    def upper_currency(cls, v: str) -> str:
        return v.upper()


class AssignResourceRequest(BaseModel):
    """Driver or guide to assign to a booking."""

    resource_id: UUID
    notes: str | None = Field(None, max_length=500)


class StatusHistoryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    old_status: str
    new_status: str
    action: str
    changed_by: UUID | None = None
    notes: str | None = None
    created_at: datetime


class TransitionResponse(BaseModel):
    """Result of an accepted booking action."""

    booking_id: UUID
    action: str
    old_status: str
    new_status: str
    price_locked: bool
    # Closed after payment; the captured amount must be refunded
    refund_required: bool = False
