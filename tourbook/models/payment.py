"""Payment-related database models."""

from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING

from sqlalchemy import DateTime, ForeignKey, Numeric, String
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.sql import func

from tourbook.database import Base

if TYPE_CHECKING:
    from tourbook.models.booking import Booking


class PaymentCapture(Base):
    """A capture reported by the payment provider (or verified manually)."""

    __tablename__ = "payment_captures"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    booking_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("bookings.id"), nullable=False, index=True
    )
    idempotency_key: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)

    # Amount as reported by the provider
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)

    # Provider
    provider: Mapped[str] = mapped_column(String(30), nullable=False)  # paypal, bank_transfer, cash, manual
    provider_reference: Mapped[str] = mapped_column(String(100), nullable=False)
    provider_payload: Mapped[dict | None] = mapped_column(JSONB)

    # Outcome
    outcome: Mapped[str] = mapped_column(
        String(20), nullable=False
    )  # applied, refund_required
    reason: Mapped[str | None] = mapped_column(String(255))

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    booking: Mapped["Booking"] = relationship("Booking", back_populates="captures")
