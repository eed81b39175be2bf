"""Booking-related database models."""

from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
)
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.sql import func

from tourbook.database import Base

if TYPE_CHECKING:
    from tourbook.models.audit import AuditLog
    from tourbook.models.payment import PaymentCapture
    from tourbook.models.user import User


class Booking(Base):
    """A customer's request for one service instance."""

    __tablename__ = "bookings"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    booking_number: Mapped[str] = mapped_column(
        String(20), unique=True, nullable=False, index=True
    )  # TRV-XXXXXX
    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.id"), nullable=False, index=True
    )

    # Service
    service_type: Mapped[str] = mapped_column(
        String(30), nullable=False
    )  # Driver, Accommodation, Events, Guide
    service_details: Mapped[dict] = mapped_column(JSONB, default=dict)
    contact_info: Mapped[dict | None] = mapped_column(JSONB)
    special_requests: Mapped[str | None] = mapped_column(Text)

    # Customer-facing estimate only, never charged
    quoted_price: Mapped[Decimal | None] = mapped_column(Numeric(12, 2))
    quoted_currency: Mapped[str | None] = mapped_column(String(3))

    # Status
    status: Mapped[str] = mapped_column(
        String(30), default="draft", nullable=False, index=True
    )
    # Bumped on every admin price write
    price_version: Mapped[int] = mapped_column(
        Integer, default=0, server_default="0", nullable=False
    )

    # Assignment
    assigned_driver_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.id"), index=True
    )
    assigned_guide_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.id"), index=True
    )

    # Closure
    cancelled_by: Mapped[str | None] = mapped_column(String(10))  # customer, admin
    cancellation_reason: Mapped[str | None] = mapped_column(Text)
    rejection_reason: Mapped[str | None] = mapped_column(Text)

    # Timestamps
    submitted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    paid_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    cancelled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    # Relationships
    customer: Mapped["User"] = relationship("User", foreign_keys=[user_id])
    price: Mapped["BookingPrice | None"] = relationship(
        "BookingPrice", back_populates="booking", uselist=False
    )
    status_history: Mapped[list["BookingStatusHistory"]] = relationship(
        "BookingStatusHistory",
        back_populates="booking",
        order_by="BookingStatusHistory.created_at",
    )
    captures: Mapped[list["PaymentCapture"]] = relationship(
        "PaymentCapture", back_populates="booking"
    )
    audit_entries: Mapped[list["AuditLog"]] = relationship(
        "AuditLog", back_populates="booking", order_by="AuditLog.created_at"
    )


class BookingPrice(Base):
    """Admin-set price: the only payable amount for a booking."""

    __tablename__ = "booking_prices"
    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_booking_prices_amount_positive"),
    )

    booking_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("bookings.id"), primary_key=True
    )
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="USD")
    locked: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    admin_notes: Mapped[str | None] = mapped_column(Text)
    set_by: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.id")
    )
    locked_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    booking: Mapped["Booking"] = relationship("Booking", back_populates="price")


class BookingStatusHistory(Base):
    """Append-only record of accepted status changes."""

    __tablename__ = "booking_status_history"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    booking_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("bookings.id"), nullable=False, index=True
    )
    old_status: Mapped[str] = mapped_column(String(30), nullable=False)
    new_status: Mapped[str] = mapped_column(String(30), nullable=False)
    action: Mapped[str] = mapped_column(String(30), nullable=False)
    changed_by: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.id")
    )
    notes: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), index=True
    )

    booking: Mapped["Booking"] = relationship("Booking", back_populates="status_history")
