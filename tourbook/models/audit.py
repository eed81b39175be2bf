"""Audit trail for booking workflow events."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import DateTime, ForeignKey, Index, String
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.sql import func

from tourbook.database import Base

if TYPE_CHECKING:
    from tourbook.models.booking import Booking
    from tourbook.models.user import User


class AuditLog(Base):
    """One booking status, price, payment or permission event. Rows are never updated."""

    __tablename__ = "audit_logs"
    __table_args__ = (Index("ix_audit_logs_booking_created", "booking_id", "created_at"),)

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, default=uuid.uuid4
    )
    # None for provider callbacks
    actor_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.id"), index=True
    )
    # Set for every booking event; None for permission events
    booking_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True), ForeignKey("bookings.id")
    )

    # booking_status_changed, booking_price_set, payment_captured, ...
    action: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    # booking, booking_price or admin_permission
    resource_type: Mapped[str] = mapped_column(String(50), nullable=False)
    resource_id: Mapped[uuid.UUID | None] = mapped_column(UUID(as_uuid=True))

    old_values: Mapped[dict | None] = mapped_column(JSONB)
    new_values: Mapped[dict | None] = mapped_column(JSONB)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    actor: Mapped["User | None"] = relationship("User")
    booking: Mapped["Booking | None"] = relationship("Booking", back_populates="audit_entries")
