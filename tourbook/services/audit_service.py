"""Audit trail service."""

from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from tourbook.models.audit import AuditLog


class AuditService:
    """Append-only audit entries for booking and permission events."""

    async def log_action(
        self,
        db: AsyncSession,
        actor_id: UUID | None,
        action: str,
        resource_type: str,
        resource_id: UUID | None,
        old_values: dict[str, Any] | None = None,
        new_values: dict[str, Any] | None = None,
        booking_id: UUID | None = None,
    ) -> AuditLog:
        """Add an audit entry to the session.

        Args:
            db: Database session
            actor_id: User performing the action (None for provider callbacks)
            action: Event name (e.g., "booking_status_changed")
            resource_type: "booking", "booking_price" or "admin_permission"
            resource_id: Id of the changed resource
            old_values: Previous state
            new_values: New state
            booking_id: Booking the event belongs to, if any

        Returns:
            The pending audit entry
        """
        entry = AuditLog(
            actor_id=actor_id,
            booking_id=booking_id,
            action=action,
            resource_type=resource_type,
            resource_id=resource_id,
            old_values=old_values,
            new_values=new_values,
        )
        db.add(entry)
        return entry

    async def log_status_change(
        self,
        db: AsyncSession,
        actor_id: UUID | None,
        booking_id: UUID,
        old_status: str,
        new_status: str,
        action: str,
    ) -> AuditLog:
        return await self.log_action(
            db,
            actor_id,
            "booking_status_changed",
            "booking",
            booking_id,
            old_values={"status": old_status},
            new_values={"status": new_status, "action": action},
            booking_id=booking_id,
        )

    async def log_price_change(
        self,
        db: AsyncSession,
        actor_id: UUID | None,
        booking_id: UUID,
        old_amount: Decimal | None,
        new_amount: Decimal,
        currency: str,
    ) -> AuditLog:
        """Admin price write; the old amount is omitted for a first price."""
        return await self.log_action(
            db,
            actor_id,
            "booking_price_set",
            "booking_price",
            booking_id,
            old_values={"amount": str(old_amount)} if old_amount is not None else None,
            new_values={"amount": str(new_amount), "currency": currency},
            booking_id=booking_id,
        )

    async def log_payment_capture(
        self,
        db: AsyncSession,
        actor_id: UUID | None,
        booking_id: UUID,
        outcome: str,
        amount: Decimal,
        currency: str,
        provider: str,
        reason: str | None = None,
    ) -> AuditLog:
        """Stored capture, as ``payment_captured`` or ``payment_refund_required``."""
        new_values: dict[str, Any] = {
            "amount": str(amount),
            "currency": currency,
            "provider": provider,
        }
        if reason:
            new_values["reason"] = reason

        return await self.log_action(
            db,
            actor_id,
            "payment_captured" if outcome == "applied" else "payment_refund_required",
            "booking",
            booking_id,
            new_values=new_values,
            booking_id=booking_id,
        )


audit_service = AuditService()
