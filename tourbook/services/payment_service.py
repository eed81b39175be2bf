"""Payment capture handling.

A capture is only applied to a booking through the ``pay`` action, and only
while the price gate is open. Captures that arrive while it is closed are
recorded as ``refund_required`` and surfaced, never dropped.
"""

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from tourbook.core.exceptions import (
    BookingAlreadyTerminal,
    InvalidBookingStatus,
    NotFoundError,
    PaymentNotAuthorized,
    StatusConflict,
)
from tourbook.core.idempotency import IdempotencyError, generate_idempotency_key
from tourbook.domain.booking_workflow import Action
from tourbook.domain.price_gate import payment_eligibility
from tourbook.models.payment import PaymentCapture
from tourbook.services.audit_service import AuditService, audit_service
from tourbook.services.booking_store import BookingStore, booking_store
from tourbook.services.workflow_service import (
    BookingWorkflowService,
    PriceInput,
    workflow_service,
)

logger = logging.getLogger(__name__)

OUTCOME_APPLIED = "applied"
OUTCOME_REFUND_REQUIRED = "refund_required"


@dataclass(frozen=True)
class CaptureResult:
    capture: PaymentCapture
    replayed: bool = False

    @property
    def refund_required(self) -> bool:
        return self.capture.outcome == OUTCOME_REFUND_REQUIRED


class PaymentService:
    """Records provider captures and applies ``pay`` when authorised."""

    def __init__(
        self,
        store: BookingStore | None = None,
        workflow: BookingWorkflowService | None = None,
        audit: AuditService | None = None,
    ) -> None:
        self.store = store or booking_store
        self.workflow = workflow or workflow_service
        self.audit = audit or audit_service

    async def prepare_payment(self, db: AsyncSession, booking_id: UUID) -> dict[str, Any]:
        """Amount and currency to charge, or the reason payment is unavailable."""
        booking = await self.store.get_booking(db, booking_id)
        if booking is None:
            raise NotFoundError("Booking", str(booking_id))

        price = await self.store.get_price(db, booking_id)
        can_pay, reason = payment_eligibility(booking.status, price)
        return {
            "booking_id": booking_id,
            "booking_number": booking.booking_number,
            "status": booking.status,
            "can_pay": can_pay,
            "reason": reason,
            "amount": price.amount if can_pay else None,
            "currency": price.currency if can_pay else None,
        }

    async def record_capture(
        self,
        db: AsyncSession,
        booking_id: UUID,
        amount: Decimal,
        currency: str,
        provider: str,
        provider_reference: str,
        payload: dict[str, Any] | None = None,
        actor_id: UUID | None = None,
    ) -> CaptureResult:
        """Record a capture and apply ``pay`` if the booking accepts payment.

        Replays of the same provider reference return the first result.

        Args:
            db: Database session
            booking_id: Booking the capture belongs to
            amount: Captured amount as reported by the provider
            currency: Captured currency
            provider: Provider name (e.g., "paypal", "manual")
            provider_reference: Provider's transaction reference
            payload: Raw provider payload kept for reconciliation
            actor_id: Admin verifying the payment, None for provider callbacks

        Returns:
            CaptureResult with the stored capture

        Raises:
            NotFoundError: Booking does not exist
            IdempotencyError: Reference reused with a different amount
            StatusConflict: Booking status kept changing; the provider should retry
        """
        currency = currency.upper()
        key = generate_idempotency_key(
            "payment_capture",
            booking_id,
            {"provider": provider, "reference": provider_reference},
        )

        existing = await self.store.get_capture(db, key)
        if existing is not None:
            if existing.amount != amount or existing.currency != currency:
                raise IdempotencyError("payment_capture", str(booking_id))
            logger.info(
                "Replayed capture %s for booking %s (outcome=%s)",
                provider_reference,
                booking_id,
                existing.outcome,
            )
            return CaptureResult(capture=existing, replayed=True)

        booking = await self.store.get_booking(db, booking_id)
        if booking is None:
            raise NotFoundError("Booking", str(booking_id))

        price = await self.store.get_price(db, booking_id)
        can_pay, reason = payment_eligibility(booking.status, price)

        outcome = OUTCOME_APPLIED
        if can_pay:
            if price.amount != amount or price.currency != currency:
                logger.warning(
                    "Booking %s: captured %s %s differs from admin price %s %s",
                    booking_id,
                    amount,
                    currency,
                    price.amount,
                    price.currency,
                )
            try:
                await self.workflow.apply_action(
                    db,
                    booking_id,
                    Action.PAY,
                    actor_id,
                    notes=f"Payment captured via {provider} ({provider_reference})",
                    expected_price=PriceInput(price.amount, price.currency),
                )
            except (PaymentNotAuthorized, InvalidBookingStatus, BookingAlreadyTerminal) as e:
                outcome = OUTCOME_REFUND_REQUIRED
                reason = e.detail
        else:
            outcome = OUTCOME_REFUND_REQUIRED

        capture = PaymentCapture(
            booking_id=booking_id,
            idempotency_key=key,
            amount=amount,
            currency=currency,
            provider=provider,
            provider_reference=provider_reference,
            provider_payload=payload,
            outcome=outcome,
            reason=reason if outcome == OUTCOME_REFUND_REQUIRED else None,
        )
        stored = await self.store.add_capture(db, capture)
        if stored is None:
            # A concurrent delivery of the same capture committed first
            existing = await self.store.get_capture(db, key)
            if existing.amount != amount or existing.currency != currency:
                raise IdempotencyError("payment_capture", str(booking_id))
            if outcome == OUTCOME_APPLIED and existing.outcome != OUTCOME_APPLIED:
                # Roll back this pay so the stored refund_required stays true
                logger.warning(
                    "Booking %s: duplicate capture %s stored as %s after this one paid, retry",
                    booking_id,
                    provider_reference,
                    existing.outcome,
                )
                raise StatusConflict()
            logger.info(
                "Replayed capture %s for booking %s after concurrent insert",
                provider_reference,
                booking_id,
            )
            return CaptureResult(capture=existing, replayed=True)
        await self.audit.log_payment_capture(
            db,
            actor_id,
            booking_id,
            outcome,
            amount,
            currency,
            provider,
            reason=capture.reason,
        )

        if outcome == OUTCOME_REFUND_REQUIRED:
            logger.error(
                "Booking %s: capture %s via %s (%s %s) not authorised, refund required: %s",
                booking_id,
                provider_reference,
                provider,
                amount,
                currency,
                reason,
            )
        else:
            logger.info(
                "Booking %s: capture %s via %s applied", booking_id, provider_reference, provider
            )

        return CaptureResult(capture=capture)

    async def verify_manual_payment(
        self,
        db: AsyncSession,
        booking_id: UUID,
        admin_id: UUID,
        reference: str,
        notes: str | None = None,
    ) -> CaptureResult:
        """Mark a booking paid after an admin verified an offline payment.

        Raises:
            PaymentNotAuthorized: The price gate is closed
        """
        booking = await self.store.get_booking(db, booking_id)
        if booking is None:
            raise NotFoundError("Booking", str(booking_id))

        price = await self.store.get_price(db, booking_id)
        can_pay, reason = payment_eligibility(booking.status, price)
        if not can_pay:
            raise PaymentNotAuthorized(reason or "Payment is not authorized for this booking")

        result = await self.record_capture(
            db,
            booking_id,
            price.amount,
            price.currency,
            provider="manual",
            provider_reference=reference,
            payload={"notes": notes} if notes else None,
            actor_id=admin_id,
        )
        if result.refund_required:
            raise PaymentNotAuthorized(
                result.capture.reason or "Payment is not authorized for this booking"
            )
        return result


payment_service = PaymentService()
