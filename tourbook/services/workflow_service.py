"""Booking workflow service.

Every booking status write goes through ``BookingWorkflowService.apply_action``:
read the current status, validate the action, check the price gate, then
compare-and-set the new status. A lost compare re-reads and re-validates.
"""

import logging
from dataclasses import dataclass
from datetime import UTC, datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from tourbook.config import settings
from tourbook.core.exceptions import (
    InvalidBookingStatus,
    NotFoundError,
    PaymentNotAuthorized,
    PriceLocked,
    StatusConflict,
    ValidationError,
)
from tourbook.domain.booking_status import (
    POST_PAYMENT_STATUSES,
    BookingStatus,
    normalize_status,
)
from tourbook.domain.booking_workflow import (
    Action,
    RejectionReason,
    TransitionResult,
    parse_action,
    raise_for_rejection,
    validate,
)
from tourbook.domain.price_gate import (
    can_accept_payment,
    can_edit_price,
    has_admin_price,
    payment_eligibility,
)
from tourbook.domain.service_types import requires_resource_assignment
from tourbook.services.audit_service import AuditService, audit_service
from tourbook.services.booking_store import BookingStore, booking_store

logger = logging.getLogger(__name__)

# Timestamp column stamped when a booking enters the status
STATUS_TIMESTAMPS = {
    BookingStatus.PENDING: "submitted_at",
    BookingStatus.PAID: "paid_at",
    BookingStatus.ON_TRIP: "started_at",
    BookingStatus.COMPLETED: "completed_at",
    BookingStatus.CANCELLED: "cancelled_at",
    BookingStatus.REJECTED: "cancelled_at",
}


@dataclass(frozen=True)
class PriceInput:
    """Admin price submitted with ``set_price``."""

    amount: Decimal
    currency: str
    admin_notes: str | None = None


@dataclass(frozen=True)
class TransitionOutcome:
    """An accepted and persisted status change."""

    booking_id: UUID
    action: Action
    old_status: BookingStatus
    new_status: BookingStatus
    attempts: int
    refund_required: bool = False


class BookingWorkflowService:
    """Applies booking actions with validation, gating and compare-and-set writes."""

    def __init__(
        self,
        store: BookingStore | None = None,
        audit: AuditService | None = None,
        max_attempts: int | None = None,
    ) -> None:
        self.store = store or booking_store
        self.audit = audit or audit_service
        self.max_attempts = max_attempts or settings.status_write_attempts

    async def apply_action(
        self,
        db: AsyncSession,
        booking_id: UUID,
        action: str | Action,
        actor_id: UUID | None,
        *,
        price: PriceInput | None = None,
        fields: dict[str, Any] | None = None,
        notes: str | None = None,
        expected_price: PriceInput | None = None,
    ) -> TransitionOutcome:
        """Apply ``action`` to a booking.

        Args:
            db: Database session
            booking_id: Booking to change
            action: Action verb
            actor_id: User performing the action (None for provider callbacks)
            price: Admin price, required for ``set_price``
            fields: Extra booking columns written with the status change
            notes: Free text kept in the status history
            expected_price: Price the payer was shown; ``pay`` is refused if
                the admin price no longer matches it

        Returns:
            TransitionOutcome describing the persisted change

        Raises:
            ValidationError: Unknown action or status, or missing input
            InvalidBookingStatus: Transition not reachable from the current status
            BookingAlreadyTerminal: Booking is completed, cancelled or rejected
            PaymentNotAuthorized: ``pay`` while the price gate is closed
            PriceLocked: Price write against a locked price
            StatusConflict: Status kept changing underneath every attempt
        """
        parsed = parse_action(action)

        for attempt in range(1, self.max_attempts + 1):
            # Booking row first, then the price row, on every path
            booking = await self.store.get_booking(db, booking_id, for_update=True)
            if booking is None:
                raise NotFoundError("Booking", str(booking_id))

            observed = booking.status
            result = validate(observed, action)
            if not result.ok:
                self._log_rejection(booking_id, result)
                raise_for_rejection(result)

            current = normalize_status(observed)
            new_status = result.new_status

            await self._check_gate(db, booking, current, parsed, price, expected_price)

            if parsed == Action.SET_PRICE:
                await self._write_price(db, booking_id, price, actor_id)

            values = dict(fields or {})
            timestamp_column = STATUS_TIMESTAMPS.get(new_status)
            if timestamp_column:
                values.setdefault(timestamp_column, datetime.now(UTC))

            # Actions decided on the price also need it unchanged since the read
            price_version = (
                booking.price_version if parsed in (Action.PAY, Action.CONFIRM_PRICE) else None
            )
            written = await self.store.compare_and_set_status(
                db,
                booking_id,
                observed,
                new_status.value,
                expected_price_version=price_version,
                **values,
            )
            if not written:
                logger.info(
                    "Booking %s changed from '%s' during %s (attempt %d/%d), re-validating",
                    booking_id,
                    observed,
                    parsed.value,
                    attempt,
                    self.max_attempts,
                )
                continue

            if new_status in POST_PAYMENT_STATUSES:
                await self.store.lock_price(db, booking_id)

            await self.store.add_history(
                db, booking_id, current.value, new_status.value, parsed.value, actor_id, notes
            )
            await self.audit.log_status_change(
                db, actor_id, booking_id, current.value, new_status.value, parsed.value
            )

            refund_required = current in POST_PAYMENT_STATUSES and new_status in (
                BookingStatus.CANCELLED,
                BookingStatus.REJECTED,
            )
            if refund_required:
                logger.error(
                    "Booking %s: closed as '%s' after payment, refund required",
                    booking_id,
                    new_status.value,
                )
                await self.audit.log_action(
                    db,
                    actor_id,
                    "payment_refund_required",
                    "booking",
                    booking_id,
                    old_values={"status": current.value},
                    new_values={"status": new_status.value, "action": parsed.value},
                    booking_id=booking_id,
                )

            logger.info(
                "Booking %s: %s -> %s via %s by %s",
                booking_id,
                current.value,
                new_status.value,
                parsed.value,
                actor_id,
            )
            return TransitionOutcome(
                booking_id=booking_id,
                action=parsed,
                old_status=current,
                new_status=new_status,
                attempts=attempt,
                refund_required=refund_required,
            )

        logger.warning(
            "Booking %s: gave up on %s after %d conflicting writes",
            booking_id,
            parsed.value,
            self.max_attempts,
        )
        raise StatusConflict()

    async def update_price(
        self,
        db: AsyncSession,
        booking_id: UUID,
        price: PriceInput,
        actor_id: UUID | None,
    ) -> BookingStatus:
        """Set or correct the admin price.

        From ``pending`` or ``under_review`` this is the ``set_price`` action.
        From ``price_set`` or ``awaiting_payment`` only the price record
        changes; the status stays as it is.

        Returns:
            The booking status after the write
        """
        for _ in range(self.max_attempts):
            booking = await self.store.get_booking(db, booking_id, for_update=True)
            if booking is None:
                raise NotFoundError("Booking", str(booking_id))

            observed = booking.status
            if validate(observed, Action.SET_PRICE).ok:
                outcome = await self.apply_action(
                    db, booking_id, Action.SET_PRICE, actor_id, price=price
                )
                return outcome.new_status

            try:
                current = normalize_status(observed)
            except ValueError:
                raise_for_rejection(validate(observed, Action.SET_PRICE))

            if current not in (BookingStatus.PRICE_SET, BookingStatus.AWAITING_PAYMENT):
                if current in POST_PAYMENT_STATUSES:
                    logger.warning(
                        "Booking %s: price write refused, price locked in '%s'",
                        booking_id,
                        current.value,
                    )
                    raise PriceLocked()
                result = validate(current, Action.SET_PRICE)
                self._log_rejection(booking_id, result)
                raise_for_rejection(result)

            await self._write_price(db, booking_id, price, actor_id)

            # Status must still be the one the price edit was allowed in
            if await self.store.compare_and_set_status(db, booking_id, observed, observed):
                return current

        raise StatusConflict()

    async def _check_gate(
        self,
        db: AsyncSession,
        booking: Any,
        current: BookingStatus,
        action: Action,
        price: PriceInput | None,
        expected_price: PriceInput | None = None,
    ) -> None:
        if action == Action.PAY:
            record = await self.store.get_price(db, booking.id)
            if not can_accept_payment(current, has_admin_price(record)):
                _, reason = payment_eligibility(current, record)
                logger.warning(
                    "Booking %s: payment refused in '%s': %s",
                    booking.id,
                    current.value,
                    reason,
                )
                raise_for_rejection(
                    TransitionResult.rejected(
                        RejectionReason.PAYMENT_NOT_AUTHORIZED,
                        current=current.value,
                        attempted=BookingStatus.PAID.value,
                    )
                )
            if expected_price is not None and (
                record.amount != expected_price.amount
                or record.currency != expected_price.currency.upper()
            ):
                logger.warning(
                    "Booking %s: payment refused, price is now %s %s but payer saw %s %s",
                    booking.id,
                    record.amount,
                    record.currency,
                    expected_price.amount,
                    expected_price.currency,
                )
                raise PaymentNotAuthorized("Price changed after payment was prepared.")

        elif action == Action.SET_PRICE:
            if price is None:
                raise ValidationError("A price is required to set the booking price")
            if not can_edit_price(current):
                raise PriceLocked()

        elif action == Action.CONFIRM_PRICE:
            record = await self.store.get_price(db, booking.id)
            if not has_admin_price(record):
                raise PaymentNotAuthorized("Price has not been set by admin yet.")

        elif action == Action.START and current == BookingStatus.CONFIRMED:
            if requires_resource_assignment(booking.service_type):
                logger.warning(
                    "Booking %s: start refused, %s service has no assigned resource",
                    booking.id,
                    booking.service_type,
                )
                raise InvalidBookingStatus(
                    "A driver or guide must be assigned and accept before the trip starts"
                )

    async def _write_price(
        self,
        db: AsyncSession,
        booking_id: UUID,
        price: PriceInput | None,
        actor_id: UUID | None,
    ) -> None:
        if price is None:
            raise ValidationError("A price is required to set the booking price")
        if price.amount is None or price.amount <= 0:
            raise ValidationError("Price amount must be greater than zero")
        currency = price.currency.upper()
        if currency not in settings.supported_currencies:
            raise ValidationError(f"Unsupported currency: {price.currency}")

        existing = await self.store.get_price(db, booking_id)
        await self.store.upsert_price(
            db, booking_id, price.amount, currency, set_by=actor_id, admin_notes=price.admin_notes
        )
        await self.audit.log_price_change(
            db,
            actor_id,
            booking_id,
            existing.amount if existing else None,
            price.amount,
            currency,
        )
        logger.info("Booking %s: admin price set to %s %s", booking_id, price.amount, currency)

    def _log_rejection(self, booking_id: UUID, result: TransitionResult) -> None:
        logger.warning(
            "Booking %s: rejected transition %s -> %s (%s)",
            booking_id,
            result.current,
            result.attempted,
            result.reason.value if result.reason else None,
        )


workflow_service = BookingWorkflowService()
