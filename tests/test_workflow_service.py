"""Tests for BookingWorkflowService against the in-memory store."""

import asyncio
import logging
from decimal import Decimal
from uuid import uuid4

import pytest

from tourbook.core.exceptions import (
    BookingAlreadyTerminal,
    InvalidBookingStatus,
    NotFoundError,
    PaymentNotAuthorized,
    PriceLocked,
    StatusConflict,
    ValidationError,
)
from tourbook.domain.booking_status import BookingStatus
from tourbook.domain.booking_workflow import Action
from tourbook.domain.price_gate import can_edit_price, is_price_locked
from tourbook.services.workflow_service import PriceInput

PRICE_120_USD = PriceInput(amount=Decimal("120"), currency="USD")


class TestHappyPath:
    """draft → pending → price_set → awaiting_payment → paid."""

    async def test_book_price_and_pay(self, workflow, store, audit, db_session, admin_id, customer_id):
        booking = store.add_booking(user_id=customer_id)

        outcome = await workflow.apply_action(db_session, booking.id, "submit", customer_id)
        assert outcome.new_status == BookingStatus.PENDING

        outcome = await workflow.apply_action(
            db_session, booking.id, Action.SET_PRICE, admin_id, price=PRICE_120_USD
        )
        assert outcome.new_status == BookingStatus.PRICE_SET
        assert store.prices[booking.id].amount == Decimal("120")
        assert store.prices[booking.id].currency == "USD"

        outcome = await workflow.apply_action(db_session, booking.id, Action.CONFIRM_PRICE, customer_id)
        assert outcome.new_status == BookingStatus.AWAITING_PAYMENT

        outcome = await workflow.apply_action(db_session, booking.id, Action.PAY, None)
        assert outcome.new_status == BookingStatus.PAID
        assert is_price_locked(outcome.new_status)
        assert store.prices[booking.id].locked

        assert not can_edit_price(BookingStatus.PAID)
        with pytest.raises(PriceLocked):
            await workflow.update_price(
                db_session, booking.id, PriceInput(amount=Decimal("99"), currency="USD"), admin_id
            )
        assert store.prices[booking.id].amount == Decimal("120")

        assert [(h.old_status, h.new_status) for h in store.history] == [
            ("draft", "pending"),
            ("pending", "price_set"),
            ("price_set", "awaiting_payment"),
            ("awaiting_payment", "paid"),
        ]
        assert audit.log_status_change.await_count == 4
        audit.log_price_change.assert_awaited_once()

    async def test_status_timestamps_are_stamped(self, workflow, store, db_session):
        booking = store.add_booking()
        await workflow.apply_action(db_session, booking.id, Action.SUBMIT, None)
        assert store.bookings[booking.id].submitted_at is not None
        assert store.bookings[booking.id].paid_at is None

    async def test_review_step(self, workflow, store, db_session, admin_id):
        booking = store.add_booking(status="pending")
        await workflow.apply_action(db_session, booking.id, Action.REVIEW, admin_id)
        outcome = await workflow.apply_action(
            db_session, booking.id, Action.SET_PRICE, admin_id, price=PRICE_120_USD
        )
        assert outcome.old_status == BookingStatus.UNDER_REVIEW

    async def test_legacy_status_is_rewritten_canonically(self, workflow, store, db_session):
        booking = store.add_booking(status="submitted")
        outcome = await workflow.apply_action(
            db_session, booking.id, Action.SET_PRICE, None, price=PRICE_120_USD
        )
        assert outcome.old_status == BookingStatus.PENDING
        assert store.bookings[booking.id].status == "price_set"


class TestCancelledBooking:
    """draft → cancelled, then nothing else."""

    async def test_submit_after_cancel(self, workflow, store, db_session, customer_id):
        booking = store.add_booking()
        outcome = await workflow.apply_action(
            db_session,
            booking.id,
            Action.CANCEL,
            customer_id,
            fields={"cancelled_by": "customer"},
        )
        assert outcome.new_status == BookingStatus.CANCELLED
        assert store.bookings[booking.id].cancelled_by == "customer"
        assert store.bookings[booking.id].cancelled_at is not None

        with pytest.raises(BookingAlreadyTerminal):
            await workflow.apply_action(db_session, booking.id, Action.SUBMIT, customer_id)

    @pytest.mark.parametrize("action", list(Action))
    async def test_no_action_leaves_cancelled(self, workflow, store, db_session, action):
        booking = store.add_booking(status="cancelled")
        with pytest.raises(BookingAlreadyTerminal):
            await workflow.apply_action(
                db_session, booking.id, action, None, price=PRICE_120_USD
            )
        assert store.bookings[booking.id].status == "cancelled"
        assert store.history == []


class TestGates:
    """Payment, price and assignment gates."""

    async def test_pay_without_admin_price(self, workflow, store, db_session):
        booking = store.add_booking(status="awaiting_payment")
        with pytest.raises(PaymentNotAuthorized):
            await workflow.apply_action(db_session, booking.id, Action.PAY, None)
        assert store.bookings[booking.id].status == "awaiting_payment"
        assert store.cas_calls == 0

    async def test_pay_before_confirming_price(self, workflow, store, db_session):
        booking = store.add_booking(status="price_set")
        store.add_price(booking.id)
        with pytest.raises(InvalidBookingStatus):
            await workflow.apply_action(db_session, booking.id, Action.PAY, None)

    async def test_confirm_price_needs_admin_price(self, workflow, store, db_session):
        booking = store.add_booking(status="price_set")
        with pytest.raises(PaymentNotAuthorized):
            await workflow.apply_action(db_session, booking.id, Action.CONFIRM_PRICE, None)

    async def test_set_price_requires_price(self, workflow, store, db_session):
        booking = store.add_booking(status="pending")
        with pytest.raises(ValidationError):
            await workflow.apply_action(db_session, booking.id, Action.SET_PRICE, None)
        assert store.bookings[booking.id].status == "pending"

    async def test_set_price_rejects_unsupported_currency(self, workflow, store, db_session):
        booking = store.add_booking(status="pending")
        with pytest.raises(ValidationError):
            await workflow.apply_action(
                db_session,
                booking.id,
                Action.SET_PRICE,
                None,
                price=PriceInput(amount=Decimal("10"), currency="XYZ"),
            )
        assert booking.id not in store.prices

    async def test_set_price_rejects_non_positive_amount(self, workflow, store, db_session):
        booking = store.add_booking(status="pending")
        with pytest.raises(ValidationError):
            await workflow.apply_action(
                db_session,
                booking.id,
                Action.SET_PRICE,
                None,
                price=PriceInput(amount=Decimal("0"), currency="USD"),
            )

    async def test_driver_booking_cannot_start_unassigned(self, workflow, store, db_session):
        booking = store.add_booking(status="confirmed", service_type="Driver")
        with pytest.raises(InvalidBookingStatus):
            await workflow.apply_action(db_session, booking.id, Action.START, None)

    async def test_accommodation_starts_from_confirmed(self, workflow, store, db_session):
        booking = store.add_booking(status="confirmed", service_type="Accommodation")
        outcome = await workflow.apply_action(db_session, booking.id, Action.START, None)
        assert outcome.new_status == BookingStatus.ON_TRIP
        assert store.bookings[booking.id].started_at is not None

    async def test_driver_assignment_flow(self, workflow, store, db_session, admin_id):
        driver_id = uuid4()
        booking = store.add_booking(status="confirmed", service_type="Driver")

        await workflow.apply_action(
            db_session, booking.id, Action.ASSIGN, admin_id, fields={"assigned_driver_id": driver_id}
        )
        assert store.bookings[booking.id].assigned_driver_id == driver_id

        await workflow.apply_action(db_session, booking.id, Action.ACCEPT, driver_id)
        await workflow.apply_action(db_session, booking.id, Action.START, driver_id)
        outcome = await workflow.apply_action(db_session, booking.id, Action.COMPLETE, driver_id)

        assert outcome.new_status == BookingStatus.COMPLETED
        assert store.bookings[booking.id].completed_at is not None

    @pytest.mark.parametrize("status", ["paid", "on_trip"])
    async def test_reject_after_payment_needs_refund(
        self, workflow, store, audit, db_session, admin_id, status
    ):
        booking = store.add_booking(status=status)

        outcome = await workflow.apply_action(
            db_session,
            booking.id,
            Action.REJECT,
            admin_id,
            fields={"rejection_reason": "Vehicle unavailable"},
        )

        assert outcome.new_status == BookingStatus.REJECTED
        assert outcome.refund_required
        assert store.bookings[booking.id].rejection_reason == "Vehicle unavailable"
        audit.log_action.assert_awaited_once()
        assert audit.log_action.await_args.args[2] == "payment_refund_required"
        assert audit.log_action.await_args.kwargs["booking_id"] == booking.id

    async def test_reject_before_payment_needs_no_refund(self, workflow, store, audit, db_session):
        booking = store.add_booking(status="awaiting_payment")

        outcome = await workflow.apply_action(db_session, booking.id, Action.REJECT, None)

        assert outcome.new_status == BookingStatus.REJECTED
        assert not outcome.refund_required
        audit.log_action.assert_not_awaited()

    async def test_cancel_after_payment_needs_refund(self, workflow, store, db_session):
        booking = store.add_booking(status="confirmed")
        outcome = await workflow.apply_action(db_session, booking.id, Action.CANCEL, None)
        assert outcome.refund_required

    async def test_reject_on_rejected(self, workflow, store, db_session):
        booking = store.add_booking(status="rejected")
        with pytest.raises(BookingAlreadyTerminal):
            await workflow.apply_action(db_session, booking.id, Action.REJECT, None)

    async def test_missing_booking(self, workflow, db_session):
        with pytest.raises(NotFoundError):
            await workflow.apply_action(db_session, uuid4(), Action.SUBMIT, None)

    async def test_unknown_action(self, workflow, store, db_session):
        booking = store.add_booking()
        with pytest.raises(ValidationError):
            await workflow.apply_action(db_session, booking.id, "teleport", None)


class TestPriceCorrections:
    """Price changes after price_set keep the status."""

    @pytest.mark.parametrize("status", ["price_set", "awaiting_payment"])
    async def test_correction_keeps_status(self, workflow, store, db_session, admin_id, status):
        booking = store.add_booking(status=status)
        store.add_price(booking.id, "120.00")

        new_status = await workflow.update_price(
            db_session, booking.id, PriceInput(amount=Decimal("95.50"), currency="eur"), admin_id
        )

        assert new_status == BookingStatus(status)
        assert store.bookings[booking.id].status == status
        assert store.prices[booking.id].amount == Decimal("95.50")
        assert store.prices[booking.id].currency == "EUR"
        assert store.history == []

    async def test_first_price_is_a_transition(self, workflow, store, db_session, admin_id):
        booking = store.add_booking(status="pending")
        new_status = await workflow.update_price(db_session, booking.id, PRICE_120_USD, admin_id)
        assert new_status == BookingStatus.PRICE_SET
        assert len(store.history) == 1

    async def test_draft_cannot_be_priced(self, workflow, store, db_session, admin_id):
        booking = store.add_booking(status="draft")
        with pytest.raises(InvalidBookingStatus):
            await workflow.update_price(db_session, booking.id, PRICE_120_USD, admin_id)

    async def test_closed_booking_cannot_be_priced(self, workflow, store, db_session, admin_id):
        booking = store.add_booking(status="rejected")
        with pytest.raises(BookingAlreadyTerminal):
            await workflow.update_price(db_session, booking.id, PRICE_120_USD, admin_id)

    async def test_correction_loses_to_payment(self, workflow, store, db_session, admin_id):
        booking = store.add_booking(status="awaiting_payment")
        store.add_price(booking.id, "120.00")

        def customer_pays(row):
            row.status = "paid"
            store.prices[booking.id].locked = True

        store.before_cas.append(customer_pays)

        with pytest.raises(PriceLocked):
            await workflow.update_price(
                db_session, booking.id, PriceInput(amount=Decimal("80"), currency="USD"), admin_id
            )


class TestConcurrentWrites:
    """Compare-and-set with re-validation."""

    async def test_lost_race_is_revalidated_and_rejected(self, workflow, store, db_session):
        booking = store.add_booking(status="awaiting_payment")
        store.add_price(booking.id)
        store.before_cas.append(lambda row: setattr(row, "status", "cancelled"))

        with pytest.raises(BookingAlreadyTerminal):
            await workflow.apply_action(db_session, booking.id, Action.PAY, None)

        assert store.bookings[booking.id].status == "cancelled"
        assert store.history == []

    async def test_lost_race_still_legal_is_retried(self, workflow, store, db_session, admin_id):
        booking = store.add_booking(status="pending")
        store.before_cas.append(lambda row: setattr(row, "status", "under_review"))

        outcome = await workflow.apply_action(
            db_session, booking.id, Action.SET_PRICE, admin_id, price=PRICE_120_USD
        )

        assert outcome.attempts == 2
        assert outcome.old_status == BookingStatus.UNDER_REVIEW
        assert store.bookings[booking.id].status == "price_set"

    async def test_gives_up_after_max_attempts(self, workflow, store, db_session):
        booking = store.add_booking()
        store.fail_cas = True

        with pytest.raises(StatusConflict) as exc_info:
            await workflow.apply_action(db_session, booking.id, Action.SUBMIT, None)

        assert exc_info.value.status_code == 409
        assert store.cas_calls == 3

    async def test_double_payment_applies_once(self, workflow, store, db_session):
        booking = store.add_booking(status="awaiting_payment")
        store.add_price(booking.id)

        results = await asyncio.gather(
            workflow.apply_action(db_session, booking.id, Action.PAY, None),
            workflow.apply_action(db_session, booking.id, Action.PAY, None),
            return_exceptions=True,
        )

        applied = [r for r in results if not isinstance(r, Exception)]
        refused = [r for r in results if isinstance(r, InvalidBookingStatus)]
        assert len(applied) == 1
        assert len(refused) == 1
        assert len(store.history) == 1


class TestPriceChangeDuringPayment:
    """An admin price write landing between the payment read and its status write."""

    @staticmethod
    def admin_reprices(store, booking_id, amount):
        def hook(row):
            row.price_version += 1
            store.prices[booking_id].amount = Decimal(amount)

        return hook

    async def test_pay_refused_when_price_moved(self, workflow, store, db_session):
        booking = store.add_booking(status="awaiting_payment")
        store.add_price(booking.id, "120.00")
        store.before_cas.append(self.admin_reprices(store, booking.id, "80.00"))

        with pytest.raises(PaymentNotAuthorized) as exc_info:
            await workflow.apply_action(
                db_session, booking.id, Action.PAY, None, expected_price=PRICE_120_USD
            )

        assert exc_info.value.detail == "Price changed after payment was prepared."
        assert store.bookings[booking.id].status == "awaiting_payment"
        assert not store.prices[booking.id].locked
        assert store.history == []

    async def test_pay_without_expected_price_revalidates(self, workflow, store, db_session):
        booking = store.add_booking(status="awaiting_payment")
        store.add_price(booking.id, "120.00")
        store.before_cas.append(self.admin_reprices(store, booking.id, "80.00"))

        outcome = await workflow.apply_action(db_session, booking.id, Action.PAY, None)

        assert outcome.attempts == 2
        assert store.prices[booking.id].amount == Decimal("80.00")
        assert store.prices[booking.id].locked

    async def test_price_write_bumps_version(self, workflow, store, db_session, admin_id):
        booking = store.add_booking(status="price_set")
        store.add_price(booking.id, "120.00")

        await workflow.update_price(
            db_session, booking.id, PriceInput(amount=Decimal("95"), currency="USD"), admin_id
        )

        assert store.bookings[booking.id].price_version == 1

    async def test_booking_row_locked_on_every_write(self, workflow, store, db_session, admin_id):
        booking = store.add_booking(status="price_set")
        store.add_price(booking.id, "120.00")

        await workflow.update_price(db_session, booking.id, PRICE_120_USD, admin_id)
        await workflow.apply_action(db_session, booking.id, Action.CONFIRM_PRICE, None)

        assert store.locked_reads == 2


class TestLogging:
    async def test_rejection_logged_at_warning(self, workflow, store, db_session, caplog):
        booking = store.add_booking()
        with caplog.at_level(logging.WARNING, logger="tourbook.services.workflow_service"):
            with pytest.raises(InvalidBookingStatus):
                await workflow.apply_action(db_session, booking.id, Action.PAY, None)

        assert any(
            str(booking.id) in r.getMessage() and "draft" in r.getMessage() and "paid" in r.getMessage()
            for r in caplog.records
        )

    async def test_accepted_transition_logged_at_info(self, workflow, store, db_session, caplog):
        booking = store.add_booking()
        with caplog.at_level(logging.INFO, logger="tourbook.services.workflow_service"):
            await workflow.apply_action(db_session, booking.id, Action.SUBMIT, None)

        assert any("draft -> pending" in r.getMessage() for r in caplog.records)
