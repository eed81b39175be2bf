"""Tests for payment capture handling."""

import logging
from decimal import Decimal
from unittest.mock import AsyncMock
from uuid import uuid4

import pytest

from tourbook.core.exceptions import NotFoundError, PaymentNotAuthorized, StatusConflict
from tourbook.core.idempotency import IdempotencyError
from tourbook.services.payment_service import OUTCOME_APPLIED, OUTCOME_REFUND_REQUIRED


def payable_booking(store, amount="120.00"):
    booking = store.add_booking(status="awaiting_payment")
    store.add_price(booking.id, amount)
    return booking


class TestRecordCapture:
    """Provider callbacks."""

    async def test_capture_applies_pay(self, payments, store, audit, db_session):
        booking = payable_booking(store)

        result = await payments.record_capture(
            db_session, booking.id, Decimal("120.00"), "usd", "paypal", "CAP-1"
        )

        assert result.capture.outcome == OUTCOME_APPLIED
        assert not result.refund_required
        assert not result.replayed
        assert result.capture.currency == "USD"
        assert store.bookings[booking.id].status == "paid"
        assert store.prices[booking.id].locked
        audit.log_payment_capture.assert_awaited_once()

    async def test_replay_returns_first_result(self, payments, store, db_session):
        booking = payable_booking(store)
        first = await payments.record_capture(
            db_session, booking.id, Decimal("120.00"), "USD", "paypal", "CAP-1"
        )

        second = await payments.record_capture(
            db_session, booking.id, Decimal("120.00"), "USD", "paypal", "CAP-1"
        )

        assert second.replayed
        assert second.capture is first.capture
        assert len(store.captures) == 1
        assert len(store.history) == 1

    async def test_replay_with_different_amount(self, payments, store, db_session):
        booking = payable_booking(store)
        await payments.record_capture(
            db_session, booking.id, Decimal("120.00"), "USD", "paypal", "CAP-1"
        )

        with pytest.raises(IdempotencyError):
            await payments.record_capture(
                db_session, booking.id, Decimal("12.00"), "USD", "paypal", "CAP-1"
            )

    async def test_capture_before_price_confirmed(self, payments, store, db_session, caplog):
        booking = store.add_booking(status="price_set")
        store.add_price(booking.id)

        with caplog.at_level(logging.ERROR, logger="tourbook.services.payment_service"):
            result = await payments.record_capture(
                db_session, booking.id, Decimal("120.00"), "USD", "paypal", "CAP-2"
            )

        assert result.refund_required
        assert result.capture.reason == "Please confirm the price before paying."
        assert store.bookings[booking.id].status == "price_set"
        assert store.history == []
        assert any("refund required" in r.getMessage() for r in caplog.records)

    async def test_capture_without_admin_price(self, payments, store, db_session):
        booking = store.add_booking(status="awaiting_payment")

        result = await payments.record_capture(
            db_session, booking.id, Decimal("50.00"), "USD", "paypal", "CAP-3"
        )

        assert result.capture.outcome == OUTCOME_REFUND_REQUIRED
        assert result.capture.reason == "Price has not been set by admin yet."
        assert store.bookings[booking.id].status == "awaiting_payment"

    async def test_capture_on_cancelled_booking(self, payments, store, db_session):
        booking = store.add_booking(status="cancelled")
        store.add_price(booking.id)

        result = await payments.record_capture(
            db_session, booking.id, Decimal("120.00"), "USD", "paypal", "CAP-4"
        )

        assert result.refund_required
        assert store.bookings[booking.id].status == "cancelled"
        assert len(store.captures) == 1

    async def test_capture_loses_race_with_cancel(self, payments, store, db_session):
        booking = payable_booking(store)
        store.before_cas.append(lambda row: setattr(row, "status", "cancelled"))

        result = await payments.record_capture(
            db_session, booking.id, Decimal("120.00"), "USD", "paypal", "CAP-5"
        )

        assert result.refund_required
        assert store.bookings[booking.id].status == "cancelled"

    async def test_price_changed_while_capturing(self, payments, store, db_session):
        booking = payable_booking(store)

        def admin_reprices(row):
            row.price_version += 1
            store.prices[booking.id].amount = Decimal("80.00")

        store.before_cas.append(admin_reprices)

        result = await payments.record_capture(
            db_session, booking.id, Decimal("120.00"), "USD", "paypal", "CAP-8"
        )

        assert result.refund_required
        assert result.capture.reason == "Price changed after payment was prepared."
        assert store.bookings[booking.id].status == "awaiting_payment"
        assert not store.prices[booking.id].locked

    async def test_concurrent_duplicate_returns_stored_capture(
        self, payments, store, audit, db_session
    ):
        booking = payable_booking(store)
        first = await payments.record_capture(
            db_session, booking.id, Decimal("120.00"), "USD", "paypal", "CAP-10"
        )
        # Second delivery read before the first committed, then lost the insert
        store.get_capture = AsyncMock(side_effect=[None, first.capture])

        second = await payments.record_capture(
            db_session, booking.id, Decimal("120.00"), "USD", "paypal", "CAP-10"
        )

        assert second.replayed
        assert second.capture is first.capture
        assert len(store.captures) == 1
        assert len(store.history) == 1
        audit.log_payment_capture.assert_awaited_once()

    async def test_concurrent_duplicate_with_different_amount(self, payments, store, db_session):
        booking = payable_booking(store)
        first = await payments.record_capture(
            db_session, booking.id, Decimal("120.00"), "USD", "paypal", "CAP-11"
        )
        store.get_capture = AsyncMock(side_effect=[None, first.capture])

        with pytest.raises(IdempotencyError):
            await payments.record_capture(
                db_session, booking.id, Decimal("99.00"), "USD", "paypal", "CAP-11"
            )

    async def test_concurrent_duplicate_that_paid_is_retried(self, payments, store, db_session):
        booking = store.add_booking(status="price_set")
        store.add_price(booking.id)
        first = await payments.record_capture(
            db_session, booking.id, Decimal("120.00"), "USD", "paypal", "CAP-12"
        )
        assert first.refund_required
        store.bookings[booking.id].status = "awaiting_payment"
        store.get_capture = AsyncMock(side_effect=[None, first.capture])

        with pytest.raises(StatusConflict):
            await payments.record_capture(
                db_session, booking.id, Decimal("120.00"), "USD", "paypal", "CAP-12"
            )

    async def test_amount_mismatch_still_applies(self, payments, store, db_session, caplog):
        booking = payable_booking(store)

        with caplog.at_level(logging.WARNING, logger="tourbook.services.payment_service"):
            result = await payments.record_capture(
                db_session, booking.id, Decimal("119.00"), "USD", "paypal", "CAP-6"
            )

        assert result.capture.outcome == OUTCOME_APPLIED
        assert any("differs from admin price" in r.getMessage() for r in caplog.records)

    async def test_unknown_booking(self, payments, db_session):
        with pytest.raises(NotFoundError):
            await payments.record_capture(
                db_session, uuid4(), Decimal("1.00"), "USD", "paypal", "CAP-7"
            )


class TestManualPayment:
    """Admin mark-paid."""

    async def test_marks_booking_paid(self, payments, store, db_session, admin_id):
        booking = payable_booking(store, "80.00")

        result = await payments.verify_manual_payment(
            db_session, booking.id, admin_id, "BANK-42", notes="Wire received"
        )

        assert result.capture.provider == "manual"
        assert result.capture.amount == Decimal("80.00")
        assert result.capture.provider_payload == {"notes": "Wire received"}
        assert store.bookings[booking.id].status == "paid"
        assert store.history[-1].changed_by == admin_id

    async def test_refused_while_gate_closed(self, payments, store, db_session, admin_id):
        booking = store.add_booking(status="pending")

        with pytest.raises(PaymentNotAuthorized) as exc_info:
            await payments.verify_manual_payment(db_session, booking.id, admin_id, "BANK-43")

        assert exc_info.value.status_code == 402
        assert store.captures == {}
        assert store.bookings[booking.id].status == "pending"


class TestPreparePayment:
    async def test_open_gate(self, payments, store, db_session):
        booking = payable_booking(store, "75.00")

        info = await payments.prepare_payment(db_session, booking.id)

        assert info["can_pay"] is True
        assert info["amount"] == Decimal("75.00")
        assert info["currency"] == "USD"
        assert info["reason"] is None

    async def test_closed_gate(self, payments, store, db_session):
        booking = store.add_booking(status="price_set")
        store.add_price(booking.id)

        info = await payments.prepare_payment(db_session, booking.id)

        assert info["can_pay"] is False
        assert info["amount"] is None
        assert info["reason"] == "Please confirm the price before paying."
