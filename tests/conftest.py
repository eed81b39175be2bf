"""Shared pytest fixtures for the booking workflow.

Provides:
- An in-memory BookingStore with hooks to simulate concurrent writers
- Workflow and payment services wired to it
- Mock async database sessions
"""

from collections.abc import AsyncGenerator, Callable
from datetime import UTC, datetime
from decimal import Decimal
from types import SimpleNamespace
from typing import Any
from unittest.mock import AsyncMock, MagicMock
from uuid import UUID, uuid4

import pytest
import pytest_asyncio

from tourbook.core.exceptions import PriceLocked
from tourbook.services.payment_service import PaymentService
from tourbook.services.workflow_service import BookingWorkflowService


class InMemoryBookingStore:
    """BookingStore with the same compare-and-set semantics, kept in dicts.

    ``before_cas`` hooks run (one per call, in order) just before a status
    compare, standing in for a writer that got there first.
    """

    def __init__(self) -> None:
        self.bookings: dict[UUID, SimpleNamespace] = {}
        self.prices: dict[UUID, SimpleNamespace] = {}
        self.history: list[SimpleNamespace] = []
        self.captures: dict[str, Any] = {}
        self.before_cas: list[Callable[[SimpleNamespace], None]] = []
        self.fail_cas = False
        self.cas_calls = 0
        self.locked_reads = 0

    def add_booking(
        self,
        status: str = "draft",
        service_type: str = "Accommodation",
        **fields: Any,
    ) -> SimpleNamespace:
        fields.setdefault("user_id", uuid4())
        booking = SimpleNamespace(
            id=uuid4(),
            booking_number=f"TRV-{uuid4().hex[:6].upper()}",
            service_type=service_type,
            status=status,
            price_version=0,
            assigned_driver_id=None,
            assigned_guide_id=None,
            cancelled_by=None,
            cancellation_reason=None,
            rejection_reason=None,
            submitted_at=None,
            paid_at=None,
            started_at=None,
            completed_at=None,
            cancelled_at=None,
            **fields,
        )
        self.bookings[booking.id] = booking
        return booking

    def add_price(
        self,
        booking_id: UUID,
        amount: str = "120.00",
        currency: str = "USD",
        locked: bool = False,
    ) -> SimpleNamespace:
        price = SimpleNamespace(
            booking_id=booking_id,
            amount=Decimal(amount),
            currency=currency,
            locked=locked,
            admin_notes=None,
            set_by=None,
        )
        self.prices[booking_id] = price
        return price

    async def get_booking(
        self, db: Any, booking_id: UUID, for_update: bool = False
    ) -> SimpleNamespace | None:
        if for_update:
            self.locked_reads += 1
        booking = self.bookings.get(booking_id)
        return SimpleNamespace(**vars(booking)) if booking else None

    async def get_status(self, db: Any, booking_id: UUID) -> str | None:
        booking = self.bookings.get(booking_id)
        return booking.status if booking else None

    async def compare_and_set_status(
        self,
        db: Any,
        booking_id: UUID,
        expected: str,
        new: str,
        expected_price_version: int | None = None,
        **fields: Any,
    ) -> bool:
        self.cas_calls += 1
        booking = self.bookings[booking_id]
        if self.before_cas:
            self.before_cas.pop(0)(booking)
        if self.fail_cas or booking.status != expected:
            return False
        if expected_price_version is not None and booking.price_version != expected_price_version:
            return False
        booking.status = new
        for key, value in fields.items():
            setattr(booking, key, value)
        return True

    async def get_price(self, db: Any, booking_id: UUID) -> SimpleNamespace | None:
        return self.prices.get(booking_id)

    async def upsert_price(
        self,
        db: Any,
        booking_id: UUID,
        amount: Decimal,
        currency: str,
        set_by: UUID | None = None,
        admin_notes: str | None = None,
    ) -> None:
        self.bookings[booking_id].price_version += 1
        existing = self.prices.get(booking_id)
        if existing and existing.locked:
            raise PriceLocked()
        price = self.add_price(booking_id, str(amount), currency)
        price.set_by = set_by
        price.admin_notes = admin_notes

    async def lock_price(self, db: Any, booking_id: UUID) -> bool:
        price = self.prices.get(booking_id)
        if price is None or price.locked:
            return False
        price.locked = True
        return True

    async def add_history(
        self,
        db: Any,
        booking_id: UUID,
        old_status: str,
        new_status: str,
        action: str,
        changed_by: UUID | None,
        notes: str | None = None,
    ) -> SimpleNamespace:
        entry = SimpleNamespace(
            id=uuid4(),
            booking_id=booking_id,
            old_status=old_status,
            new_status=new_status,
            action=action,
            changed_by=changed_by,
            notes=notes,
            created_at=datetime.now(UTC),
        )
        self.history.append(entry)
        return entry

    async def get_history(self, db: Any, booking_id: UUID) -> list[SimpleNamespace]:
        return [h for h in self.history if h.booking_id == booking_id]

    async def get_capture(self, db: Any, idempotency_key: str) -> Any:
        return self.captures.get(idempotency_key)

    async def add_capture(self, db: Any, capture: Any) -> Any:
        if capture.idempotency_key in self.captures:
            return None
        self.captures[capture.idempotency_key] = capture
        return capture


@pytest.fixture
def store() -> InMemoryBookingStore:
    return InMemoryBookingStore()


@pytest.fixture
def audit() -> MagicMock:
    """Audit service double; every method records its calls."""
    service = MagicMock()
    service.log_action = AsyncMock()
    service.log_status_change = AsyncMock()
    service.log_price_change = AsyncMock()
    service.log_payment_capture = AsyncMock()
    return service


@pytest.fixture
def workflow(store: InMemoryBookingStore, audit: MagicMock) -> BookingWorkflowService:
    return BookingWorkflowService(store=store, audit=audit, max_attempts=3)


@pytest.fixture
def payments(
    store: InMemoryBookingStore,
    workflow: BookingWorkflowService,
    audit: MagicMock,
) -> PaymentService:
    return PaymentService(store=store, workflow=workflow, audit=audit)


@pytest_asyncio.fixture
async def db_session() -> AsyncGenerator[MagicMock, None]:
    """Mock async database session for unit tests."""
    session = MagicMock()
    session.execute = AsyncMock()
    session.commit = AsyncMock()
    session.flush = AsyncMock()
    session.refresh = AsyncMock()
    session.rollback = AsyncMock()
    session.close = AsyncMock()
    yield session


@pytest.fixture
def admin_id() -> UUID:
    return uuid4()


@pytest.fixture
def customer_id() -> UUID:
    return uuid4()
