"""Persistence for booking status and admin prices.

Status writes are compare-and-set: ``UPDATE ... WHERE status = :expected``.
A caller whose write reports no row changed must re-read and re-validate,
never blindly repeat the write.
"""

import logging
from datetime import UTC, datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from tourbook.core.exceptions import PriceLocked
from tourbook.models.booking import Booking, BookingPrice, BookingStatusHistory
from tourbook.models.payment import PaymentCapture

logger = logging.getLogger(__name__)


class BookingStore:
    """Storage operations the booking workflow relies on."""

    async def get_booking(
        self, db: AsyncSession, booking_id: UUID, for_update: bool = False
    ) -> Booking | None:
        """Fetch a booking, refreshing any copy already held by the session.

        With ``for_update`` the row stays locked until the transaction ends.
        """
        query = (
            select(Booking)
            .where(Booking.id == booking_id)
            .execution_options(populate_existing=True)
        )
        if for_update:
            query = query.with_for_update()
        result = await db.execute(query)
        return result.scalar_one_or_none()

    async def get_status(self, db: AsyncSession, booking_id: UUID) -> str | None:
        result = await db.execute(select(Booking.status).where(Booking.id == booking_id))
        return result.scalar_one_or_none()

    async def compare_and_set_status(
        self,
        db: AsyncSession,
        booking_id: UUID,
        expected: str,
        new: str,
        expected_price_version: int | None = None,
        **fields: Any,
    ) -> bool:
        """Update status to ``new`` only if it still equals ``expected``.

        Args:
            db: Database session
            booking_id: Booking to update
            expected: Status the caller validated against
            new: Status to write
            expected_price_version: If given, the price version must also match
            **fields: Extra booking columns to write in the same statement

        Returns:
            True if the row was updated
        """
        conditions = [Booking.id == booking_id, Booking.status == expected]
        if expected_price_version is not None:
            conditions.append(Booking.price_version == expected_price_version)

        result = await db.execute(
            update(Booking)
            .where(*conditions)
            .values(status=new, updated_at=func.now(), **fields)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def get_price(self, db: AsyncSession, booking_id: UUID) -> BookingPrice | None:
        result = await db.execute(
            select(BookingPrice)
            .where(BookingPrice.booking_id == booking_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def upsert_price(
        self,
        db: AsyncSession,
        booking_id: UUID,
        amount: Decimal,
        currency: str,
        set_by: UUID | None = None,
        admin_notes: str | None = None,
    ) -> None:
        """Create or replace the admin price while it is unlocked.

        Bumps ``bookings.price_version`` before touching the price row, so
        the booking row is always locked ahead of the price row.

        Raises:
            PriceLocked: If the existing record is locked
        """
        await db.execute(
            update(Booking)
            .where(Booking.id == booking_id)
            .values(price_version=Booking.price_version + 1, updated_at=func.now())
            .execution_options(synchronize_session=False)
        )

        # Row lock so a concurrent lock_price waits for this write
        result = await db.execute(
            select(BookingPrice)
            .where(BookingPrice.booking_id == booking_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        price = result.scalar_one_or_none()

        if price is None:
            db.add(
                BookingPrice(
                    booking_id=booking_id,
                    amount=amount,
                    currency=currency,
                    locked=False,
                    set_by=set_by,
                    admin_notes=admin_notes,
                )
            )
            await db.flush()
            return

        if price.locked:
            raise PriceLocked()

        price.amount = amount
        price.currency = currency
        price.set_by = set_by
        price.admin_notes = admin_notes
        await db.flush()

    async def lock_price(self, db: AsyncSession, booking_id: UUID) -> bool:
        """Freeze the admin price. Returns False if there was nothing to lock."""
        result = await db.execute(
            update(BookingPrice)
            .where(BookingPrice.booking_id == booking_id, BookingPrice.locked.is_(False))
            .values(locked=True, locked_at=datetime.now(UTC), updated_at=func.now())
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def add_history(
        self,
        db: AsyncSession,
        booking_id: UUID,
        old_status: str,
        new_status: str,
        action: str,
        changed_by: UUID | None,
        notes: str | None = None,
    ) -> BookingStatusHistory:
        entry = BookingStatusHistory(
            booking_id=booking_id,
            old_status=old_status,
            new_status=new_status,
            action=action,
            changed_by=changed_by,
            notes=notes,
        )
        db.add(entry)
        return entry

    async def get_history(self, db: AsyncSession, booking_id: UUID) -> list[BookingStatusHistory]:
        result = await db.execute(
            select(BookingStatusHistory)
            .where(BookingStatusHistory.booking_id == booking_id)
            .order_by(BookingStatusHistory.created_at)
        )
        return list(result.scalars().all())

    async def get_capture(self, db: AsyncSession, idempotency_key: str) -> PaymentCapture | None:
        result = await db.execute(
            select(PaymentCapture).where(PaymentCapture.idempotency_key == idempotency_key)
        )
        return result.scalar_one_or_none()

    async def add_capture(
        self, db: AsyncSession, capture: PaymentCapture
    ) -> PaymentCapture | None:
        """Insert a capture. Returns None if its idempotency key is already stored."""
        try:
            async with db.begin_nested():
                db.add(capture)
                await db.flush()
        except IntegrityError:
            logger.info("Capture %s already recorded by another request", capture.idempotency_key)
            return None
        return capture

    async def list_bookings(
        self,
        db: AsyncSession,
        user_id: UUID | None = None,
        statuses: list[str] | None = None,
        resource_id: UUID | None = None,
        limit: int = 20,
        offset: int = 0,
    ) -> tuple[list[Booking], int]:
        """List bookings with optional filters.

        Returns:
            Tuple of (bookings, total count)
        """
        query = select(Booking)
        if user_id:
            query = query.where(Booking.user_id == user_id)
        if statuses:
            query = query.where(Booking.status.in_(statuses))
        if resource_id:
            query = query.where(
                (Booking.assigned_driver_id == resource_id)
                | (Booking.assigned_guide_id == resource_id)
            )

        count_result = await db.execute(select(func.count()).select_from(query.subquery()))
        total = count_result.scalar() or 0

        result = await db.execute(
            query.options(selectinload(Booking.price))
            .order_by(Booking.created_at.desc())
            .offset(offset)
            .limit(limit)
        )
        return list(result.scalars().all()), total


booking_store = BookingStore()
