"""Booking number generation."""

import random
import string

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

BOOKING_NUMBER_PREFIX = "TRV"


def make_booking_number() -> str:
    """Random booking number like 'TRV-A3B7K9'."""
    chars = string.ascii_uppercase + string.digits
    return f"{BOOKING_NUMBER_PREFIX}-{''.join(random.choices(chars, k=6))}"


async def generate_booking_number(db: AsyncSession) -> str:
    """Generate a unique booking number in format TRV-XXXXXX.

    Args:
        db: Database session for uniqueness check

    Returns:
        str: Unique booking number
    """
    from tourbook.models.booking import Booking

    while True:
        booking_number = make_booking_number()
        result = await db.execute(
            select(Booking.id).where(Booking.booking_number == booking_number)
        )
        if not result.scalar_one_or_none():
            return booking_number
