"""API dependencies for authentication and booking access."""

from typing import Annotated
from uuid import UUID

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from tourbook.core.exceptions import AuthenticationError, AuthorizationError, NotFoundError
from tourbook.core.security import verify_token
from tourbook.database import get_db
from tourbook.models.booking import Booking
from tourbook.models.user import User

# Security scheme
security = HTTPBearer()


async def get_current_user(
    credentials: Annotated[HTTPAuthorizationCredentials, Depends(security)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> User:
    """Get the current authenticated user from JWT token."""
    payload = verify_token(credentials.credentials, token_type="access")
    user_id = payload.get("sub")
    if not user_id:
        raise AuthenticationError("Invalid token payload")

    try:
        user_uuid = UUID(user_id)
    except ValueError:
        raise AuthenticationError("Invalid token subject")

    result = await db.execute(select(User).where(User.id == user_uuid))
    user = result.scalar_one_or_none()

    if not user:
        raise AuthenticationError("User not found")
    return user


async def get_current_active_user(
    current_user: Annotated[User, Depends(get_current_user)],
) -> User:
    """Get current user and verify they are active."""
    if not current_user.is_active:
        raise AuthorizationError("User account is deactivated")
    return current_user


class BookingAccessChecker:
    """Load a booking the current user is allowed to act on."""

    def __init__(self, allow_customer: bool = True, allow_resource: bool = False):
        self.allow_customer = allow_customer
        self.allow_resource = allow_resource

    async def __call__(
        self,
        booking_id: UUID,
        current_user: Annotated[User, Depends(get_current_active_user)],
        db: Annotated[AsyncSession, Depends(get_db)],
    ) -> Booking:
        result = await db.execute(select(Booking).where(Booking.id == booking_id))
        booking = result.scalar_one_or_none()

        if not booking:
            raise NotFoundError("Booking", str(booking_id))

        if self.allow_customer and booking.user_id == current_user.id:
            return booking

        if self.allow_resource and current_user.id in (
            booking.assigned_driver_id,
            booking.assigned_guide_id,
        ):
            return booking

        raise AuthorizationError("You don't have permission to access this booking")


# Convenience instances
require_customer_booking = BookingAccessChecker(allow_customer=True, allow_resource=False)
require_assigned_booking = BookingAccessChecker(allow_customer=False, allow_resource=True)
