"""Core utilities and security modules."""

from tourbook.core.exceptions import (
    AppException,
    AuthenticationError,
    AuthorizationError,
    BookingAlreadyTerminal,
    InvalidBookingStatus,
    NotFoundError,
    PaymentNotAuthorized,
    PriceLocked,
    StatusConflict,
    ValidationError,
)
from tourbook.core.security import (
    create_access_token,
    create_user_token,
    verify_token,
)

__all__ = [
    "AppException",
    "AuthenticationError",
    "AuthorizationError",
    "BookingAlreadyTerminal",
    "InvalidBookingStatus",
    "NotFoundError",
    "PaymentNotAuthorized",
    "PriceLocked",
    "StatusConflict",
    "ValidationError",
    "create_access_token",
    "create_user_token",
    "verify_token",
]
