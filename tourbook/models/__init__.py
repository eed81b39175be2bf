"""Database models."""

from tourbook.models.audit import AuditLog
from tourbook.models.booking import Booking, BookingPrice, BookingStatusHistory
from tourbook.models.payment import PaymentCapture
from tourbook.models.user import AdminPermission, User

__all__ = [
    # User
    "User",
    "AdminPermission",
    # Booking
    "Booking",
    "BookingPrice",
    "BookingStatusHistory",
    # Payment
    "PaymentCapture",
    # Audit
    "AuditLog",
]
