"""Custom application exceptions."""

from typing import Any

from fastapi import HTTPException, status


class AppException(HTTPException):
    """Base application exception."""

    def __init__(
        self,
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail: str = "An unexpected error occurred",
        headers: dict[str, str] | None = None,
    ) -> None:
        super().__init__(status_code=status_code, detail=detail, headers=headers)


class ValidationError(AppException):
    """Validation error exception."""

    def __init__(self, detail: str = "Validation failed", errors: list[dict[str, Any]] | None = None) -> None:
        self.errors = errors
        super().__init__(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=detail)


class NotFoundError(AppException):
    """Resource not found exception."""

    def __init__(self, resource: str = "Resource", identifier: str | None = None) -> None:
        detail = f"{resource} not found"
        if identifier:
            detail = f"{resource} with ID '{identifier}' not found"
        super().__init__(status_code=status.HTTP_404_NOT_FOUND, detail=detail)


class AuthenticationError(AppException):
    """Authentication failed exception."""

    def __init__(self, detail: str = "Authentication failed") -> None:
        super().__init__(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=detail,
            headers={"WWW-Authenticate": "Bearer"},
        )


class AuthorizationError(AppException):
    """Authorization denied exception."""

    def __init__(self, detail: str = "You don't have permission to access this resource") -> None:
        super().__init__(status_code=status.HTTP_403_FORBIDDEN, detail=detail)


class InvalidBookingStatus(AppException):
    """Requested transition is not reachable from the current status."""

    def __init__(self, detail: str = "This booking can no longer be modified this way") -> None:
        super().__init__(status_code=status.HTTP_400_BAD_REQUEST, detail=detail)


class BookingAlreadyTerminal(AppException):
    """Booking is completed, cancelled or rejected."""

    def __init__(self, detail: str = "This booking is already closed") -> None:
        super().__init__(status_code=status.HTTP_400_BAD_REQUEST, detail=detail)


class PaymentNotAuthorized(AppException):
    """Payment attempted while the price gate is closed."""

    def __init__(
        self,
        detail: str = "Payment is not authorized for this booking",
        refund_required: bool = False,
    ) -> None:
        self.refund_required = refund_required
        super().__init__(status_code=status.HTTP_402_PAYMENT_REQUIRED, detail=detail)


class PriceLocked(AppException):
    """Admin price can no longer be edited."""

    def __init__(self, detail: str = "The price for this booking is locked") -> None:
        super().__init__(status_code=status.HTTP_409_CONFLICT, detail=detail)


class StatusConflict(AppException):
    """Booking status changed concurrently and could not be re-applied."""

    def __init__(self, detail: str = "Booking was modified concurrently. Please retry.") -> None:
        super().__init__(status_code=status.HTTP_409_CONFLICT, detail=detail)
