"""Pydantic schemas for API validation."""

from tourbook.schemas.booking import (
    AssignResourceRequest,
    BookingCancelRequest,
    BookingCreate,
    BookingListResponse,
    BookingPriceResponse,
    BookingRejectRequest,
    BookingResponse,
    SetPriceRequest,
    StatusHistoryResponse,
    TransitionResponse,
)
from tourbook.schemas.payment import (
    CaptureResponse,
    ManualPaymentRequest,
    PaymentPrepareResponse,
    PaymentWebhookPayload,
)
from tourbook.schemas.workflow import BookingWorkflowResponse, StatusGraphResponse

__all__ = [
    # Booking
    "AssignResourceRequest",
    "BookingCancelRequest",
    "BookingCreate",
    "BookingListResponse",
    "BookingPriceResponse",
    "BookingRejectRequest",
    "BookingResponse",
    "SetPriceRequest",
    "StatusHistoryResponse",
    "TransitionResponse",
    # Payment
    "CaptureResponse",
    "ManualPaymentRequest",
    "PaymentPrepareResponse",
    "PaymentWebhookPayload",
    # Workflow
    "BookingWorkflowResponse",
    "StatusGraphResponse",
]
