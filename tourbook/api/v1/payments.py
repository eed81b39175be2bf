"""Payment endpoints."""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, Header, HTTPException, Request, status
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from tourbook.api.deps import require_customer_booking
from tourbook.config import settings
from tourbook.core.exceptions import ValidationError
from tourbook.core.webhook_security import verify_signature
from tourbook.database import get_db
from tourbook.models.booking import Booking
from tourbook.schemas.payment import CaptureResponse, PaymentPrepareResponse, PaymentWebhookPayload
from tourbook.services.payment_service import payment_service

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/{booking_id}/prepare", response_model=PaymentPrepareResponse)
async def prepare_payment(
    booking: Annotated[Booking, Depends(require_customer_booking)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> PaymentPrepareResponse:
    """Amount to charge, taken from the admin price only."""
    details = await payment_service.prepare_payment(db, booking.id)
    return PaymentPrepareResponse(**details)


@router.post("/webhook", response_model=CaptureResponse, status_code=status.HTTP_200_OK)
async def payment_webhook(
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db)],
    signature: str | None = Header(None, alias="X-Signature"),
) -> CaptureResponse:
    """Capture notification from the payment provider.

    Always answers 200 once the capture is recorded, including captures that
    need a refund; the response says which.
    """
    if not settings.payment_webhook_secret:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Payment webhook secret is not configured",
        )

    payload = await request.body()
    if not verify_signature(settings.payment_webhook_secret, payload, signature):
        logger.warning("Rejected payment webhook with invalid signature")
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid signature",
        )

    try:
        event = PaymentWebhookPayload.model_validate_json(payload)
    except PydanticValidationError as e:
        raise ValidationError("Invalid payload", errors=e.errors(include_url=False))

    result = await payment_service.record_capture(
        db,
        event.booking_id,
        event.amount,
        event.currency,
        provider=event.provider,
        provider_reference=event.provider_reference,
        payload=event.raw,
    )
    return CaptureResponse(
        booking_id=event.booking_id,
        provider_reference=event.provider_reference,
        outcome=result.capture.outcome,
        refund_required=result.refund_required,
        replayed=result.replayed,
        reason=result.capture.reason,
    )
