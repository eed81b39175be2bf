"""Admin booking endpoints."""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from tourbook.api.v1.bookings import (
    load_booking_response,
    status_filter,
    to_booking_response,
    to_transition_response,
)
from tourbook.core.exceptions import NotFoundError, ValidationError
from tourbook.core.permissions import (
    UserRole,
    require_booking_manager,
    require_payment_verifier,
    require_price_manager,
)
from tourbook.database import get_db
from tourbook.domain.booking_workflow import Action
from tourbook.domain.price_gate import is_price_locked
from tourbook.domain.service_types import resource_role_for
from tourbook.models.user import User
from tourbook.schemas.booking import (
    AssignResourceRequest,
    BookingCancelRequest,
    BookingListResponse,
    BookingRejectRequest,
    BookingResponse,
    SetPriceRequest,
    StatusHistoryResponse,
    TransitionResponse,
)
from tourbook.schemas.payment import CaptureResponse, ManualPaymentRequest
from tourbook.services.booking_store import booking_store
from tourbook.services.payment_service import payment_service
from tourbook.services.workflow_service import PriceInput, workflow_service

router = APIRouter()


async def _get_booking_status(db: AsyncSession, booking_id: UUID) -> str:
    current = await booking_store.get_status(db, booking_id)
    if current is None:
        raise NotFoundError("Booking", str(booking_id))
    return current


@router.get("/bookings", response_model=BookingListResponse)
async def list_bookings(
    admin: Annotated[User, Depends(require_booking_manager)],
    db: Annotated[AsyncSession, Depends(get_db)],
    status_filter_value: Annotated[str | None, Query(alias="status")] = None,
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
) -> BookingListResponse:
    """List all bookings, optionally filtered by status."""
    bookings, total = await booking_store.list_bookings(
        db,
        statuses=status_filter(status_filter_value),
        limit=page_size,
        offset=(page - 1) * page_size,
    )
    return BookingListResponse(
        items=[to_booking_response(b) for b in bookings],
        total=total,
        page=page,
        page_size=page_size,
    )


@router.get("/bookings/{booking_id}", response_model=BookingResponse)
async def get_booking(
    booking_id: UUID,
    admin: Annotated[User, Depends(require_booking_manager)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> BookingResponse:
    await _get_booking_status(db, booking_id)
    return await load_booking_response(db, booking_id)


@router.post("/bookings/{booking_id}/review", response_model=TransitionResponse)
async def review_booking(
    booking_id: UUID,
    admin: Annotated[User, Depends(require_booking_manager)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> TransitionResponse:
    """Take a pending booking into review."""
    outcome = await workflow_service.apply_action(db, booking_id, Action.REVIEW, admin.id)
    return to_transition_response(outcome)


@router.post("/bookings/{booking_id}/set-price", response_model=TransitionResponse)
async def set_price(
    booking_id: UUID,
    price_data: SetPriceRequest,
    admin: Annotated[User, Depends(require_price_manager)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> TransitionResponse:
    """Set the admin price, or correct it before the customer pays."""
    old_status = await _get_booking_status(db, booking_id)
    new_status = await workflow_service.update_price(
        db,
        booking_id,
        PriceInput(
            amount=price_data.amount,
            currency=price_data.currency,
            admin_notes=price_data.admin_notes,
        ),
        admin.id,
    )
    return TransitionResponse(
        booking_id=booking_id,
        action=Action.SET_PRICE.value,
        old_status=old_status,
        new_status=new_status.value,
        price_locked=is_price_locked(new_status),
    )


@router.post("/bookings/{booking_id}/confirm", response_model=TransitionResponse)
async def confirm_booking(
    booking_id: UUID,
    admin: Annotated[User, Depends(require_booking_manager)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> TransitionResponse:
    """Confirm a paid booking."""
    outcome = await workflow_service.apply_action(db, booking_id, Action.CONFIRM, admin.id)
    return to_transition_response(outcome)


@router.post("/bookings/{booking_id}/assign", response_model=TransitionResponse)
async def assign_resource(
    booking_id: UUID,
    assign_data: AssignResourceRequest,
    admin: Annotated[User, Depends(require_booking_manager)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> TransitionResponse:
    """Assign a driver or guide to a confirmed booking."""
    booking = await booking_store.get_booking(db, booking_id)
    if booking is None:
        raise NotFoundError("Booking", str(booking_id))

    role = resource_role_for(booking.service_type)
    if role is None:
        raise ValidationError(f"{booking.service_type} bookings do not take a driver or guide")

    result = await db.execute(select(User).where(User.id == assign_data.resource_id))
    resource = result.scalar_one_or_none()
    if not resource or not resource.is_active:
        raise NotFoundError("User", str(assign_data.resource_id))
    if resource.role != role:
        raise ValidationError(f"User {resource.id} is not a {role}")

    column = "assigned_driver_id" if role == UserRole.DRIVER.value else "assigned_guide_id"
    outcome = await workflow_service.apply_action(
        db,
        booking_id,
        Action.ASSIGN,
        admin.id,
        fields={column: resource.id},
        notes=assign_data.notes,
    )
    return to_transition_response(outcome)


@router.post("/bookings/{booking_id}/start", response_model=TransitionResponse)
async def start_booking(
    booking_id: UUID,
    admin: Annotated[User, Depends(require_booking_manager)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> TransitionResponse:
    """Start a confirmed booking that needs no driver or guide."""
    outcome = await workflow_service.apply_action(db, booking_id, Action.START, admin.id)
    return to_transition_response(outcome)


@router.post("/bookings/{booking_id}/complete", response_model=TransitionResponse)
async def complete_booking(
    booking_id: UUID,
    admin: Annotated[User, Depends(require_booking_manager)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> TransitionResponse:
    outcome = await workflow_service.apply_action(db, booking_id, Action.COMPLETE, admin.id)
    return to_transition_response(outcome)


@router.post("/bookings/{booking_id}/reject", response_model=TransitionResponse)
async def reject_booking(
    booking_id: UUID,
    reject_data: BookingRejectRequest,
    admin: Annotated[User, Depends(require_booking_manager)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> TransitionResponse:
    """Reject a booking. After payment the response flags the refund owed."""
    outcome = await workflow_service.apply_action(
        db,
        booking_id,
        Action.REJECT,
        admin.id,
        fields={"rejection_reason": reject_data.reason},
        notes=reject_data.reason,
    )
    return to_transition_response(outcome)


@router.post("/bookings/{booking_id}/cancel", response_model=TransitionResponse)
async def cancel_booking(
    booking_id: UUID,
    admin: Annotated[User, Depends(require_booking_manager)],
    db: Annotated[AsyncSession, Depends(get_db)],
    cancel_data: BookingCancelRequest | None = None,
) -> TransitionResponse:
    reason = cancel_data.reason if cancel_data else None
    outcome = await workflow_service.apply_action(
        db,
        booking_id,
        Action.CANCEL,
        admin.id,
        fields={"cancelled_by": "admin", "cancellation_reason": reason},
        notes=reason,
    )
    return to_transition_response(outcome)


@router.post("/bookings/{booking_id}/mark-paid", response_model=CaptureResponse)
async def mark_paid(
    booking_id: UUID,
    payment_data: ManualPaymentRequest,
    admin: Annotated[User, Depends(require_payment_verifier)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> CaptureResponse:
    """Record an offline payment the admin has verified."""
    result = await payment_service.verify_manual_payment(
        db, booking_id, admin.id, payment_data.reference, payment_data.notes
    )
    return CaptureResponse(
        booking_id=booking_id,
        provider_reference=result.capture.provider_reference,
        outcome=result.capture.outcome,
        refund_required=result.refund_required,
        replayed=result.replayed,
        reason=result.capture.reason,
    )


@router.get("/bookings/{booking_id}/history", response_model=list[StatusHistoryResponse])
async def get_booking_history(
    booking_id: UUID,
    admin: Annotated[User, Depends(require_booking_manager)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> list[StatusHistoryResponse]:
    """Status history of a booking, oldest first."""
    await _get_booking_status(db, booking_id)
    history = await booking_store.get_history(db, booking_id)
    return [StatusHistoryResponse.model_validate(entry) for entry in history]
