"""Customer booking endpoints."""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from tourbook.api.deps import get_current_active_user, require_customer_booking
from tourbook.core.exceptions import ValidationError
from tourbook.core.permissions import require_customer
from tourbook.database import get_db
from tourbook.domain.booking_status import (
    STATUS_ALIASES,
    get_status_label,
    graph_version,
    normalize_status,
)
from tourbook.domain.booking_workflow import ACTION_TARGETS, Action, available_actions
from tourbook.domain.price_gate import can_edit_price, is_price_locked, payment_eligibility
from tourbook.models.booking import Booking
from tourbook.models.user import User
from tourbook.schemas.booking import (
    BookingCancelRequest,
    BookingCreate,
    BookingListResponse,
    BookingResponse,
    TransitionResponse,
)
from tourbook.schemas.workflow import BookingWorkflowResponse
from tourbook.services.booking_store import booking_store
from tourbook.services.workflow_service import TransitionOutcome, workflow_service
from tourbook.utils.booking_number import generate_booking_number

router = APIRouter()


def to_booking_response(booking: Booking) -> BookingResponse:
    response = BookingResponse.model_validate(booking)
    response.status_label = get_status_label(booking.status)
    return response


async def load_booking_response(db: AsyncSession, booking_id: UUID) -> BookingResponse:
    """Re-read a booking with its price after status writes."""
    result = await db.execute(
        select(Booking)
        .options(selectinload(Booking.price))
        .where(Booking.id == booking_id)
        .execution_options(populate_existing=True)
    )
    return to_booking_response(result.scalar_one())


def to_transition_response(outcome: TransitionOutcome) -> TransitionResponse:
    return TransitionResponse(
        booking_id=outcome.booking_id,
        action=outcome.action.value,
        old_status=outcome.old_status.value,
        new_status=outcome.new_status.value,
        price_locked=is_price_locked(outcome.new_status),
        refund_required=outcome.refund_required,
    )


def status_filter(value: str | None) -> list[str] | None:
    """Canonical status plus the legacy names stored for it."""
    if not value:
        return None
    try:
        canonical = normalize_status(value)
    except ValueError:
        raise ValidationError(f"Unknown booking status: {value}")
    return [canonical.value] + [
        alias for alias, target in STATUS_ALIASES.items() if target == canonical
    ]


@router.post("", response_model=BookingResponse, status_code=status.HTTP_201_CREATED)
async def create_booking(
    booking_data: BookingCreate,
    current_user: Annotated[User, Depends(require_customer)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> BookingResponse:
    """Create a draft booking."""
    booking = Booking(
        booking_number=await generate_booking_number(db),
        user_id=current_user.id,
        service_type=booking_data.service_type,
        service_details=booking_data.service_details,
        contact_info=booking_data.contact_info,
        special_requests=booking_data.special_requests,
        quoted_price=booking_data.quoted_price,
        quoted_currency=booking_data.quoted_currency,
        status="draft",
    )
    db.add(booking)
    await db.flush()

    return await load_booking_response(db, booking.id)


@router.get("", response_model=BookingListResponse)
async def list_my_bookings(
    current_user: Annotated[User, Depends(get_current_active_user)],
    db: Annotated[AsyncSession, Depends(get_db)],
    status_filter_value: Annotated[str | None, Query(alias="status")] = None,
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
) -> BookingListResponse:
    """List the current user's bookings."""
    bookings, total = await booking_store.list_bookings(
        db,
        user_id=current_user.id,
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


@router.get("/{booking_id}", response_model=BookingResponse)
async def get_booking(
    booking: Annotated[Booking, Depends(require_customer_booking)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> BookingResponse:
    """Get booking details."""
    return await load_booking_response(db, booking.id)


@router.get("/{booking_id}/workflow", response_model=BookingWorkflowResponse)
async def get_booking_workflow(
    booking: Annotated[Booking, Depends(require_customer_booking)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> BookingWorkflowResponse:
    """Actions the booking accepts right now.

    Advisory only: the action endpoints re-validate on write.
    """
    try:
        current = normalize_status(booking.status)
    except ValueError:
        raise ValidationError(f"Unknown booking status: {booking.status}")

    price = await booking_store.get_price(db, booking.id)
    can_pay, reason = payment_eligibility(current, price)
    actions = available_actions(current)

    return BookingWorkflowResponse(
        status=current.value,
        status_label=get_status_label(current),
        allowed_next=sorted(ACTION_TARGETS[a].value for a in actions),
        available_actions=[a.value for a in actions],
        can_edit_price=can_edit_price(current),
        price_locked=is_price_locked(current) or bool(price and price.locked),
        can_pay=can_pay,
        payment_reason=reason,
        graph_version=graph_version(),
    )


@router.post("/{booking_id}/submit", response_model=TransitionResponse)
async def submit_booking(
    booking: Annotated[Booking, Depends(require_customer_booking)],
    current_user: Annotated[User, Depends(get_current_active_user)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> TransitionResponse:
    """Submit a draft booking for admin review."""
    outcome = await workflow_service.apply_action(db, booking.id, Action.SUBMIT, current_user.id)
    return to_transition_response(outcome)


@router.post("/{booking_id}/confirm-price", response_model=TransitionResponse)
async def confirm_price(
    booking: Annotated[Booking, Depends(require_customer_booking)],
    current_user: Annotated[User, Depends(get_current_active_user)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> TransitionResponse:
    """Accept the admin price and move on to payment."""
    outcome = await workflow_service.apply_action(
        db, booking.id, Action.CONFIRM_PRICE, current_user.id
    )
    return to_transition_response(outcome)


@router.post("/{booking_id}/cancel", response_model=TransitionResponse)
async def cancel_booking(
    booking: Annotated[Booking, Depends(require_customer_booking)],
    current_user: Annotated[User, Depends(get_current_active_user)],
    db: Annotated[AsyncSession, Depends(get_db)],
    cancel_data: BookingCancelRequest | None = None,
) -> TransitionResponse:
    """Cancel a booking."""
    outcome = await workflow_service.apply_action(
        db,
        booking.id,
        Action.CANCEL,
        current_user.id,
        fields={
            "cancelled_by": "customer",
            "cancellation_reason": cancel_data.reason if cancel_data else None,
        },
        notes=cancel_data.reason if cancel_data else None,
    )
    return to_transition_response(outcome)
