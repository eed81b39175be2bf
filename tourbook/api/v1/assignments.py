"""Endpoints for the driver or guide assigned to a booking."""

from typing import Annotated

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from tourbook.api.deps import require_assigned_booking
from tourbook.api.v1.bookings import to_transition_response
from tourbook.core.permissions import require_resource
from tourbook.database import get_db
from tourbook.domain.booking_workflow import Action
from tourbook.models.booking import Booking
from tourbook.models.user import User
from tourbook.schemas.booking import TransitionResponse
from tourbook.services.workflow_service import workflow_service

router = APIRouter()


@router.post("/{booking_id}/accept", response_model=TransitionResponse)
async def accept_assignment(
    booking: Annotated[Booking, Depends(require_assigned_booking)],
    resource: Annotated[User, Depends(require_resource)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> TransitionResponse:
    """Accept an assigned booking."""
    outcome = await workflow_service.apply_action(db, booking.id, Action.ACCEPT, resource.id)
    return to_transition_response(outcome)


@router.post("/{booking_id}/start", response_model=TransitionResponse)
async def start_trip(
    booking: Annotated[Booking, Depends(require_assigned_booking)],
    resource: Annotated[User, Depends(require_resource)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> TransitionResponse:
    outcome = await workflow_service.apply_action(db, booking.id, Action.START, resource.id)
    return to_transition_response(outcome)


@router.post("/{booking_id}/complete", response_model=TransitionResponse)
async def complete_trip(
    booking: Annotated[Booking, Depends(require_assigned_booking)],
    resource: Annotated[User, Depends(require_resource)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> TransitionResponse:
    outcome = await workflow_service.apply_action(db, booking.id, Action.COMPLETE, resource.id)
    return to_transition_response(outcome)
