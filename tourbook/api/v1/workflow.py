"""Published booking status graph."""

from fastapi import APIRouter

from tourbook.domain.booking_status import (
    STATUS_ALIASES,
    BookingStatus,
    get_status_label,
    graph_as_dict,
    graph_version,
    status_family,
)
from tourbook.domain.booking_workflow import ACTION_TARGETS, CLOSING_ACTIONS
from tourbook.schemas.workflow import StatusGraphResponse

router = APIRouter()


@router.get("/graph", response_model=StatusGraphResponse)
async def get_status_graph() -> StatusGraphResponse:
    """The single transition table clients should render from.

    Clients cache it keyed on ``version``. ``closing_actions`` are accepted
    from every non-terminal status, in addition to ``transitions``.
    """
    return StatusGraphResponse(
        version=graph_version(),
        statuses=[s.value for s in BookingStatus],
        transitions=graph_as_dict(),
        labels={s.value: get_status_label(s) for s in BookingStatus},
        families={s.value: status_family(s).value for s in BookingStatus},
        actions={action.value: target.value for action, target in ACTION_TARGETS.items()},
        closing_actions=sorted(action.value for action in CLOSING_ACTIONS),
        aliases={alias: target.value for alias, target in STATUS_ALIASES.items()},
    )
