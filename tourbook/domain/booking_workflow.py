"""Booking transition validator.

``validate`` is the only decision point for whether a status write may
proceed. It is pure: rejections are returned as values so that the same
function can back the advisory endpoints and the authoritative write path.
"""

from dataclasses import dataclass
from enum import Enum

from tourbook.core.exceptions import (
    BookingAlreadyTerminal,
    InvalidBookingStatus,
    PaymentNotAuthorized,
    ValidationError,
)
from tourbook.domain.booking_status import (
    BookingStatus,
    allowed_next,
    is_terminal,
    normalize_status,
)


class Action(str, Enum):
    """Verbs a caller may propose on a booking."""

    SUBMIT = "submit"
    REVIEW = "review"
    SET_PRICE = "set_price"
    CONFIRM_PRICE = "confirm_price"
    PAY = "pay"
    CONFIRM = "confirm"
    ASSIGN = "assign"
    ACCEPT = "accept"
    START = "start"
    COMPLETE = "complete"
    CANCEL = "cancel"
    REJECT = "reject"


class RejectionReason(str, Enum):
    """Why a proposed transition was refused."""

    UNKNOWN_ACTION = "unknown_action"
    UNKNOWN_STATUS = "unknown_status"
    ILLEGAL_TRANSITION = "illegal_transition"
    ALREADY_TERMINAL = "already_terminal"
    PAYMENT_NOT_AUTHORIZED = "payment_not_authorized"


ACTION_TARGETS: dict[Action, BookingStatus] = {
    Action.SUBMIT: BookingStatus.PENDING,
    Action.REVIEW: BookingStatus.UNDER_REVIEW,
    Action.SET_PRICE: BookingStatus.PRICE_SET,
    Action.CONFIRM_PRICE: BookingStatus.AWAITING_PAYMENT,
    Action.PAY: BookingStatus.PAID,
    Action.CONFIRM: BookingStatus.CONFIRMED,
    Action.ASSIGN: BookingStatus.ASSIGNED,
    Action.ACCEPT: BookingStatus.ACCEPTED,
    Action.START: BookingStatus.ON_TRIP,
    Action.COMPLETE: BookingStatus.COMPLETED,
    Action.CANCEL: BookingStatus.CANCELLED,
    Action.REJECT: BookingStatus.REJECTED,
}

# Closing actions bypass the graph: allowed from every non-terminal status
CLOSING_ACTIONS = frozenset({Action.CANCEL, Action.REJECT})


@dataclass(frozen=True)
class TransitionRequest:
    """A proposed action on a booking in a given status."""

    current_status: str
    action: str


@dataclass(frozen=True)
class TransitionResult:
    """Outcome of ``validate``."""

    ok: bool
    new_status: BookingStatus | None = None
    reason: RejectionReason | None = None
    current: str | None = None
    attempted: str | None = None

    @classmethod
    def accepted(cls, new_status: BookingStatus) -> "TransitionResult":
        return cls(ok=True, new_status=new_status)

    @classmethod
    def rejected(
        cls,
        reason: RejectionReason,
        current: str | None = None,
        attempted: str | None = None,
    ) -> "TransitionResult":
        return cls(ok=False, reason=reason, current=current, attempted=attempted)

    @property
    def message(self) -> str:
        """User-facing explanation of a rejection."""
        if self.ok:
            return ""
        if self.reason == RejectionReason.UNKNOWN_ACTION:
            return f"Unknown booking action: {self.attempted}"
        if self.reason == RejectionReason.UNKNOWN_STATUS:
            return f"Unknown booking status: {self.current}"
        if self.reason == RejectionReason.ALREADY_TERMINAL:
            return f"Booking is already {self.current} and cannot be changed"
        if self.reason == RejectionReason.PAYMENT_NOT_AUTHORIZED:
            return "Payment is not authorized for this booking"
        return "This booking can no longer be modified this way"


def parse_action(value: "str | Action") -> Action | None:
    """Return the Action for ``value`` or None if it is not a known verb."""
    if isinstance(value, Action):
        return value
    try:
        return Action(str(value).strip().lower())
    except ValueError:
        return None


def validate(current: "str | BookingStatus", action: "str | Action") -> TransitionResult:
    """Decide whether ``action`` may be applied to a booking in ``current``.

    Order of checks:
        1. unknown action
        2. unknown current status
        3. terminal current status (any action)
        4. cancel and reject, accepted from any non-terminal status
        5. no-op (target equals current)
        6. target not reachable per the status graph

    Args:
        current: Current booking status (aliases accepted)
        action: Proposed action verb

    Returns:
        TransitionResult carrying the new status or the rejection reason
    """
    parsed = parse_action(action)
    if parsed is None:
        return TransitionResult.rejected(
            RejectionReason.UNKNOWN_ACTION,
            current=str(current.value if isinstance(current, BookingStatus) else current),
            attempted=str(action),
        )

    target = ACTION_TARGETS[parsed]

    try:
        status = normalize_status(current)
    except ValueError:
        return TransitionResult.rejected(
            RejectionReason.UNKNOWN_STATUS,
            current=str(current),
            attempted=target.value,
        )

    if is_terminal(status):
        return TransitionResult.rejected(
            RejectionReason.ALREADY_TERMINAL,
            current=status.value,
            attempted=target.value,
        )

    if parsed in CLOSING_ACTIONS:
        return TransitionResult.accepted(target)

    if target == status or target not in allowed_next(status):
        return TransitionResult.rejected(
            RejectionReason.ILLEGAL_TRANSITION,
            current=status.value,
            attempted=target.value,
        )

    return TransitionResult.accepted(target)


def validate_request(request: TransitionRequest) -> TransitionResult:
    return validate(request.current_status, request.action)


def available_actions(current: "str | BookingStatus") -> list[Action]:
    """Actions that ``validate`` would accept from ``current``."""
    return [action for action in Action if validate(current, action).ok]


def raise_for_rejection(result: TransitionResult) -> None:
    """Translate a rejected TransitionResult into the matching API exception."""
    if result.ok:
        return
    if result.reason in (RejectionReason.UNKNOWN_ACTION, RejectionReason.UNKNOWN_STATUS):
        raise ValidationError(result.message)
    if result.reason == RejectionReason.ALREADY_TERMINAL:
        raise BookingAlreadyTerminal(result.message)
    if result.reason == RejectionReason.PAYMENT_NOT_AUTHORIZED:
        raise PaymentNotAuthorized(result.message)
    raise InvalidBookingStatus(
        f"{result.message} ({result.current} → {result.attempted})"
    )


def assert_booking_transition(current: "str | BookingStatus", action: "str | Action") -> BookingStatus:
    """Validate and return the new status, raising on rejection."""
    result = validate(current, action)
    raise_for_rejection(result)
    return result.new_status
