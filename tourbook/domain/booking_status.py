"""Booking status graph.

Happy path:
    draft → pending → [under_review] → price_set → awaiting_payment → paid
          → confirmed → [assigned → accepted] → on_trip → completed

Every non-terminal status can move to cancelled. The table lists rejected
from pre-payment statuses only; the validator accepts cancel and reject from
any non-terminal status. Terminal statuses have no outgoing transitions.
"""

import hashlib
import json
from enum import Enum


class BookingStatus(str, Enum):
    """Booking lifecycle statuses."""

    DRAFT = "draft"
    PENDING = "pending"
    UNDER_REVIEW = "under_review"
    PRICE_SET = "price_set"
    AWAITING_PAYMENT = "awaiting_payment"
    PAID = "paid"
    CONFIRMED = "confirmed"
    ASSIGNED = "assigned"
    ACCEPTED = "accepted"
    ON_TRIP = "on_trip"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    REJECTED = "rejected"


class StatusFamily(str, Enum):
    """Status families used by the price gate."""

    PRE_PAYMENT = "pre_payment"
    POST_PAYMENT = "post_payment"
    TERMINAL = "terminal"


PRE_PAYMENT_STATUSES = frozenset({
    BookingStatus.DRAFT,
    BookingStatus.PENDING,
    BookingStatus.UNDER_REVIEW,
    BookingStatus.PRICE_SET,
    BookingStatus.AWAITING_PAYMENT,
})

POST_PAYMENT_STATUSES = frozenset({
    BookingStatus.PAID,
    BookingStatus.CONFIRMED,
    BookingStatus.ASSIGNED,
    BookingStatus.ACCEPTED,
    BookingStatus.ON_TRIP,
})

TERMINAL_STATUSES = frozenset({
    BookingStatus.COMPLETED,
    BookingStatus.CANCELLED,
    BookingStatus.REJECTED,
})

S = BookingStatus

BOOKING_TRANSITIONS: dict[BookingStatus, frozenset[BookingStatus]] = {
    S.DRAFT: frozenset({S.PENDING, S.CANCELLED, S.REJECTED}),
    S.PENDING: frozenset({S.UNDER_REVIEW, S.PRICE_SET, S.CANCELLED, S.REJECTED}),
    S.UNDER_REVIEW: frozenset({S.PRICE_SET, S.CANCELLED, S.REJECTED}),
    S.PRICE_SET: frozenset({S.AWAITING_PAYMENT, S.CANCELLED, S.REJECTED}),
    S.AWAITING_PAYMENT: frozenset({S.PAID, S.CANCELLED, S.REJECTED}),
    # Price locked from here on
    S.PAID: frozenset({S.CONFIRMED, S.CANCELLED}),
    S.CONFIRMED: frozenset({S.ASSIGNED, S.ON_TRIP, S.CANCELLED}),
    S.ASSIGNED: frozenset({S.ACCEPTED, S.CANCELLED}),
    S.ACCEPTED: frozenset({S.ON_TRIP, S.CANCELLED}),
    S.ON_TRIP: frozenset({S.COMPLETED, S.CANCELLED}),
    S.COMPLETED: frozenset(),
    S.CANCELLED: frozenset(),
    S.REJECTED: frozenset(),
}

del S

# Names used by older clients
STATUS_ALIASES: dict[str, BookingStatus] = {
    "submitted": BookingStatus.PENDING,
    "pending_admin_review": BookingStatus.PENDING,
    "approved": BookingStatus.PRICE_SET,
    "awaiting_customer_confirmation": BookingStatus.PRICE_SET,
    "in_progress": BookingStatus.ON_TRIP,
}

STATUS_LABELS: dict[BookingStatus, str] = {
    BookingStatus.DRAFT: "Draft",
    BookingStatus.PENDING: "Pending Admin Review",
    BookingStatus.UNDER_REVIEW: "Under Review",
    BookingStatus.PRICE_SET: "Awaiting Confirmation",
    BookingStatus.AWAITING_PAYMENT: "Awaiting Payment",
    BookingStatus.PAID: "Paid",
    BookingStatus.CONFIRMED: "Confirmed",
    BookingStatus.ASSIGNED: "Resource Assigned",
    BookingStatus.ACCEPTED: "Accepted by Resource",
    BookingStatus.ON_TRIP: "In Progress",
    BookingStatus.COMPLETED: "Completed",
    BookingStatus.CANCELLED: "Cancelled",
    BookingStatus.REJECTED: "Rejected",
}


def normalize_status(value: "str | BookingStatus") -> BookingStatus:
    """Map a stored or client-supplied status string to a BookingStatus.

    Raises:
        ValueError: If the value is neither a status nor a known alias
    """
    if isinstance(value, BookingStatus):
        return value
    key = str(value).strip().lower()
    if key in STATUS_ALIASES:
        return STATUS_ALIASES[key]
    return BookingStatus(key)


def allowed_next(status: BookingStatus) -> frozenset[BookingStatus]:
    """Statuses reachable from ``status`` by one direct transition."""
    return BOOKING_TRANSITIONS[status]


def status_family(status: BookingStatus) -> StatusFamily:
    if status in PRE_PAYMENT_STATUSES:
        return StatusFamily.PRE_PAYMENT
    if status in POST_PAYMENT_STATUSES:
        return StatusFamily.POST_PAYMENT
    return StatusFamily.TERMINAL


def is_terminal(status: BookingStatus) -> bool:
    return status in TERMINAL_STATUSES


def get_status_label(status: "str | BookingStatus") -> str:
    """Human-readable label, falling back to the raw value."""
    try:
        return STATUS_LABELS[normalize_status(status)]
    except ValueError:
        return str(status)


def graph_as_dict() -> dict[str, list[str]]:
    """Transition table in a JSON-friendly form, sorted for stable output."""
    return {
        status.value: sorted(target.value for target in targets)
        for status, targets in BOOKING_TRANSITIONS.items()
    }


def graph_version() -> str:
    """Short fingerprint of the transition table.

    Clients cache the table together with this value and refetch when the
    server reports a different one.
    """
    payload = json.dumps(graph_as_dict(), sort_keys=True)
    return hashlib.sha256(payload.encode()).hexdigest()[:16]
