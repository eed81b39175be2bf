"""Payment gating and price lock rules.

The admin-set BookingPrice is the only amount a booking may be charged.
These predicates never raise; callers decide how to refuse.
"""

from decimal import Decimal
from typing import Protocol

from tourbook.domain.booking_status import (
    PRE_PAYMENT_STATUSES,
    BookingStatus,
    normalize_status,
)


class PriceLike(Protocol):
    amount: Decimal
    currency: str
    locked: bool


def _coerce(status: "str | BookingStatus") -> BookingStatus | None:
    try:
        return normalize_status(status)
    except ValueError:
        return None


def has_admin_price(price: PriceLike | None) -> bool:
    """True if an admin price record exists with a positive amount."""
    return price is not None and price.amount is not None and price.amount > 0


def can_accept_payment(status: "str | BookingStatus", has_admin_price: bool) -> bool:
    """Both conditions are required: awaiting payment AND an admin price."""
    return _coerce(status) == BookingStatus.AWAITING_PAYMENT and bool(has_admin_price)


def can_edit_price(status: "str | BookingStatus") -> bool:
    """Price is editable for every pre-payment status, awaiting_payment included."""
    return _coerce(status) in PRE_PAYMENT_STATUSES


def is_price_locked(status: "str | BookingStatus") -> bool:
    return not can_edit_price(status)


def payment_eligibility(
    status: "str | BookingStatus",
    price: PriceLike | None,
) -> tuple[bool, str | None]:
    """Check if a booking can be paid right now.

    Args:
        status: Current booking status
        price: Admin price record, if any

    Returns:
        Tuple of (can_pay, reason)
    """
    if not has_admin_price(price):
        return False, "Price has not been set by admin yet."

    current = _coerce(status)
    if current is None:
        return False, f"Unknown booking status '{status}'."

    if current == BookingStatus.PRICE_SET:
        return False, "Please confirm the price before paying."

    if not can_accept_payment(current, True):
        return False, f"Cannot pay for booking in '{current.value}' status."

    return True, None
