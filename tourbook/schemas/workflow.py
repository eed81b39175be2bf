"""Workflow graph and advisory schemas."""

from pydantic import BaseModel


class StatusGraphResponse(BaseModel):
    """The booking status graph as published to clients."""

    version: str
    statuses: list[str]
    transitions: dict[str, list[str]]
    labels: dict[str, str]
    families: dict[str, str]
    actions: dict[str, str]
    closing_actions: list[str]
    aliases: dict[str, str]


class BookingWorkflowResponse(BaseModel):
    """Which actions a booking accepts right now."""

    status: str
    status_label: str
    allowed_next: list[str]
    available_actions: list[str]
    can_edit_price: bool
    price_locked: bool
    can_pay: bool
    payment_reason: str | None = None
    graph_version: str
