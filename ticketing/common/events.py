"""
Event definitions

Events are named in the past tense and treated as immutable facts. Every
event travels inside an EventEnvelope; `detail` holds the payload and
`channel` is stamped by the router when the envelope is fanned out.
"""

from datetime import datetime, timezone
from decimal import Decimal
from typing import Any
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field

from .models import Order, OrderStatus

BOOKING_SOURCE = "com.ticket.booking"
PAYMENT_SOURCE = "com.ticket.payment.simulator"

ORDER_CREATED = "OrderCreated"
PAYMENT_SUCCEEDED = "PaymentSucceeded"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class EventEnvelope(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    event_id: str = Field(default_factory=lambda: uuid4().hex, alias="id")
    source: str
    type: str
    detail: dict[str, Any]
    channel: str | None = None
    time: datetime = Field(default_factory=utcnow)

    def to_wire(self) -> str:
        return self.model_dump_json(by_alias=True)

    @classmethod
    def from_wire(cls, data: str | bytes) -> "EventEnvelope":
        return cls.model_validate_json(data)


class OrderCreated(BaseModel):
    """An order was created. Carries the full initial record."""

    model_config = ConfigDict(populate_by_name=True)

    order_id: str = Field(alias="orderId", min_length=1)
    user_id: str = Field(alias="userId")
    ticket_type: str = Field(alias="ticketType")
    amount: Decimal = Field(gt=0)
    status: OrderStatus = OrderStatus.PENDING
    created_at: datetime = Field(alias="createdAt")

    @classmethod
    def from_order(cls, order: Order) -> "OrderCreated":
        return cls(
            order_id=order.order_id,
            user_id=order.user_id,
            ticket_type=order.ticket_type,
            amount=order.amount,
            status=order.status,
            created_at=order.created_at,
        )

    def envelope(self) -> EventEnvelope:
        return EventEnvelope(
            source=BOOKING_SOURCE,
            type=ORDER_CREATED,
            detail=self.model_dump(mode="json", by_alias=True),
        )


class PaymentSucceeded(BaseModel):
    """The payment collaborator reported a successful charge."""

    model_config = ConfigDict(populate_by_name=True)

    order_id: str = Field(alias="orderId", min_length=1)
    status: str = "SUCCESS"
    provider: str = "PayPal-Simulator"
    timestamp: datetime = Field(default_factory=utcnow)

    def envelope(self) -> EventEnvelope:
        return EventEnvelope(
            source=PAYMENT_SOURCE,
            type=PAYMENT_SUCCEEDED,
            detail=self.model_dump(mode="json", by_alias=True),
        )
