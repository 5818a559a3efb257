"""
Booking Ingest: command handlers

create_order is all-or-nothing from the caller's point of view:

  1. validate the command           → ValidationError, nothing written
  2. insert the PENDING record      → ConflictError / TransientDependencyError,
                                      nothing published
  3. publish OrderCreated           → on failure, compensate by deleting the
                                      record, then TransientDependencyError
"""

import logging
from decimal import Decimal, InvalidOperation
from uuid import uuid4

from ..common.errors import TransientDependencyError, ValidationError
from ..common.event_router import EventRouter
from ..common.events import OrderCreated, PaymentSucceeded, utcnow
from ..common.models import Order, OrderStatus
from ..common.order_store import OrderStore

logger = logging.getLogger(__name__)


def new_order_id() -> str:
    return f"ORD-{uuid4().hex.upper()}"


# orders.amount is NUMERIC(12, 2).
CENT = Decimal("0.01")
MAX_AMOUNT = Decimal("1e10")


def _validate(user_id: str, amount, ticket_type: str) -> Decimal:
    if not isinstance(user_id, str) or not user_id.strip():
        raise ValidationError("userId must not be empty")
    if not isinstance(ticket_type, str) or not ticket_type.strip():
        raise ValidationError("ticketType must not be empty")
    if isinstance(amount, bool):
        raise ValidationError("amount must be a number")
    try:
        value = Decimal(str(amount))
    except InvalidOperation as e:
        raise ValidationError("amount must be a number") from e
    if not value.is_finite() or value <= 0:
        raise ValidationError("amount must be a positive number")
    if value >= MAX_AMOUNT:
        raise ValidationError(f"amount must be below {MAX_AMOUNT:f}")
    if value != value.quantize(CENT):
        raise ValidationError("amount must not have more than 2 decimal places")
    return value.quantize(CENT)


async def create_order(
    store: OrderStore,
    router: EventRouter,
    user_id: str,
    amount,
    ticket_type: str,
) -> Order:
    value = _validate(user_id, amount, ticket_type)
    order = Order(
        order_id=new_order_id(),
        user_id=user_id,
        ticket_type=ticket_type,
        amount=value,
        status=OrderStatus.PENDING,
        created_at=utcnow(),
    )

    await store.create(order)

    try:
        await router.publish(OrderCreated.from_order(order).envelope())
    except TransientDependencyError:
        # Compensating action: no event went out, so no record either.
        removed = await store.delete_pending(order.order_id)
        logger.error(
            "OrderCreated for %s not published, record %s",
            order.order_id, "removed" if removed else "left in place",
        )
        raise

    logger.info("Order %s created (user=%s, amount=%s)", order.order_id, user_id, value)
    return order


async def simulate_payment_success(router: EventRouter, order_id: str) -> PaymentSucceeded:
    """
    Stand-in for the payment provider's webhook: emits PaymentSucceeded.
    The order itself is not touched here; the Payment Confirmer does that.
    """
    if not order_id or not order_id.strip():
        raise ValidationError("orderId must not be empty")
    payment = PaymentSucceeded(order_id=order_id)
    await router.publish(payment.envelope())
    logger.info("Simulated payment success for %s", order_id)
    return payment
