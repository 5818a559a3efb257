"""
Payment Confirmer: consumer of the payment channel

Turns a PaymentSucceeded signal into status=PAID. The write touches only the
status column and is conditional on the order being PENDING or already PAID,
so a redelivered confirmation changes nothing.
"""

import logging

from pydantic import ValidationError as PydanticValidationError

from ..common.errors import OrderNotFoundError, TransientDependencyError
from ..common.events import EventEnvelope, PaymentSucceeded
from ..common.order_store import OrderStore
from ..common.subscriber import HandlerResult

logger = logging.getLogger(__name__)


class PaymentConfirmer:
    def __init__(self, store: OrderStore):
        self.store = store

    async def handle(self, envelope: EventEnvelope) -> HandlerResult:
        try:
            payment = PaymentSucceeded.model_validate(envelope.detail)
        except PydanticValidationError as e:
            logger.warning("PaymentSucceeded %s without orderId: %s", envelope.event_id, e)
            return HandlerResult.skip("undecodable PaymentSucceeded payload")

        logger.info("Updating order %s to PAID", payment.order_id)
        try:
            await self.store.mark_paid(payment.order_id)
        except OrderNotFoundError:
            logger.error("Payment for unknown order %s", payment.order_id)
            return HandlerResult.skip("order not found")
        except TransientDependencyError as e:
            logger.warning("Confirming %s failed: %s", payment.order_id, e)
            return HandlerResult.retry(str(e))
        return HandlerResult.success()
