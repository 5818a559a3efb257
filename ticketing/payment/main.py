"""
Payment Service: FastAPI entry point

Consumes the payment channel and confirms orders.
"""

from ..common.event_router import PAYMENT_CHANNEL
from ..common.service import consumer_app
from .confirmer import PaymentConfirmer

app = consumer_app(
    "Payment Service",
    "payment-service",
    PAYMENT_CHANNEL,
    lambda settings, store, redis: PaymentConfirmer(store).handle,
)
