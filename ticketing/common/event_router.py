"""
Event Router: publish/subscribe fan-out

Producers publish to the router and never learn who consumes. Each route
maps a (source, type) pattern to a channel; every channel is a durable Redis
Stream read by one consumer group, so delivery is at-least-once per channel.

  Booking ──OrderCreated──────▶ ┌────────┐ ──▶ risk-analysis ──▶ Risk Classifier
                                │ Router │
  Payment ──PaymentSucceeded──▶ └────────┘ ──▶ payment ────────▶ Payment Confirmer

A Redis Pub/Sub channel would lose every event published while a consumer
is down, which is why channels are streams.
"""

import logging
from dataclasses import dataclass

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from .errors import TransientDependencyError
from .events import (
    BOOKING_SOURCE,
    ORDER_CREATED,
    PAYMENT_SOURCE,
    PAYMENT_SUCCEEDED,
    EventEnvelope,
)

logger = logging.getLogger(__name__)

RISK_ANALYSIS_CHANNEL = "risk-analysis"
PAYMENT_CHANNEL = "payment"


@dataclass(frozen=True)
class Route:
    source: str
    type: str
    channel: str

    def matches(self, envelope: EventEnvelope) -> bool:
        return envelope.source == self.source and envelope.type == self.type


DEFAULT_ROUTES = (
    Route(BOOKING_SOURCE, ORDER_CREATED, RISK_ANALYSIS_CHANNEL),
    Route(PAYMENT_SOURCE, PAYMENT_SUCCEEDED, PAYMENT_CHANNEL),
)


def stream_key(prefix: str, channel: str) -> str:
    return f"{prefix}:{channel}"


def dead_letter_key(prefix: str, channel: str) -> str:
    return f"{prefix}:{channel}:dead-letter"


class EventRouter:
    def __init__(
        self,
        redis: aioredis.Redis,
        prefix: str = "ticketing",
        routes: tuple[Route, ...] = DEFAULT_ROUTES,
    ):
        self.redis = redis
        self.prefix = prefix
        self.routes = routes

    def channels_for(self, envelope: EventEnvelope) -> list[str]:
        return [r.channel for r in self.routes if r.matches(envelope)]

    async def publish(self, envelope: EventEnvelope) -> list[str]:
        """
        Append the envelope to every matching channel.

        Channels are tried independently: one failing append does not stop
        the others. If any failed, TransientDependencyError is raised after
        all have been attempted. Returns the channels delivered to.
        """
        channels = self.channels_for(envelope)
        if not channels:
            logger.debug("No route for %s/%s", envelope.source, envelope.type)
            return []

        delivered: list[str] = []
        failed: list[str] = []
        for channel in channels:
            routed = envelope.model_copy(update={"channel": channel})
            try:
                await self.redis.xadd(
                    stream_key(self.prefix, channel),
                    {"envelope": routed.to_wire()},
                )
                delivered.append(channel)
            except (RedisError, OSError):
                logger.exception("Failed to route %s to %s", envelope.type, channel)
                failed.append(channel)

        if failed:
            raise TransientDependencyError(
                f"could not deliver {envelope.type} to {', '.join(failed)}"
            )
        logger.info("Routed %s %s -> %s", envelope.type, envelope.event_id, delivered)
        return delivered
