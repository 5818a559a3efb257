"""
Channel Subscriber: the delivery boundary

Reads one channel (a Redis Stream) through a consumer group and hands each
record to a handler. The handler never raises to ask for redelivery; it
returns a HandlerResult and the subscriber decides:

  SUCCESS  → XACK
  SKIP     → XACK (handled, nothing to retry)
  RETRY    → leave pending; XAUTOCLAIM hands it out again after the
             visibility timeout. Once the delivery count reaches
             max_deliveries the record is copied to the dead-letter stream
             and acknowledged.

Each record succeeds or fails on its own. A poison record never holds back
the rest of its batch.
"""

import asyncio
import logging
import socket
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable

import redis.asyncio as aioredis
from pydantic import ValidationError as PydanticValidationError
from redis.exceptions import RedisError, ResponseError

from .event_router import dead_letter_key, stream_key
from .events import EventEnvelope

logger = logging.getLogger(__name__)


class Outcome(str, Enum):
    SUCCESS = "SUCCESS"
    RETRY = "RETRY"
    SKIP = "SKIP"


@dataclass(frozen=True)
class HandlerResult:
    outcome: Outcome
    reason: str = ""

    @classmethod
    def success(cls) -> "HandlerResult":
        return cls(Outcome.SUCCESS)

    @classmethod
    def retry(cls, reason: str) -> "HandlerResult":
        return cls(Outcome.RETRY, reason)

    @classmethod
    def skip(cls, reason: str) -> "HandlerResult":
        return cls(Outcome.SKIP, reason)


Handler = Callable[[EventEnvelope], Awaitable[HandlerResult]]


class ChannelSubscriber:
    def __init__(
        self,
        redis: aioredis.Redis,
        channel: str,
        handler: Handler,
        *,
        prefix: str = "ticketing",
        group: str | None = None,
        consumer: str | None = None,
        batch_size: int = 10,
        max_deliveries: int = 5,
        visibility_timeout_ms: int = 30_000,
        block_ms: int | None = 1000,
    ):
        self.redis = redis
        self.channel = channel
        self.handler = handler
        self.stream = stream_key(prefix, channel)
        self.dead_letter_stream = dead_letter_key(prefix, channel)
        self.group = group or f"{channel}-consumers"
        self.consumer = consumer or f"{socket.gethostname()}-{id(self):x}"
        self.batch_size = batch_size
        self.max_deliveries = max_deliveries
        self.visibility_timeout_ms = visibility_timeout_ms
        self.block_ms = block_ms

    async def ensure_group(self) -> None:
        try:
            await self.redis.xgroup_create(self.stream, self.group, id="0", mkstream=True)
        except ResponseError as e:
            if "BUSYGROUP" not in str(e):
                raise

    async def run(self, shutdown_event: asyncio.Event) -> None:
        """Poll until shutdown_event is set. Broker outages are logged and retried."""
        await self.ensure_group()
        logger.info("Subscribed to %s as %s/%s", self.stream, self.group, self.consumer)
        while not shutdown_event.is_set():
            try:
                processed = await self.poll_once()
            except (RedisError, OSError):
                logger.exception("Polling %s failed", self.stream)
                await asyncio.sleep(1.0)
                continue
            if not processed and not self.block_ms:
                await asyncio.sleep(0.1)

    async def poll_once(self) -> int:
        """Process one batch: reclaimed stale records first, then new ones."""
        batch = await self._reclaim()
        room = self.batch_size - len(batch)
        if room > 0:
            batch += await self._read_new(room)
        if not batch:
            return 0
        await asyncio.gather(*(self._deliver(mid, fields) for mid, fields in batch))
        return len(batch)

    # ── Reading ──────────────────────────────────────

    async def _read_new(self, count: int) -> list[tuple[str, dict]]:
        response = await self.redis.xreadgroup(
            self.group,
            self.consumer,
            {self.stream: ">"},
            count=count,
            block=self.block_ms,
        )
        batch: list[tuple[str, dict]] = []
        for _stream, messages in response or []:
            batch.extend(messages)
        return batch

    async def _reclaim(self) -> list[tuple[str, dict]]:
        response = await self.redis.xautoclaim(
            self.stream,
            self.group,
            self.consumer,
            min_idle_time=self.visibility_timeout_ms,
            start_id="0-0",
            count=self.batch_size,
        )
        messages = response[1] if response else []
        return [(mid, fields) for mid, fields in messages if fields]

    # ── Delivery ─────────────────────────────────────

    async def _deliver(self, message_id: str, fields: dict) -> HandlerResult:
        try:
            envelope = EventEnvelope.from_wire(fields["envelope"])
        except (KeyError, PydanticValidationError) as e:
            logger.error("Undecodable record %s on %s: %s", message_id, self.stream, e)
            await self._dead_letter(message_id, fields, f"undecodable envelope: {e}")
            return HandlerResult.skip("undecodable envelope")

        try:
            result = await self.handler(envelope)
        except Exception:
            logger.exception("Handler failed on %s %s", envelope.type, message_id)
            result = HandlerResult.retry("unhandled handler error")

        if result.outcome is Outcome.RETRY:
            deliveries = await self._delivery_count(message_id)
            if deliveries >= self.max_deliveries:
                logger.error(
                    "Dead-lettering %s after %d deliveries: %s",
                    message_id, deliveries, result.reason,
                )
                await self._dead_letter(message_id, fields, result.reason)
            else:
                logger.warning(
                    "Leaving %s pending for redelivery (%d/%d): %s",
                    message_id, deliveries, self.max_deliveries, result.reason,
                )
            return result

        if result.outcome is Outcome.SKIP:
            logger.info("Skipped %s %s: %s", envelope.type, message_id, result.reason)
        await self.redis.xack(self.stream, self.group, message_id)
        return result

    async def _delivery_count(self, message_id: str) -> int:
        pending = await self.redis.xpending_range(
            self.stream, self.group, min=message_id, max=message_id, count=1
        )
        if not pending:
            return 1
        return int(pending[0]["times_delivered"])

    async def _dead_letter(self, message_id: str, fields: dict, reason: str) -> None:
        await self.redis.xadd(
            self.dead_letter_stream,
            {**fields, "source_id": message_id, "reason": reason},
        )
        await self.redis.xack(self.stream, self.group, message_id)
