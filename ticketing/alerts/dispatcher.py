"""
Alert Dispatcher

Sends one notification to the operator channel when an order is classified
HIGH. Best-effort: a failed send is logged and never undoes the risk write
that triggered it, and there is no retry here.
"""

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Protocol

import httpx
import redis.asyncio as aioredis
from redis.exceptions import RedisError

from ..common.errors import NotificationError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Notification:
    to: str
    subject: str
    body: str


class Notifier(Protocol):
    async def send(self, notification: Notification) -> None: ...


class WebhookNotifier:
    """Posts the notification as JSON to a mail/chat relay."""

    def __init__(self, url: str, timeout: float = 10.0, client: httpx.AsyncClient | None = None):
        self.url = url
        self.timeout = timeout
        self._client = client

    async def send(self, notification: Notification) -> None:
        payload = {
            "to": notification.to,
            "subject": notification.subject,
            "body": notification.body,
        }
        try:
            if self._client is not None:
                resp = await self._client.post(self.url, json=payload, timeout=self.timeout)
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    resp = await client.post(self.url, json=payload)
            resp.raise_for_status()
        except httpx.HTTPError as e:
            raise NotificationError(f"webhook {self.url} failed: {e}") from e


class LogNotifier:
    """Writes notifications to the log. Used when no relay is configured."""

    async def send(self, notification: Notification) -> None:
        logger.warning(
            "ALERT to=%s subject=%r body=%r",
            notification.to, notification.subject, notification.body,
        )


def build_alert(to: str, order_id: str, recommendation: str, amount: Decimal) -> Notification:
    return Notification(
        to=to,
        subject=f"Alert: Risky Order {order_id}",
        body=f"Risk Level: HIGH\nReason: {recommendation}\nAmount: {amount}",
    )


class AlertDispatcher:
    def __init__(
        self,
        notifier: Notifier,
        operator_address: str,
        *,
        redis: aioredis.Redis | None = None,
        dedupe_ttl: int = 86_400,
        key_prefix: str = "ticketing",
    ):
        self.notifier = notifier
        self.operator_address = operator_address
        self.redis = redis
        self.dedupe_ttl = dedupe_ttl
        self.key_prefix = key_prefix

    async def dispatch(self, order_id: str, recommendation: str, amount: Decimal) -> bool:
        """Send the alert. Returns False if it was suppressed or failed."""
        if not await self._claim(order_id):
            logger.info("Alert for %s already sent, suppressing duplicate", order_id)
            return False

        notification = build_alert(self.operator_address, order_id, recommendation, amount)
        try:
            await self.notifier.send(notification)
        except NotificationError as e:
            logger.error("Alert for %s not delivered: %s", order_id, e)
            return False
        except Exception:
            logger.exception("Alert for %s not delivered", order_id)
            return False
        logger.info("Alert sent for %s", order_id)
        return True

    async def _claim(self, order_id: str) -> bool:
        # Without Redis every call sends.
        if self.redis is None:
            return True
        key = f"{self.key_prefix}:alerted:{order_id}"
        try:
            return bool(await self.redis.set(key, "1", nx=True, ex=self.dedupe_ttl))
        except RedisError as e:
            logger.warning("Alert dedupe unavailable for %s: %s", order_id, e)
            return True
