"""
Alert Dispatcher tests.
"""
import json
from decimal import Decimal

import httpx
import pytest

from ticketing.alerts.dispatcher import (
    AlertDispatcher,
    LogNotifier,
    Notification,
    WebhookNotifier,
    build_alert,
)
from ticketing.common.errors import NotificationError

from conftest import FailingNotifier, RecordingNotifier


def test_alert_format() -> None:
    alert = build_alert("ops@example.test", "ORD-1", "Hold for review", Decimal("3000"))

    assert alert.to == "ops@example.test"
    assert alert.subject == "Alert: Risky Order ORD-1"
    assert alert.body == "Risk Level: HIGH\nReason: Hold for review\nAmount: 3000"


class TestDispatch:

    @pytest.mark.asyncio
    async def test_sends_one_notification(self, alerts, notifier) -> None:
        sent = await alerts.dispatch("ORD-1", "Hold", Decimal("3000"))

        assert sent is True
        assert [n.subject for n in notifier.sent] == ["Alert: Risky Order ORD-1"]

    @pytest.mark.asyncio
    async def test_failure_is_absorbed(self) -> None:
        failing = FailingNotifier()
        dispatcher = AlertDispatcher(failing, "ops@example.test")

        assert await dispatcher.dispatch("ORD-1", "Hold", Decimal("3000")) is False
        assert failing.attempts == 1

    @pytest.mark.asyncio
    async def test_unexpected_notifier_error_is_absorbed(self) -> None:
        failing = FailingNotifier(httpx.InvalidURL("bad relay url"))
        dispatcher = AlertDispatcher(failing, "ops@example.test")

        assert await dispatcher.dispatch("ORD-1", "Hold", Decimal("3000")) is False
        assert failing.attempts == 1

    @pytest.mark.asyncio
    async def test_duplicate_suppressed_with_redis(self, redis) -> None:
        notifier = RecordingNotifier()
        dispatcher = AlertDispatcher(notifier, "ops@example.test", redis=redis, key_prefix="test")

        assert await dispatcher.dispatch("ORD-1", "Hold", Decimal("3000")) is True
        assert await dispatcher.dispatch("ORD-1", "Hold", Decimal("3000")) is False
        assert await dispatcher.dispatch("ORD-2", "Hold", Decimal("5000")) is True

        assert [n.subject for n in notifier.sent] == [
            "Alert: Risky Order ORD-1",
            "Alert: Risky Order ORD-2",
        ]
        assert await redis.ttl("test:alerted:ORD-1") > 0

    @pytest.mark.asyncio
    async def test_log_notifier(self, caplog) -> None:
        dispatcher = AlertDispatcher(LogNotifier(), "ops@example.test")

        with caplog.at_level("WARNING"):
            assert await dispatcher.dispatch("ORD-9", "Hold", Decimal("2500")) is True

        assert "Alert: Risky Order ORD-9" in caplog.text


class TestWebhookNotifier:

    @pytest.mark.asyncio
    async def test_posts_notification(self) -> None:
        received = []

        def handler(request: httpx.Request) -> httpx.Response:
            received.append(json.loads(request.content))
            return httpx.Response(202)

        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        notifier = WebhookNotifier("http://relay.test/notify", client=client)

        await notifier.send(Notification("ops@example.test", "subject", "body"))

        assert received == [{"to": "ops@example.test", "subject": "subject", "body": "body"}]

    @pytest.mark.asyncio
    async def test_relay_error_raises_notification_error(self) -> None:
        client = httpx.AsyncClient(transport=httpx.MockTransport(lambda r: httpx.Response(502)))
        notifier = WebhookNotifier("http://relay.test/notify", client=client)

        with pytest.raises(NotificationError):
            await notifier.send(Notification("ops@example.test", "subject", "body"))
