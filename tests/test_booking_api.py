"""
Booking HTTP API tests, driven through httpx's ASGI transport.
"""
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any, AsyncGenerator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from ticketing.booking.main import create_app
from ticketing.common.config import Settings
from ticketing.common.errors import TransientDependencyError
from ticketing.common.event_router import PAYMENT_CHANNEL, RISK_ANALYSIS_CHANNEL, EventRouter, stream_key

from conftest import STREAM_PREFIX


class BrokenRouter(EventRouter):
    async def publish(self, envelope):
        raise TransientDependencyError("bus unavailable")


@pytest_asyncio.fixture
async def client(store, router) -> AsyncGenerator[AsyncClient, Any]:
    app = create_app(Settings(), store=store, router=router)
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


class TestOrdersApi:

    @pytest.mark.asyncio
    async def test_create_order(self, client, redis) -> None:
        resp = await client.post(
            "/orders", json={"userId": "u1", "amount": 3000, "ticketType": "VIP"}
        )

        assert resp.status_code == 201
        body = resp.json()
        assert body["orderId"].startswith("ORD-")
        assert await redis.xlen(stream_key(STREAM_PREFIX, RISK_ANALYSIS_CHANNEL)) == 1

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "payload",
        [
            {"userId": "u1", "amount": 0, "ticketType": "VIP"},
            {"userId": "u1", "amount": -10, "ticketType": "VIP"},
            {"userId": "", "amount": 10, "ticketType": "VIP"},
            {"userId": "u1", "amount": 10},
            {"userId": "u1", "amount": "lots", "ticketType": "VIP"},
            {"userId": "u1", "amount": 0.001, "ticketType": "VIP"},
            {"userId": "u1", "amount": "2000.004", "ticketType": "VIP"},
            {"userId": "u1", "amount": 12345678901, "ticketType": "VIP"},
        ],
    )
    async def test_invalid_request_rejected(self, client, store, payload) -> None:
        resp = await client.post("/orders", json=payload)

        assert resp.status_code == 422
        assert await store.list_orders() == []

    @pytest.mark.asyncio
    async def test_query_order(self, client) -> None:
        created = await client.post(
            "/orders", json={"userId": "u1", "amount": 250, "ticketType": "GENERAL"}
        )
        order_id = created.json()["orderId"]

        resp = await client.get(f"/queries/orders/{order_id}")

        assert resp.status_code == 200
        body = resp.json()
        assert body["orderId"] == order_id
        assert body["status"] == "PENDING"
        assert body["aiRisk"] is None
        assert datetime.fromisoformat(body["createdAt"].replace("Z", "+00:00")).utcoffset() == timedelta(0)

        listing = await client.get("/queries/orders")
        assert [o["orderId"] for o in listing.json()] == [order_id]

    @pytest.mark.asyncio
    async def test_query_unknown_order(self, client) -> None:
        resp = await client.get("/queries/orders/ORD-NOPE")

        assert resp.status_code == 404

    @pytest.mark.asyncio
    async def test_payment_webhook(self, client, redis) -> None:
        resp = await client.post("/orders/webhook/payment-success", json={"orderId": "ORD-1"})

        assert resp.status_code == 202
        assert resp.json()["orderId"] == "ORD-1"
        assert await redis.xlen(stream_key(STREAM_PREFIX, PAYMENT_CHANNEL)) == 1

    @pytest.mark.asyncio
    async def test_bus_outage_is_503_and_leaves_no_order(self, store, redis) -> None:
        app = create_app(Settings(), store=store, router=BrokenRouter(redis, prefix=STREAM_PREFIX))
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
            resp = await ac.post(
                "/orders", json={"userId": "u1", "amount": 10, "ticketType": "VIP"}
            )

        assert resp.status_code == 503
        assert await store.list_orders() == []

    @pytest.mark.asyncio
    async def test_two_decimal_amount_is_stored_exactly(self, client, store) -> None:
        resp = await client.post(
            "/orders", json={"userId": "u1", "amount": "2000.40", "ticketType": "VIP"}
        )

        stored = await store.get(resp.json()["orderId"])
        assert stored.amount == Decimal("2000.40")

    @pytest.mark.asyncio
    async def test_unknown_request_fields_are_ignored(self, client) -> None:
        resp = await client.post(
            "/orders",
            json={"userId": "u1", "amount": 10, "ticketType": "VIP", "metadata": {"seat": "A1"}},
        )

        assert resp.status_code == 201
        assert "metadata" not in (await client.get(f"/queries/orders/{resp.json()['orderId']}")).json()

    @pytest.mark.asyncio
    async def test_health(self, client) -> None:
        resp = await client.get("/health")

        assert resp.json() == {"status": "ok", "service": "booking-service"}
