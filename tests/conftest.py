"""
Pytest configuration and fixtures.

The Order Store runs on a throwaway SQLite file (aiosqlite), the channels on
an in-process fakeredis server.
"""
import asyncio
from decimal import Decimal
from typing import Any, AsyncGenerator, Awaitable, Callable

import pytest
import pytest_asyncio
from fakeredis import FakeAsyncRedis
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from ticketing.alerts.dispatcher import AlertDispatcher, Notification
from ticketing.common.errors import NotificationError
from ticketing.common.event_router import EventRouter
from ticketing.common.events import OrderCreated, utcnow
from ticketing.common.models import Order, OrderStatus
from ticketing.common.order_store import OrderStore, init_schema

STREAM_PREFIX = "test"


@pytest_asyncio.fixture
async def store(tmp_path) -> AsyncGenerator[OrderStore, Any]:
    """Order Store on a fresh SQLite database."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'orders.db'}")
    await init_schema(engine)
    session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    yield OrderStore(session_factory)
    await engine.dispose()


@pytest_asyncio.fixture
async def broken_store(tmp_path) -> AsyncGenerator[OrderStore, Any]:
    """Order Store whose database file cannot be opened."""
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'missing' / 'dir' / 'orders.db'}"
    )
    session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    yield OrderStore(session_factory)
    await engine.dispose()


@pytest_asyncio.fixture
async def redis() -> AsyncGenerator[FakeAsyncRedis, Any]:
    conn = FakeAsyncRedis(decode_responses=True)
    yield conn
    await conn.flushall()
    await conn.aclose()


@pytest.fixture
def router(redis) -> EventRouter:
    return EventRouter(redis, prefix=STREAM_PREFIX)


@pytest.fixture
def order_factory(store) -> Callable[..., Awaitable[Order]]:
    """Insert a PENDING order straight into the store."""
    counter = {"n": 0}

    async def _create(amount: Any = "100", ticket_type: str = "GENERAL") -> Order:
        counter["n"] += 1
        order = Order(
            order_id=f"ORD-TEST-{counter['n']:04d}",
            user_id="u1",
            ticket_type=ticket_type,
            amount=Decimal(str(amount)),
            status=OrderStatus.PENDING,
            created_at=utcnow(),
        )
        return await store.create(order)

    return _create


def order_created_envelope(order: Order):
    return OrderCreated.from_order(order).envelope()


# ── Test doubles ─────────────────────────────────


class RecordingNotifier:
    def __init__(self) -> None:
        self.sent: list[Notification] = []

    async def send(self, notification: Notification) -> None:
        self.sent.append(notification)


class FailingNotifier:
    def __init__(self, error: Exception | None = None) -> None:
        self.error = error or NotificationError("relay down")
        self.attempts = 0

    async def send(self, notification: Notification) -> None:
        self.attempts += 1
        raise self.error


class StubScorer:
    """Returns a fixed response, raises a fixed error, or stalls."""

    def __init__(self, response: str = "", error: Exception | None = None, delay: float = 0.0):
        self.response = response
        self.error = error
        self.delay = delay
        self.calls: list[OrderCreated] = []

    async def classify(self, order: OrderCreated) -> str:
        self.calls.append(order)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.response


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def alerts(notifier) -> AlertDispatcher:
    return AlertDispatcher(notifier, "ops@example.test")
