"""
Consumer service scaffolding

The risk and payment services have no command endpoints. Each one runs a
ChannelSubscriber as a background task for the lifetime of the FastAPI app
and exposes /health.

┌──────────┐  stream   ┌──────────────────────────┐
│  Router  │ ────────▶ │ ChannelSubscriber (task) │ ──▶ handler ──▶ Order Store
└──────────┘           └──────────────────────────┘
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Callable

import redis.asyncio as aioredis
from fastapi import FastAPI
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from .config import Settings, configure_logging
from .order_store import OrderStore, init_schema
from .subscriber import ChannelSubscriber, Handler

logger = logging.getLogger(__name__)

HandlerFactory = Callable[[Settings, OrderStore, aioredis.Redis], Handler]


def consumer_app(
    title: str,
    service_name: str,
    channel: str,
    build_handler: HandlerFactory,
    settings: Settings | None = None,
) -> FastAPI:
    settings = settings or Settings.from_env()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Start the subscriber on startup, stop it on shutdown."""
        configure_logging(settings.log_level)
        engine = create_async_engine(settings.database_url, echo=False)
        await init_schema(engine)
        session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
        redis_conn = aioredis.from_url(settings.redis_url, decode_responses=True)
        store = OrderStore(session_factory)

        subscriber = ChannelSubscriber(
            redis_conn,
            channel,
            build_handler(settings, store, redis_conn),
            prefix=settings.stream_prefix,
            batch_size=settings.batch_size,
            max_deliveries=settings.max_deliveries,
            visibility_timeout_ms=settings.visibility_timeout_ms,
        )
        app.state.subscriber = subscriber

        shutdown_event = asyncio.Event()
        subscriber_task = asyncio.create_task(subscriber.run(shutdown_event))
        yield
        shutdown_event.set()
        subscriber_task.cancel()
        try:
            await subscriber_task
        except asyncio.CancelledError:
            pass
        await redis_conn.aclose()
        await engine.dispose()
        logger.info("%s stopped", service_name)

    app = FastAPI(title=title, lifespan=lifespan)

    @app.get("/health")
    async def health():
        return {"status": "ok", "service": service_name, "channel": channel}

    return app
