"""
Booking Service: FastAPI entry point

A thin transport layer: request bodies are validated here and forwarded to
the command handlers, which own every write and publish. Reads go straight to
the Order Store.

  POST /orders                          create an order
  POST /orders/webhook/payment-success  simulated payment provider callback
  GET  /queries/orders[/{order_id}]     read the order record(s)
"""

from contextlib import asynccontextmanager
from decimal import Decimal

import redis.asyncio as aioredis
from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from ..common.config import Settings, configure_logging
from ..common.errors import (
    ConflictError,
    OrderNotFoundError,
    TransientDependencyError,
    ValidationError,
)
from ..common.event_router import EventRouter
from ..common.order_store import OrderStore, init_schema
from . import commands


# ── Request Models ───────────────────────────────

class CreateOrderRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    user_id: str = Field(alias="userId", min_length=1)
    amount: Decimal = Field(gt=0, max_digits=12, decimal_places=2)
    ticket_type: str = Field(alias="ticketType", min_length=1)


class PaymentWebhookRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    order_id: str = Field(alias="orderId", min_length=1)


def create_app(
    settings: Settings | None = None,
    *,
    store: OrderStore | None = None,
    router: EventRouter | None = None,
) -> FastAPI:
    """
    Build the booking app. When store and router are passed in, the lifespan
    does not open its own connections.
    """
    settings = settings or Settings.from_env()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if store is not None and router is not None:
            yield
            return
        configure_logging(settings.log_level)
        engine = create_async_engine(settings.database_url, echo=False)
        await init_schema(engine)
        session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
        redis_pool = aioredis.from_url(settings.redis_url, decode_responses=True)
        app.state.store = OrderStore(session_factory)
        app.state.router = EventRouter(redis_pool, prefix=settings.stream_prefix)
        yield
        await redis_pool.aclose()
        await engine.dispose()

    app = FastAPI(title="Booking Service", lifespan=lifespan)
    if store is not None and router is not None:
        app.state.store = store
        app.state.router = router

    @app.exception_handler(TransientDependencyError)
    async def dependency_unavailable(request: Request, exc: TransientDependencyError):
        return JSONResponse(status_code=503, content={"detail": str(exc)})

    # ── Command Endpoints ────────────────────────

    @app.post("/orders", status_code=201)
    async def cmd_create_order(req: CreateOrderRequest, request: Request):
        """Create an order and publish OrderCreated."""
        try:
            order = await commands.create_order(
                request.app.state.store,
                request.app.state.router,
                req.user_id,
                req.amount,
                req.ticket_type,
            )
        except ValidationError as e:
            raise HTTPException(400, str(e))
        except ConflictError as e:
            raise HTTPException(409, str(e))
        except TransientDependencyError:
            raise HTTPException(503, "Failed to process order")
        return {"message": "Order created successfully", "orderId": order.order_id}

    @app.post("/orders/webhook/payment-success", status_code=202)
    async def cmd_payment_success(req: PaymentWebhookRequest, request: Request):
        """Payment provider callback (simulated): emits PaymentSucceeded."""
        try:
            await commands.simulate_payment_success(request.app.state.router, req.order_id)
        except ValidationError as e:
            raise HTTPException(400, str(e))
        except TransientDependencyError:
            raise HTTPException(503, "Failed to record payment confirmation")
        return {"message": "Payment confirmation sent", "orderId": req.order_id}

    # ── Query Endpoints ──────────────────────────

    @app.get("/queries/orders")
    async def query_list_orders(request: Request):
        orders = await request.app.state.store.list_orders()
        return [o.to_json_dict() for o in orders]

    @app.get("/queries/orders/{order_id}")
    async def query_get_order(order_id: str, request: Request):
        try:
            order = await request.app.state.store.get(order_id)
        except OrderNotFoundError:
            raise HTTPException(404, "Order not found")
        return order.to_json_dict()

    @app.get("/health")
    async def health():
        return {"status": "ok", "service": "booking-service"}

    return app


app = create_app()
