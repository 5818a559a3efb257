"""
Order Store

The only shared mutable state in the pipeline. Writers never replace the
whole record: every update is an identity-addressed UPDATE that names only the
columns of its own field group, so the Risk Classifier and the Payment
Confirmer can race on the same order without losing each other's writes.

  ┌──────────────────┐  INSERT (create-if-absent)
  │ Booking Ingest   │ ───────────────────────────┐
  └──────────────────┘                            ▼
  ┌──────────────────┐  UPDATE ai_* only     ┌─────────┐
  │ Risk Classifier  │ ────────────────────▶ │ orders  │
  └──────────────────┘                       └─────────┘
  ┌──────────────────┐  UPDATE status only        ▲
  │ Payment Confirmer│ ───────────────────────────┘
  └──────────────────┘
"""

from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    MetaData,
    Numeric,
    String,
    Table,
    Text,
    delete,
    insert,
    select,
    update,
)
from sqlalchemy.exc import DataError, IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker

from .errors import (
    ConflictError,
    OrderNotFoundError,
    TransientDependencyError,
    ValidationError,
)
from .models import Order, OrderStatus, RiskAssessment

metadata = MetaData()

orders = Table(
    "orders",
    metadata,
    Column("order_id", String(64), primary_key=True),
    Column("user_id", String(255), nullable=False),
    Column("ticket_type", String(64), nullable=False),
    Column("amount", Numeric(12, 2), nullable=False),
    Column("status", String(16), nullable=False),
    Column("created_at", DateTime(timezone=True), nullable=False),
    Column("ai_risk", String(16)),
    Column("ai_recommendation", Text),
    Column("is_vip", Boolean),
    Column("ai_analyzed_at", DateTime(timezone=True)),
    CheckConstraint("amount > 0", name="ck_orders_amount_positive"),
    CheckConstraint("status IN ('PENDING', 'PAID')", name="ck_orders_status"),
)

# Field groups. A single UPDATE never mixes columns from two groups.
STATUS_GROUP = ("status",)
RISK_GROUP = ("ai_risk", "ai_recommendation", "is_vip", "ai_analyzed_at")


def _utc(value: datetime | None) -> datetime | None:
    # SQLite keeps no offset; every timestamp is stored as UTC wall time.
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _to_order(row) -> Order:
    record = dict(row._mapping)
    record["created_at"] = _utc(record["created_at"])
    record["ai_analyzed_at"] = _utc(record["ai_analyzed_at"])
    return Order.model_validate(record)


async def init_schema(engine: AsyncEngine) -> None:
    """Create the orders table if it does not exist yet."""
    async with engine.begin() as conn:
        await conn.run_sync(metadata.create_all)


class OrderStore:
    def __init__(self, session_factory: async_sessionmaker):
        self._sessions = session_factory

    # ── Creation ─────────────────────────────────────

    async def create(self, order: Order) -> Order:
        """
        Insert a new record. Fails with ConflictError if the identity is
        already taken; the existing record is left untouched. Values the
        table constraints reject raise ValidationError.
        """
        values = order.model_dump(include={
            "order_id", "user_id", "ticket_type", "amount", "status", "created_at",
        })
        values["status"] = order.status.value
        values["created_at"] = _utc(order.created_at)
        try:
            async with self._sessions() as session:
                await session.execute(insert(orders).values(**values))
                await session.commit()
        except IntegrityError as e:
            if await self._exists(order.order_id):
                raise ConflictError(f"order {order.order_id} already exists") from e
            raise ValidationError(f"order {order.order_id} rejected by the store: {e.orig}") from e
        except DataError as e:
            raise ValidationError(f"order {order.order_id} rejected by the store: {e.orig}") from e
        except (SQLAlchemyError, OSError) as e:
            raise TransientDependencyError(f"order store unavailable: {e}") from e
        return order

    async def delete_pending(self, order_id: str) -> bool:
        """
        Compensating delete for a creation whose event could not be
        published. Only removes a record nobody else has touched yet.
        """
        stmt = delete(orders).where(
            orders.c.order_id == order_id,
            orders.c.status == OrderStatus.PENDING.value,
            orders.c.ai_risk.is_(None),
        )
        result = await self._execute(stmt)
        return result.rowcount > 0

    # ── Field-group updates ──────────────────────────

    async def update_risk_group(
        self,
        order_id: str,
        assessment: RiskAssessment,
        analyzed_at: datetime,
    ) -> None:
        """
        Overwrite the risk group as one unit. Re-applying the same assessment
        leaves the group unchanged apart from ai_analyzed_at.
        """
        await self._update_group(order_id, RISK_GROUP, {
            "ai_risk": assessment.risk.value,
            "ai_recommendation": assessment.recommendation,
            "is_vip": assessment.is_vip,
            "ai_analyzed_at": _utc(analyzed_at),
        })

    async def mark_paid(self, order_id: str) -> None:
        """
        PENDING -> PAID. Matching on both states makes a repeated confirmation
        a no-op rather than an error; no other status can be written.
        """
        await self._update_group(
            order_id, STATUS_GROUP, {"status": OrderStatus.PAID.value},
            orders.c.status.in_([OrderStatus.PENDING.value, OrderStatus.PAID.value]),
        )

    async def _update_group(self, order_id: str, group: tuple, values: dict, *conditions) -> None:
        if not set(values) <= set(group):
            raise ValueError(f"update mixes field groups: {sorted(set(values) - set(group))}")
        stmt = (
            update(orders)
            .where(orders.c.order_id == order_id, *conditions)
            .values(**values)
        )
        result = await self._execute(stmt)
        if result.rowcount == 0:
            raise OrderNotFoundError(order_id)

    # ── Reads ────────────────────────────────────────

    async def get(self, order_id: str) -> Order:
        rows = await self._fetch(select(orders).where(orders.c.order_id == order_id))
        if not rows:
            raise OrderNotFoundError(order_id)
        return _to_order(rows[0])

    async def list_orders(self) -> list[Order]:
        rows = await self._fetch(select(orders).order_by(orders.c.created_at.desc()))
        return [_to_order(row) for row in rows]

    async def _exists(self, order_id: str) -> bool:
        rows = await self._fetch(select(orders.c.order_id).where(orders.c.order_id == order_id))
        return bool(rows)

    async def _execute(self, stmt):
        try:
            async with self._sessions() as session:
                result = await session.execute(stmt)
                await session.commit()
                return result
        except (SQLAlchemyError, OSError) as e:
            raise TransientDependencyError(f"order store unavailable: {e}") from e

    async def _fetch(self, stmt) -> list:
        try:
            async with self._sessions() as session:
                result = await session.execute(stmt)
                return result.fetchall()
        except (SQLAlchemyError, OSError) as e:
            raise TransientDependencyError(f"order store unavailable: {e}") from e
