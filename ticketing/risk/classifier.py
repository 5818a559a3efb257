"""
Risk Classifier: consumer of the risk-analysis channel

Per OrderCreated event:

  1. decode payload                   undecodable → SKIP
  2. call scoring (bounded timeout)   timeout / transport error → RETRY
  3. strict parse of the response     malformed → SKIP (never redelivered)
  4. level from the amount policy
  5. write the risk group             store down → RETRY, no such order → SKIP
  6. HIGH → one alert                 alert failure never fails the event

Every step is safe to repeat: a redelivered event recomputes the same
assessment and overwrites the group with an equivalent value.
"""

import asyncio
import logging

from pydantic import ValidationError as PydanticValidationError

from ..alerts.dispatcher import AlertDispatcher
from ..common.errors import (
    MalformedResponseError,
    OrderNotFoundError,
    TransientDependencyError,
)
from ..common.events import EventEnvelope, OrderCreated, utcnow
from ..common.models import RiskAssessment, RiskLevel
from ..common.order_store import OrderStore
from ..common.subscriber import HandlerResult
from .policy import classify_amount
from .scoring import ParseFailure, ScoringCapability, parse_scoring_response

logger = logging.getLogger(__name__)


class RiskClassifier:
    def __init__(
        self,
        store: OrderStore,
        scorer: ScoringCapability,
        alerts: AlertDispatcher,
        scoring_timeout: float = 10.0,
    ):
        self.store = store
        self.scorer = scorer
        self.alerts = alerts
        self.scoring_timeout = scoring_timeout

    async def handle(self, envelope: EventEnvelope) -> HandlerResult:
        try:
            order = OrderCreated.model_validate(envelope.detail)
        except PydanticValidationError as e:
            logger.warning("OrderCreated %s missing order fields: %s", envelope.event_id, e)
            return HandlerResult.skip("undecodable OrderCreated payload")

        logger.info("Analyzing order %s (amount=%s)", order.order_id, order.amount)

        # ── Scoring ───────────────────────────────
        try:
            raw = await asyncio.wait_for(
                self.scorer.classify(order), timeout=self.scoring_timeout
            )
        except asyncio.TimeoutError:
            logger.warning("Scoring timed out for %s", order.order_id)
            return HandlerResult.retry("scoring timed out")
        except TransientDependencyError as e:
            logger.warning("Scoring unavailable for %s: %s", order.order_id, e)
            return HandlerResult.retry(str(e))
        except MalformedResponseError as e:
            logger.error("Scoring rejected %s: %s", order.order_id, e)
            return HandlerResult.skip(str(e))

        parsed = parse_scoring_response(raw)
        if isinstance(parsed, ParseFailure):
            logger.error(
                "Unparseable scoring output for %s, not analyzed: %r",
                order.order_id, parsed.raw[:200],
            )
            return HandlerResult.skip("malformed scoring response")

        decision = classify_amount(order.amount)
        if parsed.risk is not decision.risk:
            logger.warning(
                "Model proposed %s for %s, policy says %s",
                parsed.risk.value, order.order_id, decision.risk.value,
            )
        assessment = RiskAssessment(
            risk=decision.risk,
            recommendation=parsed.recommendation,
            is_vip=decision.is_vip,
        )

        # ── Store ─────────────────────────────────
        try:
            await self.store.update_risk_group(order.order_id, assessment, utcnow())
        except OrderNotFoundError:
            logger.error("Order %s not found, risk not recorded", order.order_id)
            return HandlerResult.skip("order not found")
        except TransientDependencyError as e:
            logger.warning("Risk write for %s failed: %s", order.order_id, e)
            return HandlerResult.retry(str(e))

        logger.info("Order %s classified %s", order.order_id, assessment.risk.value)

        # ── Alert ─────────────────────────────────
        if assessment.risk is RiskLevel.HIGH:
            await self.alerts.dispatch(order.order_id, assessment.recommendation, order.amount)

        return HandlerResult.success()
