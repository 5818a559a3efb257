"""
Risk Analysis Service: FastAPI entry point

Consumes the risk-analysis channel. Scoring goes to SCORING_URL when set and
to the rule-based scorer otherwise; alerts go to NOTIFY_WEBHOOK_URL or the log.
"""

import redis.asyncio as aioredis

from ..alerts.dispatcher import AlertDispatcher, LogNotifier, WebhookNotifier
from ..common.config import Settings
from ..common.event_router import RISK_ANALYSIS_CHANNEL
from ..common.order_store import OrderStore
from ..common.service import consumer_app
from .classifier import RiskClassifier
from .scoring import HttpScoringClient, RuleBasedScorer


def build_classifier(
    settings: Settings, store: OrderStore, redis: aioredis.Redis
) -> RiskClassifier:
    if settings.scoring_url:
        scorer = HttpScoringClient(settings.scoring_url, timeout=settings.scoring_timeout)
    else:
        scorer = RuleBasedScorer()

    if settings.notify_webhook_url:
        notifier = WebhookNotifier(settings.notify_webhook_url)
    else:
        notifier = LogNotifier()

    alerts = AlertDispatcher(
        notifier,
        settings.alert_email,
        redis=redis,
        dedupe_ttl=settings.alert_dedupe_ttl,
        key_prefix=settings.stream_prefix,
    )
    return RiskClassifier(store, scorer, alerts, scoring_timeout=settings.scoring_timeout)


app = consumer_app(
    "Risk Analysis Service",
    "risk-service",
    RISK_ANALYSIS_CHANNEL,
    lambda settings, store, redis: build_classifier(settings, store, redis).handle,
)
