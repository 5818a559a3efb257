"""
Scoring capability

The external model is reached through one operation, classify(order), which
returns the model's raw text. Decoding that text is a separate, strict step:
parse_scoring_response yields either a typed ScoringResponse or a
ParseFailure, never an exception.

  HttpScoringClient  → external model endpoint over HTTP (non-deterministic)
  RuleBasedScorer    → deterministic stand-in applying the amount thresholds
"""

import json
from dataclasses import dataclass
from typing import Protocol

import httpx
from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from ..common.errors import MalformedResponseError, TransientDependencyError
from ..common.events import OrderCreated
from ..common.models import RiskLevel
from .policy import classify_amount

PROMPT_TEMPLATE = """\
You are a fraud detection system. Analyze this order JSON:
{order}

Rules:
1. Amount > 2000 -> Risk HIGH.
2. Amount > 500 -> Risk MEDIUM (VIP).
3. Else -> Risk LOW.

Return ONLY JSON: {{ "risk": "LOW|MEDIUM|HIGH", "recommendation": "string", "vipStatus": boolean }}
"""


class ScoringCapability(Protocol):
    async def classify(self, order: OrderCreated) -> str: ...


# ── Response decoding ────────────────────────────


class ScoringResponse(BaseModel):
    """The only accepted shape. Extra keys or loose types are rejected."""

    model_config = ConfigDict(extra="forbid", strict=True)

    risk: RiskLevel
    recommendation: str
    vip_status: bool = Field(alias="vipStatus")


@dataclass(frozen=True)
class ParseFailure:
    raw: str
    error: str


def parse_scoring_response(raw: str | bytes) -> ScoringResponse | ParseFailure:
    text = raw.decode("utf-8", errors="replace") if isinstance(raw, bytes) else raw
    try:
        return ScoringResponse.model_validate_json(text)
    except PydanticValidationError as e:
        return ParseFailure(raw=text, error=str(e))


def order_summary(order: OrderCreated) -> dict:
    return order.model_dump(
        mode="json",
        by_alias=True,
        include={"order_id", "user_id", "ticket_type", "amount"},
    )


# ── Implementations ──────────────────────────────


class HttpScoringClient:
    """
    Calls a model gateway with {prompt, order} and returns the response body
    as the model's raw output.

    Timeouts, connection errors, 429 and 5xx are transient. Any other error
    status means the request itself was rejected, so it is reported as a
    malformed response instead of being retried forever.
    """

    def __init__(self, url: str, timeout: float = 10.0, client: httpx.AsyncClient | None = None):
        self.url = url
        self.timeout = timeout
        self._client = client

    async def classify(self, order: OrderCreated) -> str:
        summary = order_summary(order)
        payload = {
            "prompt": PROMPT_TEMPLATE.format(order=json.dumps(summary)),
            "order": summary,
        }
        try:
            if self._client is not None:
                resp = await self._client.post(self.url, json=payload, timeout=self.timeout)
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    resp = await client.post(self.url, json=payload)
        except (httpx.TimeoutException, httpx.TransportError) as e:
            raise TransientDependencyError(f"scoring call failed: {e!r}") from e

        if resp.status_code == 429 or resp.status_code >= 500:
            raise TransientDependencyError(f"scoring returned {resp.status_code}")
        if resp.status_code >= 400:
            raise MalformedResponseError(
                f"scoring rejected request ({resp.status_code}): {resp.text[:200]}"
            )
        return resp.text


class RuleBasedScorer:
    """Deterministic scorer: same order in, same JSON out."""

    RECOMMENDATIONS = {
        RiskLevel.HIGH: "Amount above 2000, hold for manual review before fulfilment.",
        RiskLevel.MEDIUM: "VIP-range purchase, fulfil with priority handling.",
        RiskLevel.LOW: "Regular purchase, no action needed.",
    }

    async def classify(self, order: OrderCreated) -> str:
        decision = classify_amount(order.amount)
        return json.dumps({
            "risk": decision.risk.value,
            "recommendation": self.RECOMMENDATIONS[decision.risk],
            "vipStatus": decision.is_vip,
        })
