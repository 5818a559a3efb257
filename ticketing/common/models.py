"""
Order record

The order is the only persisted entity. It has two field groups with disjoint
writers:

  creation + status   Booking Ingest (insert), Payment Confirmer (status)
  risk group          Risk Classifier (ai_risk, ai_recommendation,
                      is_vip, ai_analyzed_at)
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class OrderStatus(str, Enum):
    PENDING = "PENDING"
    PAID = "PAID"


class RiskLevel(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"


class RiskAssessment(BaseModel):
    """The risk field group. Always written as one unit."""

    risk: RiskLevel
    recommendation: str
    is_vip: bool


class Order(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    order_id: str = Field(alias="orderId")
    user_id: str = Field(alias="userId")
    ticket_type: str = Field(alias="ticketType")
    amount: Decimal
    status: OrderStatus = OrderStatus.PENDING
    created_at: datetime = Field(alias="createdAt")
    ai_risk: RiskLevel | None = Field(default=None, alias="aiRisk")
    ai_recommendation: str | None = Field(default=None, alias="aiRecommendation")
    is_vip: bool | None = Field(default=None, alias="isVip")
    ai_analyzed_at: datetime | None = Field(default=None, alias="aiAnalyzedAt")

    def to_json_dict(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)
