"""
Risk thresholds

The amount thresholds are the contract. The scoring model only contributes
the recommendation text; whatever level it proposes, the stored level comes
from here.
"""

from dataclasses import dataclass
from decimal import Decimal

from ..common.models import RiskLevel

HIGH_RISK_ABOVE = Decimal("2000")
VIP_ABOVE = Decimal("500")


@dataclass(frozen=True)
class RiskDecision:
    risk: RiskLevel
    is_vip: bool


def classify_amount(amount: Decimal | int | float | str) -> RiskDecision:
    """
    amount > 2000        → HIGH
    500 < amount ≤ 2000  → MEDIUM, VIP
    otherwise            → LOW
    """
    value = Decimal(str(amount))
    if value > HIGH_RISK_ABOVE:
        return RiskDecision(RiskLevel.HIGH, is_vip=False)
    if value > VIP_ABOVE:
        return RiskDecision(RiskLevel.MEDIUM, is_vip=True)
    return RiskDecision(RiskLevel.LOW, is_vip=False)
