"""Brokered business commission.

Business placed with carriers outside the primary book is paid on its own
schedule: a flat rate per item, a percent of premium, or a separate ladder
resolved against brokered production only.
"""
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from agencycomp.schemas.comp_plan import CompPlan
from agencycomp.schemas.payout import BrokeredMetrics
from agencycomp.services.bundling import apply_rate
from agencycomp.services.tiers import resolve_tier

ZERO = Decimal("0")


@dataclass(frozen=True)
class BrokeredResult:
    premium: Decimal
    items: Decimal
    payout_type: Optional[str]
    rate: Optional[Decimal]
    tier_index: Optional[int]
    tier_threshold_met: Optional[Decimal]
    commission: Decimal
    folded: bool


def calculate_brokered_commission(plan: CompPlan, metrics: Optional[BrokeredMetrics]) -> BrokeredResult:
    """Independent brokered commission for one member.

    Plans that count brokered production toward the primary tier pay it
    through the primary base instead, so the result here is zero.
    """
    premium = max(ZERO, metrics.premium) if metrics else ZERO
    items = max(ZERO, metrics.items) if metrics else ZERO
    payout_type = plan.brokered_payout_type

    if plan.brokered_counts_toward_tier:
        return BrokeredResult(premium, items, payout_type, None, None, None, ZERO, folded=True)
    if payout_type is None or (premium == 0 and items == 0):
        return BrokeredResult(premium, items, payout_type, None, None, None, ZERO, folded=False)

    if payout_type == "tiered":
        value = premium if plan.brokered_tier_metric == "premium" else items
        match = resolve_tier(value, plan.brokered_tiers)
        if match is None:
            return BrokeredResult(premium, items, payout_type, None, None, None, ZERO, folded=False)
        rate = match.tier.commission_value
        formula = "percent_of_premium" if plan.brokered_tier_metric == "premium" else "flat_per_item"
        commission = apply_rate(formula, rate, premium=premium, items=items)
        return BrokeredResult(
            premium, items, payout_type, rate, match.index, match.tier.min_threshold, commission, folded=False
        )

    rate = plan.brokered_flat_rate or ZERO
    commission = apply_rate(payout_type, rate, premium=premium, items=items)
    return BrokeredResult(premium, items, payout_type, rate, None, None, commission, folded=False)
