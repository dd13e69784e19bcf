"""Base commission and self-gen modifiers.

Base commission = primary ladder rate applied per the plan's payout type,
with configured bundle-type / product segments priced at their own rates,
then scaled by the bundling multiplier. Self-gen modifiers then subtract a
penalty when a producer misses the self-gen requirement and add a bonus when
they clear the bonus threshold. The two are evaluated independently.
"""
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, Optional

from agencycomp.schemas.comp_plan import CommissionTier, CompPlan
from agencycomp.services.bundling import SegmentPricing, apply_rate, price_segments
from agencycomp.services.performance import NormalizedPerformance
from agencycomp.services.tiers import TierMatch, tier_at

ZERO = Decimal("0")
HUNDRED = Decimal("100")


@dataclass
class BaseCommission:
    tier: Optional[CommissionTier]
    tier_index: Optional[int]
    rate: Decimal
    primary_commission: Decimal  # primary formula over all net production
    pricing: SegmentPricing
    multiplier: Decimal
    commission: Decimal  # after segment pricing and the multiplier

    @property
    def pre_multiplier(self) -> Decimal:
        return self.pricing.commission


@dataclass
class ModifierResult:
    met_requirement: Optional[bool] = None
    penalty: Decimal = ZERO
    bonus: Decimal = ZERO
    kicker_amount: Decimal = ZERO
    details: Dict[str, Any] = field(default_factory=dict)


def compute_base_commission(
    plan: CompPlan,
    perf: NormalizedPerformance,
    tier_match: Optional[TierMatch],
    tier_metric_value: Decimal,
    multiplier: Decimal,
) -> BaseCommission:
    tier = tier_match.tier if tier_match else None
    rate = tier.commission_value if tier else ZERO
    primary = apply_rate(
        plan.payout_type,
        rate,
        premium=perf.net_premium,
        items=perf.net_items,
        policies=perf.net_policies,
        households=perf.net_households,
    )
    pricing = price_segments(plan, perf, tier_metric_value, primary)
    return BaseCommission(
        tier=tier,
        tier_index=tier_match.index if tier_match else None,
        rate=rate,
        primary_commission=primary,
        pricing=pricing,
        multiplier=multiplier,
        commission=pricing.commission * multiplier,
    )


def _recompute_at(
    plan: CompPlan,
    perf: NormalizedPerformance,
    base: BaseCommission,
    index: int,
    tier_metric_value: Decimal,
) -> Optional[BaseCommission]:
    """Base commission as if the producer had landed on another rung."""
    tier = tier_at(plan.tiers, index)
    if tier is None:
        return None
    return compute_base_commission(plan, perf, TierMatch(tier, index), tier_metric_value, base.multiplier)


def _unit_count(perf: NormalizedPerformance, unit: str) -> Decimal:
    if unit == "per_item":
        return perf.net_items
    if unit == "per_policy":
        return perf.net_policies
    if unit == "per_household":
        return perf.net_households
    raise ValueError(f"Unknown bonus unit: {unit}")


def apply_self_gen_modifiers(
    plan: CompPlan,
    perf: NormalizedPerformance,
    base: BaseCommission,
    self_gen_percent: Decimal,
    tier_metric_value: Decimal,
) -> ModifierResult:
    """Evaluate the self-gen requirement penalty and the self-gen bonus.

    `self_gen_percent` is a fraction; configured thresholds are percent units.
    """
    modifiers = plan.commission_modifiers
    percent_units = self_gen_percent * HUNDRED
    result = ModifierResult()

    requirement = modifiers.self_gen_requirement
    if requirement is not None and requirement.enabled:
        if percent_units < requirement.min_percent:
            result.met_requirement = False
            penalty = ZERO
            demoted_to = None
            if requirement.penalty_type == "percent_reduction":
                penalty = base.commission * requirement.value / HUNDRED
            elif requirement.penalty_type == "flat_reduction":
                penalty = requirement.value
            elif requirement.penalty_type == "tier_demotion":
                if base.tier_index is not None:
                    demoted = _recompute_at(plan, perf, base, base.tier_index - 1, tier_metric_value)
                    # Below the floor rung nothing is paid from the ladder
                    demoted_commission = demoted.commission if demoted else ZERO
                    demoted_to = demoted.tier_index if demoted else None
                    penalty = base.commission - demoted_commission
            result.penalty = min(max(ZERO, penalty), base.commission)
            result.details["penalty"] = {
                "type": requirement.penalty_type,
                "value": requirement.value,
                "min_percent": requirement.min_percent,
                "demoted_to_tier_index": demoted_to,
                "amount": result.penalty,
            }
        else:
            result.met_requirement = True

    bonus = modifiers.self_gen_bonus
    kicker = modifiers.self_gen_kicker
    # Chargebacks alone never earn a bonus
    can_earn_bonus = perf.has_net_production
    if bonus is not None and bonus.enabled:
        if can_earn_bonus and percent_units >= bonus.min_percent:
            amount = ZERO
            promoted_to = None
            if bonus.bonus_type == "percent_boost":
                amount = base.commission * bonus.value / HUNDRED
            elif bonus.bonus_type == "flat_bonus":
                amount = bonus.value
            elif bonus.bonus_type in ("per_item", "per_policy", "per_household"):
                amount = _unit_count(perf, bonus.bonus_type) * bonus.value
            elif bonus.bonus_type == "tier_promotion":
                target = base.tier_index + 1 if base.tier_index is not None else 0
                promoted = _recompute_at(plan, perf, base, target, tier_metric_value)
                if promoted is not None:
                    promoted_to = promoted.tier_index
                    amount = max(ZERO, promoted.commission - base.commission)
            result.bonus = amount
            result.details["bonus"] = {
                "type": bonus.bonus_type,
                "value": bonus.value,
                "min_percent": bonus.min_percent,
                "promoted_to_tier_index": promoted_to,
                "amount": amount,
            }
    elif kicker is not None and kicker.enabled and can_earn_bonus and percent_units >= kicker.min_self_gen_percent:
        result.kicker_amount = _unit_count(perf, kicker.type) * kicker.amount
        result.bonus = result.kicker_amount
        result.details["kicker"] = {
            "type": kicker.type,
            "amount_per_unit": kicker.amount,
            "min_self_gen_percent": kicker.min_self_gen_percent,
            "amount": result.kicker_amount,
        }

    return result
