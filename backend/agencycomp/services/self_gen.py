"""Self-generated business share.

Self-gen attribution (which sales came from the producer's own prospecting
rather than agency-provided leads) is computed outside the engine from lead
sources. This module only turns those counts into the percentage a plan's
modifiers are evaluated against.
"""
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from agencycomp.schemas.comp_plan import CompPlan
from agencycomp.schemas.payout import SelfGenMetrics

ZERO = Decimal("0")


@dataclass(frozen=True)
class SelfGenResult:
    self_gen_items: Decimal
    total_items: Decimal
    self_gen_percent: Decimal  # fraction in [0, 1]
    basis: str  # written or issued


def self_gen_basis(plan: CompPlan) -> str:
    requirement = plan.commission_modifiers.self_gen_requirement
    if requirement is not None and requirement.source:
        return requirement.source
    return plan.tier_metric_source


def classify_self_gen(
    metrics: Optional[SelfGenMetrics],
    basis: str,
    fallback_total_items: Decimal = ZERO,
) -> SelfGenResult:
    """Self-gen share for one member on the given basis.

    The denominator comes from the self-gen metrics when supplied, else from
    the member's own item total. A zero denominator yields 0, never NaN.
    """
    if metrics is None:
        return SelfGenResult(ZERO, max(ZERO, fallback_total_items), ZERO, basis)

    if basis == "issued":
        self_gen_items, total_items = metrics.issued_self_gen_items, metrics.issued_items
    else:
        self_gen_items, total_items = metrics.written_self_gen_items, metrics.written_items
    if total_items is None:
        total_items = fallback_total_items

    self_gen_items = max(ZERO, self_gen_items)
    total_items = max(ZERO, total_items)
    if total_items == 0:
        return SelfGenResult(self_gen_items, total_items, ZERO, basis)

    percent = min(Decimal("1"), self_gen_items / total_items)
    return SelfGenResult(self_gen_items, total_items, percent, basis)
