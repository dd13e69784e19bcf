"""Bundling analysis and segment pricing.

Bundled items are items sold to households carrying more than one line
(standard / preferred bundles); everything else is monoline. The bundled
share selects a multiplier, and per bundle type or per product rates can
replace the primary ladder rate for the segments they configure.
"""
from dataclasses import dataclass, field
from decimal import Decimal
from typing import List, Optional, Sequence, Tuple

from agencycomp.core.config import settings
from agencycomp.schemas.comp_plan import BundlingThreshold, CompPlan
from agencycomp.schemas.payout import SegmentCommission
from agencycomp.services.performance import NormalizedPerformance, Segment, normalize_bundle_type
from agencycomp.services.tiers import resolve_tier

ZERO = Decimal("0")
HUNDRED = Decimal("100")


def apply_rate(
    payout_type: str,
    rate: Decimal,
    premium: Decimal = ZERO,
    items: Decimal = ZERO,
    policies: Decimal = ZERO,
    households: Decimal = ZERO,
) -> Decimal:
    """Commission for a payout type: percent of premium or a flat amount per unit."""
    if payout_type == "percent_of_premium":
        return premium * rate / HUNDRED
    if payout_type == "flat_per_item":
        return items * rate
    if payout_type == "flat_per_policy":
        return policies * rate
    if payout_type == "flat_per_household":
        return households * rate
    raise ValueError(f"Unknown payout type: {payout_type}")


def bundling_percent(perf: NormalizedPerformance, source: str = "written") -> Decimal:
    """Bundled share of the member's total items as a fraction in [0, 1]; 0 when there are no items.

    The denominator is the item total, not the breakdown rows, so a statement
    that lists only its bundled rows does not read as fully bundled.
    """
    total = perf.total("items", source)
    if total <= 0:
        return ZERO
    return min(Decimal("1"), max(ZERO, perf.bundled_items / total))


def resolve_multiplier(
    percent: Decimal, thresholds: Sequence[BundlingThreshold]
) -> Tuple[Decimal, Optional[BundlingThreshold]]:
    """Multiplier of the highest threshold whose min_percent <= percent.

    `percent` is a fraction, thresholds are in percent units. Same inclusive
    lower bound rule as tier resolution; nothing qualifying means the default
    multiplier.
    """
    percent_units = percent * HUNDRED
    match = None
    for threshold in sorted(thresholds, key=lambda t: t.min_percent):
        if threshold.min_percent <= percent_units:
            match = threshold
        else:
            break
    if match is None:
        return Decimal(str(settings.DEFAULT_BUNDLING_MULTIPLIER)), None
    return match.multiplier, match


def find_duplicate_multiplier_thresholds(thresholds: Sequence[BundlingThreshold]) -> List[Decimal]:
    seen = set()
    duplicates = []
    for threshold in thresholds:
        if threshold.min_percent in seen and threshold.min_percent not in duplicates:
            duplicates.append(threshold.min_percent)
        seen.add(threshold.min_percent)
    return sorted(duplicates)


@dataclass
class SegmentPricing:
    mode: str  # product, bundle_type or primary
    commission: Decimal = ZERO
    bundle_segments: List[SegmentCommission] = field(default_factory=list)
    product_segments: List[SegmentCommission] = field(default_factory=list)


def _share(part: Decimal, whole: Decimal) -> Decimal:
    if whole <= 0:
        return ZERO
    return min(Decimal("1"), max(ZERO, part / whole))


def _price(
    segments: List[Segment],
    rates: dict,
    perf: NormalizedPerformance,
    plan: CompPlan,
    primary_commission: Decimal,
) -> Tuple[Decimal, List[SegmentCommission]]:
    """Price configured segments at their own rate; the rest share the primary commission.

    `rates` maps segment name -> (payout_type, rate). Production not covered by
    a configured segment is paid from the primary formula, pro-rated by net
    premium on percent-of-premium plans and by net items otherwise.
    """
    by_premium = plan.payout_type == "percent_of_premium"
    net_total = perf.net_premium if by_premium else perf.net_items

    total = ZERO
    configured_net = ZERO
    priced = []
    for segment in segments:
        rate_config = rates.get(segment.name)
        if rate_config is None:
            continue
        payout_type, rate = rate_config
        commission = apply_rate(payout_type, rate, premium=segment.net_premium, items=segment.net_items)
        configured_net += segment.net_premium if by_premium else segment.net_items
        total += commission
        priced.append(SegmentCommission(
            segment=segment.name, configured=True, payout_type=payout_type, rate=rate,
            net_premium=segment.net_premium, net_items=segment.net_items, commission=commission,
        ))

    remainder_share = _share(max(ZERO, net_total - configured_net), net_total)
    total += primary_commission * remainder_share

    for segment in segments:
        if segment.name in rates:
            continue
        segment_net = segment.net_premium if by_premium else segment.net_items
        priced.append(SegmentCommission(
            segment=segment.name, configured=False, payout_type=plan.payout_type,
            net_premium=segment.net_premium, net_items=segment.net_items,
            commission=primary_commission * _share(segment_net, net_total),
        ))
    return total, priced


def price_segments(
    plan: CompPlan,
    perf: NormalizedPerformance,
    tier_metric_value: Decimal,
    primary_commission: Decimal,
) -> SegmentPricing:
    """Commission before the bundling multiplier.

    Product rates win over bundle-type configs; with neither (or no matching
    breakdown) the primary commission stands alone.
    """
    if plan.product_rates and perf.product_segments:
        rates = {}
        configured = {name.strip().lower(): cfg for name, cfg in plan.product_rates.items()}
        for segment in perf.product_segments:
            cfg = configured.get(segment.name.strip().lower())
            if cfg is not None:
                rates[segment.name] = (cfg.payout_type, cfg.rate)
        commission, priced = _price(perf.product_segments, rates, perf, plan, primary_commission)
        return SegmentPricing(mode="product", commission=commission, product_segments=priced)

    enabled = {
        normalize_bundle_type(name): cfg for name, cfg in plan.bundle_configs.items() if cfg.enabled
    }
    if enabled and perf.bundle_segments:
        rates = {}
        for segment in perf.bundle_segments:
            cfg = enabled.get(segment.name)
            if cfg is None:
                continue
            if cfg.tiers:
                match = resolve_tier(tier_metric_value, cfg.tiers)
                rates[segment.name] = (cfg.payout_type, match.tier.commission_value if match else ZERO)
            else:
                rates[segment.name] = (cfg.payout_type, cfg.rate)
        commission, priced = _price(perf.bundle_segments, rates, perf, plan, primary_commission)
        return SegmentPricing(mode="bundle_type", commission=commission, bundle_segments=priced)

    return SegmentPricing(mode="primary", commission=primary_commission)
