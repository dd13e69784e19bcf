"""Performance normalization.

Turns one sub-producer's statement figures (or a manual override standing in
for them) into the totals used for tier qualification, the net figures used
for payment, and the bundle / product segments used for rate selection.
"""
import logging
from dataclasses import dataclass, field, replace
from decimal import Decimal
from typing import Dict, List, Optional, Tuple

from agencycomp.schemas.comp_plan import CompPlan
from agencycomp.schemas.payout import (
    BrokeredMetrics, ManualOverride, PayoutWarning, SelfGenMetrics, SubProducerMetrics,
)

logger = logging.getLogger(__name__)

ZERO = Decimal("0")

METRIC_FIELDS = ("premium", "items", "policies", "households", "points")


@dataclass(frozen=True)
class Segment:
    """Production for one bundle type or product."""
    name: str
    written_premium: Decimal = ZERO
    written_items: Decimal = ZERO
    net_premium: Decimal = ZERO
    net_items: Decimal = ZERO


@dataclass(frozen=True)
class NormalizedPerformance:
    code: Optional[str]
    source: str  # statement, manual_override, none

    written_premium: Decimal = ZERO
    written_items: Decimal = ZERO
    written_policies: Decimal = ZERO
    written_households: Decimal = ZERO
    written_points: Decimal = ZERO

    issued_premium: Decimal = ZERO
    issued_items: Decimal = ZERO
    issued_policies: Decimal = ZERO
    issued_households: Decimal = ZERO
    issued_points: Decimal = ZERO

    chargeback_premium: Decimal = ZERO
    chargeback_items: Decimal = ZERO
    chargeback_policies: Decimal = ZERO
    chargeback_households: Decimal = ZERO

    net_premium: Decimal = ZERO
    net_items: Decimal = ZERO
    net_policies: Decimal = ZERO
    net_households: Decimal = ZERO

    bundled_items: Decimal = ZERO
    monoline_items: Decimal = ZERO
    bundled_premium: Decimal = ZERO
    monoline_premium: Decimal = ZERO
    rollover_premium: Decimal = ZERO  # chargeback premium beyond written premium, carried forward

    bundle_segments: List[Segment] = field(default_factory=list)
    product_segments: List[Segment] = field(default_factory=list)
    bonus: Decimal = ZERO
    warnings: List[PayoutWarning] = field(default_factory=list)

    def total(self, metric: str, source: str = "written") -> Decimal:
        """Gross total for tier qualification, e.g. total('premium', 'issued')."""
        if metric not in METRIC_FIELDS:
            raise ValueError(f"Unknown tier metric: {metric}")
        return getattr(self, f"{source}_{metric}")

    @property
    def has_production(self) -> bool:
        figures = [getattr(self, f"{source}_{metric}") for source in ("written", "issued") for metric in METRIC_FIELDS]
        figures.append(self.chargeback_premium)
        figures.append(self.chargeback_items)
        return any(value > 0 for value in figures)

    @property
    def has_net_production(self) -> bool:
        return any(value > 0 for value in (self.net_premium, self.net_items, self.net_policies, self.net_households))


def normalize_bundle_type(bundle_type: Optional[str]) -> str:
    normalized = (bundle_type or "").strip().lower()
    if normalized in ("", "mono", "monoline", "mono line"):
        return "monoline"
    if normalized in ("standard", "std", "standard bundle"):
        return "standard"
    if normalized in ("preferred", "pref", "preferred bundle"):
        return "preferred"
    return normalized


class _Cleaner:
    """Clamps impossible negative inputs to zero and records a warning for each."""

    def __init__(self, team_member_id: Optional[int], code: Optional[str]):
        self.team_member_id = team_member_id
        self.code = code
        self.warnings: List[PayoutWarning] = []

    def warn(self, code: str, message: str):
        logger.warning(f"{code}: {message}")
        self.warnings.append(PayoutWarning(code=code, message=message, team_member_id=self.team_member_id))

    def value(self, raw, label: str) -> Decimal:
        if raw is None:
            return ZERO
        value = Decimal(raw)
        if not value.is_finite():
            self.warn("negative_value_clamped", f"{self.code}: {label} is not a number ({raw}); using 0")
            return ZERO
        if value < 0:
            self.warn("negative_value_clamped", f"{self.code}: {label} was {value}; clamped to 0")
            return ZERO
        return value

    def net(self, gross: Decimal, chargebacks: Decimal, label: str) -> Decimal:
        net = gross - chargebacks
        if net < 0:
            self.warn(
                "negative_net_clamped",
                f"{self.code}: net {label} was {net} (chargebacks exceed production); clamped to 0",
            )
            return ZERO
        return net


def _points_from_products(products: List[Segment], point_values: Dict[str, Decimal]) -> Decimal:
    weights = {name.strip().lower(): value for name, value in point_values.items()}
    return sum(
        (segment.written_items * weights.get(segment.name.strip().lower(), ZERO) for segment in products),
        ZERO,
    )


def normalize_performance(
    metrics: Optional[SubProducerMetrics],
    plan: CompPlan,
    override: Optional[ManualOverride] = None,
    team_member_id: Optional[int] = None,
) -> NormalizedPerformance:
    """Build totals, net figures and segments for one member.

    An override replaces the statement figures entirely; fields it leaves
    empty count as zero. Missing metrics produce an all-zero record.
    """
    if override is not None:
        return _from_override(override, plan, team_member_id)
    if metrics is None:
        return NormalizedPerformance(code=None, source="none")

    clean = _Cleaner(team_member_id, metrics.code)
    deduct = plan.chargeback_rule != "none"

    written = {m: clean.value(getattr(metrics, f"written_{m}"), f"written {m}") for m in METRIC_FIELDS}
    chargebacks = {
        m: clean.value(getattr(metrics, f"chargeback_{m}"), f"chargeback {m}") if deduct else ZERO
        for m in ("premium", "items", "policies", "households")
    }

    bundle_segments = []
    for row in metrics.by_bundle_type:
        name = normalize_bundle_type(row.bundle_type)
        premium = clean.value(row.premium_written, f"{name} premium")
        items = clean.value(row.items_written, f"{name} items")
        cb_premium = clean.value(row.premium_chargebacks, f"{name} chargeback premium") if deduct else ZERO
        cb_items = clean.value(row.chargeback_count, f"{name} chargeback count") if deduct else ZERO
        bundle_segments.append(Segment(
            name=name,
            written_premium=premium,
            written_items=items,
            net_premium=clean.net(premium, cb_premium, f"{name} premium"),
            net_items=clean.net(items, cb_items, f"{name} items"),
        ))

    product_segments = []
    for row in metrics.by_product:
        premium = clean.value(row.premium_written, f"{row.product} premium")
        items = clean.value(row.items_written, f"{row.product} items")
        cb_premium = clean.value(row.premium_chargebacks, f"{row.product} chargeback premium") if deduct else ZERO
        cb_items = clean.value(row.chargeback_count, f"{row.product} chargeback count") if deduct else ZERO
        product_segments.append(Segment(
            name=row.product,
            written_premium=premium,
            written_items=items,
            net_premium=clean.net(premium, cb_premium, f"{row.product} premium"),
            net_items=clean.net(items, cb_items, f"{row.product} items"),
        ))

    if metrics.written_points is None:
        written["points"] = _points_from_products(product_segments, plan.point_values)

    issued = {}
    for m in METRIC_FIELDS:
        raw = getattr(metrics, f"issued_{m}")
        issued[m] = written[m] if raw is None else clean.value(raw, f"issued {m}")

    bundled = [s for s in bundle_segments if s.name != "monoline"]
    monoline = [s for s in bundle_segments if s.name == "monoline"]

    return NormalizedPerformance(
        code=metrics.code,
        source="statement",
        **{f"written_{m}": written[m] for m in METRIC_FIELDS},
        **{f"issued_{m}": issued[m] for m in METRIC_FIELDS},
        **{f"chargeback_{m}": value for m, value in chargebacks.items()},
        net_premium=clean.net(written["premium"], chargebacks["premium"], "premium"),
        net_items=clean.net(written["items"], chargebacks["items"], "items"),
        net_policies=clean.net(written["policies"], chargebacks["policies"], "policies"),
        net_households=clean.net(written["households"], chargebacks["households"], "households"),
        rollover_premium=max(ZERO, chargebacks["premium"] - written["premium"]),
        bundled_items=sum((s.written_items for s in bundled), ZERO),
        monoline_items=sum((s.written_items for s in monoline), ZERO),
        bundled_premium=sum((s.written_premium for s in bundled), ZERO),
        monoline_premium=sum((s.written_premium for s in monoline), ZERO),
        bundle_segments=bundle_segments,
        product_segments=product_segments,
        warnings=clean.warnings,
    )


def _from_override(
    override: ManualOverride, plan: CompPlan, team_member_id: Optional[int]
) -> NormalizedPerformance:
    clean = _Cleaner(team_member_id, override.sub_producer_code)
    deduct = plan.chargeback_rule != "none"

    written = {m: clean.value(getattr(override, f"written_{m}"), f"override {m}") for m in METRIC_FIELDS}
    cb_premium = clean.value(override.chargeback_premium, "override chargeback premium") if deduct else ZERO
    cb_items = clean.value(override.chargeback_items, "override chargeback items") if deduct else ZERO

    bundled_items = clean.value(override.bundled_items, "override bundled items")
    if bundled_items > written["items"]:
        clean.warn(
            "negative_value_clamped",
            f"{override.sub_producer_code}: override bundled items ({bundled_items}) exceed "
            f"written items ({written['items']}); capped",
        )
        bundled_items = written["items"]

    return NormalizedPerformance(
        code=override.sub_producer_code,
        source="manual_override",
        **{f"written_{m}": written[m] for m in METRIC_FIELDS},
        **{f"issued_{m}": written[m] for m in METRIC_FIELDS},
        chargeback_premium=cb_premium,
        chargeback_items=cb_items,
        net_premium=clean.net(written["premium"], cb_premium, "premium"),
        net_items=clean.net(written["items"], cb_items, "items"),
        net_policies=written["policies"],
        net_households=written["households"],
        rollover_premium=max(ZERO, cb_premium - written["premium"]),
        bundled_items=bundled_items,
        monoline_items=written["items"] - bundled_items,
        bonus=clean.value(override.bonus, "override bonus"),
        warnings=clean.warnings,
    )


def fold_brokered(perf: NormalizedPerformance, brokered: BrokeredMetrics) -> NormalizedPerformance:
    """Add brokered production to the primary totals and net figures.

    Brokered premium first absorbs any chargeback deficit carried as rollover.
    """
    premium = max(ZERO, brokered.premium)
    items = max(ZERO, brokered.items)
    policies = max(ZERO, brokered.policies)
    households = max(ZERO, brokered.households)
    absorbed = min(perf.rollover_premium, premium)
    return replace(
        perf,
        written_premium=perf.written_premium + premium,
        written_items=perf.written_items + items,
        written_policies=perf.written_policies + policies,
        written_households=perf.written_households + households,
        issued_premium=perf.issued_premium + premium,
        issued_items=perf.issued_items + items,
        issued_policies=perf.issued_policies + policies,
        issued_households=perf.issued_households + households,
        net_premium=perf.net_premium + premium - absorbed,
        rollover_premium=perf.rollover_premium - absorbed,
        net_items=perf.net_items + items,
        net_policies=perf.net_policies + policies,
        net_households=perf.net_households + households,
    )


def clean_brokered(
    metrics: Optional[BrokeredMetrics], team_member_id: Optional[int] = None
) -> Tuple[Optional[BrokeredMetrics], List[PayoutWarning]]:
    """Brokered figures with negatives clamped to zero, plus a warning per clamp."""
    if metrics is None:
        return None, []
    clean = _Cleaner(team_member_id, "brokered")
    cleaned = BrokeredMetrics(**{
        m: clean.value(getattr(metrics, m), f"brokered {m}")
        for m in ("premium", "items", "policies", "households")
    })
    return cleaned, clean.warnings


def clean_self_gen(
    metrics: Optional[SelfGenMetrics], team_member_id: Optional[int] = None
) -> Tuple[Optional[SelfGenMetrics], List[PayoutWarning]]:
    """Self-gen counts with negatives clamped to zero; unreported totals stay None."""
    if metrics is None:
        return None, []
    clean = _Cleaner(team_member_id, "self-gen")
    cleaned = SelfGenMetrics(
        written_items=None if metrics.written_items is None else clean.value(metrics.written_items, "written items"),
        written_self_gen_items=clean.value(metrics.written_self_gen_items, "written self-gen items"),
        issued_items=None if metrics.issued_items is None else clean.value(metrics.issued_items, "issued items"),
        issued_self_gen_items=clean.value(metrics.issued_self_gen_items, "issued self-gen items"),
    )
    return cleaned, clean.warnings
