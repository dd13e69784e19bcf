"""Payout calculation for a period.

calculate_member_payout() turns one member's production and plan into a
PayoutCalculation; calculate_all_payouts() runs it over the whole roster.

Order of evaluation for one member:
1. Normalize statement figures (or the manual override)
2. Fold brokered production into the primary totals when the plan says so
3. Resolve the primary tier on the plan's metric (written or issued)
4. Base commission, segment rates and bundling multiplier
5. Self-gen penalty and bonus
6. Independent brokered commission
7. Sum, then round once (half-up) to currency precision
8. Snapshot every intermediate value for audit

Per-member problems never abort a batch; they become warnings.
"""
import logging
from dataclasses import asdict, is_dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from agencycomp.core.config import settings
from agencycomp.schemas.comp_plan import CompPlan, CompPlanAssignment, TeamMember
from agencycomp.schemas.payout import (
    BrokeredMetrics, ManualOverride, PayoutBatchResult, PayoutCalculation,
    PayoutWarning, SelfGenMetrics, SubProducerMetrics,
)
from agencycomp.services.brokered import calculate_brokered_commission
from agencycomp.services.bundling import (
    bundling_percent, find_duplicate_multiplier_thresholds, resolve_multiplier,
)
from agencycomp.services.modifiers import (
    ModifierResult, apply_self_gen_modifiers, compute_base_commission,
)
from agencycomp.services.performance import (
    clean_brokered, clean_self_gen, fold_brokered, normalize_performance,
)
from agencycomp.services.self_gen import classify_self_gen, self_gen_basis
from agencycomp.services.tiers import find_duplicate_thresholds, resolve_tier, tier_progress

logger = logging.getLogger(__name__)

ZERO = Decimal("0")


def round_currency(value: Decimal) -> Decimal:
    quantum = Decimal(1).scaleb(-settings.CURRENCY_DECIMAL_PLACES)
    return value.quantize(quantum, rounding=ROUND_HALF_UP)


def _json_safe(value: Any) -> Any:
    """Snapshot values as JSON-storable data; Decimals keep full precision as strings."""
    if isinstance(value, Decimal):
        return str(value)
    if is_dataclass(value):
        return _json_safe(asdict(value))
    if hasattr(value, "model_dump"):
        return _json_safe(value.model_dump())
    if isinstance(value, Mapping):
        return {str(k): _json_safe(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_json_safe(v) for v in value]
    return value


def _warning(code: str, message: str, team_member_id: Optional[int] = None) -> PayoutWarning:
    logger.warning(f"{code}: {message}")
    return PayoutWarning(code=code, message=message, team_member_id=team_member_id)


def validate_plan(plan: CompPlan) -> List[PayoutWarning]:
    """Configuration problems that have a deterministic fallback but should be fixed."""
    warnings = []
    ladders = [("tiers", plan.tiers), ("brokered_tiers", plan.brokered_tiers)]
    ladders += [(f"bundle_configs.{name}.tiers", cfg.tiers) for name, cfg in sorted(plan.bundle_configs.items())]
    for label, ladder in ladders:
        for threshold in find_duplicate_thresholds(ladder):
            warnings.append(_warning(
                "duplicate_tier_threshold",
                f"Plan '{plan.name}' ({plan.id}) has duplicate {label} threshold {threshold}; "
                f"the later rung wins",
            ))
    for threshold in find_duplicate_multiplier_thresholds(plan.bundling_multipliers.thresholds):
        warnings.append(_warning(
            "duplicate_tier_threshold",
            f"Plan '{plan.name}' ({plan.id}) has duplicate bundling threshold {threshold}%; "
            f"the later multiplier wins",
        ))

    modifiers = plan.commission_modifiers
    if (
        modifiers.self_gen_bonus is not None and modifiers.self_gen_bonus.enabled
        and modifiers.self_gen_kicker is not None and modifiers.self_gen_kicker.enabled
    ):
        warnings.append(_warning(
            "self_gen_kicker_ignored",
            f"Plan '{plan.name}' ({plan.id}) enables both self_gen_bonus and the legacy "
            f"self_gen_kicker; only self_gen_bonus is applied",
        ))
    return warnings


def calculate_member_payout(
    member: TeamMember,
    plan: CompPlan,
    performance: Optional[SubProducerMetrics],
    self_gen: Optional[SelfGenMetrics],
    brokered: Optional[BrokeredMetrics],
    assignment: Optional[CompPlanAssignment],
    month: int,
    year: int,
    override: Optional[ManualOverride] = None,
) -> Tuple[Optional[PayoutCalculation], List[PayoutWarning]]:
    """Payout for one member, plus any warnings raised while computing it.

    Returns (None, warnings) when the member has no active assignment. A
    member with no production gets an all-zero record.
    """
    if assignment is None or assignment.end_date is not None:
        return None, [_warning(
            "no_active_assignment",
            f"{member.name} ({member.id}) has no active comp plan assignment; excluded",
            member.id,
        )]
    if assignment.comp_plan_id != plan.id:
        raise ValueError(
            f"Assignment for member {member.id} references plan {assignment.comp_plan_id}, not {plan.id}"
        )

    perf = normalize_performance(performance, plan, override, member.id)
    brokered, brokered_warnings = clean_brokered(brokered, member.id)
    self_gen, self_gen_warnings = clean_self_gen(self_gen, member.id)
    warnings = perf.warnings + brokered_warnings + self_gen_warnings

    folded = plan.brokered_counts_toward_tier and brokered is not None
    if folded:
        perf = fold_brokered(perf, brokered)

    tier_metric_value = perf.total(plan.tier_metric, plan.tier_metric_source)
    tier_match = resolve_tier(tier_metric_value, plan.tiers) if perf.has_production else None

    bundle_pct = bundling_percent(perf)
    multiplier, multiplier_threshold = resolve_multiplier(bundle_pct, plan.bundling_multipliers.thresholds)

    base = compute_base_commission(plan, perf, tier_match, tier_metric_value, multiplier)

    basis = self_gen_basis(plan)
    self_gen_result = classify_self_gen(self_gen, basis, perf.total("items", basis))
    if perf.has_production:
        modifiers = apply_self_gen_modifiers(plan, perf, base, self_gen_result.self_gen_percent, tier_metric_value)
    else:
        modifiers = ModifierResult(details={"skipped": "no production"})

    brokered_result = calculate_brokered_commission(plan, brokered)

    bonus_amount = perf.bonus
    unrounded = (
        base.commission
        - modifiers.penalty
        + modifiers.bonus
        + brokered_result.commission
        + bonus_amount
    )
    total_payout = round_currency(unrounded)

    snapshot = _json_safe({
        "inputs": {
            "source": perf.source,
            "sub_producer_code": perf.code,
            "comp_plan_id": plan.id,
            "payout_type": plan.payout_type,
            "tier_metric": plan.tier_metric,
            "tier_metric_source": plan.tier_metric_source,
            "chargeback_rule": plan.chargeback_rule,
        },
        "performance": {
            "written": {m: perf.total(m, "written") for m in ("premium", "items", "policies", "households", "points")},
            "issued": {m: perf.total(m, "issued") for m in ("premium", "items", "policies", "households", "points")},
            "chargebacks": {
                "premium": perf.chargeback_premium,
                "items": perf.chargeback_items,
                "policies": perf.chargeback_policies,
                "households": perf.chargeback_households,
            },
            "net": {
                "premium": perf.net_premium,
                "items": perf.net_items,
                "policies": perf.net_policies,
                "households": perf.net_households,
            },
            "rollover_premium": perf.rollover_premium,
            "bundled_items": perf.bundled_items,
            "monoline_items": perf.monoline_items,
            "has_production": perf.has_production,
        },
        "tier": {
            "metric_value": tier_metric_value,
            "index": base.tier_index,
            "threshold": base.tier.min_threshold if base.tier else None,
            "rate": base.rate,
            "ladder": [[t.min_threshold, t.commission_value] for t in plan.tiers],
        },
        "bundling": {
            "percent": bundle_pct,
            "multiplier": multiplier,
            "threshold": multiplier_threshold.min_percent if multiplier_threshold else None,
        },
        "base": {
            "primary_commission": base.primary_commission,
            "pricing_mode": base.pricing.mode,
            "pre_multiplier": base.pre_multiplier,
            "multiplier": base.multiplier,
            "commission": base.commission,
            "bundle_segments": base.pricing.bundle_segments,
            "product_segments": base.pricing.product_segments,
        },
        "self_gen": {
            "basis": self_gen_result.basis,
            "items": self_gen_result.self_gen_items,
            "total_items": self_gen_result.total_items,
            "percent": self_gen_result.self_gen_percent,
            "met_requirement": modifiers.met_requirement,
            "penalty": modifiers.penalty,
            "bonus": modifiers.bonus,
            "modifiers": modifiers.details,
        },
        "brokered": brokered_result,
        "bonus_amount": bonus_amount,
        "total_before_rounding": unrounded,
        "total_payout": total_payout,
        "warnings": [w.code for w in warnings],
    })

    payout = PayoutCalculation(
        team_member_id=member.id,
        team_member_name=member.name,
        sub_producer_code=member.sub_producer_code,
        comp_plan_id=plan.id,
        comp_plan_name=plan.name,
        period_month=month,
        period_year=year,
        written_premium=perf.written_premium,
        written_items=perf.written_items,
        written_policies=perf.written_policies,
        written_households=perf.written_households,
        written_points=perf.written_points,
        issued_premium=perf.issued_premium,
        issued_items=perf.issued_items,
        issued_policies=perf.issued_policies,
        issued_households=perf.issued_households,
        issued_points=perf.issued_points,
        chargeback_premium=perf.chargeback_premium,
        chargeback_count=perf.chargeback_items,
        net_premium=perf.net_premium,
        net_items=perf.net_items,
        net_policies=perf.net_policies,
        net_households=perf.net_households,
        rollover_premium=perf.rollover_premium,
        tier_metric=plan.tier_metric,
        tier_metric_source=plan.tier_metric_source,
        tier_metric_value=tier_metric_value,
        tier_index=base.tier_index,
        tier_threshold_met=base.tier.min_threshold if base.tier else None,
        tier_commission_value=base.tier.commission_value if base.tier else None,
        tier_progress=tier_progress(plan.tiers, tier_metric_value),
        base_commission=base.commission,
        commission_by_bundle_type=base.pricing.bundle_segments,
        commission_by_product=base.pricing.product_segments,
        bundling_percent=bundle_pct,
        bundling_multiplier=multiplier,
        self_gen_percent=self_gen_result.self_gen_percent,
        self_gen_items=self_gen_result.self_gen_items,
        self_gen_met_requirement=modifiers.met_requirement,
        self_gen_penalty=modifiers.penalty,
        self_gen_bonus=modifiers.bonus,
        self_gen_kicker_amount=modifiers.kicker_amount,
        brokered_premium=brokered_result.premium,
        brokered_items=brokered_result.items,
        brokered_commission=brokered_result.commission,
        brokered_folded=folded,
        bonus_amount=bonus_amount,
        total_payout=total_payout,
        status="draft",
        used_override=override is not None,
        calculation_snapshot=snapshot,
    )
    return payout, warnings


def calculate_all_payouts(
    raw_metrics: Sequence[SubProducerMetrics],
    plans: Sequence[CompPlan],
    assignments: Sequence[CompPlanAssignment],
    members: Sequence[TeamMember],
    month: int,
    year: int,
    self_gen: Optional[Mapping[int, SelfGenMetrics]] = None,
    brokered: Optional[Mapping[int, BrokeredMetrics]] = None,
    overrides: Optional[Sequence[ManualOverride]] = None,
) -> PayoutBatchResult:
    """Payouts for every member of the roster for one period.

    Reference data is indexed once here; each member is then computed
    independently. Never raises for a per-member problem.
    """
    if not 1 <= month <= 12:
        raise ValueError(f"Invalid month: {month}")

    if not plans:
        return PayoutBatchResult(payouts=[], warnings=[_warning(
            "no_comp_plans_configured", "No compensation plans are configured; nothing to calculate",
        )])

    if not members:
        return PayoutBatchResult(payouts=[], warnings=[_warning(
            "no_team_members", "No team members on the roster; nothing to calculate",
        )])

    warnings: List[PayoutWarning] = []
    self_gen = self_gen or {}
    brokered = brokered or {}

    plans_by_id: Dict[int, CompPlan] = {plan.id: plan for plan in plans}

    metrics_by_code: Dict[str, SubProducerMetrics] = {}
    for row in raw_metrics:
        code = (row.code or "").strip()
        if code in metrics_by_code:
            warnings.append(_warning(
                "duplicate_sub_producer_code",
                f"Statement has more than one row for sub-producer code '{code}'; using the first",
            ))
            continue
        metrics_by_code[code] = row

    overrides_by_code: Dict[str, ManualOverride] = {}
    overrides_by_member: Dict[int, ManualOverride] = {}
    for override in overrides or []:
        overrides_by_code.setdefault(override.sub_producer_code.strip(), override)
        if override.team_member_id is not None:
            overrides_by_member.setdefault(override.team_member_id, override)

    active_by_member: Dict[int, List[CompPlanAssignment]] = {}
    for assignment in assignments:
        if assignment.end_date is None:
            active_by_member.setdefault(assignment.team_member_id, []).append(assignment)

    payouts: List[PayoutCalculation] = []
    validated_plans = set()
    claimed_codes = set()

    for member in members:
        code = (member.sub_producer_code or "").strip() or None
        if code:
            claimed_codes.add(code)
        try:
            candidates = active_by_member.get(member.id, [])
            if not candidates:
                warnings.append(_warning(
                    "no_active_assignment",
                    f"{member.name} ({member.id}) has no active comp plan assignment; excluded",
                    member.id,
                ))
                continue

            assignment = min(candidates, key=lambda a: a.comp_plan_id)
            if len(candidates) > 1:
                warnings.append(_warning(
                    "multiple_active_assignments",
                    f"{member.name} ({member.id}) has {len(candidates)} active assignments "
                    f"(plans {sorted(a.comp_plan_id for a in candidates)}); using plan {assignment.comp_plan_id}",
                    member.id,
                ))

            plan = plans_by_id.get(assignment.comp_plan_id)
            if plan is None:
                warnings.append(_warning(
                    "plan_not_found",
                    f"{member.name} ({member.id}) is assigned to plan {assignment.comp_plan_id}, "
                    f"which is not configured; excluded",
                    member.id,
                ))
                continue

            if plan.id not in validated_plans:
                validated_plans.add(plan.id)
                warnings.extend(validate_plan(plan))

            # Code match first; members without a code can still be overridden by id
            override = overrides_by_code.get(code) if code else None
            if override is None:
                override = overrides_by_member.get(member.id)
            if code is None and override is None:
                warnings.append(_warning(
                    "missing_sub_producer_code",
                    f"{member.name} ({member.id}) has no sub-producer code; no statement production can be matched",
                    member.id,
                ))

            payout, member_warnings = calculate_member_payout(
                member,
                plan,
                metrics_by_code.get(code) if code else None,
                self_gen.get(member.id),
                brokered.get(member.id),
                assignment,
                month,
                year,
                override=override,
            )
            warnings.extend(member_warnings)
            if payout is not None:
                payouts.append(payout)
        except Exception as e:
            logger.error(f"Payout calculation failed for {member.name} ({member.id}): {e}", exc_info=True)
            warnings.append(PayoutWarning(
                code="calculation_failed",
                message=f"{member.name} ({member.id}) skipped: {e}",
                team_member_id=member.id,
            ))

    for code, row in metrics_by_code.items():
        if code not in claimed_codes:
            warnings.append(_warning(
                "unmatched_sub_producer",
                f"Sub-producer code '{code}' ({row.display_name or 'unknown'}) matches no team member; "
                f"written premium {row.written_premium} not paid",
            ))

    total = sum((p.total_payout for p in payouts), ZERO)
    logger.info(
        f"Payouts {year:04d}-{month:02d}: {len(members)} members, {len(payouts)} payouts, "
        f"{len(warnings)} warnings, total={total}"
    )
    return PayoutBatchResult(payouts=payouts, warnings=warnings)
