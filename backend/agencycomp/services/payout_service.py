"""Payout service.

Workflow:
1. Load roster, active plans (with tiers) and active assignments once
2. Run the batch calculator against the period's statement metrics
3. Optionally save the results as draft payouts (one row per member and period)
4. Finalize the period, then mark it paid
"""
import logging
from typing import List, Optional, Sequence, Tuple

from sqlalchemy.orm import Session, selectinload
from sqlalchemy.sql import func

from agencycomp.models.comp_plan import CompPlan as CompPlanRow, CompPlanAssignment as AssignmentRow
from agencycomp.models.payout import CompPayout, PayoutStatus
from agencycomp.models.team_member import TeamMember as TeamMemberRow
from agencycomp.schemas.comp_plan import CommissionTier, CompPlan, CompPlanAssignment, TeamMember
from agencycomp.schemas.payout import PayoutCalculation, PayoutRunRequest, PayoutRunResponse
from agencycomp.services.payout_calculator import calculate_all_payouts

logger = logging.getLogger(__name__)


def _validate_period(month: int, year: int):
    if not 1 <= month <= 12:
        raise ValueError(f"Invalid month: {month}")
    if year < 2000 or year > 2100:
        raise ValueError(f"Invalid year: {year}")


def plan_from_row(row: CompPlanRow) -> CompPlan:
    """Engine view of a stored plan; brokered rungs go to their own ladder."""
    tiers = sorted(row.tiers, key=lambda t: (t.sort_order or 0, t.id or 0))
    return CompPlan(
        id=row.id,
        name=row.name,
        description=row.description,
        is_active=bool(row.is_active),
        payout_type=row.payout_type,
        tier_metric=row.tier_metric,
        tier_metric_source=row.tier_metric_source,
        chargeback_rule=row.chargeback_rule,
        tiers=[
            CommissionTier(min_threshold=t.min_threshold, commission_value=t.commission_value, sort_order=t.sort_order or 0)
            for t in tiers if not t.is_brokered
        ],
        brokered_payout_type=row.brokered_payout_type,
        brokered_flat_rate=row.brokered_flat_rate,
        brokered_counts_toward_tier=bool(row.brokered_counts_toward_tier),
        brokered_tier_metric=row.brokered_tier_metric or "items",
        brokered_tiers=[
            CommissionTier(min_threshold=t.min_threshold, commission_value=t.commission_value, sort_order=t.sort_order or 0)
            for t in tiers if t.is_brokered
        ],
        bundle_configs=row.bundle_configs,
        product_rates=row.product_rates,
        point_values=row.point_values,
        bundling_multipliers=row.bundling_multipliers,
        commission_modifiers=row.commission_modifiers,
    )


class PayoutService:
    def __init__(self, db: Session):
        self.db = db

    # ── Reference data ───────────────────────────────────────────────

    def load_reference_data(self) -> Tuple[List[CompPlan], List[CompPlanAssignment], List[TeamMember]]:
        """Active plans, active assignments and the active roster, read once per batch."""
        plan_rows = (
            self.db.query(CompPlanRow)
            .options(selectinload(CompPlanRow.tiers))
            .filter(CompPlanRow.is_active == True)  # noqa: E712
            .order_by(CompPlanRow.id)
            .all()
        )
        assignment_rows = (
            self.db.query(AssignmentRow)
            .filter(AssignmentRow.end_date.is_(None))
            .order_by(AssignmentRow.team_member_id, AssignmentRow.comp_plan_id)
            .all()
        )
        member_rows = (
            self.db.query(TeamMemberRow)
            .filter(TeamMemberRow.is_active == True)  # noqa: E712
            .order_by(TeamMemberRow.id)
            .all()
        )
        plans = [plan_from_row(row) for row in plan_rows]
        assignments = [CompPlanAssignment.model_validate(row) for row in assignment_rows]
        members = [TeamMember.model_validate(row) for row in member_rows]
        logger.info(f"Loaded {len(plans)} plans, {len(assignments)} active assignments, {len(members)} members")
        return plans, assignments, members

    # ── Calculate ────────────────────────────────────────────────────

    def calculate_period(self, request: PayoutRunRequest, month: int, year: int) -> PayoutRunResponse:
        _validate_period(month, year)
        plans, assignments, members = self.load_reference_data()

        result = calculate_all_payouts(
            request.sub_producers,
            plans,
            assignments,
            members,
            month,
            year,
            self_gen=request.self_gen,
            brokered=request.brokered,
            overrides=request.overrides,
        )

        saved = skipped = 0
        if request.save:
            saved, skipped = self.save_payouts(result.payouts)

        return PayoutRunResponse(
            payouts=result.payouts,
            warnings=result.warnings,
            saved=saved,
            skipped=skipped,
        )

    # ── Persist ──────────────────────────────────────────────────────

    def save_payouts(self, payouts: Sequence[PayoutCalculation]) -> Tuple[int, int]:
        """Upsert draft rows keyed by (member, month, year).

        Rows already finalized or paid are left untouched and counted as
        skipped. Returns (saved, skipped).
        """
        saved = skipped = 0
        for payout in payouts:
            row = (
                self.db.query(CompPayout)
                .filter(
                    CompPayout.team_member_id == payout.team_member_id,
                    CompPayout.period_month == payout.period_month,
                    CompPayout.period_year == payout.period_year,
                )
                .first()
            )
            if row is not None and row.status != PayoutStatus.DRAFT.value:
                logger.info(
                    f"Payout for member {payout.team_member_id} {payout.period_year}-{payout.period_month:02d} "
                    f"is {row.status}; not overwritten"
                )
                skipped += 1
                continue
            if row is None:
                row = CompPayout(
                    team_member_id=payout.team_member_id,
                    period_month=payout.period_month,
                    period_year=payout.period_year,
                    status=PayoutStatus.DRAFT.value,
                )
                self.db.add(row)

            row.comp_plan_id = payout.comp_plan_id
            row.written_premium = payout.written_premium
            row.written_items = payout.written_items
            row.issued_premium = payout.issued_premium
            row.issued_items = payout.issued_items
            row.chargeback_premium = payout.chargeback_premium
            row.chargeback_count = payout.chargeback_count
            row.net_premium = payout.net_premium
            row.net_items = payout.net_items
            row.rollover_premium = payout.rollover_premium
            row.tier_threshold_met = payout.tier_threshold_met
            row.tier_commission_value = payout.tier_commission_value
            row.base_commission = payout.base_commission
            row.bundling_percent = payout.bundling_percent
            row.bundling_multiplier = payout.bundling_multiplier
            row.self_gen_percent = payout.self_gen_percent
            row.self_gen_met_requirement = payout.self_gen_met_requirement
            row.self_gen_penalty = payout.self_gen_penalty
            row.self_gen_bonus = payout.self_gen_bonus
            row.brokered_commission = payout.brokered_commission
            row.bonus_amount = payout.bonus_amount
            row.total_payout = payout.total_payout
            row.calculation_snapshot = payout.calculation_snapshot
            saved += 1

        self.db.commit()
        logger.info(f"Saved {saved} draft payouts, skipped {skipped} locked")
        return saved, skipped

    # ── Status transitions ───────────────────────────────────────────

    def finalize_period(self, month: int, year: int) -> int:
        """Move the period's draft payouts to finalized. Returns how many moved."""
        _validate_period(month, year)
        count = (
            self.db.query(CompPayout)
            .filter(
                CompPayout.period_month == month,
                CompPayout.period_year == year,
                CompPayout.status == PayoutStatus.DRAFT.value,
            )
            .update(
                {CompPayout.status: PayoutStatus.FINALIZED.value, CompPayout.finalized_at: func.now()},
                synchronize_session=False,
            )
        )
        self.db.commit()
        logger.info(f"Finalized {count} payouts for {year}-{month:02d}")
        return count

    def mark_period_paid(self, month: int, year: int) -> int:
        """Move the period's finalized payouts to paid. Returns how many moved."""
        _validate_period(month, year)
        count = (
            self.db.query(CompPayout)
            .filter(
                CompPayout.period_month == month,
                CompPayout.period_year == year,
                CompPayout.status == PayoutStatus.FINALIZED.value,
            )
            .update(
                {CompPayout.status: PayoutStatus.PAID.value, CompPayout.paid_at: func.now()},
                synchronize_session=False,
            )
        )
        self.db.commit()
        logger.info(f"Marked {count} payouts paid for {year}-{month:02d}")
        return count

    # ── Read ─────────────────────────────────────────────────────────

    def list_payouts(self, month: int, year: int) -> List[CompPayout]:
        _validate_period(month, year)
        return (
            self.db.query(CompPayout)
            .filter(CompPayout.period_month == month, CompPayout.period_year == year)
            .order_by(CompPayout.team_member_id)
            .all()
        )

    def get_payout(self, payout_id: int) -> Optional[CompPayout]:
        return self.db.query(CompPayout).filter(CompPayout.id == payout_id).first()
