from datetime import date
from decimal import Decimal

import pytest

from agencycomp.schemas.comp_plan import CompPlanAssignment, TeamMember
from agencycomp.schemas.payout import (
    BrokeredMetrics, BundleTypeBreakdown, ManualOverride, SelfGenMetrics,
)
from agencycomp.services.payout_calculator import (
    calculate_all_payouts, calculate_member_payout, round_currency, validate_plan,
)


def run_member(plan, metrics, member, assignment, self_gen=None, brokered=None, override=None):
    return calculate_member_payout(member, plan, metrics, self_gen, brokered, assignment, 3, 2026, override=override)


class TestScenarios:
    def test_premium_ladder_middle_tier(self, make_plan, make_metrics, member, assignment):
        payout, warnings = run_member(make_plan(), make_metrics(premium="15000"), member, assignment)
        assert payout.tier_threshold_met == Decimal("10000")
        assert payout.tier_commission_value == Decimal("8")
        assert payout.base_commission == Decimal("1200")
        assert payout.total_payout == Decimal("1200.00")
        assert warnings == []

    def test_just_below_threshold(self, make_plan, make_metrics, member, assignment):
        payout, _ = run_member(make_plan(), make_metrics(premium="9999"), member, assignment)
        assert payout.tier_threshold_met == Decimal("0")
        assert payout.base_commission == Decimal("499.95")
        assert payout.total_payout == Decimal("499.95")

    def test_self_gen_requirement_missed(self, make_plan, make_metrics, member, assignment):
        plan = make_plan(commission_modifiers={"self_gen_requirement": {
            "min_percent": 30, "penalty_type": "percent_reduction", "value": 20,
        }})
        self_gen = SelfGenMetrics(written_items=Decimal("10"), written_self_gen_items=Decimal("1"))
        payout, _ = run_member(plan, make_metrics(premium="15000", items="10"), member, assignment, self_gen=self_gen)
        assert payout.self_gen_percent == Decimal("0.1")
        assert payout.self_gen_met_requirement is False
        assert payout.self_gen_penalty == payout.base_commission * Decimal("0.20")
        assert payout.total_payout == Decimal("960.00")

    def test_bundling_multiplier(self, make_plan, make_metrics, member, assignment):
        plan = make_plan(bundling_multipliers={"thresholds": [
            {"min_percent": 0, "multiplier": "1.0"}, {"min_percent": 50, "multiplier": "1.1"},
        ]})
        metrics = make_metrics(premium="15000", items="10", by_bundle_type=(
            BundleTypeBreakdown(bundle_type="monoline", items_written=Decimal("4"), premium_written=Decimal("6000")),
            BundleTypeBreakdown(bundle_type="standard", items_written=Decimal("6"), premium_written=Decimal("9000")),
        ))
        payout, _ = run_member(plan, metrics, member, assignment)
        assert payout.bundling_percent == Decimal("0.6")
        assert payout.bundling_multiplier == Decimal("1.1")
        assert payout.base_commission == Decimal("1320")

    def test_two_active_assignments_choose_lowest_plan_id(self, make_plan, make_metrics, member):
        plans = [make_plan(id=2, name="Senior"), make_plan(id=1, name="Standard")]
        assignments = [
            CompPlanAssignment(team_member_id=1, comp_plan_id=2),
            CompPlanAssignment(team_member_id=1, comp_plan_id=1),
        ]
        result = calculate_all_payouts([make_metrics(premium="15000")], plans, assignments, [member], 3, 2026)
        assert len(result.payouts) == 1
        assert result.payouts[0].comp_plan_id == 1
        warning = next(w for w in result.warnings if w.code == "multiple_active_assignments")
        assert warning.team_member_id == member.id
        assert member.name in warning.message


class TestMemberPayout:
    def test_total_is_sum_of_components(self, make_plan, make_metrics, member, assignment):
        plan = make_plan(
            brokered_payout_type="flat_per_item",
            brokered_flat_rate=Decimal("12.5"),
            commission_modifiers={
                "self_gen_requirement": {"min_percent": 50, "penalty_type": "flat_reduction", "value": "33.333"},
                "self_gen_bonus": {"min_percent": 10, "bonus_type": "per_item", "value": "2.255"},
            },
        )
        self_gen = SelfGenMetrics(written_items=Decimal("3"), written_self_gen_items=Decimal("1"))
        override = ManualOverride(
            sub_producer_code="P001", written_premium=Decimal("12345.67"), written_items=Decimal("3"), bonus=Decimal("10.005"),
        )
        payout, _ = run_member(
            plan, None, member, assignment, self_gen=self_gen,
            brokered=BrokeredMetrics(items=Decimal("2")), override=override,
        )
        unrounded = (
            payout.base_commission - payout.self_gen_penalty + payout.self_gen_bonus
            + payout.brokered_commission + payout.bonus_amount
        )
        assert payout.total_payout == round_currency(unrounded)
        assert payout.calculation_snapshot["total_before_rounding"] == str(unrounded)
        assert payout.used_override

    def test_rounds_half_up_once(self, make_plan, make_metrics, member, assignment):
        # 0.125 per item x 1 item = 0.125 -> 0.13
        plan = make_plan(payout_type="flat_per_item", tier_metric="items", tiers=[{"min_threshold": 0, "commission_value": "0.125"}])
        payout, _ = run_member(plan, make_metrics(items="1"), member, assignment)
        assert payout.base_commission == Decimal("0.125")
        assert payout.total_payout == Decimal("0.13")

    def test_zero_production_is_all_zero_record(self, make_plan, member, assignment):
        plan = make_plan(commission_modifiers={"self_gen_requirement": {
            "min_percent": 30, "penalty_type": "flat_reduction", "value": 100,
        }})
        payout, warnings = run_member(plan, None, member, assignment)
        assert payout is not None
        assert payout.total_payout == 0
        assert payout.tier_threshold_met is None
        assert payout.self_gen_penalty == 0
        assert warnings == []

    def test_no_active_assignment_excluded(self, make_plan, make_metrics, member):
        ended = CompPlanAssignment(team_member_id=1, comp_plan_id=1, end_date=date(2026, 1, 31))
        payout, warnings = run_member(make_plan(), make_metrics(premium="100"), member, ended)
        assert payout is None
        assert [w.code for w in warnings] == ["no_active_assignment"]

    def test_brokered_folded_into_tier(self, make_plan, make_metrics, member, assignment):
        plan = make_plan(brokered_payout_type="flat_per_item", brokered_flat_rate=Decimal("20"), brokered_counts_toward_tier=True)
        brokered = BrokeredMetrics(premium=Decimal("6000"), items=Decimal("2"))
        payout, _ = run_member(plan, make_metrics(premium="8000"), member, assignment, brokered=brokered)
        # 14000 reaches the 8% rung; brokered paid through the base, not separately
        assert payout.tier_threshold_met == Decimal("10000")
        assert payout.base_commission == Decimal("1120")
        assert payout.brokered_commission == 0
        assert payout.brokered_folded

    def test_brokered_paid_separately(self, make_plan, make_metrics, member, assignment):
        plan = make_plan(brokered_payout_type="flat_per_item", brokered_flat_rate=Decimal("20"))
        brokered = BrokeredMetrics(premium=Decimal("6000"), items=Decimal("2"))
        payout, _ = run_member(plan, make_metrics(premium="8000"), member, assignment, brokered=brokered)
        assert payout.tier_threshold_met == Decimal("0")
        assert payout.base_commission == Decimal("400")
        assert payout.brokered_commission == Decimal("40")
        assert payout.total_payout == Decimal("440.00")

    def test_issued_tier_source(self, make_plan, make_metrics, member, assignment):
        plan = make_plan(tier_metric_source="issued")
        metrics = make_metrics(premium="12000", issued_premium=Decimal("9000"))
        payout, _ = run_member(plan, metrics, member, assignment)
        assert payout.tier_metric_value == Decimal("9000")
        assert payout.tier_threshold_met == Decimal("0")

    def test_snapshot_is_json_safe(self, make_plan, make_metrics, member, assignment):
        payout, _ = run_member(make_plan(), make_metrics(premium="15000"), member, assignment)
        snapshot = payout.calculation_snapshot
        assert Decimal(snapshot["tier"]["metric_value"]) == Decimal("15000")
        assert Decimal(snapshot["base"]["commission"]) == Decimal("1200")
        assert snapshot["inputs"]["source"] == "statement"

    def test_partial_bundle_breakdown_does_not_inflate_multiplier(self, make_plan, make_metrics, member, assignment):
        plan = make_plan(
            payout_type="flat_per_item", tier_metric="items",
            tiers=[{"min_threshold": 0, "commission_value": 10}],
            bundling_multipliers={"thresholds": [
                {"min_percent": 0, "multiplier": "1"}, {"min_percent": 100, "multiplier": "2"},
            ]},
        )
        metrics = make_metrics(items="10", by_bundle_type=(
            BundleTypeBreakdown(bundle_type="standard", items_written=Decimal("6")),
        ))
        payout, _ = run_member(plan, metrics, member, assignment)
        assert payout.bundling_percent == Decimal("0.6")
        assert payout.bundling_multiplier == Decimal("1")
        assert payout.base_commission == Decimal("100")

    def test_negative_brokered_and_self_gen_inputs_warn(self, make_plan, make_metrics, member, assignment):
        plan = make_plan(brokered_payout_type="flat_per_item", brokered_flat_rate=Decimal("20"))
        payout, warnings = run_member(
            plan, make_metrics(premium="15000", items="10"), member, assignment,
            self_gen=SelfGenMetrics(written_items=Decimal("10"), written_self_gen_items=Decimal("-3")),
            brokered=BrokeredMetrics(items=Decimal("-4"), premium=Decimal("-100")),
        )
        assert [w.code for w in warnings] == ["negative_value_clamped"] * 3
        assert all(w.team_member_id == member.id for w in warnings)
        assert payout.brokered_commission == 0
        assert payout.self_gen_percent == 0
        assert payout.calculation_snapshot["warnings"] == ["negative_value_clamped"] * 3

    def test_rollover_premium_reported(self, make_plan, make_metrics, member, assignment):
        metrics = make_metrics(premium="1000", chargeback_premium=Decimal("1250"))
        payout, warnings = run_member(make_plan(), metrics, member, assignment)
        assert payout.net_premium == 0
        assert payout.rollover_premium == Decimal("250")
        assert payout.total_payout == 0
        assert "negative_net_clamped" in [w.code for w in warnings]

    def test_percentages_stay_in_range(self, make_plan, make_metrics, member, assignment):
        self_gen = SelfGenMetrics(written_items=Decimal("0"), written_self_gen_items=Decimal("4"))
        payout, _ = run_member(make_plan(), make_metrics(premium="100"), member, assignment, self_gen=self_gen)
        assert payout.self_gen_percent == 0
        assert 0 <= payout.bundling_percent <= 1


class TestBatch:
    @pytest.fixture
    def roster(self):
        return [
            TeamMember(id=1, name="Dana Producer", sub_producer_code="P001"),
            TeamMember(id=2, name="Lee Newhire", sub_producer_code="P002"),
            TeamMember(id=3, name="Sam Service", sub_producer_code=None),
        ]

    @pytest.fixture
    def assignments(self):
        return [CompPlanAssignment(team_member_id=m, comp_plan_id=1) for m in (1, 2, 3)]

    def test_every_assigned_member_gets_a_record(self, make_plan, make_metrics, roster, assignments):
        result = calculate_all_payouts([make_metrics(premium="15000")], [make_plan()], assignments, roster, 3, 2026)
        assert [p.team_member_id for p in result.payouts] == [1, 2, 3]
        assert result.payouts[1].total_payout == 0
        assert "missing_sub_producer_code" in [w.code for w in result.warnings]

    def test_no_plans_short_circuits(self, make_metrics, roster, assignments):
        result = calculate_all_payouts([make_metrics(premium="1")], [], assignments, roster, 3, 2026)
        assert result.payouts == []
        assert [w.code for w in result.warnings] == ["no_comp_plans_configured"]

    def test_empty_roster(self, make_plan, make_metrics):
        result = calculate_all_payouts([make_metrics(premium="1")], [make_plan()], [], [], 3, 2026)
        assert result.payouts == []
        assert [w.code for w in result.warnings] == ["no_team_members"]

    def test_plan_not_found(self, make_plan, roster):
        assignments = [CompPlanAssignment(team_member_id=1, comp_plan_id=99)]
        result = calculate_all_payouts([], [make_plan()], assignments, roster[:1], 3, 2026)
        assert result.payouts == []
        assert [w.code for w in result.warnings] == ["plan_not_found"]

    def test_unmatched_and_duplicate_codes(self, make_plan, make_metrics, roster, assignments):
        rows = [
            make_metrics(code="P001", premium="15000"),
            make_metrics(code="P001", premium="1"),
            make_metrics(code="X999", premium="500", display_name="Former Producer"),
        ]
        result = calculate_all_payouts(rows, [make_plan()], assignments, roster, 3, 2026)
        codes = [w.code for w in result.warnings]
        assert "duplicate_sub_producer_code" in codes
        assert "unmatched_sub_producer" in codes
        assert result.payouts[0].written_premium == Decimal("15000")

    def test_one_bad_member_does_not_abort_batch(self, make_plan, make_metrics, roster, assignments, monkeypatch):
        from agencycomp.services import payout_calculator

        real = payout_calculator.calculate_member_payout

        def flaky(member, *args, **kwargs):
            if member.id == 2:
                raise RuntimeError("corrupt record")
            return real(member, *args, **kwargs)

        monkeypatch.setattr(payout_calculator, "calculate_member_payout", flaky)
        result = calculate_all_payouts([make_metrics(premium="15000")], [make_plan()], assignments, roster, 3, 2026)
        assert [p.team_member_id for p in result.payouts] == [1, 3]
        failed = [w for w in result.warnings if w.code == "calculation_failed"]
        assert len(failed) == 1 and failed[0].team_member_id == 2

    def test_idempotent(self, make_plan, make_metrics, roster, assignments):
        args = ([make_metrics(premium="15000")], [make_plan()], assignments, roster, 3, 2026)
        assert calculate_all_payouts(*args) == calculate_all_payouts(*args)

    def test_override_used_for_member(self, make_plan, make_metrics, roster, assignments):
        overrides = [ManualOverride(sub_producer_code="P002", written_premium=Decimal("30000"))]
        result = calculate_all_payouts([], [make_plan()], assignments, roster, 3, 2026, overrides=overrides)
        lee = next(p for p in result.payouts if p.team_member_id == 2)
        assert lee.used_override
        assert lee.base_commission == Decimal("3600")

    def test_override_by_member_id_when_member_has_no_code(self, make_plan, roster, assignments):
        overrides = [ManualOverride(sub_producer_code="X", team_member_id=3, written_premium=Decimal("15000"))]
        result = calculate_all_payouts([], [make_plan()], assignments, roster, 3, 2026, overrides=overrides)
        sam = next(p for p in result.payouts if p.team_member_id == 3)
        assert sam.used_override
        assert sam.total_payout == Decimal("1200.00")
        assert "missing_sub_producer_code" not in [w.code for w in result.warnings]

    def test_code_match_wins_over_member_id(self, make_plan, roster, assignments):
        overrides = [
            ManualOverride(sub_producer_code="P001", written_premium=Decimal("30000")),
            ManualOverride(sub_producer_code="OTHER", team_member_id=1, written_premium=Decimal("100")),
        ]
        result = calculate_all_payouts([], [make_plan()], assignments, roster, 3, 2026, overrides=overrides)
        dana = next(p for p in result.payouts if p.team_member_id == 1)
        assert dana.base_commission == Decimal("3600")

    def test_invalid_month(self, make_plan, roster, assignments):
        with pytest.raises(ValueError):
            calculate_all_payouts([], [make_plan()], assignments, roster, 13, 2026)


class TestValidatePlan:
    def test_duplicate_thresholds_reported(self, make_plan):
        plan = make_plan(tiers=[{"min_threshold": 0, "commission_value": 5}, {"min_threshold": 0, "commission_value": 6}])
        assert [w.code for w in validate_plan(plan)] == ["duplicate_tier_threshold"]

    def test_kicker_ignored_when_bonus_enabled(self, make_plan):
        plan = make_plan(commission_modifiers={
            "self_gen_bonus": {"min_percent": 5, "value": 50},
            "self_gen_kicker": {"enabled": True, "amount": 10},
        })
        assert [w.code for w in validate_plan(plan)] == ["self_gen_kicker_ignored"]

    def test_reported_once_per_plan_in_batch(self, make_plan, make_metrics):
        plan = make_plan(tiers=[{"min_threshold": 0, "commission_value": 5}, {"min_threshold": 0, "commission_value": 6}])
        members = [TeamMember(id=i, name=f"Member {i}", sub_producer_code=f"P00{i}") for i in (1, 2)]
        assignments = [CompPlanAssignment(team_member_id=i, comp_plan_id=1) for i in (1, 2)]
        result = calculate_all_payouts([], [plan], assignments, members, 3, 2026)
        assert [w.code for w in result.warnings].count("duplicate_tier_threshold") == 1
