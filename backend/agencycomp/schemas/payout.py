from pydantic import BaseModel
from typing import Any, Dict, List, Optional, Tuple
from datetime import datetime
from decimal import Decimal

ZERO = Decimal("0")


# ── Inputs ──────────────────────────────────────────────────────────


class BundleTypeBreakdown(BaseModel):
    bundle_type: str  # 'monoline', 'standard', 'preferred' or raw statement value
    premium_written: Decimal = ZERO
    premium_chargebacks: Decimal = ZERO
    items_written: Decimal = ZERO
    chargeback_count: Decimal = ZERO

    class Config:
        frozen = True


class ProductBreakdown(BaseModel):
    product: str
    premium_written: Decimal = ZERO
    premium_chargebacks: Decimal = ZERO
    items_written: Decimal = ZERO
    chargeback_count: Decimal = ZERO

    class Config:
        frozen = True


class SubProducerMetrics(BaseModel):
    """Raw statement production for one sub-producer code and period.

    Issued figures default to the written ones when the statement does not
    report them separately.
    """
    code: str
    display_name: Optional[str] = None

    written_premium: Decimal = ZERO
    written_items: Decimal = ZERO
    written_policies: Decimal = ZERO
    written_households: Decimal = ZERO
    written_points: Optional[Decimal] = None

    issued_premium: Optional[Decimal] = None
    issued_items: Optional[Decimal] = None
    issued_policies: Optional[Decimal] = None
    issued_households: Optional[Decimal] = None
    issued_points: Optional[Decimal] = None

    chargeback_premium: Decimal = ZERO
    chargeback_items: Decimal = ZERO
    chargeback_policies: Decimal = ZERO
    chargeback_households: Decimal = ZERO

    by_bundle_type: Tuple[BundleTypeBreakdown, ...] = ()
    by_product: Tuple[ProductBreakdown, ...] = ()

    class Config:
        frozen = True


class ManualOverride(BaseModel):
    """What-if figures that replace a sub-producer's statement numbers."""
    sub_producer_code: str
    team_member_id: Optional[int] = None
    written_premium: Optional[Decimal] = None
    written_items: Optional[Decimal] = None
    written_policies: Optional[Decimal] = None
    written_households: Optional[Decimal] = None
    written_points: Optional[Decimal] = None
    chargeback_premium: Optional[Decimal] = None
    chargeback_items: Optional[Decimal] = None
    bundled_items: Optional[Decimal] = None
    bonus: Decimal = ZERO

    class Config:
        frozen = True


class SelfGenMetrics(BaseModel):
    written_items: Optional[Decimal] = None
    written_self_gen_items: Decimal = ZERO
    issued_items: Optional[Decimal] = None
    issued_self_gen_items: Decimal = ZERO

    class Config:
        frozen = True


class BrokeredMetrics(BaseModel):
    premium: Decimal = ZERO
    items: Decimal = ZERO
    policies: Decimal = ZERO
    households: Decimal = ZERO

    class Config:
        frozen = True


# ── Outputs ─────────────────────────────────────────────────────────


class PayoutWarning(BaseModel):
    code: str
    message: str
    team_member_id: Optional[int] = None


class TierProgress(BaseModel):
    current_value: Decimal = ZERO
    current_tier_index: Optional[int] = None
    current_threshold: Optional[Decimal] = None
    current_rate: Optional[Decimal] = None
    next_tier_index: Optional[int] = None
    next_threshold: Optional[Decimal] = None
    next_rate: Optional[Decimal] = None
    amount_needed: Decimal = ZERO
    progress_percent: Decimal = ZERO
    total_tiers: int = 0


class SegmentCommission(BaseModel):
    segment: str
    configured: bool
    payout_type: Optional[str] = None
    rate: Optional[Decimal] = None
    net_premium: Decimal = ZERO
    net_items: Decimal = ZERO
    commission: Decimal = ZERO


class PayoutCalculation(BaseModel):
    team_member_id: int
    team_member_name: str
    sub_producer_code: Optional[str] = None
    comp_plan_id: int
    comp_plan_name: str = ""
    period_month: int
    period_year: int

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
    chargeback_count: Decimal = ZERO
    net_premium: Decimal = ZERO
    net_items: Decimal = ZERO
    net_policies: Decimal = ZERO
    net_households: Decimal = ZERO
    rollover_premium: Decimal = ZERO

    tier_metric: str
    tier_metric_source: str
    tier_metric_value: Decimal = ZERO
    tier_index: Optional[int] = None
    tier_threshold_met: Optional[Decimal] = None
    tier_commission_value: Optional[Decimal] = None
    tier_progress: TierProgress = TierProgress()

    base_commission: Decimal = ZERO
    commission_by_bundle_type: List[SegmentCommission] = []
    commission_by_product: List[SegmentCommission] = []
    bundling_percent: Decimal = ZERO
    bundling_multiplier: Decimal = Decimal("1")

    self_gen_percent: Decimal = ZERO
    self_gen_items: Decimal = ZERO
    self_gen_met_requirement: Optional[bool] = None
    self_gen_penalty: Decimal = ZERO
    self_gen_bonus: Decimal = ZERO
    self_gen_kicker_amount: Decimal = ZERO

    brokered_premium: Decimal = ZERO
    brokered_items: Decimal = ZERO
    brokered_commission: Decimal = ZERO
    brokered_folded: bool = False

    bonus_amount: Decimal = ZERO
    total_payout: Decimal = ZERO
    status: str = "draft"
    used_override: bool = False
    calculation_snapshot: Dict[str, Any] = {}


class PayoutBatchResult(BaseModel):
    payouts: List[PayoutCalculation] = []
    warnings: List[PayoutWarning] = []


# ── API ─────────────────────────────────────────────────────────────


class PayoutRunRequest(BaseModel):
    sub_producers: List[SubProducerMetrics] = []
    self_gen: Dict[int, SelfGenMetrics] = {}
    brokered: Dict[int, BrokeredMetrics] = {}
    overrides: List[ManualOverride] = []
    save: bool = False


class PayoutRunResponse(PayoutBatchResult):
    saved: int = 0
    skipped: int = 0


class CompPayoutRead(BaseModel):
    id: int
    team_member_id: int
    comp_plan_id: Optional[int]
    period_month: int
    period_year: int
    written_premium: Optional[Decimal] = None
    written_items: Optional[Decimal] = None
    net_premium: Optional[Decimal] = None
    net_items: Optional[Decimal] = None
    tier_threshold_met: Optional[Decimal] = None
    tier_commission_value: Optional[Decimal] = None
    base_commission: Optional[Decimal] = None
    self_gen_penalty: Optional[Decimal] = None
    self_gen_bonus: Optional[Decimal] = None
    brokered_commission: Optional[Decimal] = None
    bonus_amount: Optional[Decimal] = None
    total_payout: Optional[Decimal] = None
    rollover_premium: Optional[Decimal] = None
    status: str
    finalized_at: Optional[datetime] = None
    paid_at: Optional[datetime] = None
    calculation_snapshot: Optional[Dict[str, Any]] = None

    class Config:
        from_attributes = True
