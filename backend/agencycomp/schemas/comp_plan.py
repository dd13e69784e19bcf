from pydantic import BaseModel, Field, field_validator
from typing import Dict, List, Literal, Optional
from datetime import date
from decimal import Decimal


PayoutType = Literal["flat_per_item", "flat_per_policy", "flat_per_household", "percent_of_premium"]
SegmentPayoutType = Literal["flat_per_item", "percent_of_premium"]
BrokeredPayoutType = Literal["flat_per_item", "percent_of_premium", "tiered"]
TierMetric = Literal["premium", "items", "policies", "points", "households"]
MetricSource = Literal["written", "issued"]
ChargebackRule = Literal["none", "full", "three_month"]


class CommissionTier(BaseModel):
    min_threshold: Decimal = Field(..., ge=0)
    commission_value: Decimal = Field(..., ge=0)  # percent for percent_of_premium, dollars otherwise
    sort_order: int = 0


class BundleTypeConfig(BaseModel):
    """Rate for one bundle type. A non-empty ladder takes precedence over `rate`."""
    enabled: bool = False
    payout_type: SegmentPayoutType = "flat_per_item"
    rate: Decimal = Field(default=Decimal("0"), ge=0)
    tiers: List[CommissionTier] = []


class ProductRate(BaseModel):
    payout_type: SegmentPayoutType = "flat_per_item"
    rate: Decimal = Field(..., ge=0)


class BundlingThreshold(BaseModel):
    min_percent: Decimal = Field(..., ge=0, le=100)
    multiplier: Decimal = Field(..., ge=0)


class BundlingMultipliers(BaseModel):
    thresholds: List[BundlingThreshold] = []


class SelfGenRequirement(BaseModel):
    enabled: bool = True
    min_percent: Decimal = Field(..., ge=0, le=100)
    source: Optional[MetricSource] = None  # falls back to the plan's tier_metric_source
    penalty_type: Literal["percent_reduction", "flat_reduction", "tier_demotion"] = "percent_reduction"
    value: Decimal = Field(default=Decimal("0"), ge=0)


class SelfGenBonus(BaseModel):
    enabled: bool = True
    min_percent: Decimal = Field(..., ge=0, le=100)
    bonus_type: Literal[
        "percent_boost", "flat_bonus", "per_item", "per_policy", "per_household", "tier_promotion"
    ] = "flat_bonus"
    value: Decimal = Field(default=Decimal("0"), ge=0)


class SelfGenKicker(BaseModel):
    """Legacy single-threshold self-gen bonus, superseded by SelfGenBonus."""
    enabled: bool = False
    type: Literal["per_item", "per_policy", "per_household"] = "per_item"
    amount: Decimal = Field(default=Decimal("0"), ge=0)
    min_self_gen_percent: Decimal = Field(default=Decimal("0"), ge=0, le=100)


class CommissionModifiers(BaseModel):
    self_gen_requirement: Optional[SelfGenRequirement] = None
    self_gen_bonus: Optional[SelfGenBonus] = None
    self_gen_kicker: Optional[SelfGenKicker] = None


class CompPlan(BaseModel):
    id: int
    name: str = ""
    description: Optional[str] = None
    is_active: bool = True

    payout_type: PayoutType = "flat_per_item"
    tier_metric: TierMetric = "items"
    tier_metric_source: MetricSource = "written"
    chargeback_rule: ChargebackRule = "full"
    tiers: List[CommissionTier] = []

    # Brokered business
    brokered_payout_type: Optional[BrokeredPayoutType] = None
    brokered_flat_rate: Optional[Decimal] = Field(None, ge=0)
    brokered_counts_toward_tier: bool = False
    brokered_tier_metric: Literal["items", "premium"] = "items"
    brokered_tiers: List[CommissionTier] = []

    bundle_configs: Dict[str, BundleTypeConfig] = {}
    product_rates: Dict[str, ProductRate] = {}
    point_values: Dict[str, Decimal] = {}
    bundling_multipliers: BundlingMultipliers = BundlingMultipliers()
    commission_modifiers: CommissionModifiers = CommissionModifiers()

    @field_validator(
        "tiers", "brokered_tiers", "bundle_configs", "product_rates", "point_values",
        "bundling_multipliers", "commission_modifiers",
        mode="before",
    )
    @classmethod
    def _null_config_is_empty(cls, value, info):
        # JSON columns come back as NULL when a plan never configured the feature
        if value is not None:
            return value
        if info.field_name in ("tiers", "brokered_tiers"):
            return []
        if info.field_name == "bundling_multipliers":
            return {"thresholds": []}
        return {}


class CompPlanAssignment(BaseModel):
    team_member_id: int
    comp_plan_id: int
    start_date: Optional[date] = None
    end_date: Optional[date] = None

    class Config:
        from_attributes = True


class TeamMember(BaseModel):
    id: int
    name: str
    sub_producer_code: Optional[str] = None

    class Config:
        from_attributes = True
