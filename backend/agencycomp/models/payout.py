"""Monthly payout records produced by the payout calculator."""
from sqlalchemy import (
    Column, Integer, String, Numeric, DateTime, Boolean, ForeignKey, JSON, UniqueConstraint,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from agencycomp.core.database import Base
import enum


class PayoutStatus(str, enum.Enum):
    DRAFT = "draft"
    FINALIZED = "finalized"
    PAID = "paid"


class CompPayout(Base):
    """One member's payout for one period. Moves draft -> finalized -> paid."""
    __tablename__ = "comp_payouts"
    __table_args__ = (
        UniqueConstraint("team_member_id", "period_month", "period_year", name="uq_comp_payout_member_period"),
    )

    id = Column(Integer, primary_key=True, index=True)
    team_member_id = Column(Integer, ForeignKey("team_members.id"), nullable=False, index=True)
    comp_plan_id = Column(Integer, ForeignKey("comp_plans.id"), nullable=True)

    # Period
    period_month = Column(Integer, nullable=False, index=True)
    period_year = Column(Integer, nullable=False, index=True)

    # Production
    written_premium = Column(Numeric(12, 2), default=0)
    written_items = Column(Numeric(12, 2), default=0)
    issued_premium = Column(Numeric(12, 2), default=0)
    issued_items = Column(Numeric(12, 2), default=0)
    chargeback_premium = Column(Numeric(12, 2), default=0)
    chargeback_count = Column(Numeric(12, 2), default=0)
    net_premium = Column(Numeric(12, 2), default=0)
    net_items = Column(Numeric(12, 2), default=0)
    rollover_premium = Column(Numeric(12, 2), default=0)  # chargeback deficit carried to the next period

    # Tier
    tier_threshold_met = Column(Numeric(14, 4), nullable=True)
    tier_commission_value = Column(Numeric(12, 4), nullable=True)

    # Commission components
    base_commission = Column(Numeric(12, 2), default=0)
    bundling_percent = Column(Numeric(7, 4), default=0)
    bundling_multiplier = Column(Numeric(7, 4), default=1)
    self_gen_percent = Column(Numeric(7, 4), default=0)
    self_gen_met_requirement = Column(Boolean, nullable=True)
    self_gen_penalty = Column(Numeric(12, 2), default=0)
    self_gen_bonus = Column(Numeric(12, 2), default=0)
    brokered_commission = Column(Numeric(12, 2), default=0)
    bonus_amount = Column(Numeric(12, 2), default=0)
    total_payout = Column(Numeric(12, 2), default=0)

    # Full breakdown of the calculation (JSON, Decimals as strings)
    calculation_snapshot = Column(JSON, nullable=True)

    # Status
    status = Column(String, default=PayoutStatus.DRAFT.value, nullable=False)
    finalized_at = Column(DateTime(timezone=True), nullable=True)
    paid_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    team_member = relationship("TeamMember", back_populates="payouts")
    comp_plan = relationship("CompPlan")
