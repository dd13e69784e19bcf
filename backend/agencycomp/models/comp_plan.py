"""Compensation plan models: plan header, tier ladders and member assignments."""
from sqlalchemy import Column, Integer, String, Numeric, DateTime, Date, Boolean, Text, ForeignKey, JSON
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from agencycomp.core.database import Base


class CompPlan(Base):
    __tablename__ = "comp_plans"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    description = Column(Text, nullable=True)
    is_active = Column(Boolean, default=True)

    # Primary ladder
    payout_type = Column(String, default="flat_per_item", nullable=False)
    tier_metric = Column(String, default="items", nullable=False)  # premium, items, policies, points, households
    tier_metric_source = Column(String, default="written", nullable=False)  # written, issued
    chargeback_rule = Column(String, default="full", nullable=False)  # none, full, three_month

    # Brokered book
    brokered_payout_type = Column(String, nullable=True)  # flat_per_item, percent_of_premium, tiered
    brokered_flat_rate = Column(Numeric(12, 4), nullable=True)
    brokered_counts_toward_tier = Column(Boolean, default=False)
    brokered_tier_metric = Column(String, default="items", nullable=False)

    # Optional features (JSON so plan shapes can evolve without migrations)
    bundle_configs = Column(JSON, nullable=True)
    product_rates = Column(JSON, nullable=True)
    point_values = Column(JSON, nullable=True)
    bundling_multipliers = Column(JSON, nullable=True)
    commission_modifiers = Column(JSON, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    # Relationships
    tiers = relationship(
        "CompPlanTier", back_populates="comp_plan", cascade="all, delete-orphan",
        order_by="CompPlanTier.sort_order",
    )
    assignments = relationship("CompPlanAssignment", back_populates="comp_plan")


class CompPlanTier(Base):
    """One rung of a plan ladder; brokered rungs are flagged."""
    __tablename__ = "comp_plan_tiers"

    id = Column(Integer, primary_key=True, index=True)
    comp_plan_id = Column(Integer, ForeignKey("comp_plans.id"), nullable=False, index=True)

    min_threshold = Column(Numeric(14, 4), nullable=False)
    commission_value = Column(Numeric(12, 4), nullable=False)
    sort_order = Column(Integer, default=0)
    is_brokered = Column(Boolean, default=False)

    comp_plan = relationship("CompPlan", back_populates="tiers")


class CompPlanAssignment(Base):
    __tablename__ = "comp_plan_assignments"

    id = Column(Integer, primary_key=True, index=True)
    team_member_id = Column(Integer, ForeignKey("team_members.id"), nullable=False, index=True)
    comp_plan_id = Column(Integer, ForeignKey("comp_plans.id"), nullable=False, index=True)

    start_date = Column(Date, nullable=True)
    end_date = Column(Date, nullable=True)  # null = active

    created_at = Column(DateTime(timezone=True), server_default=func.now())

    team_member = relationship("TeamMember", back_populates="assignments")
    comp_plan = relationship("CompPlan", back_populates="assignments")
