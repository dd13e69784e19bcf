from agencycomp.models.team_member import TeamMember
from agencycomp.models.comp_plan import CompPlan, CompPlanTier, CompPlanAssignment
from agencycomp.models.payout import CompPayout, PayoutStatus

__all__ = [
    "TeamMember",
    "CompPlan",
    "CompPlanTier",
    "CompPlanAssignment",
    "CompPayout",
    "PayoutStatus",
]
