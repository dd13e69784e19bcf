"""Tier ladder resolution.

A ladder is a list of (min_threshold, commission_value) rungs. A value
qualifies for the rung with the largest threshold that is <= the value;
values below the lowest rung qualify for nothing.
"""
from decimal import Decimal, ROUND_HALF_UP
from typing import List, NamedTuple, Optional, Sequence

from agencycomp.schemas.comp_plan import CommissionTier
from agencycomp.schemas.payout import TierProgress


class TierMatch(NamedTuple):
    tier: CommissionTier
    index: int  # position in the threshold-sorted ladder


def sort_tiers(tiers: Sequence[CommissionTier]) -> List[CommissionTier]:
    # sorted() is stable, so duplicate thresholds keep their configured order
    return sorted(tiers, key=lambda t: t.min_threshold)


def resolve_tier(value: Decimal, tiers: Sequence[CommissionTier]) -> Optional[TierMatch]:
    """Return the highest rung whose threshold is <= value, or None."""
    match = None
    for index, tier in enumerate(sort_tiers(tiers)):
        if tier.min_threshold <= value:
            match = TierMatch(tier, index)
        else:
            break
    return match


def tier_at(tiers: Sequence[CommissionTier], index: int) -> Optional[CommissionTier]:
    """Rung at a sorted position, or None when the index falls off the ladder."""
    ordered = sort_tiers(tiers)
    if 0 <= index < len(ordered):
        return ordered[index]
    return None


def find_duplicate_thresholds(tiers: Sequence[CommissionTier]) -> List[Decimal]:
    seen = set()
    duplicates = []
    for tier in sort_tiers(tiers):
        if tier.min_threshold in seen and tier.min_threshold not in duplicates:
            duplicates.append(tier.min_threshold)
        seen.add(tier.min_threshold)
    return duplicates


def tier_progress(tiers: Sequence[CommissionTier], value: Decimal) -> TierProgress:
    """Where a value sits on the ladder and how far it is from the next rung."""
    ordered = sort_tiers(tiers)
    if not ordered:
        return TierProgress(current_value=value)

    match = resolve_tier(value, ordered)
    current_index = match.index if match else -1
    current = match.tier if match else None
    next_tier = ordered[current_index + 1] if current_index + 1 < len(ordered) else None

    progress = Decimal("0")
    amount_needed = Decimal("0")
    if next_tier is not None:
        amount_needed = max(Decimal("0"), next_tier.min_threshold - value)
        range_start = current.min_threshold if current else Decimal("0")
        range_size = next_tier.min_threshold - range_start
        if range_size > 0:
            progress = ((value - range_start) / range_size * 100).quantize(
                Decimal("1"), rounding=ROUND_HALF_UP
            )
    elif current is not None:
        progress = Decimal("100")

    return TierProgress(
        current_value=value,
        current_tier_index=current_index if current else None,
        current_threshold=current.min_threshold if current else None,
        current_rate=current.commission_value if current else None,
        next_tier_index=current_index + 1 if next_tier else None,
        next_threshold=next_tier.min_threshold if next_tier else None,
        next_rate=next_tier.commission_value if next_tier else None,
        amount_needed=amount_needed,
        progress_percent=min(Decimal("100"), max(Decimal("0"), progress)),
        total_tiers=len(ordered),
    )
