"""
Threshold table for the primary XP ladder and the secondary (UXP) tier
"""

from typing import Optional, Tuple

from .models import Tier


# Ordered (tier, XP required) pairs; the array index is the tier's rank.
PRIMARY_LADDER: Tuple[Tuple[Tier, int], ...] = (
    (Tier.EXPLORER, 0),
    (Tier.SILVER, 100),
    (Tier.GOLD, 180),
    (Tier.PLATINUM, 300),
)

PRIMARY_ROLLOVER_CAP = 300

# Secondary counter: one rung above "not holding" (None)
SECONDARY_TIER = Tier.ULTIMATE
SECONDARY_THRESHOLD = 900
SECONDARY_ROLLOVER_CAP = 900
SECONDARY_BALANCE_LIMIT = 2 * SECONDARY_ROLLOVER_CAP

# Tier that unlocks secondary earning, and the floor when the secondary tier is lost
SECONDARY_UNLOCK_TIER = Tier.PLATINUM

SECONDARY_LADDER: Tuple[Tuple[Optional[Tier], int], ...] = (
    (None, 0),
    (SECONDARY_TIER, SECONDARY_THRESHOLD),
)

LOWEST_TIER = PRIMARY_LADDER[0][0]
TOP_TIER = PRIMARY_LADDER[-1][0]


def tier_index(tier: Optional[Tier], ladder=PRIMARY_LADDER) -> int:
    """Rank of a tier on a ladder; raises ValueError for tiers not on it"""
    for index, (rung, _) in enumerate(ladder):
        if rung == tier:
            return index
    raise ValueError(f"{tier!r} is not on this ladder")


def threshold_of(tier: Optional[Tier], ladder=PRIMARY_LADDER) -> int:
    return ladder[tier_index(tier, ladder)][1]


def next_tier(tier: Optional[Tier], ladder=PRIMARY_LADDER) -> Optional[Tier]:
    index = tier_index(tier, ladder)
    if index + 1 < len(ladder):
        return ladder[index + 1][0]
    return None


def has_next_tier(tier: Optional[Tier], ladder=PRIMARY_LADDER) -> bool:
    return tier_index(tier, ladder) + 1 < len(ladder)


def previous_tier(tier: Optional[Tier], ladder=PRIMARY_LADDER) -> Optional[Tier]:
    """One rung down, floored at the bottom of the ladder (soft landing)"""
    index = tier_index(tier, ladder)
    return ladder[max(0, index - 1)][0]


def tier_rank(tier: Tier) -> int:
    """Rank across the primary ladder with the secondary tier on top"""
    if tier == SECONDARY_TIER:
        return len(PRIMARY_LADDER)
    return tier_index(tier)


def primary_tier_for(tier: Tier) -> Tier:
    """Primary-ladder position of any tier (the secondary tier sits on its unlock tier)"""
    if tier == SECONDARY_TIER:
        return SECONDARY_UNLOCK_TIER
    return tier
