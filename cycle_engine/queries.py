"""
Query surface over computed cycle sequences
"""

from dataclasses import dataclass
from typing import List, Optional, Sequence, TypeVar

from .cycle_builder import coerce_date
from .exceptions import ValidationError
from .models import Cycle, CycleResult, SecondaryCycle, Tier
from .thresholds import has_next_tier, next_tier, threshold_of


AnyCycle = TypeVar("AnyCycle", Cycle, SecondaryCycle)


@dataclass(frozen=True)
class RequalificationRisk:
    threshold: int
    at_risk: bool
    shortfall: int
    projected_at_risk: bool
    projected_shortfall: int


def find_active_cycle(cycles: Sequence[AnyCycle], as_of) -> AnyCycle:
    """
    Cycle in effect on a date

    Returns the cycle whose [start_date, end_date) contains the date; otherwise the
    earliest cycle ending on or after it; otherwise the last cycle.

    Args:
        cycles: Primary or secondary cycle sequence
        as_of: date, datetime, ISO date string or YYYY-MM key

    Raises:
        ValidationError: If cycles is empty or as_of is not a date
    """
    if not cycles:
        raise ValidationError("Cannot find an active cycle in an empty cycle sequence")

    day = coerce_date(as_of)
    for cycle in cycles:
        if cycle.contains(day):
            return cycle

    for cycle in cycles:
        if cycle.end_date >= day:
            return cycle

    return cycles[-1]


def cycles_for_range(cycles: Sequence[AnyCycle], date_from, date_to) -> List[AnyCycle]:
    """Contiguous run of cycles overlapping [date_from, date_to], both ends inclusive"""
    start = coerce_date(date_from)
    end = coerce_date(date_to)
    if start > end:
        return []
    return [cycle for cycle in cycles if cycle.start_date <= end and cycle.end_date > start]


def progress_target(tier: Tier) -> int:
    """Next tier's threshold, or the tier's own (requalification) threshold at the top"""
    if has_next_tier(tier):
        return threshold_of(next_tier(tier))
    return threshold_of(tier)


def xp_to_next(cycle: Cycle, projected: bool = False) -> int:
    """
    XP still needed in this cycle for the next tier

    At the top of the ladder this is the XP still needed to requalify.
    """
    balance = cycle.projected_points if projected else cycle.actual_points
    return max(0, progress_target(cycle.starting_tier) - balance)


def requalification_risk(cycle: Cycle) -> Optional[RequalificationRisk]:
    """Whether the member would soft-land if the cycle ended now; None for closed cycles"""
    if not cycle.is_open:
        return None

    threshold = threshold_of(cycle.starting_tier)
    shortfall = max(0, threshold - cycle.actual_points)
    projected_shortfall = max(0, threshold - cycle.projected_points)
    return RequalificationRisk(
        threshold=threshold,
        at_risk=shortfall > 0,
        shortfall=shortfall,
        projected_at_risk=projected_shortfall > 0,
        projected_shortfall=projected_shortfall,
    )


def effective_tier(result: CycleResult, as_of) -> Optional[Tier]:
    """
    Status to display on a date

    The secondary tier while the active secondary cycle holds it, otherwise the
    active primary cycle's starting tier. None when nothing was computed.
    """
    if not result.cycles:
        return None

    if result.secondary_cycles:
        secondary = find_active_cycle(result.secondary_cycles, as_of)
        if secondary.holds_secondary_tier and secondary.contains(coerce_date(as_of)):
            return secondary.actual_tier

    return find_active_cycle(result.cycles, as_of).starting_tier
