"""
Cycle builder: walks the ledger month by month and materializes qualification cycles

All calendar arithmetic of the engine lives in this module; everything else
works on the date objects and YYYY-MM keys it hands out.
"""

from datetime import date, datetime
from typing import Any, Dict, Iterator, List, Optional, Sequence, Tuple

from dateutil import parser
from dateutil.relativedelta import relativedelta
from loguru import logger

from .evaluator import evaluate, implied_tier
from .exceptions import ValidationError
from .models import Cycle, CycleOutcome, EngineWarning, LedgerEntry, Tier, parse_month_key
from .thresholds import PRIMARY_ROLLOVER_CAP, SECONDARY_UNLOCK_TIER, previous_tier, threshold_of, tier_rank


CYCLE_LENGTH_MONTHS = 12


def month_start(key: str) -> date:
    """First day of a YYYY-MM month"""
    year, month = key.split("-")
    return date(int(year), int(month), 1)


def month_key(day: date) -> str:
    return f"{day.year:04d}-{day.month:02d}"


def add_months(day: date, months: int) -> date:
    return day + relativedelta(months=months)


def day_before(day: date) -> date:
    return day - relativedelta(days=1)


def iter_months(first: date, last: date) -> Iterator[date]:
    """First-of-month dates from first through last, inclusive"""
    current = date(first.year, first.month, 1)
    while current <= last:
        yield current
        current = add_months(current, 1)


def next_january(day: date) -> date:
    return date(day.year + 1, 1, 1)


def coerce_date(value) -> date:
    """
    Convert a query date (date, datetime, ISO string or YYYY-MM key) to a date

    Raises:
        ValidationError: If the value cannot be read as a date
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        text = value.strip()
        try:
            if len(text) == 7:
                return month_start(parse_month_key(text))
            return parser.isoparse(text).date()
        except ValueError as e:
            raise ValidationError(f"Invalid date {value!r}: {e}")
    raise ValidationError(f"Invalid date {value!r}")


def clamp(value: int, low: int, high: int) -> int:
    return max(low, min(high, value))


class CycleBuilder:
    """
    Reconstructs the member's sequence of primary qualification cycles

    A cycle closes early on the month a promotion fires (the next cycle opens on the
    first of the following month with the capped remainder), or at its 12-month
    boundary, where the member either requalifies or soft-lands one tier.
    """

    def __init__(self, rollover_cap: int = PRIMARY_ROLLOVER_CAP,
                 cycle_months: int = CYCLE_LENGTH_MONTHS,
                 soft_landing_keeps_rollover: bool = False):
        self.rollover_cap = rollover_cap
        self.cycle_months = cycle_months
        self.soft_landing_keeps_rollover = soft_landing_keeps_rollover

    def resolve_window(self, entries: Sequence[LedgerEntry], cycle_start_month: Optional[str],
                       through_month: Optional[str] = None) -> Tuple[Optional[str], Optional[str]]:
        """First and last month of the walk; (None, None) when there is nothing to walk"""
        start = cycle_start_month or (entries[0].month if entries else None)
        if start is None:
            return None, None

        candidates = [start]
        if entries:
            candidates.append(entries[-1].month)
        if through_month:
            candidates.append(through_month)
        return start, max(candidates)

    def build(self, entries: Sequence[LedgerEntry], starting_tier: Tier, rollover_in: int,
              cycle_start_month: Optional[str],
              through_month: Optional[str] = None,
              secondary: Any = None) -> Tuple[List[Cycle], List[EngineWarning], Optional[str]]:
        """
        Walk the ledger and build the cycle sequence

        Args:
            entries: Normalized ledger, sorted by month, one entry per month
            starting_tier: Primary-ladder tier at the start of the first cycle
            rollover_in: Points carried into the first cycle
            cycle_start_month: YYYY-MM of the first cycle; defaults to the first ledger month
            through_month: Optional YYYY-MM to extend the walk past the last ledger month
            secondary: Optional SecondaryWalk advanced in step with the primary walk.
                While it holds the secondary tier a failed requalification never
                lands below the tier that unlocks it.

        Returns:
            Tuple of (cycles, warnings, last walked month)
        """
        warnings: List[EngineWarning] = []
        start, last = self.resolve_window(entries, cycle_start_month, through_month)
        if start is None:
            warnings.append(EngineWarning(code="empty_ledger", message="No ledger entries and no cycle start month"))
            logger.warning("Nothing to walk: empty ledger and no cycle start month")
            return [], warnings, None

        by_month: Dict[str, LedgerEntry] = {}
        for entry in entries:
            if entry.month < start:
                warnings.append(EngineWarning(
                    code="before_cycle_start",
                    message=f"Entry for {entry.month} precedes cycle start {start} and was skipped",
                    month=entry.month,
                ))
                logger.warning(f"Skipping {entry.month}: before cycle start {start}")
                continue
            by_month[entry.month] = entry

        cycles: List[Cycle] = []
        tier = starting_tier
        # the seed is the balance already on the account and may exceed the cap
        rollover_in = max(0, rollover_in)
        balance = rollover_in
        cycle_start = month_start(start)
        ledger_slice: List[LedgerEntry] = []
        months_in_cycle = 0

        for month in iter_months(cycle_start, month_start(last)):
            key = month_key(month)
            entry = by_month.get(key)
            if secondary is not None:
                secondary.step(month, entry, tier)
            if entry is not None:
                ledger_slice.append(entry)
                balance += entry.actual_points
            months_in_cycle += 1

            result = evaluate(balance, tier)
            if result.promoted:
                rollover_out = clamp(result.remainder, 0, self.rollover_cap)
                end = add_months(month, 1)
                cycles.append(self._make_cycle(
                    len(cycles), cycle_start, end, tier, rollover_in, ledger_slice,
                    closed_early=True, rollover_out=rollover_out, ending_tier=result.new_tier,
                    outcome=CycleOutcome.PROMOTED, promotion_month=key,
                ))
                logger.debug(
                    f"Promotion {tier.value} -> {result.new_tier.value} in {key} "
                    f"({result.steps} step(s)), rollover {rollover_out}"
                )
                tier, balance, rollover_in = result.new_tier, rollover_out, rollover_out
                cycle_start, ledger_slice, months_in_cycle = end, [], 0
                if secondary is not None:
                    secondary.primary_cycle_closed(end)
                continue

            if months_in_cycle == self.cycle_months:
                end = add_months(cycle_start, self.cycle_months)
                threshold = threshold_of(tier)
                if balance >= threshold:
                    ending_tier = tier
                    rollover_out = clamp(balance - threshold, 0, self.rollover_cap)
                    outcome = CycleOutcome.REQUALIFIED
                    logger.debug(f"Requalified {tier.value} at {month_key(end)}, rollover {rollover_out}")
                else:
                    ending_tier = previous_tier(tier)
                    if (secondary is not None and secondary.holds
                            and tier_rank(ending_tier) < tier_rank(SECONDARY_UNLOCK_TIER)):
                        ending_tier = SECONDARY_UNLOCK_TIER
                    rollover_out = clamp(balance, 0, self.rollover_cap) if self.soft_landing_keeps_rollover else 0
                    outcome = CycleOutcome.SOFT_LANDED
                    logger.debug(
                        f"Soft landing {tier.value} -> {ending_tier.value} at {month_key(end)} "
                        f"({balance} < {threshold}), rollover {rollover_out}"
                    )
                cycles.append(self._make_cycle(
                    len(cycles), cycle_start, end, tier, rollover_in, ledger_slice,
                    closed_early=False, rollover_out=rollover_out, ending_tier=ending_tier, outcome=outcome,
                ))
                tier, balance, rollover_in = ending_tier, rollover_out, rollover_out
                cycle_start, ledger_slice, months_in_cycle = end, [], 0
                if secondary is not None:
                    secondary.primary_cycle_closed(end)

        open_end = add_months(cycle_start, self.cycle_months)
        cycles.append(self._make_cycle(len(cycles), cycle_start, open_end, tier, rollover_in, ledger_slice))
        if secondary is not None:
            secondary.finish(add_months(month_start(last), 1), open_end)
        return cycles, warnings, last

    def _make_cycle(self, index: int, start: date, end: date, starting_tier: Tier, rollover_in: int,
                    ledger_slice: List[LedgerEntry], closed_early: bool = False,
                    rollover_out: Optional[int] = None, ending_tier: Optional[Tier] = None,
                    outcome: CycleOutcome = CycleOutcome.OPEN, promotion_month: Optional[str] = None) -> Cycle:
        actual_points = rollover_in + sum(e.actual_points for e in ledger_slice)
        projected_points = rollover_in + sum(e.projected_points for e in ledger_slice)

        return Cycle(
            index=index,
            start_date=start,
            end_date=end,
            last_day=day_before(end),
            starting_tier=starting_tier,
            rollover_in=rollover_in,
            ledger_slice=tuple(ledger_slice),
            actual_points=actual_points,
            projected_points=projected_points,
            actual_tier=implied_tier(actual_points, starting_tier),
            projected_tier=implied_tier(projected_points, starting_tier),
            closed_early=closed_early,
            rollover_out=rollover_out,
            ending_tier=ending_tier,
            outcome=outcome,
            promotion_month=promotion_month,
        )
