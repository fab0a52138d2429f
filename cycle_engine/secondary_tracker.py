"""
Secondary-tier (UXP) tracker

Runs the promotion / rollover / landing state machine of the cycle builder over
the secondary counter, on a single-rung ladder, gated month by month on the
member holding the tier that unlocks secondary earning.

The cycle builder drives the walk: both counters advance month by month in
step, so the primary landing can see whether the member holds the secondary
tier and the secondary gate can see the primary tier.
"""

from datetime import date
from typing import List, Optional

from loguru import logger

from .cycle_builder import add_months, clamp, day_before, month_key, next_january
from .evaluator import evaluate
from .models import CycleOutcome, LedgerEntry, SecondaryCycle, SecondaryCycleMode, Tier
from .thresholds import (
    SECONDARY_BALANCE_LIMIT,
    SECONDARY_LADDER,
    SECONDARY_ROLLOVER_CAP,
    SECONDARY_THRESHOLD,
    SECONDARY_TIER,
    SECONDARY_UNLOCK_TIER,
    tier_rank,
)


class SecondaryTierTracker:
    """
    Product rules of the secondary counter

    Measurement windows come from the configured mode: the primary cycle
    boundaries, or 1 January boundaries. Inside a window a promotion closes the
    secondary cycle early and a new one runs to the same window boundary. At the
    boundary a holder requalifies (capped rollover) or loses the secondary tier,
    landing on the unlock tier rather than one level down.
    """

    def __init__(self, threshold: int = SECONDARY_THRESHOLD,
                 rollover_cap: int = SECONDARY_ROLLOVER_CAP,
                 balance_limit: int = SECONDARY_BALANCE_LIMIT):
        self.threshold = threshold
        self.rollover_cap = rollover_cap
        self.balance_limit = balance_limit

    def walk(self, mode: SecondaryCycleMode, holds_secondary_tier: bool, starting_points: int) -> "SecondaryWalk":
        """
        Start a secondary walk for the cycle builder to drive

        Args:
            mode: Secondary window selection
            holds_secondary_tier: Whether the member holds the secondary tier at the start
            starting_points: Secondary points carried into the first window
        """
        return SecondaryWalk(self, mode, holds_secondary_tier, starting_points)


class SecondaryWalk:
    """Month-by-month state of the secondary counter; `cycles` fills in as the builder walks"""

    def __init__(self, tracker: SecondaryTierTracker, mode: SecondaryCycleMode, holds: bool, starting_points: int):
        self.tracker = tracker
        self.mode = mode
        self.holds = holds
        self.balance = clamp(starting_points, 0, tracker.balance_limit)
        self.window_start: Optional[date] = None
        self.segment: Optional[_Segment] = None
        self.cycles: List[SecondaryCycle] = []

    def step(self, month: date, entry: Optional[LedgerEntry], primary_tier: Tier) -> None:
        """
        Walk one month of the secondary counter

        Args:
            month: First day of the walked month
            entry: Ledger entry of the month, if any
            primary_tier: Starting tier of the primary cycle containing the month.
                Eligibility follows this tier, so the month in which the primary
                ladder is promoted to the unlock tier is itself not eligible; the
                first eligible month is the one the promoted cycle opens on.
        """
        if self.window_start is None:
            self.window_start = month
            self.segment = _Segment(month, self.holds, self.balance)
        elif self.mode == SecondaryCycleMode.CALENDAR_YEAR and month.month == 1 and month > self.window_start:
            self.close_window(month)

        tracker = self.tracker
        segment = self.segment
        key = month_key(month)
        points = entry.secondary_points if entry is not None else 0
        if entry is not None:
            segment.ledger_slice.append(entry)

        if not (self.holds or tier_rank(primary_tier) >= tier_rank(SECONDARY_UNLOCK_TIER)):
            segment.ineligible += points
            return

        segment.eligible_months += 1
        tracked = clamp(points, 0, tracker.balance_limit - self.balance)
        segment.untracked += points - tracked
        segment.earned += tracked
        self.balance += tracked

        if self.holds:
            return

        # a carried balance promotes on its first eligible month
        result = evaluate(self.balance, None, SECONDARY_LADDER)
        if result.promoted:
            end = add_months(month, 1)
            rollover_out = clamp(result.remainder, 0, tracker.rollover_cap)
            self.cycles.append(segment.close(
                len(self.cycles), end, CycleOutcome.PROMOTED, rollover_out,
                ending_tier=SECONDARY_TIER, closed_early=True, promotion_month=key, promoted=True,
            ))
            logger.debug(f"Secondary tier reached in {key}, rollover {rollover_out}")
            self.holds, self.balance = True, rollover_out
            self.segment = _Segment(end, self.holds, self.balance)

    def primary_cycle_closed(self, end: date) -> None:
        """Primary cycle boundary; closes the secondary window when windows follow the primary cycles"""
        if self.mode == SecondaryCycleMode.FOLLOWS_PRIMARY:
            self.close_window(end)

    def close_window(self, end: date) -> None:
        """Requalify, land or reset at a measurement window boundary and open the next window"""
        tracker = self.tracker
        segment = self.segment
        if segment.start < end:
            if self.holds and self.balance >= tracker.threshold:
                rollover_out = clamp(self.balance - tracker.threshold, 0, tracker.rollover_cap)
                self.cycles.append(segment.close(
                    len(self.cycles), end, CycleOutcome.REQUALIFIED, rollover_out, ending_tier=SECONDARY_TIER,
                ))
                logger.debug(f"Secondary tier requalified at {month_key(end)}, rollover {rollover_out}")
            elif self.holds:
                rollover_out = 0
                self.cycles.append(segment.close(
                    len(self.cycles), end, CycleOutcome.LANDED, rollover_out, ending_tier=SECONDARY_UNLOCK_TIER,
                ))
                logger.debug(
                    f"Secondary tier lost at {month_key(end)} ({self.balance} < {tracker.threshold}), "
                    f"landing on {SECONDARY_UNLOCK_TIER.value}"
                )
                self.holds = False
            else:
                rollover_out = 0
                self.cycles.append(segment.close(len(self.cycles), end, CycleOutcome.NOT_REACHED, rollover_out))
            self.balance = rollover_out
        # otherwise a promotion in the window's last month already closed it

        self.window_start = end
        self.segment = _Segment(end, self.holds, self.balance)

    def finish(self, horizon: date, primary_end: date) -> List[SecondaryCycle]:
        """
        Close the walk and append the open secondary cycle

        Args:
            horizon: First month after the walk
            primary_end: End date of the open primary cycle
        """
        if self.window_start is None:
            return self.cycles

        if self.mode == SecondaryCycleMode.CALENDAR_YEAR:
            while next_january(self.window_start) <= horizon:
                self.close_window(next_january(self.window_start))
            end = next_january(self.window_start)
        else:
            end = primary_end

        self.cycles.append(self.segment.open(len(self.cycles), end))
        return self.cycles


class _Segment:
    """Accumulator for the secondary cycle currently being walked"""

    def __init__(self, start: date, holds: bool, rollover_in: int):
        self.start = start
        self.holds = holds
        self.rollover_in = rollover_in
        self.ledger_slice: List[LedgerEntry] = []
        self.earned = 0
        self.untracked = 0
        self.ineligible = 0
        self.eligible_months = 0

    def _build(self, index: int, end: date, **fields) -> SecondaryCycle:
        return SecondaryCycle(
            index=index,
            start_date=self.start,
            end_date=end,
            last_day=day_before(end),
            holds_secondary_tier=self.holds,
            rollover_in=self.rollover_in,
            ledger_slice=tuple(self.ledger_slice),
            earned_points=self.earned,
            untracked_points=self.untracked,
            ineligible_points=self.ineligible,
            actual_points=self.rollover_in + self.earned,
            eligible_months=self.eligible_months,
            **fields,
        )

    def close(self, index: int, end: date, outcome: CycleOutcome, rollover_out: int,
              ending_tier: Optional[Tier] = None, closed_early: bool = False,
              promotion_month: Optional[str] = None, promoted: bool = False) -> SecondaryCycle:
        return self._build(
            index, end,
            actual_tier=SECONDARY_TIER if (self.holds or promoted) else None,
            closed_early=closed_early,
            rollover_out=rollover_out,
            ending_tier=ending_tier,
            outcome=outcome,
            promotion_month=promotion_month,
        )

    def open(self, index: int, end: date) -> SecondaryCycle:
        return self._build(index, end, actual_tier=SECONDARY_TIER if self.holds else None)
