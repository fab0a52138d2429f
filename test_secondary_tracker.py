"""
Tests for the secondary-tier (Ultimate) tracker
"""

from datetime import date

from cycle_engine import compute_cycles
from cycle_engine.models import CycleOutcome, Tier
from cycle_engine.queries import effective_tier


def secondary(raw_entries, tier, start="2024-01", through=None, mode="followsPrimary", uxp=0):
    settings = {
        "cycle_start_month": start,
        "starting_tier": tier,
        "starting_secondary_points": uxp,
        "secondary_cycle_mode": mode,
    }
    return compute_cycles(raw_entries, settings, through).secondary_cycles


class TestSecondaryPromotion:
    """Reaching the secondary tier"""

    def test_promotion_remainder_is_capped_separately(self):
        cycles = secondary([
            {"month": "2024-01", "secondary_points": 500},
            {"month": "2024-02", "secondary_points": 420},
        ], "Platinum")

        first, second = cycles
        assert first.outcome == CycleOutcome.PROMOTED
        assert first.closed_early
        assert first.promotion_month == "2024-02"
        assert first.actual_tier == Tier.ULTIMATE
        assert first.rollover_out == 20
        assert first.end_date == date(2024, 3, 1)

        assert second.start_date == date(2024, 3, 1)
        assert second.holds_secondary_tier
        assert second.rollover_in == 20
        assert second.is_open
        assert second.end_date == date(2025, 1, 1)

    def test_starting_balance_promotes_in_first_eligible_month(self):
        cycles = secondary([], "Platinum", uxp=950)

        first, second = cycles
        assert first.outcome == CycleOutcome.PROMOTED
        assert first.promotion_month == "2024-01"
        assert first.rollover_out == 50
        assert first.end_date == date(2024, 2, 1)
        assert second.holds_secondary_tier
        assert second.rollover_in == 50

    def test_holder_requalifies(self):
        result = compute_cycles([
            {"month": "2024-02", "secondary_points": 900},
            {"month": "2024-06", "secondary_points": 920},
        ], {"cycle_start_month": "2024-01", "starting_tier": "Platinum"}, "2024-12")
        cycles = result.secondary_cycles

        assert [cycle.outcome for cycle in cycles] == [
            CycleOutcome.PROMOTED, CycleOutcome.REQUALIFIED, CycleOutcome.OPEN,
        ]
        assert cycles[1].ending_tier == Tier.ULTIMATE
        assert cycles[1].rollover_out == 20
        assert cycles[2].holds_secondary_tier
        assert cycles[2].rollover_in == 20
        # no XP earned, but the primary tier stays on Platinum while Ultimate is held
        assert result.cycles[0].outcome == CycleOutcome.SOFT_LANDED
        assert result.cycles[0].ending_tier == Tier.PLATINUM

    def test_holder_rollover_cap(self):
        cycles = secondary([
            {"month": "2024-02", "secondary_points": 900},
            {"month": "2024-06", "secondary_points": 1700},
        ], "Platinum", through="2024-12")
        assert cycles[1].rollover_out == 800

        cycles = secondary([{"month": "2024-06", "secondary_points": 2000}], "Ultimate", through="2024-12")
        assert cycles[0].rollover_in == 900
        assert cycles[0].earned_points == 900
        assert cycles[0].untracked_points == 1100
        assert cycles[0].rollover_out == 900

    def test_starting_holder_requalifies_on_carried_balance(self):
        cycles = secondary([], "Ultimate", through="2024-12")
        assert cycles[0].rollover_in == 900
        assert cycles[0].outcome == CycleOutcome.REQUALIFIED
        assert cycles[0].rollover_out == 0
        assert cycles[1].holds_secondary_tier

    def test_holder_lands_on_unlock_tier(self):
        cycles = secondary([{"month": "2025-06", "secondary_points": 100}], "Ultimate", through="2025-12")

        landed = cycles[1]
        assert cycles[0].outcome == CycleOutcome.REQUALIFIED
        assert landed.outcome == CycleOutcome.LANDED
        assert landed.ending_tier == Tier.PLATINUM
        assert landed.earned_points == 100
        assert landed.rollover_out == 0
        assert not cycles[2].holds_secondary_tier
        assert cycles[2].rollover_in == 0

    def test_non_holder_keeps_nothing(self):
        cycles = secondary([{"month": "2024-06", "secondary_points": 600}], "Platinum", through="2024-12")
        assert cycles[0].outcome == CycleOutcome.NOT_REACHED
        assert cycles[0].rollover_out == 0
        assert cycles[0].ending_tier is None
        assert cycles[1].rollover_in == 0

    def test_closed_cycles_respect_cap(self):
        cycles = secondary([
            {"month": "2024-02", "secondary_points": 1500},
            {"month": "2024-09", "secondary_points": 1500},
            {"month": "2025-04", "secondary_points": 300},
        ], "Platinum", through="2025-12", mode="calendarYear")
        for cycle in cycles:
            if not cycle.is_open:
                assert 0 <= cycle.rollover_out <= 900


class TestEligibility:
    """Secondary points only count while the unlock tier is held"""

    def test_points_below_unlock_tier_are_not_tracked(self):
        cycles = secondary([{"month": "2024-02", "secondary_points": 500}], "Silver")
        assert cycles[0].ineligible_points == 500
        assert cycles[0].earned_points == 0
        assert cycles[0].eligible_months == 0

    def test_eligibility_starts_with_the_platinum_cycle(self):
        cycles = secondary([
            {"month": "2024-02", "actual_points": 300, "secondary_points": 300},
            {"month": "2024-03", "secondary_points": 400},
        ], "Gold")
        tracked = sum(cycle.earned_points for cycle in cycles)
        ignored = sum(cycle.ineligible_points for cycle in cycles)
        assert ignored == 300
        assert tracked == 400


class TestWindowModes:
    """followsPrimary versus calendarYear windows"""

    def test_calendar_year_windows(self):
        cycles = secondary([{"month": "2025-02", "secondary_points": 100}], "Platinum",
                           start="2024-04", mode="calendarYear")

        first, second = cycles
        assert first.start_date == date(2024, 4, 1)
        assert first.end_date == date(2025, 1, 1)
        assert first.outcome == CycleOutcome.NOT_REACHED
        assert second.start_date == date(2025, 1, 1)
        assert second.end_date == date(2026, 1, 1)
        assert second.is_open

    def test_follows_primary_windows(self):
        result = compute_cycles(
            [{"month": "2024-03", "actual_points": 150}],
            {"cycle_start_month": "2024-01", "starting_tier": "Explorer"},
        )
        assert [(c.start_date, c.end_date) for c in result.secondary_cycles] == [
            (c.start_date, c.end_date) for c in result.cycles
        ]

    def test_windows_are_contiguous(self):
        cycles = secondary([
            {"month": "2024-05", "secondary_points": 950},
            {"month": "2025-08", "secondary_points": 100},
        ], "Platinum", through="2026-02", mode="calendarYear")
        for previous, following in zip(cycles, cycles[1:]):
            assert previous.end_date == following.start_date
        assert cycles[-1].is_open


class TestLandingFromUltimate:
    """Failing both counters at once drops a single level"""

    def result(self, through):
        return compute_cycles([], {"cycle_start_month": "2024-01", "starting_tier": "Ultimate"}, through)

    def test_simultaneous_failure_lands_on_platinum(self):
        result = self.result("2026-02")

        assert [cycle.outcome for cycle in result.secondary_cycles] == [
            CycleOutcome.REQUALIFIED, CycleOutcome.LANDED, CycleOutcome.OPEN,
        ]
        assert [cycle.outcome for cycle in result.cycles[:2]] == [CycleOutcome.SOFT_LANDED] * 2
        assert [cycle.ending_tier for cycle in result.cycles[:2]] == [Tier.PLATINUM, Tier.PLATINUM]
        assert result.cycles[2].starting_tier == Tier.PLATINUM
        assert effective_tier(result, "2025-06-01") == Tier.ULTIMATE
        assert effective_tier(result, "2026-02-01") == Tier.PLATINUM

    def test_next_failure_drops_to_gold(self):
        result = self.result("2027-02")
        assert result.cycles[2].outcome == CycleOutcome.SOFT_LANDED
        assert result.cycles[2].ending_tier == Tier.GOLD
        assert effective_tier(result, "2027-02-01") == Tier.GOLD
