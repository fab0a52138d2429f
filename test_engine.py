"""
Tests for the QualificationEngine facade, memoization and output
"""

import copy
import json

import pytest

from cycle_engine import QualificationEngine, compute_cycles
from cycle_engine.cache import CycleCache, content_key
from cycle_engine.config import EngineConfig
from cycle_engine.exceptions import ValidationError
from cycle_engine.models import CycleOutcome, Tier


LEDGER = [
    {"month": "2024-01", "actual_points": 40, "secondary_points": 40},
    {"month": "2024-03", "actual_points": 90},
    {"month": "2024-07", "actual_points": 300, "scheduled_points": 60},
    {"month": "2025-02", "actual_points": 20, "secondary_points": 300},
]
SETTINGS = {"cycleStartMonth": "2024-01", "startingStatus": "Explorer"}


@pytest.fixture
def engine():
    return QualificationEngine(EngineConfig(log_level="WARNING"))


class TestCompute:
    """End-to-end runs"""

    def test_full_walk(self, engine):
        result = engine.compute(LEDGER, SETTINGS, through_month="2025-03")

        outcomes = [cycle.outcome for cycle in result.cycles]
        assert outcomes[:2] == [CycleOutcome.PROMOTED, CycleOutcome.PROMOTED]
        assert result.cycles[0].ending_tier == Tier.SILVER
        assert result.cycles[1].ending_tier == Tier.GOLD
        assert result.current_cycle.is_open
        assert result.through_month == "2025-03"
        assert result.warnings == ()

    def test_idempotent(self):
        engine = QualificationEngine(EngineConfig(enable_caching=False, log_level="WARNING"))
        first = engine.compute(LEDGER, SETTINGS)
        second = engine.compute(LEDGER, SETTINGS)
        assert first is not second
        assert first == second
        assert json.dumps(first.to_dict()) == json.dumps(second.to_dict())

    def test_matches_stateless_entry_point(self, engine):
        assert engine.compute(LEDGER, SETTINGS) == compute_cycles(LEDGER, SETTINGS)

    def test_ledger_is_not_mutated(self, engine):
        ledger = copy.deepcopy(LEDGER)
        engine.compute(ledger, SETTINGS)
        assert ledger == LEDGER

    def test_degraded_inputs_warn(self, engine):
        result = engine.compute(
            [{"month": "bad"}, {"month": "2024-02", "actual_points": 120}],
            None,
            through_month="someday",
        )
        codes = [w.code for w in result.warnings]
        assert "malformed_entry" in codes
        assert codes.count("invalid_settings") == 2
        assert result.cycles[0].starting_tier == Tier.EXPLORER
        assert result.cycles[0].ending_tier == Tier.SILVER

    @pytest.mark.parametrize("bad", [None, "ledger", 7])
    def test_programmer_errors_raise(self, engine, bad):
        with pytest.raises(ValidationError):
            engine.compute(bad, SETTINGS)

    def test_generator_ledger(self, engine):
        result = engine.compute((entry for entry in LEDGER), SETTINGS)
        assert result == compute_cycles(LEDGER, SETTINGS)


class TestCaching:
    """Content-keyed memo"""

    def test_equal_content_hits_cache(self, engine):
        first = engine.compute(LEDGER, SETTINGS)
        second = engine.compute(copy.deepcopy(LEDGER), dict(SETTINGS))
        assert second is first
        assert engine.cache.hits == 1

    def test_different_content_misses(self, engine):
        engine.compute(LEDGER, SETTINGS)
        engine.compute(LEDGER, SETTINGS, through_month="2026-01")
        assert len(engine.cache) == 2
        assert engine.cache.hits == 0

    def test_caching_disabled(self):
        engine = QualificationEngine(EngineConfig(enable_caching=False, log_level="WARNING"))
        assert engine.cache is None

    def test_lru_eviction(self):
        cache = CycleCache(max_entries=2)
        result = compute_cycles(LEDGER, SETTINGS)
        keys = [content_key(LEDGER, SETTINGS, month) for month in ("2025-01", "2025-02", "2025-03")]
        cache.put(keys[0], result)
        cache.put(keys[1], result)
        assert cache.get(keys[0]) is result
        cache.put(keys[2], result)
        assert keys[0] in cache
        assert keys[1] not in cache
        assert len(cache) == 2


class TestOutput:
    """JSON and DataFrame output"""

    def test_json_output(self, engine, tmp_path):
        result = engine.compute(LEDGER, SETTINGS)
        output_file = tmp_path / "out" / "cycles.json"
        output = engine.generate_json_output(result, str(output_file))

        saved = json.loads(output_file.read_text(encoding="utf-8"))
        assert saved["cycles"][0]["start_date"] == "2024-01-01"
        assert saved["cycles"][0]["ending_tier"] == "Silver"
        assert saved["cycles"][0]["ledger_slice"][0]["month"] == "2024-01"
        assert saved["processing_summary"]["total_cycles"] == len(result.cycles)
        assert output["cycles"] == saved["cycles"]

    def test_json_output_without_ledger(self, tmp_path):
        engine = QualificationEngine(EngineConfig(include_ledger_in_output=False, log_level="WARNING"))
        output = engine.generate_json_output(engine.compute(LEDGER, SETTINGS))
        assert "ledger_slice" not in output["cycles"][0]
        assert "ledger_slice" not in output["secondary_cycles"][0]

    def test_dataframe_output(self, engine):
        result = engine.compute(LEDGER, SETTINGS)
        df = engine.cycles_to_dataframe(result)
        assert len(df) == len(result.cycles)
        assert df.loc[0, "outcome"] == "promoted"
        assert df.loc[0, "ending_tier"] == "Silver"
        assert df.loc[0, "months_with_activity"] == 2
        assert bool(df.iloc[-1]["is_open"])
