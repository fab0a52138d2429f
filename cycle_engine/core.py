"""
Core Cycle Engine implementation
"""

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

import pandas as pd
from loguru import logger

from .cache import CycleCache, content_key
from .config import EngineConfig, QualificationSettings, configure_logging, get_config
from .cycle_builder import CycleBuilder
from .exceptions import CycleEngineError
from .ledger import normalize_ledger
from .models import CycleResult, EngineWarning, parse_month_key
from .secondary_tracker import SecondaryTierTracker


def get_cycle_engine_version() -> str:
    """Get the current cycle engine version"""
    return "1.0.0"


class QualificationEngine:
    """
    Main Cycle Engine class: rebuilds a member's qualification cycles from the ledger
    """

    def __init__(self, config: Optional[EngineConfig] = None, log_level: Optional[str] = None):
        """
        Initialize the Cycle Engine

        Args:
            config: Engine configuration; defaults to the global configuration
            log_level: Overrides config.log_level (DEBUG, INFO, WARNING, ERROR)
        """
        self.config = config or get_config()

        # Configure logging
        configure_logging(log_level or self.config.log_level, self.config.log_format)

        self.builder = CycleBuilder(soft_landing_keeps_rollover=self.config.soft_landing_keeps_rollover)
        self.tracker = SecondaryTierTracker()
        self.cache = CycleCache(self.config.cache_max_entries) if self.config.enable_caching else None

        logger.info(f"Cycle Engine initialized (caching {'on' if self.cache else 'off'})")

    def compute(self, ledger: Any, settings: Any = None, through_month: Any = None) -> CycleResult:
        """
        Rebuild the primary and secondary cycle sequences

        Args:
            ledger: Iterable of LedgerEntry objects or dicts; never mutated
            settings: QualificationSettings or a raw dict of the starting configuration
            through_month: Optional month to extend the walk to (e.g. today)

        Returns:
            CycleResult with cycles, secondary cycles and warnings

        Raises:
            ValidationError: If the ledger is None or not an iterable of entries
        """
        key = None
        if self.cache is not None and isinstance(ledger, (list, tuple)):
            key = content_key(ledger, settings, str(through_month) if through_month is not None else None)
            cached = self.cache.get(key)
            if cached is not None:
                logger.debug("Returning cached cycle result")
                return cached

        result = _walk(self.builder, self.tracker, ledger, settings, through_month)

        if key is not None:
            self.cache.put(key, result)
        return result

    def generate_json_output(self, result: CycleResult, output_file: Optional[str] = None) -> Dict[str, Any]:
        """
        Generate JSON output for a computed result

        Args:
            result: Result from compute
            output_file: Optional file path to save JSON output

        Returns:
            Dictionary containing the JSON-formatted output
        """
        try:
            output = result.to_dict(include_ledger=self.config.include_ledger_in_output)
            output["processing_summary"] = {
                "total_cycles": len(result.cycles),
                "total_secondary_cycles": len(result.secondary_cycles),
                "total_warnings": len(result.warnings),
                "processing_timestamp": datetime.now(timezone.utc).isoformat(),
                "cycle_engine_version": get_cycle_engine_version(),
            }

            if output_file:
                output_path = Path(output_file)
                output_path.parent.mkdir(parents=True, exist_ok=True)
                with open(output_path, "w", encoding="utf-8") as f:
                    json.dump(output, f, indent=2)
                logger.info(f"JSON output saved to: {output_file}")

            return output

        except OSError as e:
            logger.error(f"Error generating JSON output: {e}")
            raise CycleEngineError(f"Failed to generate JSON output: {e}")

    def cycles_to_dataframe(self, result: CycleResult) -> pd.DataFrame:
        """One row per primary cycle, without ledger slices"""
        rows: List[Dict[str, Any]] = []
        for cycle in result.cycles:
            row = cycle.model_dump(exclude={"ledger_slice"})
            row["months_with_activity"] = len(cycle.ledger_slice)
            row["is_open"] = cycle.is_open
            rows.append(row)

        columns = [
            "index", "start_date", "end_date", "last_day", "starting_tier", "rollover_in",
            "actual_points", "projected_points", "actual_tier", "projected_tier", "closed_early",
            "rollover_out", "ending_tier", "outcome", "promotion_month", "months_with_activity", "is_open",
        ]
        df = pd.DataFrame(rows, columns=columns)
        for column in ("starting_tier", "actual_tier", "projected_tier", "ending_tier", "outcome"):
            df[column] = df[column].map(lambda value: value.value if value is not None else None)
        return df


def compute_cycles(ledger: Any, settings: Any = None, through_month: Any = None) -> CycleResult:
    """Stateless entry point: a fresh walk with the default product rules and no memo"""
    return _walk(CycleBuilder(), SecondaryTierTracker(), ledger, settings, through_month)


def _walk(builder: CycleBuilder, tracker: SecondaryTierTracker, ledger: Any, settings: Any,
          through_month: Any) -> CycleResult:
    entries, warnings = normalize_ledger(ledger)
    parsed_settings, settings_warnings = QualificationSettings.from_raw(settings)
    warnings.extend(settings_warnings)

    through = None
    if through_month is not None:
        try:
            through = parse_month_key(through_month)
        except ValueError as e:
            warnings.append(EngineWarning(code="invalid_settings", message=f"Ignoring through_month: {e}"))
            logger.warning(f"Ignoring through_month: {e}")

    secondary = tracker.walk(
        parsed_settings.secondary_cycle_mode,
        parsed_settings.holds_secondary_tier,
        parsed_settings.starting_secondary_points,
    )
    cycles, build_warnings, last_month = builder.build(
        entries,
        parsed_settings.primary_starting_tier,
        parsed_settings.starting_xp,
        parsed_settings.cycle_start_month,
        through,
        secondary=secondary,
    )
    warnings.extend(build_warnings)
    secondary_cycles = secondary.cycles

    result = CycleResult(
        cycles=tuple(cycles),
        secondary_cycles=tuple(secondary_cycles),
        warnings=tuple(warnings),
        through_month=last_month,
    )

    current = result.current_cycle
    logger.info(
        f"Computed {len(cycles)} cycle(s) and {len(secondary_cycles)} secondary cycle(s) "
        f"through {last_month}; current tier {current.starting_tier.value if current else 'n/a'}, "
        f"{len(warnings)} warning(s)"
    )
    return result
