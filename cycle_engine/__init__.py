"""
Qualification Cycle Engine

Rebuilds an airline loyalty member's tier history from a monthly point ledger:
cascading promotions, capped rollover, soft landings and the secondary
(Ultimate) tier tracked on its own counter.
"""

__version__ = "1.0.0"
__author__ = "Cycle Engine Team"

from .core import QualificationEngine, compute_cycles
from .config import EngineConfig, QualificationSettings
from .models import Cycle, CycleOutcome, CycleResult, EngineWarning, LedgerEntry, SecondaryCycle, SecondaryCycleMode, Tier
from .ledger import ledger_from_dataframe, merge_ledgers, normalize_ledger
from .queries import cycles_for_range, effective_tier, find_active_cycle, requalification_risk, xp_to_next
from .exceptions import CycleEngineError, ValidationError, ConfigurationError

__all__ = [
    "QualificationEngine",
    "compute_cycles",
    "EngineConfig",
    "QualificationSettings",
    "Cycle",
    "CycleOutcome",
    "CycleResult",
    "EngineWarning",
    "LedgerEntry",
    "SecondaryCycle",
    "SecondaryCycleMode",
    "Tier",
    "ledger_from_dataframe",
    "merge_ledgers",
    "normalize_ledger",
    "cycles_for_range",
    "effective_tier",
    "find_active_cycle",
    "requalification_risk",
    "xp_to_next",
    "CycleEngineError",
    "ValidationError",
    "ConfigurationError",
]
