"""
Data models for the Cycle Engine
"""

from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, Optional, Tuple

import pandas as pd
from pydantic import BaseModel, ConfigDict, Field, field_validator


MONTH_FORMAT = "%Y-%m"
MIN_YEAR = 1900
MAX_YEAR = 2100


class Tier(str, Enum):
    """Member status levels; Ultimate is the secondary (UXP) tier"""

    EXPLORER = "Explorer"
    SILVER = "Silver"
    GOLD = "Gold"
    PLATINUM = "Platinum"
    ULTIMATE = "Ultimate"

    @classmethod
    def parse(cls, value: Any) -> "Tier":
        """Case-insensitive lookup by value or member name"""
        if isinstance(value, cls):
            return value
        text = str(value).strip().lower()
        for tier in cls:
            if text in (tier.value.lower(), tier.name.lower()):
                return tier
        raise ValueError(f"Unknown tier: {value!r}")


class SecondaryCycleMode(str, Enum):
    FOLLOWS_PRIMARY = "followsPrimary"
    CALENDAR_YEAR = "calendarYear"

    @classmethod
    def parse(cls, value: Any) -> "SecondaryCycleMode":
        if isinstance(value, cls):
            return value
        text = str(value).strip().replace("_", "").replace("-", "").lower()
        if text in ("followsprimary", "qualification", "primary"):
            return cls.FOLLOWS_PRIMARY
        if text in ("calendaryear", "calendar"):
            return cls.CALENDAR_YEAR
        raise ValueError(f"Unknown secondary cycle mode: {value!r}")


class CycleOutcome(str, Enum):
    PROMOTED = "promoted"
    REQUALIFIED = "requalified"
    SOFT_LANDED = "soft_landed"
    LANDED = "landed"
    NOT_REACHED = "not_reached"
    OPEN = "open"


def parse_month_key(value: Any) -> str:
    """
    Normalize a month identifier to YYYY-MM

    Accepts date/datetime objects and strings shaped YYYY-MM, YYYY-MM-DD or YYYY/MM.

    Raises:
        ValueError: If the value is not a recognizable month
    """
    if isinstance(value, (date, datetime)):
        parsed = value
    elif isinstance(value, str):
        text = value.strip()
        parsed = None
        for fmt in (MONTH_FORMAT, "%Y-%m-%d", "%Y/%m", "%Y-%m-%dT%H:%M:%S"):
            try:
                parsed = datetime.strptime(text, fmt)
                break
            except ValueError:
                continue
        if parsed is None:
            raise ValueError(f"Malformed month key: {value!r}")
    else:
        raise ValueError(f"Malformed month key: {value!r}")

    if not MIN_YEAR <= parsed.year <= MAX_YEAR:
        raise ValueError(f"Month out of range: {value!r}")
    return f"{parsed.year:04d}-{parsed.month:02d}"


class LedgerEntry(BaseModel):
    """One calendar month of point activity, produced by the importer / manual corrections"""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    month: str
    actual_points: int = Field(default=0, alias="actualPoints")
    scheduled_points: int = Field(default=0, alias="scheduledPoints")
    secondary_points: int = Field(default=0, alias="secondaryPoints")
    correction: int = 0

    @field_validator("month", mode="before")
    @classmethod
    def normalize_month(cls, v):
        return parse_month_key(v)

    @field_validator("actual_points", "scheduled_points", "secondary_points", "correction", mode="before")
    @classmethod
    def missing_points_are_zero(cls, v):
        if v is None or v == "" or (isinstance(v, float) and pd.isna(v)):
            return 0
        return v

    @property
    def projected_points(self) -> int:
        return self.actual_points + self.scheduled_points


class Cycle(BaseModel):
    """One qualification cycle (12 months or shorter when closed by a promotion)"""

    model_config = ConfigDict(frozen=True)

    index: int
    start_date: date
    end_date: date  # exclusive
    last_day: date
    starting_tier: Tier
    rollover_in: int
    ledger_slice: Tuple[LedgerEntry, ...] = ()

    actual_points: int
    projected_points: int
    actual_tier: Tier
    projected_tier: Tier

    closed_early: bool = False
    rollover_out: Optional[int] = None
    ending_tier: Optional[Tier] = None
    outcome: CycleOutcome = CycleOutcome.OPEN
    promotion_month: Optional[str] = None

    @property
    def is_open(self) -> bool:
        return self.outcome == CycleOutcome.OPEN

    def contains(self, day: date) -> bool:
        return self.start_date <= day < self.end_date


class SecondaryCycle(BaseModel):
    """One measurement window of the secondary (UXP) counter"""

    model_config = ConfigDict(frozen=True)

    index: int
    start_date: date
    end_date: date  # exclusive
    last_day: date
    holds_secondary_tier: bool
    rollover_in: int
    ledger_slice: Tuple[LedgerEntry, ...] = ()

    earned_points: int = 0
    untracked_points: int = 0
    ineligible_points: int = 0
    actual_points: int
    eligible_months: int = 0
    actual_tier: Optional[Tier] = None

    closed_early: bool = False
    rollover_out: Optional[int] = None
    ending_tier: Optional[Tier] = None
    outcome: CycleOutcome = CycleOutcome.OPEN
    promotion_month: Optional[str] = None

    @property
    def is_open(self) -> bool:
        return self.outcome == CycleOutcome.OPEN

    def contains(self, day: date) -> bool:
        return self.start_date <= day < self.end_date


class EngineWarning(BaseModel):
    """Degraded-input signal returned alongside a result instead of raising"""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    month: Optional[str] = None


class CycleResult(BaseModel):
    """Complete output of one engine run"""

    model_config = ConfigDict(frozen=True)

    cycles: Tuple[Cycle, ...] = ()
    secondary_cycles: Tuple[SecondaryCycle, ...] = ()
    warnings: Tuple[EngineWarning, ...] = ()
    through_month: Optional[str] = None

    @property
    def current_cycle(self) -> Optional[Cycle]:
        return self.cycles[-1] if self.cycles else None

    def to_dict(self, include_ledger: bool = True) -> Dict[str, Any]:
        """JSON-ready dict; dates come out as ISO strings"""
        exclude = None
        if not include_ledger:
            exclude = {
                "cycles": {"__all__": {"ledger_slice"}},
                "secondary_cycles": {"__all__": {"ledger_slice"}},
            }
        return self.model_dump(mode="json", exclude=exclude)
