"""
Ledger normalization and ingestion

Turns whatever the importer hands over (LedgerEntry objects, dicts, DataFrame
rows) into a sorted, one-entry-per-month ledger. Bad rows are skipped with a
warning rather than raised.
"""

from collections.abc import Iterable
from datetime import date, datetime
from typing import Any, Dict, List, Optional, Tuple

import pandas as pd
from loguru import logger
from pydantic import ValidationError as PydanticValidationError

from .exceptions import ValidationError
from .models import EngineWarning, LedgerEntry


POINT_FIELDS = ("actual_points", "scheduled_points", "secondary_points", "correction")

# DataFrame column aliases -> LedgerEntry field
COLUMN_ALIASES = {
    "month": "month",
    "actual_points": "actual_points",
    "actualpoints": "actual_points",
    "actual_xp": "actual_points",
    "xp": "actual_points",
    "scheduled_points": "scheduled_points",
    "scheduledpoints": "scheduled_points",
    "scheduled_xp": "scheduled_points",
    "secondary_points": "secondary_points",
    "secondarypoints": "secondary_points",
    "uxp": "secondary_points",
    "correction": "correction",
    "correction_xp": "correction",
}


def _require_iterable(raw_entries: Any) -> None:
    if raw_entries is None:
        raise ValidationError("Ledger must not be None")
    if isinstance(raw_entries, (str, bytes, dict)) or not isinstance(raw_entries, Iterable):
        raise ValidationError(f"Ledger must be an iterable of entries, got {type(raw_entries).__name__}")


def _to_entry(raw: Any, position: int) -> Tuple[Optional[LedgerEntry], Optional[EngineWarning]]:
    if isinstance(raw, LedgerEntry):
        return raw, None

    if not isinstance(raw, dict):
        return None, EngineWarning(
            code="malformed_entry",
            message=f"Entry {position} skipped: expected a mapping, got {type(raw).__name__}",
        )

    try:
        return LedgerEntry.model_validate(raw), None
    except PydanticValidationError as e:
        month = raw.get("month")
        first_error = e.errors()[0]["msg"] if e.errors() else str(e)
        return None, EngineWarning(
            code="malformed_entry",
            message=f"Entry {position} skipped: {first_error}",
            month=str(month) if month is not None else None,
        )


def normalize_ledger(raw_entries: Any) -> Tuple[List[LedgerEntry], List[EngineWarning]]:
    """
    Validate, deduplicate and sort ledger entries

    The caller's sequence is not mutated; valid LedgerEntry objects are reused as-is.

    Args:
        raw_entries: Iterable of LedgerEntry objects or dicts

    Returns:
        Tuple of (entries sorted by month, warnings)

    Raises:
        ValidationError: If raw_entries is None or not an iterable of entries
    """
    _require_iterable(raw_entries)

    warnings: List[EngineWarning] = []
    by_month: Dict[str, LedgerEntry] = {}

    for position, raw in enumerate(raw_entries):
        entry, warning = _to_entry(raw, position)
        if warning:
            warnings.append(warning)
            logger.warning(warning.message)
            continue

        if entry.secondary_points < 0:
            warning = EngineWarning(
                code="negative_secondary_points",
                message=f"Negative secondary points {entry.secondary_points} in {entry.month}; using 0",
                month=entry.month,
            )
            warnings.append(warning)
            logger.warning(warning.message)
            entry = entry.model_copy(update={"secondary_points": 0})

        if entry.month in by_month:
            warning = EngineWarning(
                code="duplicate_month",
                message=f"Duplicate entry for {entry.month} ignored; keeping the first one",
                month=entry.month,
            )
            warnings.append(warning)
            logger.warning(warning.message)
            continue

        by_month[entry.month] = entry

    entries = [by_month[month] for month in sorted(by_month)]
    logger.debug(f"Normalized ledger: {len(entries)} months, {len(warnings)} warnings")
    return entries, warnings


def merge_ledgers(*sources: Any) -> Tuple[List[LedgerEntry], List[EngineWarning]]:
    """
    Sum several per-month sources into one ledger

    Used to combine flight-derived points with manual corrections before a run.

    Returns:
        Tuple of (merged entries sorted by month, warnings from every source)
    """
    totals: Dict[str, Dict[str, int]] = {}
    warnings: List[EngineWarning] = []

    for source in sources:
        entries, source_warnings = normalize_ledger(source)
        warnings.extend(source_warnings)
        for entry in entries:
            month_totals = totals.setdefault(entry.month, {field: 0 for field in POINT_FIELDS})
            for field in POINT_FIELDS:
                month_totals[field] += getattr(entry, field)

    merged = [LedgerEntry(month=month, **totals[month]) for month in sorted(totals)]
    return merged, warnings


def _plain_value(value: Any) -> Any:
    if value is None or (not isinstance(value, str) and pd.isna(value)):
        return None
    if isinstance(value, (date, datetime)):
        return value
    if hasattr(value, "item"):
        # numpy scalars -> python scalars
        return value.item()
    return value


def ledger_from_dataframe(df: pd.DataFrame) -> List[Dict[str, Any]]:
    """
    Convert a DataFrame with one row per month into raw ledger entries

    Column names are matched case-insensitively against known aliases (e.g. "XP",
    "UXP", "actualPoints"); unknown columns are ignored. NaN cells become missing
    values, which the ledger model treats as zero points.

    Args:
        df: Input DataFrame

    Returns:
        List of dicts ready for normalize_ledger
    """
    if df is None:
        raise ValidationError("DataFrame must not be None")

    column_map = {}
    for column in df.columns:
        field = COLUMN_ALIASES.get(str(column).strip().lower())
        if field and field not in column_map.values():
            column_map[column] = field

    if "month" not in column_map.values():
        logger.warning(f"No month column found in DataFrame columns {list(df.columns)}")

    raw_entries = []
    for _, row in df.iterrows():
        row_dict = row.to_dict()
        raw_entries.append({
            field: _plain_value(row_dict[column]) for column, field in column_map.items()
        })

    logger.info(f"Converted DataFrame with {len(df)} rows into ledger entries")
    return raw_entries
