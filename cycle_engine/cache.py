"""
Content-keyed memo for engine results
"""

import hashlib
import json
from collections import OrderedDict
from typing import Any, Optional

from loguru import logger
from pydantic import BaseModel

from .models import CycleResult


def _jsonable(value: Any) -> Any:
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json")
    if isinstance(value, (list, tuple)):
        return [_jsonable(item) for item in value]
    if isinstance(value, dict):
        return {str(k): _jsonable(v) for k, v in value.items()}
    return value


def content_key(ledger: Any, settings: Any, through_month: Optional[str] = None) -> str:
    """SHA-256 over a canonical JSON rendering of the engine inputs"""
    payload = {
        "ledger": _jsonable(ledger),
        "settings": _jsonable(settings),
        "through_month": through_month,
    }
    text = json.dumps(payload, sort_keys=True, default=str)
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


class CycleCache:
    """Least-recently-used store of CycleResult objects keyed on input content"""

    def __init__(self, max_entries: int = 64):
        self.max_entries = max(1, max_entries)
        self._entries: "OrderedDict[str, CycleResult]" = OrderedDict()
        self.hits = 0
        self.misses = 0

    def get(self, key: str) -> Optional[CycleResult]:
        result = self._entries.get(key)
        if result is None:
            self.misses += 1
            return None
        self._entries.move_to_end(key)
        self.hits += 1
        return result

    def put(self, key: str, result: CycleResult) -> None:
        self._entries[key] = result
        self._entries.move_to_end(key)
        while len(self._entries) > self.max_entries:
            evicted, _ = self._entries.popitem(last=False)
            logger.debug(f"Evicted cached result {evicted[:12]}")

    def clear(self) -> None:
        self._entries.clear()
        self.hits = 0
        self.misses = 0

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        return key in self._entries
