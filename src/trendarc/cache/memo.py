"""TTL memoization cache keyed by a stable hash of the inputs.

Entries are deep-copied on write and on read, so a caller mutating a returned
value can never alter what other callers see. When a recomputation raises and
an expired entry still exists for the key, the stale value is served and the
failure is logged.

Usage:
    cache = TTLCache(ttl_seconds=300)
    key = stable_hash({"terms": ["a", "b"], "series": rows})
    metrics = cache.get_or_compute(key, lambda: expensive(rows))
"""

import copy
import hashlib
import json
import logging
import threading
import time
from dataclasses import asdict, is_dataclass
from datetime import date, datetime
from typing import Any, Callable, TypeVar

import numpy as np
import pandas as pd

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _to_jsonable(value: Any) -> Any:
    """Convert frames, dataclasses, models and numpy scalars to JSON-friendly values."""
    if isinstance(value, pd.DataFrame):
        return value.to_dict(orient="records")
    if isinstance(value, pd.Series):
        return value.tolist()
    if is_dataclass(value) and not isinstance(value, type):
        return asdict(value)
    if hasattr(value, "model_dump"):
        return value.model_dump()
    if isinstance(value, np.generic):
        return value.item()
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return str(value)


def stable_hash(payload: Any) -> str:
    """Hash an arbitrary input structure deterministically.

    Dict keys are sorted, so two payloads that differ only in key order hash
    the same.

    Args:
        payload: Any JSON-serializable structure (DataFrames and dataclasses
            are converted first)

    Returns:
        First 16 hex characters of the sha256 digest
    """
    raw = json.dumps(payload, sort_keys=True, default=_to_jsonable)
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()[:16]


class TTLCache:
    """Thread-safe memo table with per-entry expiry.

    Once the table holds more than ``max_entries`` keys, each write evicts
    expired entries, oldest first, until it is back within the bound. Fresh
    entries are never evicted, and the most recently expired ones survive as
    long as the bound allows so they can still be served stale.

    Args:
        ttl_seconds: Lifetime of each entry
        clock: Monotonic time source, injectable for tests
        max_entries: Table size above which expired entries are swept
    """

    def __init__(
        self,
        ttl_seconds: float = 300.0,
        clock: Callable[[], float] = time.monotonic,
        max_entries: int = 1000,
    ) -> None:
        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self._clock = clock
        self._entries: dict[str, tuple[float, float, Any]] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def get(self, key: str) -> Any | None:
        """Return a fresh entry, or None if missing or expired."""
        with self._lock:
            entry = self._entries.get(key)
        if entry is None:
            return None
        stored_at, ttl, value = entry
        if self._clock() - stored_at >= ttl:
            return None
        return copy.deepcopy(value)

    def set(self, key: str, value: Any, ttl_seconds: float | None = None) -> None:
        ttl = self.ttl_seconds if ttl_seconds is None else ttl_seconds
        now = self._clock()
        with self._lock:
            self._entries[key] = (now, ttl, copy.deepcopy(value))
            if len(self._entries) > self.max_entries:
                self._sweep(now)

    def _sweep(self, now: float) -> None:
        """Evict expired entries, oldest first, down to max_entries. Caller holds the lock."""
        expired = sorted(
            (stored_at, key)
            for key, (stored_at, ttl, _) in self._entries.items()
            if now - stored_at >= ttl
        )
        excess = len(self._entries) - self.max_entries
        for _, key in expired[:excess]:
            del self._entries[key]
        if expired:
            logger.debug("Swept %d expired memo entries", min(excess, len(expired)))

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def get_or_compute(
        self,
        key: str,
        compute: Callable[[], T],
        ttl_seconds: float | None = None,
    ) -> T:
        """Return the cached value for key, computing it on a miss.

        Args:
            key: Cache key (usually from stable_hash)
            compute: Zero-argument callable producing the value
            ttl_seconds: Lifetime override for a newly computed entry

        Returns:
            The fresh cached value, a newly computed one, or a stale value
            when compute() raises and one is available.

        Raises:
            Whatever compute() raised, if no stale entry exists for key.
        """
        cached = self.get(key)
        if cached is not None:
            return cached

        try:
            value = compute()
        except Exception as e:
            with self._lock:
                stale = self._entries.get(key)
            if stale is None:
                raise
            logger.warning("Recomputation failed for %s, serving stale entry: %s", key[:12], e)
            return copy.deepcopy(stale[2])

        self.set(key, value, ttl_seconds)
        return copy.deepcopy(value)
