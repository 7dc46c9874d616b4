"""In-process memoization for TrendArc.

Expensive derived results (comparison metrics) are cached per input hash with
a time-to-live and served stale when a recomputation fails.
"""

from trendarc.cache.memo import TTLCache, stable_hash

__all__ = ["TTLCache", "stable_hash"]
