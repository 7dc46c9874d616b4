"""Comparison snapshot persistence and change detection."""

from trendarc.engine.metrics import ComparisonSnapshot
from trendarc.snapshots.store import (
    SnapshotKey,
    SnapshotMetrics,
    SnapshotStore,
    get_latest_snapshot,
    get_snapshot_history,
    save_comparison_snapshot,
)

__all__ = [
    "ComparisonSnapshot",
    "SnapshotKey",
    "SnapshotMetrics",
    "SnapshotStore",
    "get_latest_snapshot",
    "get_snapshot_history",
    "save_comparison_snapshot",
]
