"""Snapshot Store: persistent SQLite history of comparison metrics.

Each comparison key ``(user_id, slug, timeframe, geo)`` accumulates an
append-mostly history of metric snapshots. A new computation either refreshes
the latest row in place (when it is under an hour old and nothing moved past
the change thresholds) or appends a new row, so the history only grows when
something meaningful changed.

Writes for one key are serialized: a per-key lock inside the process and a
``BEGIN IMMEDIATE`` transaction across processes. ``computed_at`` never
decreases along a key's insertion order.

Usage:
    from trendarc.snapshots import SnapshotKey, SnapshotMetrics, SnapshotStore

    store = SnapshotStore("data/trendarc.db")
    key = SnapshotKey(user_id="u1", slug="iphone-vs-android", timeframe="12m")
    store.save(key, "iPhone", "Android", SnapshotMetrics.from_comparison(metrics, verdict))
    history = store.history(key, limit=20)
"""

import logging
import sqlite3
import threading
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Callable

from trendarc.config import settings
from trendarc.engine.metrics import ComparisonMetrics, ComparisonSnapshot
from trendarc.engine.verdict import ComparisonVerdict

logger = logging.getLogger(__name__)

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS comparison_snapshots (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL,
    slug TEXT NOT NULL,
    term_a TEXT NOT NULL,
    term_b TEXT NOT NULL,
    timeframe TEXT NOT NULL,
    geo TEXT NOT NULL DEFAULT '',
    computed_at TEXT NOT NULL,
    margin_points REAL NOT NULL,
    confidence REAL NOT NULL,
    volatility REAL NOT NULL,
    agreement_index REAL NOT NULL,
    winner TEXT NOT NULL,
    winner_score REAL NOT NULL,
    loser_score REAL NOT NULL,
    category TEXT DEFAULT NULL
);

CREATE INDEX IF NOT EXISTS idx_snapshots_key
    ON comparison_snapshots (user_id, slug, timeframe, geo, computed_at DESC);
"""

# Fixed-width UTC timestamps so text ordering equals time ordering.
_TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%S.%fZ"

_SELECT_FOR_KEY = (
    "SELECT * FROM comparison_snapshots "
    "WHERE user_id = ? AND slug = ? AND timeframe = ? AND geo = ? "
    "ORDER BY computed_at DESC, rowid DESC "
    "LIMIT ?"
)


def _format_ts(dt: datetime) -> str:
    return dt.astimezone(timezone.utc).strftime(_TIMESTAMP_FORMAT)


def _parse_ts(raw: str) -> datetime:
    return datetime.strptime(raw, _TIMESTAMP_FORMAT).replace(tzinfo=timezone.utc)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class SnapshotKey:
    """Identity of a comparison's snapshot history."""

    user_id: str
    slug: str
    timeframe: str
    geo: str | None = ""

    def params(self) -> tuple[str, str, str, str]:
        return (self.user_id, self.slug, self.timeframe, self.geo or "")


@dataclass
class SnapshotMetrics:
    """Fields recorded per snapshot: current-period metrics + verdict summary."""

    margin_points: float
    confidence: float
    volatility: float
    agreement_index: float
    winner: str
    winner_score: float
    loser_score: float
    category: str | None = None

    @classmethod
    def from_comparison(
        cls,
        metrics: ComparisonMetrics,
        verdict: ComparisonVerdict,
        category: str | None = None,
    ) -> "SnapshotMetrics":
        return cls(
            margin_points=metrics.margin_points,
            confidence=metrics.confidence,
            volatility=metrics.volatility,
            agreement_index=metrics.agreement_index,
            winner=verdict.winner,
            winner_score=verdict.winner_score.overall,
            loser_score=verdict.loser_score.overall,
            category=category,
        )


def _row_to_snapshot(row: sqlite3.Row) -> ComparisonSnapshot:
    return ComparisonSnapshot(
        id=row["id"],
        user_id=row["user_id"],
        slug=row["slug"],
        term_a=row["term_a"],
        term_b=row["term_b"],
        timeframe=row["timeframe"],
        geo=row["geo"],
        computed_at=_parse_ts(row["computed_at"]),
        margin_points=row["margin_points"],
        confidence=row["confidence"],
        volatility=row["volatility"],
        agreement_index=row["agreement_index"],
        winner=row["winner"],
        winner_score=row["winner_score"],
        loser_score=row["loser_score"],
        category=row["category"],
    )


class SnapshotStore:
    """SQLite-backed comparison snapshot history.

    Args:
        db_path: Path to the SQLite database file (created if missing).
            Defaults to settings.snapshot_db_path.
        clock: Returns the current UTC time, injectable for tests
        dedup_window: Age under which the latest snapshot may be updated
        margin_threshold: |Δmargin| above which a new row is appended
        confidence_threshold: |Δconfidence| above which a new row is appended
        agreement_threshold: |Δagreement| above which a new row is appended
    """

    def __init__(
        self,
        db_path: str | Path | None = None,
        clock: Callable[[], datetime] = _utcnow,
        dedup_window: timedelta | None = None,
        margin_threshold: float | None = None,
        confidence_threshold: float | None = None,
        agreement_threshold: float | None = None,
    ) -> None:
        self.db_path = Path(db_path or settings.snapshot_db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._clock = clock
        self.dedup_window = dedup_window or timedelta(seconds=settings.snapshot_dedup_window_seconds)
        self.margin_threshold = (
            settings.snapshot_margin_threshold if margin_threshold is None else margin_threshold
        )
        self.confidence_threshold = (
            settings.snapshot_confidence_threshold if confidence_threshold is None else confidence_threshold
        )
        self.agreement_threshold = (
            settings.snapshot_agreement_threshold if agreement_threshold is None else agreement_threshold
        )
        self._key_locks: dict[tuple[str, ...], threading.Lock] = {}
        self._key_locks_guard = threading.Lock()
        self._init_db()

    def _init_db(self) -> None:
        """Initialize database schema if not exists."""
        with self._connect() as conn:
            conn.executescript(SCHEMA_SQL)

    def _connect(self, autocommit: bool = False) -> sqlite3.Connection:
        """Create a database connection with WAL mode for concurrent readers."""
        if autocommit:
            conn = sqlite3.connect(str(self.db_path), timeout=30.0, isolation_level=None)
        else:
            conn = sqlite3.connect(str(self.db_path), timeout=30.0)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA journal_mode=WAL")
        return conn

    def _lock_for(self, key: SnapshotKey) -> threading.Lock:
        with self._key_locks_guard:
            return self._key_locks.setdefault(key.params(), threading.Lock())

    def _is_minor_change(
        self,
        latest: ComparisonSnapshot,
        metrics: SnapshotMetrics,
        now: datetime,
    ) -> bool:
        """True when the latest row is recent and nothing moved past a threshold."""
        if now - latest.computed_at >= self.dedup_window:
            return False
        return not (
            abs(metrics.margin_points - latest.margin_points) > self.margin_threshold
            or abs(metrics.confidence - latest.confidence) > self.confidence_threshold
            or abs(metrics.agreement_index - latest.agreement_index) > self.agreement_threshold
        )

    # ── Writes ────────────────────────────────────────────────

    def save(
        self,
        key: SnapshotKey,
        term_a: str,
        term_b: str,
        metrics: SnapshotMetrics,
    ) -> ComparisonSnapshot:
        """Record a computation, updating the latest row or appending a new one.

        Args:
            key: Comparison identity
            term_a: First term
            term_b: Second term
            metrics: Fields to record

        Returns:
            The stored snapshot (same id as before when updated in place)

        Raises:
            sqlite3.Error: On any persistence failure
        """
        with self._lock_for(key):
            conn = self._connect(autocommit=True)
            try:
                conn.execute("BEGIN IMMEDIATE")
                row = conn.execute(_SELECT_FOR_KEY, (*key.params(), 1)).fetchone()
                latest = _row_to_snapshot(row) if row else None

                now = self._clock()
                if latest is not None and latest.computed_at > now:
                    now = latest.computed_at

                fields = (
                    metrics.margin_points,
                    metrics.confidence,
                    metrics.volatility,
                    metrics.agreement_index,
                    metrics.winner,
                    metrics.winner_score,
                    metrics.loser_score,
                    metrics.category,
                )

                if latest is not None and self._is_minor_change(latest, metrics, now):
                    snapshot_id = latest.id
                    conn.execute(
                        "UPDATE comparison_snapshots SET computed_at = ?, "
                        "margin_points = ?, confidence = ?, volatility = ?, agreement_index = ?, "
                        "winner = ?, winner_score = ?, loser_score = ?, category = ? "
                        "WHERE id = ?",
                        (_format_ts(now), *fields, snapshot_id),
                    )
                    action = "Updated"
                else:
                    snapshot_id = uuid.uuid4().hex
                    conn.execute(
                        "INSERT INTO comparison_snapshots (id, user_id, slug, term_a, term_b, "
                        "timeframe, geo, computed_at, margin_points, confidence, volatility, "
                        "agreement_index, winner, winner_score, loser_score, category) "
                        "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                        (snapshot_id, key.user_id, key.slug, term_a, term_b, key.timeframe,
                         key.geo or "", _format_ts(now), *fields),
                    )
                    action = "Inserted"
                conn.execute("COMMIT")
            except BaseException:
                if conn.in_transaction:
                    conn.execute("ROLLBACK")
                raise
            finally:
                conn.close()

        logger.info("%s snapshot %s for %s/%s", action, snapshot_id[:8], key.user_id, key.slug)
        return ComparisonSnapshot(
            id=snapshot_id,
            user_id=key.user_id,
            slug=key.slug,
            term_a=term_a,
            term_b=term_b,
            timeframe=key.timeframe,
            geo=key.geo or "",
            computed_at=_parse_ts(_format_ts(now)),
            margin_points=metrics.margin_points,
            confidence=metrics.confidence,
            volatility=metrics.volatility,
            agreement_index=metrics.agreement_index,
            winner=metrics.winner,
            winner_score=metrics.winner_score,
            loser_score=metrics.loser_score,
            category=metrics.category,
        )

    # ── Reads ─────────────────────────────────────────────────

    def latest(self, key: SnapshotKey) -> ComparisonSnapshot | None:
        """Most recent snapshot for key, or None."""
        history = self.history(key, limit=1)
        return history[0] if history else None

    def history(self, key: SnapshotKey, limit: int = 20) -> list[ComparisonSnapshot]:
        """Snapshots for key, newest first."""
        with self._connect() as conn:
            rows = conn.execute(_SELECT_FOR_KEY, (*key.params(), limit)).fetchall()
        return [_row_to_snapshot(row) for row in rows]

    def count(self, key: SnapshotKey) -> int:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT COUNT(*) FROM comparison_snapshots "
                "WHERE user_id = ? AND slug = ? AND timeframe = ? AND geo = ?",
                key.params(),
            ).fetchone()
        return int(row[0])


# ── Never-raising wrappers ────────────────────────────────────
# A failed snapshot write must never fail the computation that produced it.


def save_comparison_snapshot(
    store: SnapshotStore,
    key: SnapshotKey,
    term_a: str,
    term_b: str,
    metrics: SnapshotMetrics,
) -> ComparisonSnapshot | None:
    """Save a snapshot, logging and returning None on failure."""
    try:
        return store.save(key, term_a, term_b, metrics)
    except Exception:
        logger.error("Failed to save snapshot for %s/%s", key.user_id, key.slug, exc_info=True)
        return None


def get_latest_snapshot(store: SnapshotStore, key: SnapshotKey) -> ComparisonSnapshot | None:
    """Latest snapshot, or None on failure."""
    try:
        return store.latest(key)
    except Exception:
        logger.error("Failed to load latest snapshot for %s/%s", key.user_id, key.slug, exc_info=True)
        return None


def get_snapshot_history(
    store: SnapshotStore,
    key: SnapshotKey,
    limit: int = 20,
) -> list[ComparisonSnapshot]:
    """Snapshot history newest-first, or [] on failure."""
    try:
        return store.history(key, limit=limit)
    except Exception:
        logger.error("Failed to load snapshot history for %s/%s", key.user_id, key.slug, exc_info=True)
        return []
