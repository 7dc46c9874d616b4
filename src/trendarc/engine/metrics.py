"""Comparison metrics: volatility, source agreement, stability and change.

Derives the risk and change indicators shown next to a verdict:

- volatility: coefficient of variation of each term's series (0-100)
- agreement index: share of breakdown dimensions agreeing with the verdict
- stability: stable / hype / volatile shape of the winner's recent series
- change metrics: deltas vs a stored snapshot or vs the first half of the series
- top drivers and risk flags

Every function degrades to zero/neutral values on empty, short or malformed
input instead of raising. ``MetricsEngine`` memoizes full results in an
explicitly passed TTLCache.
"""

import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable

import numpy as np
import pandas as pd

from trendarc.cache import TTLCache, stable_hash
from trendarc.config import settings
from trendarc.engine.confidence import ComparisonConfidence, calculate_comparison_confidence
from trendarc.engine.scoring import ScoreBreakdown
from trendarc.engine.series import SeriesLike, term_values, to_frame, to_records
from trendarc.engine.verdict import ComparisonVerdict

logger = logging.getLogger(__name__)

BreakdownLike = ScoreBreakdown | Mapping[str, float] | None

DRIVER_LABELS = {
    "search_interest": "Search Interest",
    "social_buzz": "Social Buzz",
    "authority": "Authority",
    "momentum": "Momentum",
    # camelCase keys as produced by JSON clients
    "searchInterest": "Search Interest",
    "socialBuzz": "Social Buzz",
}

_MIN_STABILITY_POINTS = 7
_RECENT_WINDOW = 10


class Stability(str, Enum):
    STABLE = "stable"
    HYPE = "hype"
    VOLATILE = "volatile"


class AgreementMode(str, Enum):
    """How the agreement index derives per-dimension directions.

    COMPAT: both directions come from the same pair of values, so every
        dimension agrees and the index is 100 whenever breakdowns exist.
    CORRECTED: a dimension agrees only when its own A-vs-B direction matches
        the overall A-vs-B direction (equal values count as agreeing).
    """

    COMPAT = "compat"
    CORRECTED = "corrected"


@dataclass
class TopDriver:
    name: str
    impact: float


@dataclass
class ChangeMetrics:
    gap_change_points: float = 0.0
    confidence_change: float = 0.0
    volatility_delta: float = 0.0
    agreement_change: float = 0.0


@dataclass
class ComparisonSnapshot:
    """Persisted record of a comparison's metrics at one point in time."""

    id: str
    user_id: str
    slug: str
    term_a: str
    term_b: str
    timeframe: str
    geo: str
    computed_at: datetime
    margin_points: float
    confidence: float
    volatility: float
    agreement_index: float
    winner: str
    winner_score: float
    loser_score: float
    category: str | None = None


@dataclass
class ComparisonMetrics:
    """Current-period metrics plus change vs the baseline period.

    Attributes:
        margin_points: Verdict margin
        confidence: Continuous confidence from the confidence model
        volatility: Mean volatility of both terms (0-100)
        agreement_index: 0-100
        disagreement_flag: agreement_index < 60
        stability: Shape of the winner's series
        gap_change_points / confidence_change / volatility_delta /
        agreement_change: current − previous
        top_drivers: Largest breakdown gaps between the terms
        risk_flags: Human-readable warnings
    """

    margin_points: float
    confidence: float
    volatility: float
    agreement_index: float
    disagreement_flag: bool
    stability: Stability
    gap_change_points: float = 0.0
    confidence_change: float = 0.0
    volatility_delta: float = 0.0
    agreement_change: float = 0.0
    top_drivers: list[TopDriver] = field(default_factory=list)
    risk_flags: list[str] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Building blocks
# ---------------------------------------------------------------------------


def _values(series: SeriesLike | Sequence[float], term: str | None) -> np.ndarray:
    """Readings as floats with non-numbers read as 0."""
    if term is not None:
        return term_values(series, term)
    if series is None:
        return np.array([], dtype=float)
    raw = pd.to_numeric(pd.Series(list(series), dtype=object), errors="coerce")
    return raw.fillna(0.0).to_numpy(dtype=float)


def _clean(values: np.ndarray) -> np.ndarray:
    return values[np.isfinite(values) & (values >= 0)]


def _breakdown_dict(breakdown: BreakdownLike) -> dict[str, float] | None:
    if breakdown is None:
        return None
    if isinstance(breakdown, ScoreBreakdown):
        return breakdown.as_dict()
    return dict(breakdown)


def _number(value: Any) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0.0
    return number if np.isfinite(number) else 0.0


def calculate_volatility(series: SeriesLike | Sequence[float], term: str | None = None) -> float:
    """Coefficient of variation × 100 of a series, capped at 100.

    Args:
        series: Either a trend series (with term) or a plain list of numbers
        term: Column to read from a trend series

    Returns:
        0-100; 0 with fewer than 2 finite non-negative points or mean <= 0

    Example:
        >>> calculate_volatility([10, 90, 15, 85, 12]) > 50
        True
        >>> calculate_volatility([40, 40, 40])
        0.0
    """
    values = _clean(_values(series, term))
    if len(values) < 2:
        return 0.0

    mean = float(values.mean())
    if mean <= 0:
        return 0.0
    std = float(np.sqrt(((values - mean) ** 2).mean()))
    return min(100.0, std / mean * 100)


def calculate_agreement_index(
    breakdown_a: BreakdownLike,
    breakdown_b: BreakdownLike,
    weights: Mapping[str, float] | None = None,
    mode: AgreementMode = AgreementMode.COMPAT,
) -> float:
    """Weighted share (×100) of breakdown dimensions that agree.

    The "overall" key is never treated as a dimension. Returns 50 when either
    breakdown is missing or has no dimensions. Missing weights default to 1.
    """
    a = _breakdown_dict(breakdown_a)
    b = _breakdown_dict(breakdown_b)
    if not a or not b:
        return 50.0

    dimensions = [k for k in a if k != "overall"]
    if not dimensions:
        return 50.0

    def weight_of(key: str) -> float:
        return (weights or {}).get(key) or 1.0

    overall_direction = 0.0
    if mode is AgreementMode.CORRECTED:
        if "overall" in a and "overall" in b:
            overall_direction = np.sign(_number(a["overall"]) - _number(b["overall"]))
        else:
            total_a = sum(_number(a[k]) * weight_of(k) for k in dimensions)
            total_b = sum(_number(b.get(k)) * weight_of(k) for k in dimensions)
            overall_direction = np.sign(total_a - total_b)

    total_weight = 0.0
    agreement_weight = 0.0
    for key in dimensions:
        value_a = _number(a[key])
        value_b = _number(b.get(key))
        weight = weight_of(key)
        direction = np.sign(value_a - value_b)

        if mode is AgreementMode.CORRECTED:
            agrees = direction == 0 or overall_direction == 0 or direction == overall_direction
        else:
            # Both directions derive from the same (value_a, value_b) pair.
            direction_a = direction_b = direction
            agrees = direction_a == direction_b or direction_a == 0 or direction_b == 0

        total_weight += weight
        if agrees:
            agreement_weight += weight

    return agreement_weight / total_weight * 100 if total_weight > 0 else 50.0


def classify_stability(
    series: SeriesLike | Sequence[float],
    term: str | None = None,
    volatility: float | None = None,
) -> Stability:
    """Classify the recent shape of a series as stable, hype or volatile.

    Hype when the last-10-point max exceeds 2.5× the average of the points
    before it, or when the recent variance exceeds half that average and the
    final value has fallen below 70% of the recent max. Otherwise volatile if
    volatility > 40, else stable. Fewer than 7 points is always volatile.

    Args:
        series: Trend series (with term) or plain list of numbers
        term: Column to read from a trend series
        volatility: Precomputed volatility; computed from the series if None
    """
    values = _clean(_values(series, term))
    if len(values) < _MIN_STABILITY_POINTS:
        return Stability.VOLATILE

    if volatility is None:
        volatility = calculate_volatility(values)

    recent = values[-_RECENT_WINDOW:]
    baseline = values[:-_RECENT_WINDOW]
    baseline_avg = float(baseline.mean()) if len(baseline) else 0.0
    recent_max = float(recent.max())
    recent_avg = float(recent.mean())

    spike_ratio = recent_max / baseline_avg if baseline_avg > 0 else 0.0
    variance = float(((recent - recent_avg) ** 2).mean())
    is_hype = spike_ratio > 2.5 or (
        variance > baseline_avg * 0.5 and recent[-1] < recent_max * 0.7
    )

    if is_hype:
        return Stability.HYPE
    if volatility > 40:
        return Stability.VOLATILE
    return Stability.STABLE


def calculate_change_metrics(
    current: Mapping[str, float],
    previous: Mapping[str, float],
) -> ChangeMetrics:
    """Plain current − previous deltas.

    Both mappings carry margin_points, confidence, volatility and
    agreement_index.
    """
    return ChangeMetrics(
        gap_change_points=current["margin_points"] - previous["margin_points"],
        confidence_change=current["confidence"] - previous["confidence"],
        volatility_delta=current["volatility"] - previous["volatility"],
        agreement_change=current["agreement_index"] - previous["agreement_index"],
    )


def extract_top_drivers(
    breakdown_a: BreakdownLike,
    breakdown_b: BreakdownLike,
    limit: int = 2,
) -> list[TopDriver]:
    """Breakdown dimensions with the largest gap between the two terms."""
    a = _breakdown_dict(breakdown_a)
    b = _breakdown_dict(breakdown_b)
    if a is None or b is None:
        return []

    drivers = [
        TopDriver(name=DRIVER_LABELS.get(key, key), impact=abs(_number(value) - _number(b.get(key))))
        for key, value in a.items()
        if key != "overall"
    ]
    drivers.sort(key=lambda d: d.impact, reverse=True)
    return drivers[:limit]


def generate_risk_flags(
    volatility: float,
    agreement_index: float,
    stability: Stability,
    has_spike: bool,
) -> list[str]:
    flags: list[str] = []
    if volatility > 50:
        flags.append("High volatility detected")
    if agreement_index < 60:
        flags.append("Source disagreement")
    if stability is Stability.HYPE:
        flags.append("Potential hype pattern")
    if has_spike:
        flags.append("Recent spike detected")
    return flags


def has_recent_spike(series: SeriesLike, term: str) -> bool:
    """True when the last-10-point max exceeds twice that window's average."""
    recent = term_values(series, term)[-_RECENT_WINDOW:]
    if len(recent) == 0:
        return False
    return bool(recent.max() > recent.mean() * 2)


def leader_change_risk(volatility: float, margin: float) -> float:
    """Estimated risk (0-100) that the current leader flips."""
    if margin < 5:
        margin_bonus = 50
    elif margin < 15:
        margin_bonus = 30
    else:
        margin_bonus = 0
    return min(100.0, volatility * 0.7 + margin_bonus)


# ---------------------------------------------------------------------------
# Orchestration
# ---------------------------------------------------------------------------

ConfidenceModel = Callable[[float, float, int, int, float, float], ComparisonConfidence]


def _verdict_summary(verdict: ComparisonVerdict | Mapping[str, Any]) -> dict[str, Any]:
    if isinstance(verdict, ComparisonVerdict):
        return verdict.summary()
    return dict(verdict)


class MetricsEngine:
    """Computes and memoizes ComparisonMetrics.

    Args:
        cache: Memo table shared by whoever should share results; a private
            one is created if omitted
        agreement_mode: 'compat' or 'corrected' (default from settings)
        ttl_seconds: Lifetime of cached results (default from settings)
        confidence_model: Callable scoring (agreement, volatility, points,
            sources, margin, leader-change risk)

    Raises:
        ValueError: If agreement_mode is not a known mode

    Example:
        >>> engine = MetricsEngine(cache=TTLCache(ttl_seconds=300))
        >>> metrics = engine.compute_comparison_metrics(
        ...     series, "iPhone", "Android", verdict,
        ...     verdict.winner_score.breakdown, verdict.loser_score.breakdown,
        ... )
        >>> metrics.stability
        <Stability.STABLE: 'stable'>
    """

    def __init__(
        self,
        cache: TTLCache | None = None,
        agreement_mode: AgreementMode | str | None = None,
        ttl_seconds: float | None = None,
        confidence_model: ConfidenceModel = calculate_comparison_confidence,
    ) -> None:
        self.agreement_mode = AgreementMode(agreement_mode or settings.agreement_mode)
        self.ttl_seconds = ttl_seconds if ttl_seconds is not None else settings.metrics_cache_ttl_seconds
        self.cache = cache if cache is not None else TTLCache(ttl_seconds=self.ttl_seconds)
        self.confidence_model = confidence_model

    def cache_key(
        self,
        series: SeriesLike,
        term_a: str,
        term_b: str,
        verdict: ComparisonVerdict | Mapping[str, Any],
        breakdown_a: BreakdownLike,
        breakdown_b: BreakdownLike,
        previous_snapshot: ComparisonSnapshot | None = None,
    ) -> str:
        return stable_hash({
            "series": to_records(series),
            "term_a": term_a,
            "term_b": term_b,
            "verdict": _verdict_summary(verdict),
            "breakdown_a": _breakdown_dict(breakdown_a),
            "breakdown_b": _breakdown_dict(breakdown_b),
            "previous_snapshot_id": previous_snapshot.id if previous_snapshot else None,
            "agreement_mode": self.agreement_mode.value,
        })

    def compute_comparison_metrics(
        self,
        series: SeriesLike,
        term_a: str,
        term_b: str,
        verdict: ComparisonVerdict | Mapping[str, Any],
        breakdown_a: BreakdownLike,
        breakdown_b: BreakdownLike,
        previous_snapshot: ComparisonSnapshot | None = None,
    ) -> ComparisonMetrics:
        """Compute all metrics for a comparison, memoized by input hash.

        Args:
            series: Trend series holding both terms
            term_a: First term
            term_b: Second term
            verdict: ComparisonVerdict (or a summary dict with winner, margin)
            breakdown_a: Score breakdown of term_a
            breakdown_b: Score breakdown of term_b
            previous_snapshot: Latest stored snapshot, the change baseline.
                Without one, the first half of the series is the baseline.

        Returns:
            ComparisonMetrics
        """
        key = self.cache_key(
            series, term_a, term_b, verdict, breakdown_a, breakdown_b, previous_snapshot
        )
        cached = self.cache.get(key)
        if cached is not None:
            logger.debug("Metrics cache hit for %s vs %s", term_a, term_b)
            return cached

        return self.cache.get_or_compute(
            key,
            lambda: self._compute(
                series, term_a, term_b, verdict, breakdown_a, breakdown_b, previous_snapshot
            ),
            self.ttl_seconds,
        )

    def _compute(
        self,
        series: SeriesLike,
        term_a: str,
        term_b: str,
        verdict: ComparisonVerdict | Mapping[str, Any],
        breakdown_a: BreakdownLike,
        breakdown_b: BreakdownLike,
        previous_snapshot: ComparisonSnapshot | None,
    ) -> ComparisonMetrics:
        frame = to_frame(series)
        summary = _verdict_summary(verdict)
        winner = str(summary.get("winner", term_a))
        margin = _number(summary.get("margin", 0))

        volatility = (calculate_volatility(frame, term_a) + calculate_volatility(frame, term_b)) / 2
        agreement_index = calculate_agreement_index(breakdown_a, breakdown_b, mode=self.agreement_mode)
        stability = classify_stability(frame, winner, volatility)
        has_spike = has_recent_spike(frame, winner)

        breakdown = _breakdown_dict(breakdown_a) or {}
        source_count = max(1, len([k for k in breakdown if k != "overall"]))

        confidence = self.confidence_model(
            agreement_index,
            volatility,
            len(frame),
            source_count,
            margin,
            leader_change_risk(volatility, margin),
        ).score

        current = {
            "margin_points": margin,
            "confidence": confidence,
            "volatility": volatility,
            "agreement_index": agreement_index,
        }
        previous = self._previous_period(frame, term_a, term_b, source_count, previous_snapshot)
        changes = calculate_change_metrics(current, previous) if previous else ChangeMetrics()

        return ComparisonMetrics(
            margin_points=margin,
            confidence=confidence,
            volatility=volatility,
            agreement_index=agreement_index,
            disagreement_flag=agreement_index < 60,
            stability=stability,
            gap_change_points=changes.gap_change_points,
            confidence_change=changes.confidence_change,
            volatility_delta=changes.volatility_delta,
            agreement_change=changes.agreement_change,
            top_drivers=extract_top_drivers(breakdown_a, breakdown_b, 2),
            risk_flags=generate_risk_flags(volatility, agreement_index, stability, has_spike),
        )

    def _previous_period(
        self,
        frame: pd.DataFrame,
        term_a: str,
        term_b: str,
        source_count: int,
        snapshot: ComparisonSnapshot | None,
    ) -> dict[str, float] | None:
        """Baseline metrics from the snapshot, or from the series' first half."""
        if snapshot is not None:
            confidence = self.confidence_model(
                snapshot.agreement_index,
                snapshot.volatility,
                len(frame),  # current length stands in for the snapshot's
                source_count,
                snapshot.margin_points,
                leader_change_risk(snapshot.volatility, snapshot.margin_points),
            ).score
            return {
                "margin_points": snapshot.margin_points,
                "confidence": confidence,
                "volatility": snapshot.volatility,
                "agreement_index": snapshot.agreement_index,
            }

        midpoint = len(frame) // 2
        first_half = frame.iloc[:midpoint]
        if midpoint == 0 or len(frame) - midpoint == 0:
            return None

        prev_volatility = (
            calculate_volatility(first_half, term_a) + calculate_volatility(first_half, term_b)
        ) / 2
        prev_margin = abs(
            float(term_values(first_half, term_a).mean()) - float(term_values(first_half, term_b).mean())
        )
        # No breakdowns exist for the first half; a clear gap counts as agreement.
        prev_agreement = 70.0 if prev_margin > 5 else 50.0

        confidence = self.confidence_model(
            prev_agreement,
            prev_volatility,
            len(first_half),
            source_count,
            prev_margin,
            leader_change_risk(prev_volatility, prev_margin),
        ).score
        return {
            "margin_points": prev_margin,
            "confidence": confidence,
            "volatility": prev_volatility,
            "agreement_index": prev_agreement,
        }
