"""Tests for comparison metrics."""

from datetime import datetime, timezone
from unittest.mock import MagicMock

import pytest

from trendarc.cache import TTLCache
from trendarc.engine.confidence import calculate_comparison_confidence
from trendarc.engine.metrics import (
    AgreementMode,
    ComparisonSnapshot,
    MetricsEngine,
    Stability,
    calculate_agreement_index,
    calculate_change_metrics,
    calculate_volatility,
    classify_stability,
    extract_top_drivers,
    generate_risk_flags,
    has_recent_spike,
    leader_change_risk,
)
from trendarc.engine.scoring import ScoreBreakdown


def flat_series(a: float = 60, b: float = 40, points: int = 20) -> list[dict]:
    return [{"date": f"2024-01-{i + 1:02d}", "iPhone": a, "Android": b} for i in range(points)]


def make_snapshot(margin: float = 4.0, agreement: float = 100.0, volatility: float = 0.0) -> ComparisonSnapshot:
    return ComparisonSnapshot(
        id="snap-1",
        user_id="u1",
        slug="iphone-vs-android",
        term_a="iPhone",
        term_b="Android",
        timeframe="12m",
        geo="",
        computed_at=datetime(2024, 1, 1, tzinfo=timezone.utc),
        margin_points=margin,
        confidence=80.0,
        volatility=volatility,
        agreement_index=agreement,
        winner="iPhone",
        winner_score=60.0,
        loser_score=56.0,
    )


class TestVolatility:
    """Test coefficient-of-variation volatility."""

    def test_constant_series_is_zero(self) -> None:
        """All-equal values have no volatility."""
        assert calculate_volatility([40, 40, 40, 40]) == 0.0

    def test_high_variance(self) -> None:
        """A zig-zag series is highly volatile."""
        assert calculate_volatility([10, 90, 15, 85, 12]) > 50

    def test_capped_at_100(self) -> None:
        """CV above 100% is capped."""
        assert calculate_volatility([0, 0, 0, 100]) == 100.0

    def test_too_few_points(self) -> None:
        """Fewer than two usable points is 0."""
        assert calculate_volatility([50]) == 0.0
        assert calculate_volatility([]) == 0.0
        assert calculate_volatility(None) == 0.0

    def test_zero_mean(self) -> None:
        """All zeros has no mean to divide by."""
        assert calculate_volatility([0, 0, 0]) == 0.0

    def test_negative_and_malformed_values_ignored(self) -> None:
        """Negative readings are dropped, non-numbers read as 0."""
        assert calculate_volatility([40, -5, 40, 40]) == 0.0
        assert calculate_volatility(["n/a", "bad"]) == 0.0

    def test_reads_term_column(self) -> None:
        """A trend series is read through its term column."""
        assert calculate_volatility(flat_series(), "iPhone") == 0.0

    def test_case_mismatched_term(self) -> None:
        """A lower-cased term reads the capitalized column, not zeros."""
        series = [{"date": f"d{i}", "iPhone": v} for i, v in enumerate([10, 90, 15, 85, 12])]
        assert calculate_volatility(series, "iphone") == calculate_volatility(series, "iPhone")
        assert calculate_volatility(series, "iphone") > 50


class TestAgreementIndex:
    """Test the agreement index in both modes."""

    def test_missing_breakdowns_default_to_50(self) -> None:
        """Either breakdown missing → 50."""
        assert calculate_agreement_index(None, {"search_interest": 50}) == 50.0
        assert calculate_agreement_index({}, {}) == 50.0

    def test_compat_mode_always_agrees(self) -> None:
        """Both directions come from the same pair, so every dimension agrees."""
        a = ScoreBreakdown(70, 40, 60, 55)
        b = ScoreBreakdown(50, 60, 60, 50)
        assert calculate_agreement_index(a, b) == 100.0

    def test_corrected_mode_uses_weighted_sum_direction(self) -> None:
        """225 vs 220 → A leads; social buzz disagrees, the other three agree."""
        a = ScoreBreakdown(70, 40, 60, 55)
        b = ScoreBreakdown(50, 60, 60, 50)

        result = calculate_agreement_index(a, b, mode=AgreementMode.CORRECTED)

        assert result == pytest.approx(75.0)

    def test_corrected_mode_uses_overall_key(self) -> None:
        """An explicit overall decides the direction and is not a dimension."""
        a = {"overall": 40, "search_interest": 70, "social_buzz": 40, "authority": 60, "momentum": 55}
        b = {"overall": 60, "search_interest": 50, "social_buzz": 60, "authority": 60, "momentum": 50}

        result = calculate_agreement_index(a, b, mode=AgreementMode.CORRECTED)

        # B leads: social buzz agrees, authority is flat, the other two disagree
        assert result == pytest.approx(50.0)

    def test_corrected_mode_weights(self) -> None:
        """Weighted dimensions: 5 of 6 weight units agree."""
        a = ScoreBreakdown(70, 40, 60, 55)
        b = ScoreBreakdown(50, 60, 60, 50)

        result = calculate_agreement_index(
            a, b, weights={"search_interest": 3}, mode=AgreementMode.CORRECTED
        )

        assert result == pytest.approx(5 / 6 * 100)


class TestStability:
    """Test stability classification."""

    def test_short_series_is_volatile(self) -> None:
        """Under seven points is always volatile."""
        assert classify_stability([50, 50, 50, 50, 50, 50]) is Stability.VOLATILE

    def test_low_deviation_is_stable(self) -> None:
        """A series with standard deviation well under 10 is stable."""
        values = [50, 52, 48, 51, 49, 50, 52, 48, 50, 51, 49, 50]
        assert classify_stability(values) is Stability.STABLE

    def test_spike_over_baseline_is_hype(self) -> None:
        """A recent max above 2.5× the baseline average is hype."""
        values = [20] * 5 + [20] * 9 + [80]
        assert classify_stability(values) is Stability.HYPE

    def test_high_volatility_without_spike(self) -> None:
        """Zig-zag with the last point at its max is volatile, not hype."""
        assert classify_stability([10, 60, 10, 60, 10, 60, 60]) is Stability.VOLATILE

    def test_reads_term_column(self) -> None:
        """Trend series input goes through the term column."""
        assert classify_stability(flat_series(), "iPhone") is Stability.STABLE


class TestChangeAndDrivers:
    """Test change deltas, drivers, flags and leader-change risk."""

    def test_change_metrics_are_plain_deltas(self) -> None:
        """current − previous for every field."""
        current = {"margin_points": 12, "confidence": 70, "volatility": 20, "agreement_index": 80}
        previous = {"margin_points": 8, "confidence": 75, "volatility": 25, "agreement_index": 60}

        changes = calculate_change_metrics(current, previous)

        assert changes.gap_change_points == 4
        assert changes.confidence_change == -5
        assert changes.volatility_delta == -5
        assert changes.agreement_change == 20

    def test_top_drivers(self) -> None:
        """Largest absolute gaps first, with human labels."""
        drivers = extract_top_drivers(ScoreBreakdown(70, 40, 60, 55), ScoreBreakdown(50, 60, 60, 50))

        assert [d.name for d in drivers] == ["Search Interest", "Social Buzz"]
        assert [d.impact for d in drivers] == [20, 20]

    def test_top_drivers_skip_overall(self) -> None:
        """The overall key is never a driver."""
        drivers = extract_top_drivers({"overall": 90, "momentum": 60}, {"overall": 10, "momentum": 50}, limit=5)
        assert [d.name for d in drivers] == ["Momentum"]

    def test_all_risk_flags(self) -> None:
        """Flags co-occur in fixed order."""
        flags = generate_risk_flags(60, 50, Stability.HYPE, True)
        assert flags == [
            "High volatility detected",
            "Source disagreement",
            "Potential hype pattern",
            "Recent spike detected",
        ]

    def test_no_risk_flags(self) -> None:
        """Calm metrics raise nothing."""
        assert generate_risk_flags(10, 100, Stability.STABLE, False) == []

    def test_recent_spike(self) -> None:
        """A last-window max above twice the window average is a spike."""
        series = [{"date": str(i), "x": 10} for i in range(9)] + [{"date": "9", "x": 80}]
        assert has_recent_spike(series, "x") is True
        assert has_recent_spike(flat_series(), "iPhone") is False

    @pytest.mark.parametrize(
        "volatility,margin,expected",
        [(10, 3, 57.0), (0, 10, 30.0), (100, 20, 70.0), (200, 0, 100.0)],
    )
    def test_leader_change_risk(self, volatility: float, margin: float, expected: float) -> None:
        """volatility × 0.7 plus a bonus that steps down past 5 and 15 points."""
        assert leader_change_risk(volatility, margin) == pytest.approx(expected)


class TestMetricsEngine:
    """Test orchestration and memoization."""

    def _compute(self, engine: MetricsEngine, previous: ComparisonSnapshot | None = None):
        return engine.compute_comparison_metrics(
            flat_series(),
            "iPhone",
            "Android",
            {"winner": "iPhone", "margin": 10},
            ScoreBreakdown(60, 50, 50, 50),
            ScoreBreakdown(40, 50, 50, 50),
            previous_snapshot=previous,
        )

    def test_current_metrics(self) -> None:
        """Flat series: no volatility, full agreement, stable, no flags."""
        metrics = self._compute(MetricsEngine(cache=TTLCache()))

        assert metrics.margin_points == 10
        assert metrics.volatility == 0.0
        assert metrics.agreement_index == 100.0
        assert metrics.disagreement_flag is False
        assert metrics.stability is Stability.STABLE
        assert metrics.risk_flags == []
        # 50 + 15 + 8 (20 points) + 15 (4 dimensions) + 5 − 4.5 (risk 30)
        assert metrics.confidence == pytest.approx(88.5)
        assert metrics.top_drivers[0].name == "Search Interest"

    def test_change_vs_first_half_of_series(self) -> None:
        """Without a snapshot the first half of the series is the baseline."""
        metrics = self._compute(MetricsEngine(cache=TTLCache()))

        # First half: margin 20, agreement 70, confidence 85
        assert metrics.gap_change_points == pytest.approx(-10)
        assert metrics.agreement_change == pytest.approx(30)
        assert metrics.confidence_change == pytest.approx(3.5)
        assert metrics.volatility_delta == 0.0

    def test_change_vs_snapshot(self) -> None:
        """A stored snapshot is the baseline; its confidence is recomputed."""
        metrics = self._compute(MetricsEngine(cache=TTLCache()), make_snapshot(margin=4))

        assert metrics.gap_change_points == pytest.approx(6)
        # Snapshot confidence: 50 + 15 + 8 + 15 + 2 − 7.5 = 82.5
        assert metrics.confidence_change == pytest.approx(6.0)
        assert metrics.agreement_change == 0.0

    def test_memoized(self) -> None:
        """Identical inputs hit the cache; the model runs once per compute."""
        model = MagicMock(wraps=calculate_comparison_confidence)
        cache = TTLCache()
        engine = MetricsEngine(cache=cache, confidence_model=model)

        first = self._compute(engine)
        calls = model.call_count
        second = self._compute(engine)

        assert first == second
        assert model.call_count == calls
        assert len(cache) == 1

    def test_returned_value_is_a_copy(self) -> None:
        """Mutating a result never changes what the cache holds."""
        engine = MetricsEngine(cache=TTLCache())
        first = self._compute(engine)
        first.risk_flags.append("tampered")

        assert self._compute(engine).risk_flags == []

    def test_cache_key_ignores_key_order(self) -> None:
        """Dict inputs in a different key order share one cache key."""
        engine = MetricsEngine(cache=TTLCache())
        a1 = {"search_interest": 60, "momentum": 50}
        a2 = {"momentum": 50, "search_interest": 60}
        verdict1 = {"winner": "iPhone", "margin": 10}
        verdict2 = {"margin": 10, "winner": "iPhone"}

        key1 = engine.cache_key(flat_series(), "iPhone", "Android", verdict1, a1, a1)
        key2 = engine.cache_key(flat_series(), "iPhone", "Android", verdict2, a2, a2)

        assert key1 == key2

    def test_cache_key_includes_snapshot_and_mode(self) -> None:
        """Baseline snapshot and agreement mode change the key."""
        compat = MetricsEngine(cache=TTLCache(), agreement_mode="compat")
        corrected = MetricsEngine(cache=TTLCache(), agreement_mode="corrected")
        args = (flat_series(), "iPhone", "Android", {"winner": "iPhone"}, None, None)

        assert compat.cache_key(*args) != corrected.cache_key(*args)
        assert compat.cache_key(*args) != compat.cache_key(*args, make_snapshot())

    def test_serves_stale_result_when_recompute_fails(self) -> None:
        """After expiry, a failing recomputation falls back to the old value."""
        now = [0.0]
        cache = TTLCache(ttl_seconds=300, clock=lambda: now[0])
        engine = MetricsEngine(cache=cache, ttl_seconds=300)
        first = self._compute(engine)

        now[0] = 301.0
        engine.confidence_model = MagicMock(side_effect=RuntimeError("model down"))

        assert self._compute(engine) == first

    def test_empty_series_does_not_raise(self) -> None:
        """An empty series yields neutral metrics."""
        metrics = MetricsEngine(cache=TTLCache()).compute_comparison_metrics(
            [], "a", "b", {"winner": "a", "margin": 0}, None, None
        )

        assert metrics.volatility == 0.0
        assert metrics.agreement_index == 50.0
        assert metrics.stability is Stability.VOLATILE
        assert metrics.gap_change_points == 0.0

    def test_invalid_agreement_mode(self) -> None:
        """Unknown modes are rejected at construction."""
        with pytest.raises(ValueError):
            MetricsEngine(agreement_mode="strict")
