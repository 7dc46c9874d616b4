"""Tests for the continuous confidence model."""

import pytest

from trendarc.engine.confidence import (
    ConfidenceFactors,
    ConfidenceLabel,
    calculate_comparison_confidence,
    calculate_confidence_score,
    get_confidence_label,
)


class TestConfidenceScore:
    """Test the confidence formula."""

    def test_neutral_factors(self) -> None:
        """Default factors leave the base of 50."""
        assert calculate_confidence_score(ConfidenceFactors()) == pytest.approx(50.0)

    def test_each_term(self) -> None:
        """50 + 6 − 5 + 8 + 7.5 + 4 − 3 = 67.5."""
        factors = ConfidenceFactors(
            agreement_index=70,   # +6
            volatility=20,        # −5
            data_points=20,       # +8
            source_count=2,       # +7.5
            margin=8,             # +4
            leader_change_risk=20,  # −3
        )
        assert calculate_confidence_score(factors) == pytest.approx(67.5)

    def test_clamped_high(self) -> None:
        """Best-case factors are clamped to 100."""
        result = calculate_comparison_confidence(80, 10, 100, 3, 20, 10)

        assert result.score == 100.0
        assert result.label is ConfidenceLabel.HIGH

    def test_clamped_low(self) -> None:
        """Worst-case factors are clamped to 0."""
        result = calculate_comparison_confidence(0, 100, 0, 1, 0, 100)

        assert result.score == 0.0
        assert result.label is ConfidenceLabel.LOW


class TestConfidenceLabel:
    """Test label thresholds."""

    @pytest.mark.parametrize(
        "score,label",
        [
            (70, ConfidenceLabel.HIGH),
            (69.9, ConfidenceLabel.MEDIUM),
            (50, ConfidenceLabel.MEDIUM),
            (49.9, ConfidenceLabel.LOW),
        ],
    )
    def test_thresholds(self, score: float, label: ConfidenceLabel) -> None:
        """High from 70, medium from 50."""
        assert get_confidence_label(score) is label
