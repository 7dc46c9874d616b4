"""Continuous confidence model for comparison verdicts.

Formula (clamped to [0, 100]):

    50
    + (agreement_index − 50) × 0.3        up to ±15
    − volatility × 0.25                    up to −25
    + min(20, data_points / 50 × 20)       up to +20
    + min(15, (source_count − 1) × 7.5)    up to +15
    + min(10, margin × 0.5)                up to +10
    − leader_change_risk × 0.15            up to −15

The score is continuous; the label is derived from it afterwards.
"""

from dataclasses import dataclass
from enum import Enum

from trendarc.engine.numeric import clamp


class ConfidenceLabel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


@dataclass(frozen=True)
class ConfidenceFactors:
    """Inputs of the confidence model.

    Attributes:
        agreement_index: 0-100, higher = sources agree more
        volatility: 0-100, higher = less confidence
        data_points: Number of points in the series
        source_count: Number of contributing sources
        margin: Winner/loser gap in score points
        leader_change_risk: 0-100, estimated risk the leader flips
    """

    agreement_index: float = 50.0
    volatility: float = 0.0
    data_points: int = 0
    source_count: int = 1
    margin: float = 0.0
    leader_change_risk: float = 0.0


@dataclass(frozen=True)
class ComparisonConfidence:
    score: float
    label: ConfidenceLabel


def calculate_confidence_score(factors: ConfidenceFactors) -> float:
    """Compute the continuous confidence score for a set of factors."""
    confidence = 50.0
    confidence += (factors.agreement_index - 50) * 0.3
    confidence -= factors.volatility * 0.25
    confidence += min(20.0, factors.data_points / 50 * 20)
    confidence += min(15.0, (factors.source_count - 1) * 7.5)
    confidence += min(10.0, factors.margin * 0.5)
    confidence -= factors.leader_change_risk * 0.15
    return clamp(confidence)


def get_confidence_label(score: float) -> ConfidenceLabel:
    if score >= 70:
        return ConfidenceLabel.HIGH
    if score >= 50:
        return ConfidenceLabel.MEDIUM
    return ConfidenceLabel.LOW


def calculate_comparison_confidence(
    agreement_index: float,
    volatility: float,
    data_points: int,
    source_count: int,
    margin: float = 0.0,
    leader_change_risk: float = 0.0,
) -> ComparisonConfidence:
    """Score and label the confidence of a comparison.

    Example:
        >>> result = calculate_comparison_confidence(80, 10, 100, 3, 20, 10)
        >>> result.label
        <ConfidenceLabel.HIGH: 'high'>
    """
    score = calculate_confidence_score(ConfidenceFactors(
        agreement_index=agreement_index,
        volatility=volatility,
        data_points=data_points,
        source_count=source_count,
        margin=margin,
        leader_change_risk=leader_change_risk,
    ))
    return ComparisonConfidence(score=score, label=get_confidence_label(score))
