"""Core comparison engine for TrendArc.

Modules:
    - series: Trend series coercion and search-interest statistics
    - scoring: Per-source readings → TrendArc Score
    - categories: Comparison category detection
    - verdict: Two scores → winner, headline, recommendation, evidence
    - confidence: Continuous confidence model
    - metrics: Volatility, agreement, stability, change metrics
"""

from trendarc.engine.categories import CategoryResult, detect_category
from trendarc.engine.confidence import (
    ConfidenceLabel,
    calculate_comparison_confidence,
    calculate_confidence_score,
    get_confidence_label,
)
from trendarc.engine.metrics import (
    AgreementMode,
    ComparisonMetrics,
    ComparisonSnapshot,
    MetricsEngine,
    Stability,
    calculate_agreement_index,
    calculate_change_metrics,
    calculate_volatility,
    classify_stability,
    extract_top_drivers,
    generate_risk_flags,
)
from trendarc.engine.scoring import (
    CATEGORY_WEIGHTS,
    ComparisonCategory,
    SourceMetrics,
    TrendArcScore,
    calculate_trend_arc_score,
    calculate_trend_arc_score_time_series,
    quick_score,
    series_source_metrics,
)
from trendarc.engine.series import SeriesStats, compute_series_stats
from trendarc.engine.verdict import ComparisonVerdict, generate_quick_verdict, generate_verdict

__all__ = [
    "AgreementMode",
    "CATEGORY_WEIGHTS",
    "CategoryResult",
    "ComparisonCategory",
    "ComparisonMetrics",
    "ComparisonSnapshot",
    "ComparisonVerdict",
    "ConfidenceLabel",
    "MetricsEngine",
    "SeriesStats",
    "SourceMetrics",
    "Stability",
    "TrendArcScore",
    "calculate_agreement_index",
    "calculate_change_metrics",
    "calculate_comparison_confidence",
    "calculate_confidence_score",
    "calculate_trend_arc_score",
    "calculate_trend_arc_score_time_series",
    "calculate_volatility",
    "classify_stability",
    "compute_series_stats",
    "detect_category",
    "extract_top_drivers",
    "generate_quick_verdict",
    "generate_risk_flags",
    "generate_verdict",
    "get_confidence_label",
    "quick_score",
    "series_source_metrics",
]
