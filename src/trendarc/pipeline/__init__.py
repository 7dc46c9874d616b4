"""Comparison pipeline: series and source readings in, scored and recorded comparison out."""

from trendarc.pipeline.comparison import (
    ComparisonPipeline,
    ComparisonRequest,
    ComparisonResult,
    SourceMetricsProvider,
    comparison_slug,
    slugify,
)

__all__ = [
    "ComparisonPipeline",
    "ComparisonRequest",
    "ComparisonResult",
    "SourceMetricsProvider",
    "comparison_slug",
    "slugify",
]
