"""End-to-end comparison pipeline.

Flow per request:
1. Resolve the category (explicit, else detected from the two terms)
2. Derive Google Trends readings from the series, merge provider readings
3. Score both terms and generate the verdict
4. Compute metrics against the latest stored snapshot
5. Save a new snapshot (failures are logged, never raised)

Usage:
    pipeline = ComparisonPipeline(snapshot_store=SnapshotStore())
    result = await pipeline.run(ComparisonRequest("iPhone", "Android", series))
    print(result.verdict.headline)
"""

import asyncio
import logging
import re
from dataclasses import dataclass
from typing import Protocol

from trendarc.engine.categories import detect_category
from trendarc.engine.metrics import ComparisonMetrics, ComparisonSnapshot, MetricsEngine
from trendarc.engine.scoring import (
    ComparisonCategory,
    SourceMetrics,
    TrendArcScore,
    calculate_trend_arc_score,
    series_source_metrics,
)
from trendarc.engine.series import SeriesLike, to_frame
from trendarc.engine.verdict import ComparisonVerdict, generate_verdict
from trendarc.snapshots.store import (
    SnapshotKey,
    SnapshotMetrics,
    SnapshotStore,
    get_latest_snapshot,
    save_comparison_snapshot,
)

logger = logging.getLogger(__name__)

_SLUG_STRIP = re.compile(r"[^a-z0-9]+")


def slugify(term: str) -> str:
    """Example:
        >>> slugify("Call of Duty")
        'call-of-duty'
    """
    return _SLUG_STRIP.sub("-", term.lower()).strip("-")


def comparison_slug(term_a: str, term_b: str) -> str:
    return f"{slugify(term_a)}-vs-{slugify(term_b)}"


class SourceMetricsProvider(Protocol):
    """Fetches per-source readings for one term.

    Implementations may raise; the pipeline then scores the term from the
    trend series alone.
    """

    async def fetch(self, term: str, category: ComparisonCategory) -> SourceMetrics: ...


@dataclass
class ComparisonRequest:
    """One comparison to compute.

    Attributes:
        term_a: First term
        term_b: Second term
        series: Trend series with a ``date`` column and one column per term
        timeframe: Window label, part of the snapshot identity
        geo: Region code ("" for worldwide)
        slug: Comparison slug (derived from the terms if omitted)
        user_id: Owner of the snapshot history
        category: Comparison category (detected if omitted)
    """

    term_a: str
    term_b: str
    series: SeriesLike
    timeframe: str = "12m"
    geo: str = ""
    slug: str | None = None
    user_id: str = "system"
    category: str | None = None

    @property
    def snapshot_key(self) -> SnapshotKey:
        return SnapshotKey(
            user_id=self.user_id,
            slug=self.slug or comparison_slug(self.term_a, self.term_b),
            timeframe=self.timeframe,
            geo=self.geo,
        )


@dataclass
class ComparisonResult:
    request: ComparisonRequest
    category: ComparisonCategory
    score_a: TrendArcScore
    score_b: TrendArcScore
    verdict: ComparisonVerdict
    metrics: ComparisonMetrics
    snapshot: ComparisonSnapshot | None = None


class ComparisonPipeline:
    """Scores, judges, measures and records one comparison at a time.

    Args:
        provider: Source of non-trend readings (series-only if omitted)
        snapshot_store: Where snapshots are kept (nothing is stored if omitted)
        metrics_engine: Engine with its memo cache (a default one if omitted)
    """

    def __init__(
        self,
        provider: SourceMetricsProvider | None = None,
        snapshot_store: SnapshotStore | None = None,
        metrics_engine: MetricsEngine | None = None,
    ) -> None:
        self.provider = provider
        self.snapshot_store = snapshot_store
        self.metrics_engine = metrics_engine or MetricsEngine()

    def resolve_category(self, request: ComparisonRequest) -> ComparisonCategory:
        parsed = ComparisonCategory.from_value(request.category)
        if parsed is not None:
            return parsed
        if request.category:
            logger.warning("Unknown category %r, detecting from terms", request.category)
        detected = detect_category([request.term_a, request.term_b])
        logger.debug("Detected category %s (%d%%)", detected.category, detected.confidence)
        return detected.category

    async def _source_metrics(
        self,
        series: SeriesLike,
        term: str,
        other_term: str,
        category: ComparisonCategory,
    ) -> SourceMetrics:
        metrics = series_source_metrics(series, term, other_term)
        if self.provider is None:
            return metrics
        try:
            fetched = await self.provider.fetch(term, category)
        except Exception as e:
            logger.warning("Source metrics unavailable for %s: %s", term, e)
            return metrics
        # Readings derived from the series take precedence over fetched ones
        return fetched.merged_with(metrics)

    async def run(self, request: ComparisonRequest) -> ComparisonResult:
        """Compute scores, verdict and metrics, then record a snapshot.

        Args:
            request: The comparison to compute

        Returns:
            ComparisonResult (``snapshot`` is None when nothing was stored)
        """
        frame = to_frame(request.series)
        category = self.resolve_category(request)

        metrics_a, metrics_b = await asyncio.gather(
            self._source_metrics(frame, request.term_a, request.term_b, category),
            self._source_metrics(frame, request.term_b, request.term_a, category),
        )
        score_a = calculate_trend_arc_score(metrics_a, category)
        score_b = calculate_trend_arc_score(metrics_b, category)
        verdict = generate_verdict(request.term_a, request.term_b, score_a, score_b, category)
        logger.info(
            "Scored %s (%d) vs %s (%d): %s",
            request.term_a, score_a.overall, request.term_b, score_b.overall, verdict.headline,
        )

        key = request.snapshot_key
        previous = None
        if self.snapshot_store is not None:
            # SQLite calls block, keep them off the event loop
            previous = await asyncio.to_thread(get_latest_snapshot, self.snapshot_store, key)
        metrics = self.metrics_engine.compute_comparison_metrics(
            frame,
            request.term_a,
            request.term_b,
            verdict,
            score_a.breakdown,
            score_b.breakdown,
            previous_snapshot=previous,
        )

        snapshot = None
        if self.snapshot_store is not None:
            snapshot = await asyncio.to_thread(
                save_comparison_snapshot,
                self.snapshot_store,
                key,
                request.term_a,
                request.term_b,
                SnapshotMetrics.from_comparison(metrics, verdict, category.value),
            )

        return ComparisonResult(
            request=request,
            category=category,
            score_a=score_a,
            score_b=score_b,
            verdict=verdict,
            metrics=metrics,
            snapshot=snapshot,
        )
