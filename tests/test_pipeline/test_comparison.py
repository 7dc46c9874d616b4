"""Tests for the end-to-end comparison pipeline."""

import threading

import pytest

from trendarc.engine.scoring import (
    ComparisonCategory,
    GoogleTrendsMetrics,
    SourceMetrics,
    WikipediaMetrics,
)
from trendarc.pipeline import ComparisonPipeline, ComparisonRequest, comparison_slug, slugify
from trendarc.snapshots import SnapshotStore


def flat_series(a: float = 60, b: float = 40, points: int = 20) -> list[dict]:
    return [{"date": f"2024-01-{i + 1:02d}", "iPhone": a, "Android": b} for i in range(points)]


class FakeProvider:
    """Returns fixed readings per term."""

    def __init__(self, readings: dict[str, SourceMetrics]) -> None:
        self.readings = readings
        self.calls: list[tuple[str, ComparisonCategory]] = []

    async def fetch(self, term, category):
        self.calls.append((term, category))
        return self.readings[term]


class FailingProvider:
    async def fetch(self, term, category):
        raise ConnectionError("provider offline")


class TestSlugs:
    """Test slug helpers."""

    def test_slugify(self) -> None:
        """Non-alphanumerics collapse to single hyphens."""
        assert slugify("Call of Duty") == "call-of-duty"
        assert slugify("  C++ / Rust!  ") == "c-rust"

    def test_comparison_slug(self) -> None:
        """Two slugs joined by -vs-."""
        assert comparison_slug("iPhone 15", "Galaxy S24") == "iphone-15-vs-galaxy-s24"

    def test_request_snapshot_key(self) -> None:
        """An explicit slug overrides the derived one."""
        request = ComparisonRequest("iPhone", "Android", [], slug="phones", geo="US")
        key = request.snapshot_key
        assert key.slug == "phones"
        assert key.params() == ("system", "phones", "12m", "US")


class TestComparisonPipeline:
    """Test scoring, metrics and snapshot recording."""

    @pytest.mark.asyncio
    async def test_series_only(self) -> None:
        """Without a provider both terms are scored from the series."""
        pipeline = ComparisonPipeline()
        result = await pipeline.run(ComparisonRequest("iPhone", "Android", flat_series(), category="tech"))

        # tech weights .40/.20/.25/.15, neutral social and authority, flat momentum
        # iPhone: 60*.4 + 50*.2 + 50*.25 + 50*.15 = 54
        # Android: 40*.4 + 50*.2 + 50*.25 + 50*.15 = 46
        assert result.category == ComparisonCategory.TECH
        assert result.score_a.overall == 54
        assert result.score_b.overall == 46
        assert result.verdict.winner == "iPhone"
        assert result.verdict.margin == 8
        assert result.score_a.sources == ["Google Trends"]
        assert result.snapshot is None

    @pytest.mark.asyncio
    async def test_term_case_differs_from_column(self) -> None:
        """A lower-cased term is scored from its capitalized column."""
        pipeline = ComparisonPipeline()
        result = await pipeline.run(
            ComparisonRequest("iphone", "Android", flat_series(70, 60), category="tech")
        )

        # 70*.4 + 30 = 58 vs 60*.4 + 30 = 54
        assert result.score_a.breakdown.search_interest == 70
        assert result.score_a.overall == 58
        assert result.score_a.sources == ["Google Trends"]
        assert result.verdict.winner == "iphone"
        assert result.verdict.margin == 4

    @pytest.mark.asyncio
    async def test_term_missing_from_series(self) -> None:
        """A term with no column falls back to neutral search interest and no source."""
        pipeline = ComparisonPipeline()
        result = await pipeline.run(
            ComparisonRequest("Pixel", "Android", flat_series(70, 60), category="tech")
        )

        assert result.score_a.breakdown.search_interest == 50
        assert result.score_a.sources == []
        assert result.score_a.overall == 50
        assert result.score_b.sources == ["Google Trends"]

    @pytest.mark.asyncio
    async def test_provider_readings_are_merged(self) -> None:
        """Fetched sources are added; series readings win on overlap."""
        provider = FakeProvider({
            "iPhone": SourceMetrics(
                wikipedia=WikipediaMetrics(page_views=100_000),
                google_trends=GoogleTrendsMetrics(avg_interest=5),
            ),
            "Android": SourceMetrics(),
        })
        pipeline = ComparisonPipeline(provider=provider)
        result = await pipeline.run(ComparisonRequest("iPhone", "Android", flat_series(), category="tech"))

        assert set(result.score_a.sources) == {"Google Trends", "Wikipedia"}
        assert result.score_a.breakdown.search_interest == 60
        assert result.score_b.sources == ["Google Trends"]
        assert {term for term, _ in provider.calls} == {"iPhone", "Android"}

    @pytest.mark.asyncio
    async def test_provider_failure_falls_back(self) -> None:
        """A failing provider leaves series-only readings."""
        pipeline = ComparisonPipeline(provider=FailingProvider())
        result = await pipeline.run(ComparisonRequest("iPhone", "Android", flat_series(), category="tech"))

        assert result.score_a.sources == ["Google Trends"]
        assert result.score_a.overall == 54

    @pytest.mark.asyncio
    async def test_detects_category(self) -> None:
        """Unknown or missing categories are detected from the terms."""
        pipeline = ComparisonPipeline()
        series = [{"date": f"2023-07-{d:02d}", "Oppenheimer": 70, "Barbie": 80} for d in range(1, 5)]

        missing = await pipeline.run(ComparisonRequest("Oppenheimer", "Barbie", series))
        unknown = await pipeline.run(ComparisonRequest("Oppenheimer", "Barbie", series, category="bogus"))

        assert missing.category == ComparisonCategory.MOVIES
        assert unknown.category == ComparisonCategory.MOVIES
        assert missing.verdict.winner == "Barbie"

    @pytest.mark.asyncio
    async def test_records_snapshots(self, tmp_path) -> None:
        """Runs are recorded; an unchanged rerun refreshes the same row."""
        store = SnapshotStore(tmp_path / "trendarc.db")
        pipeline = ComparisonPipeline(snapshot_store=store)
        request = ComparisonRequest("iPhone", "Android", flat_series(), category="tech", user_id="u1")

        first = await pipeline.run(request)
        second = await pipeline.run(request)

        assert first.snapshot is not None
        assert first.snapshot.winner == "iPhone"
        assert first.snapshot.category == "tech"
        assert first.snapshot.slug == "iphone-vs-android"
        assert second.snapshot.id == first.snapshot.id
        assert store.count(request.snapshot_key) == 1
        assert second.metrics.gap_change_points == pytest.approx(0.0)

    @pytest.mark.asyncio
    async def test_change_against_previous_snapshot(self, tmp_path) -> None:
        """A widening gap shows up as a positive gap change."""
        store = SnapshotStore(tmp_path / "trendarc.db")
        pipeline = ComparisonPipeline(snapshot_store=store)

        await pipeline.run(ComparisonRequest("iPhone", "Android", flat_series(60, 40), category="tech"))
        wider = await pipeline.run(ComparisonRequest("iPhone", "Android", flat_series(80, 20), category="tech"))

        # margin 8 -> 24 (80*.4 + 30 = 62 vs 20*.4 + 30 = 38)
        assert wider.verdict.margin == 24
        assert wider.metrics.gap_change_points == pytest.approx(16.0)
        assert store.count(ComparisonRequest("iPhone", "Android", []).snapshot_key) == 2

    @pytest.mark.asyncio
    async def test_snapshot_failure_does_not_fail_run(self, tmp_path, mocker) -> None:
        """A broken store is logged and ignored."""
        store = SnapshotStore(tmp_path / "trendarc.db")
        mocker.patch.object(store, "save", side_effect=RuntimeError("disk full"))
        pipeline = ComparisonPipeline(snapshot_store=store)

        result = await pipeline.run(ComparisonRequest("iPhone", "Android", flat_series(), category="tech"))
        assert result.snapshot is None
        assert result.verdict.winner == "iPhone"

    @pytest.mark.asyncio
    async def test_store_calls_run_off_the_event_loop(self, tmp_path, mocker) -> None:
        """Snapshot reads and writes happen in worker threads."""
        store = SnapshotStore(tmp_path / "trendarc.db")
        threads: list[threading.Thread] = []
        real_latest, real_save = store.latest, store.save

        def latest(key):
            threads.append(threading.current_thread())
            return real_latest(key)

        def save(*args):
            threads.append(threading.current_thread())
            return real_save(*args)

        mocker.patch.object(store, "latest", side_effect=latest)
        mocker.patch.object(store, "save", side_effect=save)
        pipeline = ComparisonPipeline(snapshot_store=store)

        result = await pipeline.run(ComparisonRequest("iPhone", "Android", flat_series(), category="tech"))

        assert result.snapshot is not None
        assert len(threads) == 2
        assert threading.main_thread() not in threads
