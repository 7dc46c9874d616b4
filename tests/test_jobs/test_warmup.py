"""Tests for the warmup job."""

import pytest

from trendarc.jobs import JobLock, WarmupJob
from trendarc.pipeline import ComparisonPipeline, ComparisonRequest
from trendarc.snapshots import SnapshotStore


def flat_series(term_a: str, term_b: str, points: int = 10) -> list[dict]:
    return [{"date": f"2024-01-{i + 1:02d}", term_a: 60, term_b: 40} for i in range(points)]


class ExplodingPipeline(ComparisonPipeline):
    """Fails for one slug, delegates otherwise."""

    def __init__(self, bad_slug: str, **kwargs) -> None:
        super().__init__(**kwargs)
        self.bad_slug = bad_slug

    async def run(self, request):
        if request.snapshot_key.slug == self.bad_slug:
            raise RuntimeError("upstream exploded")
        return await super().run(request)


@pytest.fixture
def db(tmp_path):
    return tmp_path / "trendarc.db"


class TestWarmupJob:
    """Test batch processing under the lock."""

    @pytest.mark.asyncio
    async def test_processes_all(self, db) -> None:
        """Every comparison is computed and stored."""
        store = SnapshotStore(db)
        requests = [
            ComparisonRequest("iPhone", "Android", flat_series("iPhone", "Android"), category="tech"),
            ComparisonRequest("Coke", "Pepsi", flat_series("Coke", "Pepsi"), category="brands"),
        ]
        job = WarmupJob(ComparisonPipeline(snapshot_store=store), lock=JobLock("warmup", db_path=db))

        result = await job.run(requests)

        assert result.success is True
        assert (result.processed, result.failed) == (2, 0)
        assert result.errors == []
        assert result.duration >= 0
        assert all(store.count(r.snapshot_key) == 1 for r in requests)

    @pytest.mark.asyncio
    async def test_failures_are_isolated(self, db) -> None:
        """One failing comparison is recorded and the rest still run."""
        requests = [
            ComparisonRequest("iPhone", "Android", flat_series("iPhone", "Android"), category="tech"),
            ComparisonRequest("Coke", "Pepsi", flat_series("Coke", "Pepsi"), category="brands"),
            ComparisonRequest("Foo", "Bar", []),
        ]
        pipeline = ExplodingPipeline("coke-vs-pepsi", snapshot_store=SnapshotStore(db))
        job = WarmupJob(pipeline, lock=JobLock("warmup", db_path=db), concurrency=2)

        result = await job.run(requests)

        assert result.success is True
        assert result.processed == 1
        assert result.failed == 2
        assert "coke-vs-pepsi: upstream exploded" in result.errors
        assert "No data for foo-vs-bar" in result.errors

    @pytest.mark.asyncio
    async def test_already_running(self, db) -> None:
        """A held lock stops the run before any work."""
        holder = JobLock("warmup", db_path=db)
        assert holder.acquire()
        job = WarmupJob(ComparisonPipeline(), lock=JobLock("warmup", db_path=db))

        result = await job.run([ComparisonRequest("iPhone", "Android", flat_series("iPhone", "Android"))])

        assert result.success is False
        assert result.already_running is True
        assert result.processed == 0
        assert result.errors == ["Another warmup job is already running"]

    @pytest.mark.asyncio
    async def test_lock_released_after_run(self, db) -> None:
        """The lock is free again once the job finishes."""
        lock = JobLock("warmup", db_path=db)
        await WarmupJob(ComparisonPipeline(), lock=lock).run([])

        assert JobLock("warmup", db_path=db).acquire() is True

    @pytest.mark.asyncio
    async def test_error_list_is_capped(self, db) -> None:
        """At most ten error messages are kept."""
        requests = [ComparisonRequest(f"a{i}", f"b{i}", []) for i in range(12)]
        job = WarmupJob(ComparisonPipeline(), lock=JobLock("warmup", db_path=db))

        result = await job.run(requests)

        assert result.failed == 12
        assert len(result.errors) == 10
