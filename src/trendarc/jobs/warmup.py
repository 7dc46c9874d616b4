"""Warmup job: recompute a batch of comparisons ahead of traffic.

Runs every comparison through the pipeline (refreshing the metrics cache and
the snapshot history) under a named job lock, a few at a time. One failing
comparison is recorded and skipped; it never stops the batch.

Usage:
    job = WarmupJob(ComparisonPipeline(snapshot_store=SnapshotStore()))
    result = await job.run(requests)
    print(result.processed, result.failed)
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field

from trendarc.config import settings
from trendarc.engine.series import to_frame
from trendarc.jobs.lock import JobLock
from trendarc.pipeline.comparison import ComparisonPipeline, ComparisonRequest

logger = logging.getLogger(__name__)

_MAX_ERRORS = 10
LOCK_NAME = "warmup:comparisons"


@dataclass
class WarmupResult:
    """Outcome of one warmup run.

    Attributes:
        success: False only when the job could not start
        processed: Comparisons computed
        failed: Comparisons that raised or had no data
        errors: First ten error messages
        duration: Wall time in seconds
        already_running: True when another run held the lock
    """

    success: bool
    processed: int = 0
    failed: int = 0
    errors: list[str] = field(default_factory=list)
    duration: float = 0.0
    already_running: bool = False


class WarmupJob:
    """Batch recomputation under a job lock.

    Args:
        pipeline: Pipeline used for each comparison
        lock: Job lock (a default SQLite lock if omitted)
        concurrency: Comparisons computed at once (default from settings)
    """

    def __init__(
        self,
        pipeline: ComparisonPipeline,
        lock: JobLock | None = None,
        concurrency: int | None = None,
    ) -> None:
        self.pipeline = pipeline
        self.lock = lock or JobLock(LOCK_NAME)
        self.concurrency = concurrency or settings.warmup_concurrency

    async def _process(
        self,
        request: ComparisonRequest,
        semaphore: asyncio.Semaphore,
        result: WarmupResult,
        errors: list[str],
    ) -> None:
        slug = request.snapshot_key.slug
        async with semaphore:
            if to_frame(request.series).empty:
                result.failed += 1
                errors.append(f"No data for {slug}")
                return
            try:
                await self.pipeline.run(request)
            except Exception as e:
                result.failed += 1
                errors.append(f"{slug}: {e}")
                logger.error("Warmup failed for %s: %s", slug, e)
                return
        result.processed += 1
        logger.info("Warmed up %s", slug)

    async def run(self, requests: list[ComparisonRequest]) -> WarmupResult:
        """Recompute every comparison, or report that another run holds the lock."""
        start = time.monotonic()
        if not self.lock.acquire():
            return WarmupResult(
                success=False,
                errors=["Another warmup job is already running"],
                duration=time.monotonic() - start,
                already_running=True,
            )

        result = WarmupResult(success=True)
        errors: list[str] = []
        semaphore = asyncio.Semaphore(self.concurrency)
        try:
            logger.info("Warming up %d comparisons (concurrency %d)", len(requests), self.concurrency)
            await asyncio.gather(*(
                self._process(request, semaphore, result, errors) for request in requests
            ))
        finally:
            self.lock.release()

        result.errors = errors[:_MAX_ERRORS]
        result.duration = time.monotonic() - start
        logger.info(
            "Warmup done: %d processed, %d failed in %.1fs",
            result.processed, result.failed, result.duration,
        )
        return result
