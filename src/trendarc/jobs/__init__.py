"""Background jobs and their locks."""

from trendarc.jobs.lock import JobLock
from trendarc.jobs.warmup import WarmupJob, WarmupResult

__all__ = ["JobLock", "WarmupJob", "WarmupResult"]
