"""Named, expiring job locks in SQLite.

A lock row ``(name, owner, expires_at)`` is held until released or until it
expires, so a crashed job never blocks the next run for longer than its
lease.

Usage:
    lock = JobLock("warmup", lease_seconds=3600)
    if lock.acquire():
        try:
            ...
        finally:
            lock.release()
"""

import logging
import sqlite3
import time
import uuid
from pathlib import Path
from typing import Callable

from trendarc.config import settings

logger = logging.getLogger(__name__)

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS job_locks (
    name TEXT PRIMARY KEY,
    owner TEXT NOT NULL,
    expires_at REAL NOT NULL
);
"""


class JobLock:
    """Lease-based lock shared by every process using the same database.

    Args:
        name: Lock name, e.g. "warmup"
        lease_seconds: Lifetime of an acquired lock (default from settings)
        db_path: SQLite file (default settings.snapshot_db_path)
        clock: Returns epoch seconds, injectable for tests
    """

    def __init__(
        self,
        name: str,
        lease_seconds: float | None = None,
        db_path: str | Path | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.name = name
        self.lease_seconds = lease_seconds or settings.warmup_lock_seconds
        self.db_path = Path(db_path or settings.snapshot_db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self.owner = uuid.uuid4().hex
        self._clock = clock
        with self._connect() as conn:
            conn.executescript(SCHEMA_SQL)

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(str(self.db_path), timeout=30.0, isolation_level=None)
        conn.execute("PRAGMA journal_mode=WAL")
        return conn

    def acquire(self) -> bool:
        """Take the lock if it is free or expired. Never blocks."""
        now = self._clock()
        conn = self._connect()
        try:
            conn.execute("BEGIN IMMEDIATE")
            conn.execute("DELETE FROM job_locks WHERE name = ? AND expires_at <= ?", (self.name, now))
            cursor = conn.execute(
                "INSERT OR IGNORE INTO job_locks (name, owner, expires_at) VALUES (?, ?, ?)",
                (self.name, self.owner, now + self.lease_seconds),
            )
            conn.execute("COMMIT")
        except BaseException:
            if conn.in_transaction:
                conn.execute("ROLLBACK")
            raise
        finally:
            conn.close()

        acquired = cursor.rowcount == 1
        if acquired:
            logger.info("Acquired lock %s (lease %.0fs)", self.name, self.lease_seconds)
        else:
            logger.warning("Lock %s is held by another job", self.name)
        return acquired

    def release(self) -> None:
        """Release the lock if this instance holds it."""
        conn = self._connect()
        try:
            conn.execute("DELETE FROM job_locks WHERE name = ? AND owner = ?", (self.name, self.owner))
        finally:
            conn.close()
        logger.info("Released lock %s", self.name)
