# dialtone - Discord Voice Reminder Bot
# Copyright (c) 2025-2026 Slash Daemon slashdaemon@protonmail.com
#
# This program is free software: you can redistribute it and/or modify
# it under the terms of the GNU Affero General Public License as published by
# the Free Software Foundation, version 3 of the License.
#
# This program is distributed in the hope that it will be useful,
# but WITHOUT ANY WARRANTY; without even the implied warranty of
# MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE. See the
# GNU Affero General Public License for more details.
#
# You should have received a copy of the GNU Affero General Public License
# along with this program. If not, see <https://www.gnu.org/licenses/>.
#
# Commercial licensing: [slashdaemon@protonmail.com]

"""
Scheduled Job Store

Durable storage for delayed reminder jobs. The store owns every job record
for its whole lifetime; the executor only holds a claim while a job is active.

PostgresJobStore is the production backend. Claims use
FOR UPDATE SKIP LOCKED and cancellation only deletes rows that are still
waiting or delayed, so a cancel racing a claim has exactly one winner.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from contextlib import contextmanager
from datetime import datetime, timedelta
from typing import Callable, Iterator, Optional

import asyncpg
import pytz

from .models import (
    DEFAULT_RETRY_BUDGET,
    JobStatus,
    QueueStats,
    ReminderPayload,
    ScheduledJob,
    new_job_id,
)

logger = logging.getLogger("dialtone.reminders.store")

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS scheduled_jobs (
    id                 TEXT PRIMARY KEY,
    owner_id           TEXT NOT NULL,
    correlation_key    TEXT NOT NULL,
    payload            JSONB NOT NULL,
    status             TEXT NOT NULL
        CHECK (status IN ('waiting', 'delayed', 'active', 'completed', 'failed')),
    priority           INTEGER NOT NULL DEFAULT 0,
    attempts_remaining INTEGER NOT NULL DEFAULT 1,
    delay_ms           BIGINT NOT NULL,
    due_at             TIMESTAMPTZ NOT NULL,
    created_at         TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    claimed_at         TIMESTAMPTZ,
    finished_at        TIMESTAMPTZ,
    correlation_id     TEXT,
    last_error         TEXT,
    retry_of           TEXT
);

CREATE INDEX IF NOT EXISTS idx_scheduled_jobs_due
    ON scheduled_jobs (status, priority DESC, due_at);
CREATE INDEX IF NOT EXISTS idx_scheduled_jobs_owner
    ON scheduled_jobs (owner_id, due_at);
CREATE INDEX IF NOT EXISTS idx_scheduled_jobs_correlation
    ON scheduled_jobs (correlation_key);
"""

JOB_COLUMNS = """
    id, owner_id, correlation_key, payload, status, priority,
    attempts_remaining, delay_ms, due_at, created_at, claimed_at,
    finished_at, correlation_id, last_error, retry_of
"""


def utc_now() -> datetime:
    return datetime.now(pytz.UTC)


class JobStoreError(Exception):
    """The backing store could not be reached or rejected the operation."""

    pass


class JobStore(ABC):
    """
    Storage interface for scheduled reminder jobs.

    Lookups that find nothing return False/None/[]; a broken backend raises
    JobStoreError so callers can tell the two apart.
    """

    def __init__(self, clock: Optional[Callable[[], datetime]] = None):
        self.clock = clock or utc_now

    @staticmethod
    def _initial_status(delay_ms: int) -> JobStatus:
        return JobStatus.DELAYED if delay_ms > 0 else JobStatus.WAITING

    @abstractmethod
    async def insert(
        self,
        payload: ReminderPayload,
        delay_ms: int,
        owner_id: str,
        *,
        correlation_key: str,
        priority: int = 0,
        attempts_remaining: int = DEFAULT_RETRY_BUDGET,
        id_prefix: str = "remind",
        retry_of: Optional[str] = None,
    ) -> str:
        """Persist a new job due delay_ms from now and return its id."""

    @abstractmethod
    async def get(self, job_id: str) -> Optional[ScheduledJob]:
        ...

    @abstractmethod
    async def cancel(self, job_id: str, owner_id: Optional[str] = None) -> bool:
        """Delete a job that has not started yet. False if active, finished or unknown."""

    @abstractmethod
    async def list_by_owner(self, owner_id: str) -> list[ScheduledJob]:
        """Non-terminal jobs for an owner, soonest first."""

    @abstractmethod
    async def stats(self) -> QueueStats:
        ...

    @abstractmethod
    async def has_pending(self, correlation_key: str, include_finished: bool = False) -> bool:
        """
        True if a waiting, delayed or active job exists for this key.

        With include_finished, completed and failed jobs count too, until
        prune() removes them.
        """

    @abstractmethod
    async def claim_due(self, limit: int, now: Optional[datetime] = None) -> list[ScheduledJob]:
        """Atomically move up to `limit` due jobs to active and return them."""

    @abstractmethod
    async def complete(self, job_id: str, correlation_id: Optional[str] = None) -> None:
        ...

    @abstractmethod
    async def fail(self, job_id: str, error: str) -> None:
        ...

    @abstractmethod
    async def retry(self, job: ScheduledJob, error: str, delay_ms: int) -> str:
        """Mark an active job failed and enqueue its retry in one step."""

    @abstractmethod
    async def recover_active(self) -> int:
        """Return jobs left active by a crashed worker to the delayed state."""

    @abstractmethod
    async def prune(self, keep_completed: int = 100, keep_failed: int = 50) -> int:
        """Drop the oldest finished jobs beyond the retention limits."""

    async def close(self) -> None:
        pass


@contextmanager
def _store_errors(operation: str) -> Iterator[None]:
    try:
        yield
    except (asyncpg.PostgresError, asyncpg.InterfaceError, OSError, asyncio.TimeoutError) as e:
        logger.error(f"Job store {operation} failed: {e}")
        raise JobStoreError(f"Job store unavailable during {operation}: {e}") from e


class PostgresJobStore(JobStore):
    """Job store backed by the scheduled_jobs table."""

    def __init__(self, db_pool: asyncpg.Pool, clock: Optional[Callable[[], datetime]] = None):
        """
        Initialize the job store.

        Args:
            db_pool: asyncpg connection pool
            clock: Source of "now"; defaults to the UTC wall clock
        """
        super().__init__(clock)
        self.db = db_pool

    async def ensure_schema(self) -> None:
        """Create the scheduled_jobs table if it does not exist yet."""
        with _store_errors("ensure_schema"):
            await self.db.execute(SCHEMA_SQL)

    async def insert(
        self,
        payload: ReminderPayload,
        delay_ms: int,
        owner_id: str,
        *,
        correlation_key: str,
        priority: int = 0,
        attempts_remaining: int = DEFAULT_RETRY_BUDGET,
        id_prefix: str = "remind",
        retry_of: Optional[str] = None,
    ) -> str:
        now = self.clock()
        job_id = new_job_id(id_prefix, correlation_key, now)
        due_at = now + timedelta(milliseconds=delay_ms)

        with _store_errors("insert"):
            await self.db.execute(
                """
                INSERT INTO scheduled_jobs (
                    id, owner_id, correlation_key, payload, status, priority,
                    attempts_remaining, delay_ms, due_at, created_at, retry_of
                ) VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11)
                """,
                job_id,
                owner_id,
                correlation_key,
                payload.to_json(),
                self._initial_status(delay_ms).value,
                priority,
                attempts_remaining,
                delay_ms,
                due_at,
                now,
                retry_of,
            )

        logger.info(f"Scheduled job {job_id} for owner {owner_id}: due={due_at.isoformat()}")
        return job_id

    async def get(self, job_id: str) -> Optional[ScheduledJob]:
        with _store_errors("get"):
            row = await self.db.fetchrow(
                f"SELECT {JOB_COLUMNS} FROM scheduled_jobs WHERE id = $1",
                job_id,
            )
        return ScheduledJob.from_record(row) if row else None

    async def cancel(self, job_id: str, owner_id: Optional[str] = None) -> bool:
        with _store_errors("cancel"):
            if owner_id is None:
                result = await self.db.execute(
                    """
                    DELETE FROM scheduled_jobs
                    WHERE id = $1 AND status IN ('waiting', 'delayed')
                    """,
                    job_id,
                )
            else:
                result = await self.db.execute(
                    """
                    DELETE FROM scheduled_jobs
                    WHERE id = $1 AND owner_id = $2 AND status IN ('waiting', 'delayed')
                    """,
                    job_id,
                    owner_id,
                )

        cancelled = result == "DELETE 1"
        if cancelled:
            logger.info(f"Cancelled job {job_id}")
        return cancelled

    async def list_by_owner(self, owner_id: str) -> list[ScheduledJob]:
        with _store_errors("list_by_owner"):
            rows = await self.db.fetch(
                f"""
                SELECT {JOB_COLUMNS} FROM scheduled_jobs
                WHERE owner_id = $1 AND status IN ('waiting', 'delayed', 'active')
                ORDER BY due_at ASC
                """,
                owner_id,
            )
        return [ScheduledJob.from_record(row) for row in rows]

    async def stats(self) -> QueueStats:
        # One GROUP BY so the counts come from a single snapshot
        with _store_errors("stats"):
            rows = await self.db.fetch(
                "SELECT status, COUNT(*) AS count FROM scheduled_jobs GROUP BY status"
            )
        return QueueStats.from_counts({row["status"]: row["count"] for row in rows})

    async def has_pending(self, correlation_key: str, include_finished: bool = False) -> bool:
        with _store_errors("has_pending"):
            found = await self.db.fetchval(
                """
                SELECT EXISTS (
                    SELECT 1 FROM scheduled_jobs
                    WHERE correlation_key = $1
                      AND ($2::boolean OR status IN ('waiting', 'delayed', 'active'))
                )
                """,
                correlation_key,
                include_finished,
            )
        return bool(found)

    async def claim_due(self, limit: int, now: Optional[datetime] = None) -> list[ScheduledJob]:
        if limit <= 0:
            return []
        now = now or self.clock()

        with _store_errors("claim_due"):
            rows = await self.db.fetch(
                f"""
                UPDATE scheduled_jobs
                SET status = 'active', claimed_at = $1
                WHERE id IN (
                    SELECT id FROM scheduled_jobs
                    WHERE status IN ('waiting', 'delayed') AND due_at <= $1
                    ORDER BY priority DESC, due_at ASC
                    LIMIT $2
                    FOR UPDATE SKIP LOCKED
                )
                RETURNING {JOB_COLUMNS}
                """,
                now,
                limit,
            )

        jobs = [ScheduledJob.from_record(row) for row in rows]
        jobs.sort(key=lambda job: (-job.priority, job.due_at))
        return jobs

    async def complete(self, job_id: str, correlation_id: Optional[str] = None) -> None:
        with _store_errors("complete"):
            await self.db.execute(
                """
                UPDATE scheduled_jobs
                SET status = 'completed', correlation_id = $2, finished_at = $3
                WHERE id = $1 AND status = 'active'
                """,
                job_id,
                correlation_id,
                self.clock(),
            )
        logger.info(f"Job {job_id} completed (correlation={correlation_id})")

    async def fail(self, job_id: str, error: str) -> None:
        with _store_errors("fail"):
            await self.db.execute(
                """
                UPDATE scheduled_jobs
                SET status = 'failed', last_error = $2, finished_at = $3
                WHERE id = $1 AND status = 'active'
                """,
                job_id,
                error[:500],
                self.clock(),
            )
        logger.warning(f"Job {job_id} failed: {error}")

    async def retry(self, job: ScheduledJob, error: str, delay_ms: int) -> str:
        now = self.clock()
        retry_id = new_job_id("retry", job.id, now)

        with _store_errors("retry"):
            async with self.db.acquire() as conn:
                async with conn.transaction():
                    await conn.execute(
                        """
                        UPDATE scheduled_jobs
                        SET status = 'failed', last_error = $2, finished_at = $3
                        WHERE id = $1 AND status = 'active'
                        """,
                        job.id,
                        error[:500],
                        now,
                    )
                    await conn.execute(
                        """
                        INSERT INTO scheduled_jobs (
                            id, owner_id, correlation_key, payload, status, priority,
                            attempts_remaining, delay_ms, due_at, created_at, retry_of
                        ) VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11)
                        """,
                        retry_id,
                        job.owner_id,
                        job.correlation_key,
                        job.payload.to_json(),
                        self._initial_status(delay_ms).value,
                        job.priority + 1,
                        job.attempts_remaining - 1,
                        delay_ms,
                        now + timedelta(milliseconds=delay_ms),
                        now,
                        job.id,
                    )

        logger.info(f"Scheduled retry {retry_id} for job {job.id} in {delay_ms // 1000}s")
        return retry_id

    async def recover_active(self) -> int:
        with _store_errors("recover_active"):
            result = await self.db.execute(
                """
                UPDATE scheduled_jobs
                SET status = 'delayed', claimed_at = NULL
                WHERE status = 'active'
                """
            )
        recovered = int(result.split()[-1]) if result else 0
        if recovered:
            logger.warning(f"Recovered {recovered} job(s) left active by a previous run")
        return recovered

    async def prune(self, keep_completed: int = 100, keep_failed: int = 50) -> int:
        removed = 0
        with _store_errors("prune"):
            for status, keep in (("completed", keep_completed), ("failed", keep_failed)):
                result = await self.db.execute(
                    """
                    DELETE FROM scheduled_jobs
                    WHERE id IN (
                        SELECT id FROM scheduled_jobs
                        WHERE status = $1
                        ORDER BY finished_at DESC NULLS LAST
                        OFFSET $2
                    )
                    """,
                    status,
                    keep,
                )
                removed += int(result.split()[-1]) if result else 0
        if removed:
            logger.info(f"Pruned {removed} finished job(s)")
        return removed

