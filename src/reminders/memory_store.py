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
In-process job store for local development and tests.

Same semantics as PostgresJobStore, with one asyncio.Lock standing in for
row locks. Nothing survives a restart.
"""

import asyncio
import dataclasses
import logging
from datetime import datetime, timedelta
from typing import Callable, Optional

from .models import (
    DEFAULT_RETRY_BUDGET,
    JobStatus,
    QueueStats,
    ReminderPayload,
    ScheduledJob,
    new_job_id,
)
from .store import JobStore

logger = logging.getLogger("dialtone.reminders.memory_store")


class InMemoryJobStore(JobStore):
    """Job store held in a dict. Returned jobs are copies."""

    def __init__(self, clock: Optional[Callable[[], datetime]] = None):
        super().__init__(clock)
        self._jobs: dict[str, ScheduledJob] = {}
        self._lock = asyncio.Lock()

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
        async with self._lock:
            now = self.clock()
            job_id = new_job_id(id_prefix, correlation_key, now)
            self._jobs[job_id] = ScheduledJob(
                id=job_id,
                owner_id=owner_id,
                correlation_key=correlation_key,
                payload=payload,
                status=self._initial_status(delay_ms),
                priority=priority,
                attempts_remaining=attempts_remaining,
                delay_ms=delay_ms,
                due_at=now + timedelta(milliseconds=delay_ms),
                created_at=now,
                retry_of=retry_of,
            )
        logger.info(f"Scheduled job {job_id} for owner {owner_id} in {delay_ms}ms")
        return job_id

    async def get(self, job_id: str) -> Optional[ScheduledJob]:
        async with self._lock:
            job = self._jobs.get(job_id)
            return dataclasses.replace(job) if job else None

    async def cancel(self, job_id: str, owner_id: Optional[str] = None) -> bool:
        async with self._lock:
            job = self._jobs.get(job_id)
            if job is None or not job.status.is_pending:
                return False
            if owner_id is not None and job.owner_id != owner_id:
                return False
            del self._jobs[job_id]
        logger.info(f"Cancelled job {job_id}")
        return True

    async def list_by_owner(self, owner_id: str) -> list[ScheduledJob]:
        async with self._lock:
            jobs = [
                dataclasses.replace(job)
                for job in self._jobs.values()
                if job.owner_id == owner_id and not job.status.is_terminal
            ]
        return sorted(jobs, key=lambda job: job.due_at)

    async def stats(self) -> QueueStats:
        async with self._lock:
            counts: dict[str, int] = {}
            for job in self._jobs.values():
                counts[job.status.value] = counts.get(job.status.value, 0) + 1
        return QueueStats.from_counts(counts)

    async def has_pending(self, correlation_key: str, include_finished: bool = False) -> bool:
        async with self._lock:
            return any(
                job.correlation_key == correlation_key
                and (include_finished or not job.status.is_terminal)
                for job in self._jobs.values()
            )

    async def claim_due(self, limit: int, now: Optional[datetime] = None) -> list[ScheduledJob]:
        if limit <= 0:
            return []

        async with self._lock:
            now = now or self.clock()
            due = [
                job
                for job in self._jobs.values()
                if job.status.is_pending and job.due_at <= now
            ]
            due.sort(key=lambda job: (-job.priority, job.due_at))

            claimed = []
            for job in due[:limit]:
                job.status = JobStatus.ACTIVE
                job.claimed_at = now
                claimed.append(dataclasses.replace(job))
        return claimed

    async def complete(self, job_id: str, correlation_id: Optional[str] = None) -> None:
        async with self._lock:
            job = self._jobs.get(job_id)
            if job is None or job.status != JobStatus.ACTIVE:
                return
            job.status = JobStatus.COMPLETED
            job.correlation_id = correlation_id
            job.finished_at = self.clock()
        logger.info(f"Job {job_id} completed (correlation={correlation_id})")

    async def fail(self, job_id: str, error: str) -> None:
        async with self._lock:
            self._mark_failed(job_id, error)
        logger.warning(f"Job {job_id} failed: {error}")

    def _mark_failed(self, job_id: str, error: str) -> None:
        job = self._jobs.get(job_id)
        if job is None or job.status != JobStatus.ACTIVE:
            return
        job.status = JobStatus.FAILED
        job.last_error = error[:500]
        job.finished_at = self.clock()

    async def retry(self, job: ScheduledJob, error: str, delay_ms: int) -> str:
        async with self._lock:
            now = self.clock()
            self._mark_failed(job.id, error)
            retry_id = new_job_id("retry", job.id, now)
            self._jobs[retry_id] = ScheduledJob(
                id=retry_id,
                owner_id=job.owner_id,
                correlation_key=job.correlation_key,
                payload=job.payload,
                status=self._initial_status(delay_ms),
                priority=job.priority + 1,
                attempts_remaining=job.attempts_remaining - 1,
                delay_ms=delay_ms,
                due_at=now + timedelta(milliseconds=delay_ms),
                created_at=now,
                retry_of=job.id,
            )
        logger.info(f"Scheduled retry {retry_id} for job {job.id} in {delay_ms // 1000}s")
        return retry_id

    async def recover_active(self) -> int:
        async with self._lock:
            recovered = 0
            for job in self._jobs.values():
                if job.status == JobStatus.ACTIVE:
                    job.status = JobStatus.DELAYED
                    job.claimed_at = None
                    recovered += 1
        if recovered:
            logger.warning(f"Recovered {recovered} job(s) left active by a previous run")
        return recovered

    async def prune(self, keep_completed: int = 100, keep_failed: int = 50) -> int:
        async with self._lock:
            removed = 0
            for status, keep in ((JobStatus.COMPLETED, keep_completed), (JobStatus.FAILED, keep_failed)):
                finished = sorted(
                    (job for job in self._jobs.values() if job.status == status),
                    key=lambda job: job.finished_at or job.created_at,
                    reverse=True,
                )
                for job in finished[keep:]:
                    del self._jobs[job.id]
                    removed += 1
        if removed:
            logger.info(f"Pruned {removed} finished job(s)")
        return removed
