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
Reminder Job Executor

Claims due jobs from the store, places the reminder call and records the
outcome. Transient failures get exactly one retry, scheduled as a new job
with higher priority; every other failure is final. Each retry is another
real phone call, so the budget stays at one.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from analytics import track
from calls.types import CallOptions, CallResult, NotificationAction

from .models import ErrorKind, JobStatus, RetryRecord, ScheduledJob
from .store import JobStore, JobStoreError

logger = logging.getLogger("dialtone.reminders.executor")

# Substrings (case-insensitive) that mark a failure as transient
RETRYABLE_ERRORS = (
    "ECONNRESET",
    "ETIMEDOUT",
    "ENOTFOUND",
    "ECONNREFUSED",
    "Network Error",
    "timeout",
    "rate limit",
    "quota exceeded",
)

DEFAULT_RETRY_BACKOFF_MS = 5 * 60 * 1000


def is_retryable(error: Optional[str]) -> bool:
    """Classify a failure message as transient (True) or terminal (False)."""
    if not error:
        return False
    message = error.lower()
    return any(keyword.lower() in message for keyword in RETRYABLE_ERRORS)


@dataclass
class ExecutionOutcome:
    """What happened to one claimed job."""

    job_id: str
    status: JobStatus
    correlation_id: Optional[str] = None
    error: Optional[str] = None
    retry: Optional[RetryRecord] = None
    retry_job_id: Optional[str] = None


class JobExecutor:
    """
    Runs due reminder jobs with bounded concurrency.

    At most `concurrency` jobs are in flight; anything else that is due stays
    in the store until a slot frees up on a later sweep.
    """

    def __init__(
        self,
        store: JobStore,
        action: NotificationAction,
        target_phone: str,
        concurrency: int = 5,
        call_timeout: float = 30.0,
        retry_backoff_ms: int = DEFAULT_RETRY_BACKOFF_MS,
        default_voice: str = "alice",
    ):
        """
        Initialize the executor.

        Args:
            store: Job store to claim from and report to
            action: Delivers the reminder (places the phone call)
            target_phone: Number to call
            concurrency: Maximum jobs executing at once
            call_timeout: Seconds before a call attempt counts as timed out
            retry_backoff_ms: Upper bound on the retry delay
            default_voice: TTS voice when the job does not name one
        """
        self.store = store
        self.action = action
        self.target_phone = target_phone
        self.concurrency = concurrency
        self.call_timeout = call_timeout
        self.retry_backoff_ms = retry_backoff_ms
        self.default_voice = default_voice
        self._in_flight: set[asyncio.Task] = set()

    @property
    def in_flight(self) -> int:
        return len(self._in_flight)

    @property
    def free_slots(self) -> int:
        return max(self.concurrency - len(self._in_flight), 0)

    async def dispatch(self, now: Optional[datetime] = None) -> list[asyncio.Task]:
        """Claim as many due jobs as there are free slots and start them."""
        slots = self.free_slots
        if slots == 0:
            return []

        jobs = await self.store.claim_due(slots, now)
        if jobs:
            logger.info(f"Claimed {len(jobs)} due job(s)")

        tasks = []
        for job in jobs:
            task = asyncio.create_task(self.execute(job), name=f"reminder-{job.id}")
            self._in_flight.add(task)
            task.add_done_callback(self._task_done)
            tasks.append(task)
        return tasks

    def _task_done(self, task: asyncio.Task) -> None:
        self._in_flight.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(f"Reminder task {task.get_name()} crashed: {exc}", exc_info=exc)

    async def run_due(self, now: Optional[datetime] = None) -> list[ExecutionOutcome]:
        """Dispatch due jobs and wait for them to finish."""
        tasks = await self.dispatch(now)
        if not tasks:
            return []
        return list(await asyncio.gather(*tasks))

    async def drain(self) -> None:
        """Wait for every in-flight job to finish."""
        if self._in_flight:
            await asyncio.gather(*self._in_flight, return_exceptions=True)

    async def execute(self, job: ScheduledJob) -> ExecutionOutcome:
        """Place the call for one claimed job and record the result."""
        payload = job.payload
        logger.info(f"Processing reminder job {job.id}: \"{payload.message[:80]}\"")

        options = CallOptions(
            voice=payload.voice or self.default_voice,
            audio_url=payload.audio_url,
        )

        try:
            result = await asyncio.wait_for(
                self.action.invoke(payload.message, self.target_phone, options),
                timeout=self.call_timeout,
            )
        except asyncio.TimeoutError:
            result = CallResult(
                success=False,
                error=f"Call timed out after {self.call_timeout:g}s (ETIMEDOUT)",
            )
        except Exception as e:
            logger.error(f"Error processing reminder job {job.id}: {e}", exc_info=True)
            result = CallResult(success=False, error=f"{type(e).__name__}: {e}")

        try:
            if result.success:
                return await self._handle_success(job, result)
            return await self._handle_failure(job, result.error or "Unknown error")
        except JobStoreError as e:
            # Job stays active; recover_active() requeues it on the next start
            logger.error(f"Could not record outcome of reminder job {job.id}: {e}", exc_info=True)
            track(
                "scheduler_error",
                "error",
                owner_id=job.owner_id,
                properties={"job_id": job.id, "error": str(e)[:200]},
            )
            return ExecutionOutcome(
                job_id=job.id,
                status=JobStatus.ACTIVE,
                correlation_id=result.correlation_id,
                error=str(e),
            )

    async def _handle_success(self, job: ScheduledJob, result: CallResult) -> ExecutionOutcome:
        await self.store.complete(job.id, result.correlation_id)
        track(
            "call_placed",
            "call",
            owner_id=job.owner_id,
            properties={"job_id": job.id, "is_retry": job.is_retry},
        )
        return ExecutionOutcome(
            job_id=job.id,
            status=JobStatus.COMPLETED,
            correlation_id=result.correlation_id,
        )

    async def _handle_failure(self, job: ScheduledJob, error: str) -> ExecutionOutcome:
        kind = ErrorKind.RETRYABLE if is_retryable(error) else ErrorKind.TERMINAL
        record = RetryRecord(attempts_made=job.attempts_made, error_kind=kind)

        if kind == ErrorKind.RETRYABLE and job.attempts_remaining > 0:
            retry_delay = min(self.retry_backoff_ms, job.delay_ms)
            retry_id = await self.store.retry(job, error, retry_delay)
            logger.warning(f"Reminder job {job.id} failed ({error}); retry {retry_id} scheduled")
            track(
                "retry_scheduled",
                "call",
                owner_id=job.owner_id,
                properties={"job_id": job.id, "retry_job_id": retry_id, "error": error[:200]},
            )
            return ExecutionOutcome(
                job_id=job.id,
                status=JobStatus.FAILED,
                error=error,
                retry=record,
                retry_job_id=retry_id,
            )

        await self.store.fail(job.id, error)
        logger.error(f"Reminder job {job.id} failed permanently: {error}")
        track(
            "call_failed",
            "call",
            owner_id=job.owner_id,
            properties={"job_id": job.id, "error_kind": kind.value, "error": error[:200]},
        )
        return ExecutionOutcome(job_id=job.id, status=JobStatus.FAILED, error=error, retry=record)
