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
Reminder Service

The scheduling pipeline behind every reminder command: parse the time,
validate the delay, enforce the per-user cap, then store the job.
Rejections come back as ScheduleResult.error, never as exceptions.
"""

import asyncio
import logging
from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from analytics import track

from .config import ReminderConfig
from .models import ReminderPayload, ScheduledJob
from .store import JobStore, JobStoreError
from .time_parser import ParseResult, parse_time, validate_delay

logger = logging.getLogger("dialtone.reminders.service")

STORE_UNAVAILABLE_MESSAGE = "The reminder queue is unavailable right now. Please try again shortly."


@dataclass
class ScheduleResult:
    """Outcome of a scheduling request."""

    ok: bool
    job_id: Optional[str] = None
    parse: Optional[ParseResult] = None
    error: Optional[str] = None


class ReminderService:
    """Schedules, lists and cancels reminders on behalf of chat users."""

    def __init__(self, store: JobStore, config: Optional[ReminderConfig] = None):
        self.store = store
        self.config = config or ReminderConfig()
        # Cap check and insert run under one lock per owner (single bot process)
        self._owner_locks: defaultdict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

    async def schedule(
        self,
        message: str,
        time_expr: str,
        user_id: str,
        channel_id: str,
        message_id: str,
        voice: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> ScheduleResult:
        """
        Schedule a reminder from a time expression.

        Args:
            message: What the call should say
            time_expr: Time expression ("30m", "14:30", "tomorrow 9am", ...)
            user_id: Discord user ID of the requester
            channel_id: Channel the request came from
            message_id: Message that issued the request (correlation key)
            voice: Optional TTS voice override
            now: Reference time for parsing (defaults to the current time)

        Returns:
            ScheduleResult with the job ID on success
        """
        message = message.strip()
        if not message:
            return ScheduleResult(ok=False, error="Reminder message cannot be empty")

        parsed = parse_time(time_expr, now=now, timezone=self.config.timezone)
        if not parsed.valid:
            return ScheduleResult(ok=False, parse=parsed, error=parsed.error)

        payload = ReminderPayload(
            message=message,
            user_id=str(user_id),
            channel_id=str(channel_id),
            message_id=str(message_id),
            voice=voice,
        )
        result = await self.schedule_with_delay(
            payload,
            parsed.delay_ms,
            owner_id=str(user_id),
            correlation_key=str(message_id),
        )
        result.parse = parsed
        return result

    async def schedule_with_delay(
        self,
        payload: ReminderPayload,
        delay_ms: int,
        owner_id: str,
        correlation_key: str,
        priority: int = 0,
    ) -> ScheduleResult:
        """Validate an already computed delay and store the job."""
        validation = validate_delay(delay_ms, self.config.max_delay_days)
        if not validation.valid:
            return ScheduleResult(ok=False, error=validation.error)

        try:
            async with self._owner_locks[owner_id]:
                pending = await self.store.list_by_owner(owner_id)
                if len(pending) >= self.config.max_reminders_per_user:
                    return ScheduleResult(
                        ok=False,
                        error=(
                            f"You already have {len(pending)} pending reminders "
                            f"(limit {self.config.max_reminders_per_user}). Cancel one first."
                        ),
                    )

                job_id = await self.store.insert(
                    payload,
                    delay_ms,
                    owner_id,
                    correlation_key=correlation_key,
                    priority=priority,
                )
        except JobStoreError as e:
            logger.error(f"Failed to schedule reminder for {owner_id}: {e}")
            return ScheduleResult(ok=False, error=STORE_UNAVAILABLE_MESSAGE)

        track(
            "reminder_created",
            "reminder",
            owner_id=owner_id,
            properties={"job_id": job_id, "delay_ms": delay_ms},
        )
        return ScheduleResult(ok=True, job_id=job_id)

    async def cancel(self, job_id: str, owner_id: str) -> bool:
        """Cancel one of the owner's reminders that has not started yet."""
        cancelled = await self.store.cancel(job_id, owner_id=owner_id)
        if cancelled:
            track("reminder_cancelled", "reminder", owner_id=owner_id, properties={"job_id": job_id})
        return cancelled

    async def list_for(self, owner_id: str) -> list[ScheduledJob]:
        """Pending and active reminders for an owner, soonest first."""
        return await self.store.list_by_owner(owner_id)
