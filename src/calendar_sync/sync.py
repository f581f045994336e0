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
Calendar Sync

Polls Google Calendar and schedules a reminder call shortly before each
upcoming event. Events already inside the advance window are called right
away; events that have started are ignored.
"""

import logging
from datetime import datetime
from typing import Optional

import pytz
from discord.ext import tasks

from analytics import track
from reminders.config import CalendarConfig, ReminderConfig
from reminders.models import ReminderPayload
from reminders.store import JobStore, utc_now
from reminders.time_parser import MS_PER_MINUTE, validate_delay

from .google_calendar import CalendarEvent, GoogleCalendarClient

logger = logging.getLogger("dialtone.calendar_sync.sync")

CALENDAR_CHANNEL_ID = "calendar-system"
CALENDAR_PRIORITY = 10


def correlation_key_for(event: CalendarEvent) -> str:
    return f"calendar-{event.id}"


def plan_event_delay(event: CalendarEvent, now: datetime, advance_minutes: int = 10) -> Optional[int]:
    """
    Milliseconds until the reminder call for an event should go out.

    Returns None for events that have already started, and 0 for events
    starting within the advance window.
    """
    until_start = (event.start - now).total_seconds() * 1000
    if until_start <= 0:
        return None
    return max(int(until_start) - advance_minutes * MS_PER_MINUTE, 0)


def build_event_message(event: CalendarEvent, timezone: str = "UTC") -> str:
    """The sentence read out on the call."""
    start = event.start.astimezone(pytz.timezone(timezone)).strftime("%I:%M %p").lstrip("0")
    location = f" at {event.location}" if event.location else ""

    message = f'Reminder: You have "{event.summary}" starting at {start}{location}'
    if event.description:
        message += f". {event.description}"
    if event.attendees:
        message += f". Attendees: {', '.join(event.attendees)}"
    return message


class CalendarSync:
    """Background loop that turns upcoming calendar events into reminder jobs."""

    def __init__(
        self,
        client: GoogleCalendarClient,
        store: JobStore,
        config: Optional[CalendarConfig] = None,
        reminder_config: Optional[ReminderConfig] = None,
    ):
        self.client = client
        self.store = store
        self.config = config or CalendarConfig()
        self.reminder_config = reminder_config or ReminderConfig()
        self._started = False

        self._sync.change_interval(minutes=self.config.sync_interval_minutes)

    def start(self) -> None:
        """Start the sync loop. The first sync runs immediately."""
        if not self._started:
            self._sync.start()
            self._started = True
            logger.info(
                f"Calendar sync started (every {self.config.sync_interval_minutes} minutes)"
            )

    def stop(self) -> None:
        """Stop the sync loop."""
        if self._started:
            self._sync.cancel()
            self._started = False
            logger.info("Calendar sync stopped")

    async def sync_once(self, now: Optional[datetime] = None) -> int:
        """
        Fetch upcoming events and schedule reminders for new ones.

        Returns:
            Number of reminders scheduled
        """
        now = now or utc_now()
        events = await self.client.list_upcoming(
            hours=self.config.lookahead_hours,
            max_results=self.config.max_events,
            now=now,
        )
        logger.info(f"Found {len(events)} upcoming calendar event(s)")

        scheduled = 0
        for event in events:
            if await self._schedule_event(event, now):
                scheduled += 1

        track(
            "calendar_synced",
            "calendar",
            owner_id=self.config.owner_id,
            properties={"events": len(events), "scheduled": scheduled},
        )
        return scheduled

    async def _schedule_event(self, event: CalendarEvent, now: datetime) -> bool:
        delay_ms = plan_event_delay(event, now, self.config.advance_minutes)
        if delay_ms is None:
            return False

        if delay_ms > 0:
            validation = validate_delay(delay_ms, self.reminder_config.max_delay_days)
            if not validation.valid:
                logger.warning(f"Skipping calendar event \"{event.summary}\": {validation.error}")
                return False

        key = correlation_key_for(event)
        # A finished job still counts; the event stays in the window after the call
        if await self.store.has_pending(key, include_finished=True):
            logger.debug(f"Calendar event {event.id} already has a reminder")
            return False

        payload = ReminderPayload(
            message=build_event_message(event, self.reminder_config.timezone),
            user_id=self.config.owner_id,
            channel_id=CALENDAR_CHANNEL_ID,
            message_id=key,
            voice=self.reminder_config.default_voice,
        )
        job_id = await self.store.insert(
            payload,
            delay_ms,
            self.config.owner_id,
            correlation_key=key,
            priority=CALENDAR_PRIORITY,
        )

        if delay_ms == 0:
            logger.info(f"Immediate reminder {job_id} for event \"{event.summary}\" starting soon")
        else:
            logger.info(f"Scheduled reminder {job_id} for event \"{event.summary}\"")
        return True

    @tasks.loop(minutes=5)
    async def _sync(self) -> None:
        """Periodic calendar sync."""
        try:
            await self.sync_once()
        except Exception as e:
            logger.error(f"Calendar sync failed: {e}", exc_info=True)
