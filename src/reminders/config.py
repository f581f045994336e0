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
Reminder Bot Configuration

Tunable limits for scheduling, calling and calendar sync.
Values can be overridden via environment variables.
"""

import os
from dataclasses import dataclass, field
from typing import Optional


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in ("1", "true", "yes")


@dataclass
class ReminderConfig:
    """Configuration for scheduling and executing reminders."""

    # Scheduling limits
    max_delay_days: int = 30
    max_reminders_per_user: int = 50
    timezone: str = "UTC"

    # Execution settings
    concurrency: int = 5
    call_timeout_seconds: float = 30.0
    retry_backoff_ms: int = 5 * 60 * 1000
    default_voice: str = "alice"
    target_phone_number: str = ""

    # Scheduler loop
    sweep_interval_seconds: float = 5.0

    # Retention for finished jobs
    keep_completed_jobs: int = 100
    keep_failed_jobs: int = 50

    @classmethod
    def from_env(cls) -> "ReminderConfig":
        """Create config from environment variables with defaults."""
        return cls(
            max_delay_days=int(os.getenv("MAX_REMINDER_DELAY_DAYS", "30")),
            max_reminders_per_user=int(os.getenv("MAX_REMINDERS_PER_USER", "50")),
            timezone=os.getenv("REMINDER_TIMEZONE", "UTC"),
            concurrency=int(os.getenv("REMINDER_CONCURRENCY", "5")),
            call_timeout_seconds=float(os.getenv("CALL_TIMEOUT_SECONDS", "30")),
            retry_backoff_ms=int(os.getenv("REMINDER_RETRY_BACKOFF_MS", "300000")),
            default_voice=os.getenv("DEFAULT_TTS_VOICE", "alice"),
            target_phone_number=os.getenv("TARGET_PHONE_NUMBER", ""),
            sweep_interval_seconds=float(os.getenv("REMINDER_SWEEP_SECONDS", "5")),
            keep_completed_jobs=int(os.getenv("KEEP_COMPLETED_JOBS", "100")),
            keep_failed_jobs=int(os.getenv("KEEP_FAILED_JOBS", "50")),
        )


@dataclass
class TwilioConfig:
    """Credentials for placing calls through Twilio."""

    account_sid: str = ""
    auth_token: str = ""
    phone_number: str = ""
    status_callback_url: Optional[str] = None

    @classmethod
    def from_env(cls) -> "TwilioConfig":
        """Create config from environment variables."""
        return cls(
            account_sid=os.getenv("TWILIO_ACCOUNT_SID", ""),
            auth_token=os.getenv("TWILIO_AUTH_TOKEN", ""),
            phone_number=os.getenv("TWILIO_PHONE_NUMBER", ""),
            status_callback_url=os.getenv("TWILIO_STATUS_CALLBACK_URL") or None,
        )

    def missing(self) -> list[str]:
        """Names of required environment variables that are unset."""
        required = {
            "TWILIO_ACCOUNT_SID": self.account_sid,
            "TWILIO_AUTH_TOKEN": self.auth_token,
            "TWILIO_PHONE_NUMBER": self.phone_number,
        }
        return [name for name, value in required.items() if not value]


@dataclass
class CalendarConfig:
    """Configuration for importing Google Calendar events as reminders."""

    enabled: bool = False
    calendar_id: str = "primary"
    api_key: Optional[str] = None
    access_token: Optional[str] = None

    sync_interval_minutes: int = 5
    advance_minutes: int = 10  # call this long before the event starts
    lookahead_hours: int = 24
    max_events: int = 50

    # Owner recorded on jobs created from calendar events
    owner_id: str = field(default="google-calendar", init=False)

    @classmethod
    def from_env(cls) -> "CalendarConfig":
        """Create config from environment variables with defaults."""
        return cls(
            enabled=_env_bool("CALENDAR_ENABLED", "false"),
            calendar_id=os.getenv("GOOGLE_CALENDAR_ID", "primary"),
            api_key=os.getenv("GOOGLE_CALENDAR_API_KEY") or None,
            access_token=os.getenv("GOOGLE_CALENDAR_ACCESS_TOKEN") or None,
            sync_interval_minutes=int(os.getenv("CALENDAR_SYNC_MINUTES", "5")),
            advance_minutes=int(os.getenv("CALENDAR_ADVANCE_MINUTES", "10")),
            lookahead_hours=int(os.getenv("CALENDAR_LOOKAHEAD_HOURS", "24")),
            max_events=int(os.getenv("CALENDAR_MAX_EVENTS", "50")),
        )

    @property
    def has_credentials(self) -> bool:
        return bool(self.api_key or self.access_token)
