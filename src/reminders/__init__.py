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
Scheduled Reminders Package

Time expression parsing, the scheduled job store, and the executor that
turns due jobs into phone calls.
"""

from .config import CalendarConfig, ReminderConfig, TwilioConfig
from .executor import ExecutionOutcome, JobExecutor, is_retryable
from .memory_store import InMemoryJobStore
from .models import (
    DEFAULT_RETRY_BUDGET,
    ErrorKind,
    JobStatus,
    QueueStats,
    ReminderPayload,
    RetryRecord,
    ScheduledJob,
)
from .scheduler import ReminderScheduler
from .service import ReminderService, ScheduleResult
from .store import JobStore, JobStoreError, PostgresJobStore
from .time_parser import (
    DelayValidation,
    ParseResult,
    TimeParseError,
    format_delay,
    parse_time,
    validate_delay,
    validate_timezone,
)

__all__ = [
    "CalendarConfig",
    "ReminderConfig",
    "TwilioConfig",
    "ExecutionOutcome",
    "JobExecutor",
    "is_retryable",
    "InMemoryJobStore",
    "DEFAULT_RETRY_BUDGET",
    "ErrorKind",
    "JobStatus",
    "QueueStats",
    "ReminderPayload",
    "RetryRecord",
    "ScheduledJob",
    "ReminderScheduler",
    "ReminderService",
    "ScheduleResult",
    "JobStore",
    "JobStoreError",
    "PostgresJobStore",
    "DelayValidation",
    "ParseResult",
    "TimeParseError",
    "format_delay",
    "parse_time",
    "validate_delay",
    "validate_timezone",
]
