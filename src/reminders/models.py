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
Reminder Job Models

Data types shared by the job stores, the executor and the command layer.
"""

import json
import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Optional

import pytz

# Retries left on a freshly scheduled job
DEFAULT_RETRY_BUDGET = 1


class JobStatus(str, Enum):
    """Lifecycle states of a scheduled job."""

    WAITING = "waiting"
    DELAYED = "delayed"
    ACTIVE = "active"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_pending(self) -> bool:
        return self in (JobStatus.WAITING, JobStatus.DELAYED)

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.FAILED)


class ErrorKind(str, Enum):
    RETRYABLE = "retryable"
    TERMINAL = "terminal"


@dataclass
class ReminderPayload:
    """What to say, and where the request came from."""

    message: str
    user_id: str
    channel_id: str
    message_id: str
    voice: Optional[str] = None
    audio_url: Optional[str] = None
    created_at: str = field(default_factory=lambda: datetime.now(pytz.UTC).isoformat())

    def to_json(self) -> str:
        return json.dumps(asdict(self))

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ReminderPayload":
        return cls(
            message=data.get("message", ""),
            user_id=str(data.get("user_id", "")),
            channel_id=str(data.get("channel_id", "")),
            message_id=str(data.get("message_id", "")),
            voice=data.get("voice"),
            audio_url=data.get("audio_url"),
            created_at=data.get("created_at") or datetime.now(pytz.UTC).isoformat(),
        )

    @classmethod
    def from_json(cls, raw: "str | dict[str, Any]") -> "ReminderPayload":
        if isinstance(raw, str):
            raw = json.loads(raw)
        return cls.from_dict(raw)


@dataclass
class ScheduledJob:
    """A reminder job as held by a job store."""

    id: str
    owner_id: str
    correlation_key: str
    payload: ReminderPayload
    status: JobStatus
    priority: int
    attempts_remaining: int
    delay_ms: int
    due_at: datetime
    created_at: datetime
    claimed_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    correlation_id: Optional[str] = None
    last_error: Optional[str] = None
    retry_of: Optional[str] = None

    @property
    def is_retry(self) -> bool:
        return self.retry_of is not None

    @property
    def attempts_made(self) -> int:
        """Executions of this reminder so far, counting this job if it has run."""
        made = DEFAULT_RETRY_BUDGET - self.attempts_remaining
        if self.status in (JobStatus.ACTIVE, JobStatus.COMPLETED, JobStatus.FAILED):
            made += 1
        return made

    @classmethod
    def from_record(cls, row: Any) -> "ScheduledJob":
        """Build a job from an asyncpg Record (or any mapping)."""
        return cls(
            id=row["id"],
            owner_id=row["owner_id"],
            correlation_key=row["correlation_key"],
            payload=ReminderPayload.from_json(row["payload"]),
            status=JobStatus(row["status"]),
            priority=row["priority"],
            attempts_remaining=row["attempts_remaining"],
            delay_ms=row["delay_ms"],
            due_at=row["due_at"],
            created_at=row["created_at"],
            claimed_at=row["claimed_at"],
            finished_at=row["finished_at"],
            correlation_id=row["correlation_id"],
            last_error=row["last_error"],
            retry_of=row["retry_of"],
        )


@dataclass(frozen=True)
class RetryRecord:
    """How a reminder has fared so far. Derived from the job, never stored."""

    attempts_made: int
    error_kind: ErrorKind


@dataclass
class QueueStats:
    """Per-status job counts taken from one snapshot of the store."""

    waiting: int = 0
    active: int = 0
    completed: int = 0
    failed: int = 0
    delayed: int = 0

    @property
    def total(self) -> int:
        return self.waiting + self.active + self.completed + self.failed + self.delayed

    @classmethod
    def from_counts(cls, counts: dict[str, int]) -> "QueueStats":
        return cls(**{status.value: counts.get(status.value, 0) for status in JobStatus})


def new_job_id(prefix: str, correlation_key: str, now: datetime) -> str:
    """
    Build a unique job id.

    The correlation key and millisecond clock keep ids readable in logs;
    the random suffix separates concurrent inserts for the same key.
    """
    epoch_ms = int(now.timestamp() * 1000)
    return f"{prefix}-{correlation_key}-{epoch_ms}-{uuid.uuid4().hex[:8]}"
