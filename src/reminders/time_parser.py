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
Time Parser Module

Parses free-form time expressions for one-time reminders into an absolute
UTC timestamp plus a delay in whole milliseconds.

Format families are tried in a fixed order and the first family whose
pattern matches decides the result:

1. Relative duration: "30s", "45m", "6h", "2d", "1w"
2. Clock time: "9:00am", "14:30"
3. Explicit date-time: "12/25/2026 9:00am"
4. Unix timestamp: "1767225600" (seconds) or "1767225600000" (milliseconds)
5. Natural language: "tomorrow 9am", "friday", "next monday"

Parsing never raises for user input. Failures come back as a ParseResult
with valid=False and a human-readable reason.
"""

import logging
import re
from dataclasses import dataclass
from datetime import datetime, time, timedelta
from typing import Optional

import pytz

logger = logging.getLogger("dialtone.reminders.time_parser")

MS_PER_SECOND = 1000
MS_PER_MINUTE = 60 * MS_PER_SECOND
MS_PER_HOUR = 60 * MS_PER_MINUTE
MS_PER_DAY = 24 * MS_PER_HOUR
MS_PER_WEEK = 7 * MS_PER_DAY

UNIT_MS = {
    "s": MS_PER_SECOND,
    "m": MS_PER_MINUTE,
    "h": MS_PER_HOUR,
    "d": MS_PER_DAY,
    "w": MS_PER_WEEK,
}

WEEKDAYS = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")

RELATIVE_TIME_RE = re.compile(r"^(-?\d+)([smhdw])$")
CLOCK_TIME_RE = re.compile(r"^(\d{1,2}):(\d{2})\s*(am|pm)?$")
DATE_TIME_RE = re.compile(r"^(\d{1,2})/(\d{1,2})/(\d{4})\s+(\d{1,2}):(\d{2})\s*(am|pm)?$")
UNIX_TIMESTAMP_RE = re.compile(r"^(?:\d{10}|\d{13})$")
TOMORROW_RE = re.compile(r"^tomorrow\s+(\d{1,2})(?::(\d{2}))?\s*(am|pm)?$")
WEEKDAY_RE = re.compile(r"^(next\s+)?(" + "|".join(WEEKDAYS) + r")$")

EPOCH = datetime(1970, 1, 1, tzinfo=pytz.UTC)

SUPPORTED_FORMATS_HINT = (
    'Supported formats: 6h, 45m, 9:00am, 12/25/2024 9:00am, 1640995200, or "tomorrow 9am"'
)


@dataclass(frozen=True)
class ParseResult:
    """Result of parsing a time expression."""

    valid: bool
    delay_ms: int
    absolute_time: Optional[datetime]  # UTC, None when invalid
    original_input: str
    error: Optional[str] = None

    @property
    def delay(self) -> timedelta:
        return timedelta(milliseconds=self.delay_ms)


@dataclass(frozen=True)
class DelayValidation:
    """Result of checking a delay against the scheduling policy."""

    valid: bool
    error: Optional[str] = None


class TimeParseError(Exception):
    """Raised inside a format family when its input matched but is unusable."""

    pass


def validate_timezone(tz_name: str) -> bool:
    """
    Validate that a timezone name is valid.

    Args:
        tz_name: IANA timezone name (e.g., "America/Los_Angeles")

    Returns:
        True if valid, False otherwise
    """
    try:
        pytz.timezone(tz_name)
        return True
    except pytz.UnknownTimeZoneError:
        return False


def _ms_between(start: datetime, end: datetime) -> int:
    return (end - start) // timedelta(milliseconds=1)


def _to_24_hour(hour: int, period: Optional[str]) -> int:
    if period == "pm" and hour != 12:
        return hour + 12
    if period == "am" and hour == 12:
        return 0
    return hour


def _localize(tz: pytz.BaseTzInfo, day, hour: int, minute: int) -> datetime:
    return tz.localize(datetime.combine(day, time(hour, minute)))


def _valid(original: str, now: datetime, target: datetime) -> ParseResult:
    return ParseResult(
        valid=True,
        delay_ms=_ms_between(now, target),
        absolute_time=target.astimezone(pytz.UTC),
        original_input=original,
    )


def _invalid(original: str, error: str) -> ParseResult:
    return ParseResult(
        valid=False,
        delay_ms=0,
        absolute_time=None,
        original_input=original,
        error=error,
    )


def _parse_relative(text: str, original: str, now: datetime) -> Optional[ParseResult]:
    match = RELATIVE_TIME_RE.match(text)
    if not match:
        return None

    value = int(match.group(1))
    if value <= 0:
        raise TimeParseError("Time value must be greater than 0")

    delay_ms = value * UNIT_MS[match.group(2)]
    try:
        target = now + timedelta(milliseconds=delay_ms)
    except OverflowError:
        raise TimeParseError("Time value is too large")

    return ParseResult(
        valid=True,
        delay_ms=delay_ms,
        absolute_time=target.astimezone(pytz.UTC),
        original_input=original,
    )


def _parse_clock(
    text: str, original: str, now: datetime, tz: pytz.BaseTzInfo
) -> Optional[ParseResult]:
    match = CLOCK_TIME_RE.match(text)
    if not match:
        return None

    hour = _to_24_hour(int(match.group(1)), match.group(3))
    minute = int(match.group(2))
    if not (0 <= hour <= 23 and 0 <= minute <= 59):
        raise TimeParseError("Invalid time values")

    local_now = now.astimezone(tz)
    target = _localize(tz, local_now.date(), hour, minute)

    # Already passed today: same clock time tomorrow, never further out
    if target <= local_now:
        target = _localize(tz, local_now.date() + timedelta(days=1), hour, minute)

    return _valid(original, now, target)


def _parse_date_time(
    text: str, original: str, now: datetime, tz: pytz.BaseTzInfo
) -> Optional[ParseResult]:
    match = DATE_TIME_RE.match(text)
    if not match:
        return None

    month, day, year = int(match.group(1)), int(match.group(2)), int(match.group(3))
    hour = _to_24_hour(int(match.group(4)), match.group(6))
    minute = int(match.group(5))

    try:
        target = tz.localize(datetime(year, month, day, hour, minute))
    except ValueError:
        raise TimeParseError("Invalid date")

    if target <= now:
        raise TimeParseError("Date is in the past")

    return _valid(original, now, target)


def _parse_unix_timestamp(text: str, original: str, now: datetime) -> Optional[ParseResult]:
    if not UNIX_TIMESTAMP_RE.match(text):
        return None

    value = int(text)
    target_ms = value * MS_PER_SECOND if len(text) == 10 else value
    now_ms = _ms_between(EPOCH, now)

    if target_ms <= now_ms:
        raise TimeParseError("Timestamp is in the past")

    return ParseResult(
        valid=True,
        delay_ms=target_ms - now_ms,
        absolute_time=EPOCH + timedelta(milliseconds=target_ms),
        original_input=original,
    )


def _parse_natural(
    text: str, original: str, now: datetime, tz: pytz.BaseTzInfo
) -> Optional[ParseResult]:
    local_now = now.astimezone(tz)

    match = TOMORROW_RE.match(text)
    if match:
        hour = int(match.group(1))
        minute = int(match.group(2) or 0)
        period = match.group(3)
        if period and not 1 <= hour <= 12:
            return None
        hour = _to_24_hour(hour, period)
        if not (0 <= hour <= 23 and 0 <= minute <= 59):
            return None
        target = _localize(tz, local_now.date() + timedelta(days=1), hour, minute)
        return _valid(original, now, target)

    match = WEEKDAY_RE.match(text)
    if not match:
        return None

    weekday = WEEKDAYS.index(match.group(2))
    today = local_now.date()

    if match.group(1):
        # "next <weekday>" is that day in the following Monday-start week
        next_week_monday = today - timedelta(days=today.weekday()) + timedelta(days=7)
        target = _localize(tz, next_week_monday + timedelta(days=weekday), 0, 0)
    else:
        candidate_day = today + timedelta(days=(weekday - today.weekday()) % 7)
        target = _localize(tz, candidate_day, 0, 0)
        if target <= local_now:
            target = _localize(tz, candidate_day + timedelta(days=7), 0, 0)

    if target <= local_now:
        return None

    return _valid(original, now, target)


def parse_time(
    expr: str,
    now: Optional[datetime] = None,
    timezone: str = "UTC",
) -> ParseResult:
    """
    Parse a time expression into a delay and an absolute timestamp.

    Supports:
    - Relative: "30s", "45m", "6h", "2d", "1w"
    - Clock time (today, or tomorrow if already passed): "9:00am", "14:30"
    - Date and time: "12/25/2026 9:00am" (MM/DD/YYYY)
    - Unix timestamps: 10 digits (seconds) or 13 digits (milliseconds)
    - Natural: "tomorrow 9am", "tomorrow 14:30", "friday", "next monday"

    Args:
        expr: The time expression to parse
        now: Reference time; sampled from the clock when omitted
        timezone: IANA timezone that clock and calendar times are read in

    Returns:
        ParseResult; check .valid before using the delay
    """
    original = expr if expr is not None else ""
    text = original.strip().lower()

    if not validate_timezone(timezone):
        logger.warning(f"Invalid timezone '{timezone}', falling back to UTC")
        timezone = "UTC"
    tz = pytz.timezone(timezone)

    if now is None:
        now = datetime.now(pytz.UTC)
    elif now.tzinfo is None:
        now = tz.localize(now)

    families = (
        lambda: _parse_relative(text, original, now),
        lambda: _parse_clock(text, original, now, tz),
        lambda: _parse_date_time(text, original, now, tz),
        lambda: _parse_unix_timestamp(text, original, now),
        lambda: _parse_natural(text, original, now, tz),
    )

    for family in families:
        try:
            result = family()
        except TimeParseError as e:
            return _invalid(original, str(e))
        if result is not None:
            return result

    return _invalid(
        original,
        f'Unable to parse time format: "{original}". {SUPPORTED_FORMATS_HINT}',
    )


def format_delay(delay_ms: int) -> str:
    """
    Format a delay as a short human-readable string.

    Only the two largest units are shown ("2h 2m", "3d 4h").
    """
    if delay_ms < MS_PER_SECOND:
        return f"{delay_ms}ms"

    seconds = delay_ms // MS_PER_SECOND
    if seconds < 60:
        return f"{seconds}s"

    minutes = seconds // 60
    if minutes < 60:
        remaining_seconds = seconds % 60
        return f"{minutes}m {remaining_seconds}s" if remaining_seconds else f"{minutes}m"

    hours = minutes // 60
    if hours < 24:
        remaining_minutes = minutes % 60
        return f"{hours}h {remaining_minutes}m" if remaining_minutes else f"{hours}h"

    days = hours // 24
    remaining_hours = hours % 24
    return f"{days}d {remaining_hours}h" if remaining_hours else f"{days}d"


def validate_delay(delay_ms: int, max_days: int = 30) -> DelayValidation:
    """
    Check a delay against the scheduling policy.

    Args:
        delay_ms: Delay in milliseconds
        max_days: Longest allowed delay in days

    Returns:
        DelayValidation with the rejection reason when invalid
    """
    if max_days <= 0:
        raise ValueError(f"max_days must be positive, got {max_days}")

    if delay_ms <= 0:
        return DelayValidation(valid=False, error="Delay must be greater than 0")

    if delay_ms > max_days * MS_PER_DAY:
        return DelayValidation(valid=False, error=f"Delay cannot exceed {max_days} days")

    return DelayValidation(valid=True)
