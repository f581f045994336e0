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

"""Tests for environment-driven configuration."""

import sys
from pathlib import Path
from unittest.mock import patch

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from reminders.config import CalendarConfig, ReminderConfig, TwilioConfig


class TestReminderConfig:
    """Test scheduling and execution settings."""

    def test_defaults(self):
        with patch.dict("os.environ", {}, clear=True):
            config = ReminderConfig.from_env()
        assert config.max_delay_days == 30
        assert config.max_reminders_per_user == 50
        assert config.concurrency == 5
        assert config.call_timeout_seconds == 30.0
        assert config.sweep_interval_seconds == 5.0
        assert config.retry_backoff_ms == 300_000
        assert config.default_voice == "alice"
        assert config.timezone == "UTC"
        assert config.keep_completed_jobs == 100
        assert config.keep_failed_jobs == 50

    def test_overrides(self):
        with patch.dict("os.environ", {
            "MAX_REMINDER_DELAY_DAYS": "7",
            "REMINDER_CONCURRENCY": "2",
            "DEFAULT_TTS_VOICE": "man",
            "TARGET_PHONE_NUMBER": "+15551234567",
            "REMINDER_TIMEZONE": "Europe/London",
        }, clear=True):
            config = ReminderConfig.from_env()
        assert config.max_delay_days == 7
        assert config.concurrency == 2
        assert config.default_voice == "man"
        assert config.target_phone_number == "+15551234567"
        assert config.timezone == "Europe/London"


class TestTwilioConfig:
    """Test Twilio credentials."""

    def test_missing_lists_unset(self):
        with patch.dict("os.environ", {"TWILIO_ACCOUNT_SID": "AC123"}, clear=True):
            config = TwilioConfig.from_env()
        assert config.missing() == ["TWILIO_AUTH_TOKEN", "TWILIO_PHONE_NUMBER"]
        assert config.status_callback_url is None

    def test_complete(self):
        with patch.dict("os.environ", {
            "TWILIO_ACCOUNT_SID": "AC123",
            "TWILIO_AUTH_TOKEN": "secret",
            "TWILIO_PHONE_NUMBER": "+15550001111",
        }, clear=True):
            config = TwilioConfig.from_env()
        assert config.missing() == []


class TestCalendarConfig:
    """Test calendar sync settings."""

    def test_disabled_by_default(self):
        with patch.dict("os.environ", {}, clear=True):
            config = CalendarConfig.from_env()
        assert config.enabled is False
        assert config.calendar_id == "primary"
        assert config.advance_minutes == 10
        assert config.lookahead_hours == 24
        assert config.has_credentials is False
        assert config.owner_id == "google-calendar"

    def test_enabled(self):
        with patch.dict("os.environ", {
            "CALENDAR_ENABLED": "true",
            "GOOGLE_CALENDAR_API_KEY": "KEY",
            "CALENDAR_ADVANCE_MINUTES": "15",
        }, clear=True):
            config = CalendarConfig.from_env()
        assert config.enabled is True
        assert config.has_credentials is True
        assert config.advance_minutes == 15
