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
Voice Call Package

Delivers reminders as outbound phone calls.
"""

from .twilio_client import (
    TwilioVoiceClient,
    build_audio_twiml,
    build_tts_twiml,
    format_phone_number,
    validate_phone_number,
)
from .types import CallOptions, CallResult, NotificationAction

__all__ = [
    "CallOptions",
    "CallResult",
    "NotificationAction",
    "TwilioVoiceClient",
    "build_audio_twiml",
    "build_tts_twiml",
    "format_phone_number",
    "validate_phone_number",
]
