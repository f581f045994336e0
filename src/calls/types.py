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

"""Types shared by notification actions (voice calls)."""

from dataclasses import dataclass
from typing import Optional, Protocol


@dataclass
class CallOptions:
    """How the reminder should sound."""

    voice: str = "alice"
    language: str = "en-US"
    speed: float = 1.0
    volume: float = 1.0
    audio_url: Optional[str] = None  # play this file instead of text-to-speech
    loop: int = 2


@dataclass
class CallResult:
    """Outcome of placing a call."""

    success: bool
    correlation_id: Optional[str] = None  # provider call reference (Twilio SID)
    error: Optional[str] = None
    status: Optional[str] = None


class NotificationAction(Protocol):
    """Something that can deliver a reminder to a target address."""

    async def invoke(self, message: str, target: str, options: CallOptions) -> CallResult:
        ...
