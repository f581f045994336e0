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
Text Command Parsing

Turns "?remind Call mom -t 2h" style messages into a command kind and its
arguments. Only the first word after the prefix selects the command.
"""

import re
from dataclasses import dataclass
from enum import Enum
from typing import Optional

COMMAND_PREFIX = "?"

# Everything after "-t" is the time, so multi-word times like "tomorrow 9am" work
TIME_FLAG_RE = re.compile(r"(?:^|\s)-t\s+(.+)$", re.DOTALL)


class CommandKind(str, Enum):
    REMIND = "remind"
    CANCEL = "cancel"
    LIST = "list"
    HELP = "help"
    STATUS = "status"


@dataclass
class ParsedCommand:
    kind: CommandKind
    args: str


@dataclass
class ReminderRequest:
    """A ?remind invocation split into message and time."""

    message: str
    time_expr: str
    error: Optional[str] = None

    @property
    def valid(self) -> bool:
        return self.error is None


def parse_command(content: str, prefix: str = COMMAND_PREFIX) -> Optional[ParsedCommand]:
    """
    Identify a prefixed text command.

    Returns None for messages without the prefix or with an unknown command.
    """
    if not content.startswith(prefix):
        return None

    body = content[len(prefix):].strip()
    if not body:
        return None

    name, _, args = body.partition(" ")
    try:
        kind = CommandKind(name.lower())
    except ValueError:
        return None
    return ParsedCommand(kind=kind, args=args.strip())


def split_reminder_args(args: str) -> ReminderRequest:
    """Split "<message> -t <time>" into its parts."""
    match = TIME_FLAG_RE.search(args)
    if not match:
        return ReminderRequest(
            message=args.strip(),
            time_expr="",
            error="Missing time parameter. Use -t <time> to specify when the reminder should fire.",
        )

    time_expr = match.group(1).strip()
    message = args[: match.start()].strip()
    if not message:
        return ReminderRequest(message="", time_expr=time_expr, error="Missing reminder message.")
    return ReminderRequest(message=message, time_expr=time_expr)
