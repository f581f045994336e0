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
Place a one-off test call to check the Twilio setup.

Usage:
    python scripts/test_call.py
    python scripts/test_call.py --message "Custom test message" --voice alice
    python scripts/test_call.py --check-only
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from dotenv import load_dotenv

load_dotenv()

from calls import CallOptions, TwilioVoiceClient, format_phone_number
from reminders import ReminderConfig, TwilioConfig

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

DEFAULT_MESSAGE = (
    "This is a test call from your Discord Reminder Bot. "
    "If you can hear this, Twilio is working correctly!"
)


async def main_async(args) -> int:
    twilio = TwilioConfig.from_env()
    reminder = ReminderConfig.from_env()

    missing = twilio.missing()
    if not reminder.target_phone_number:
        missing.append("TARGET_PHONE_NUMBER")
    if missing:
        logger.error(f"Missing environment variables: {', '.join(missing)}")
        return 1

    client = TwilioVoiceClient(twilio.account_sid, twilio.auth_token, twilio.phone_number)
    try:
        if not await client.test_connection():
            return 1
        if args.check_only:
            return 0

        target = format_phone_number(reminder.target_phone_number)
        logger.info(f"Calling {target} from {twilio.phone_number}")
        result = await client.invoke(args.message, target, CallOptions(voice=args.voice))
        if not result.success:
            logger.error(f"Test call failed: {result.error}")
            return 1

        logger.info(f"Test call initiated. Call SID: {result.correlation_id} ({result.status})")
        return 0
    finally:
        await client.close()


def main():
    parser = argparse.ArgumentParser(description="Place a Twilio test call")
    parser.add_argument("--message", "-m", default=DEFAULT_MESSAGE, help="Text to speak")
    parser.add_argument("--voice", default="alice", help="TTS voice")
    parser.add_argument("--check-only", action="store_true", help="Only verify credentials")
    args = parser.parse_args()
    sys.exit(asyncio.run(main_async(args)))


if __name__ == "__main__":
    main()
