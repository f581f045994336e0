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

import asyncio
import os
from typing import Optional

import asyncpg
import discord
from discord.ext import commands
from dotenv import load_dotenv

load_dotenv()

import logging

from analytics import shutdown as analytics_shutdown
from calendar_sync import CalendarSync, GoogleCalendarClient
from calls import TwilioVoiceClient, format_phone_number, validate_phone_number
from commands.reminder_commands import ReminderCommands
from reminders import (
    CalendarConfig,
    InMemoryJobStore,
    JobExecutor,
    JobStore,
    JobStoreError,
    PostgresJobStore,
    ReminderConfig,
    ReminderScheduler,
    ReminderService,
    TwilioConfig,
)

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger("dialtone")


class DiscordBot(commands.Bot):
    """Discord bot that turns chat commands into scheduled phone call reminders."""

    def __init__(
        self,
        reminder_config: Optional[ReminderConfig] = None,
        twilio_config: Optional[TwilioConfig] = None,
        calendar_config: Optional[CalendarConfig] = None,
    ):
        intents = discord.Intents.default()
        intents.message_content = True
        intents.guilds = True
        intents.messages = True

        # Text commands are parsed by ReminderCommands, not the commands extension
        super().__init__(command_prefix=commands.when_mentioned, intents=intents)

        self.reminder_config = reminder_config or ReminderConfig.from_env()
        self.twilio_config = twilio_config or TwilioConfig.from_env()
        self.calendar_config = calendar_config or CalendarConfig.from_env()

        self.db_pool: Optional[asyncpg.Pool] = None
        self.store: Optional[JobStore] = None
        self.voice_client: Optional[TwilioVoiceClient] = None
        self.scheduler: Optional[ReminderScheduler] = None
        self.calendar_client: Optional[GoogleCalendarClient] = None
        self.calendar_sync: Optional[CalendarSync] = None

    async def setup_hook(self):
        """Called when the bot is starting up."""
        database_url = os.getenv("DATABASE_URL")
        missing_twilio = self.twilio_config.missing()
        target = self.reminder_config.target_phone_number

        logger.info(f"Setup: DATABASE_URL={'set' if database_url else 'missing'}")
        logger.info(f"Setup: TWILIO={'set' if not missing_twilio else 'missing ' + ', '.join(missing_twilio)}")
        logger.info(f"Setup: TARGET_PHONE_NUMBER={'set' if target else 'missing'}")
        logger.info(f"Setup: CALENDAR_ENABLED={self.calendar_config.enabled}")

        self.store = await self._create_store(database_url)

        service = ReminderService(self.store, self.reminder_config)
        await self.add_cog(
            ReminderCommands(
                self,
                service,
                self.store,
                scheduler_running=lambda: bool(self.scheduler and self.scheduler.is_running),
            )
        )
        await self.tree.sync()

        if missing_twilio or not target:
            logger.warning("Twilio or target phone not configured, reminders will queue but no calls will be placed")
            return

        target = format_phone_number(target)
        if not validate_phone_number(target):
            logger.error(f"TARGET_PHONE_NUMBER is not a valid E.164 number: {target}")
            return

        self.voice_client = TwilioVoiceClient(
            self.twilio_config.account_sid,
            self.twilio_config.auth_token,
            self.twilio_config.phone_number,
            status_callback_url=self.twilio_config.status_callback_url,
            timeout=self.reminder_config.call_timeout_seconds,
        )
        if not await self.voice_client.test_connection():
            logger.warning("Twilio connection test failed, calls may not go through")

        executor = JobExecutor(
            self.store,
            self.voice_client,
            target,
            concurrency=self.reminder_config.concurrency,
            call_timeout=self.reminder_config.call_timeout_seconds,
            retry_backoff_ms=self.reminder_config.retry_backoff_ms,
            default_voice=self.reminder_config.default_voice,
        )
        self.scheduler = ReminderScheduler(executor, self.store, self.reminder_config)
        await self.scheduler.start()

        if self.calendar_config.enabled:
            self._start_calendar_sync()

    async def _create_store(self, database_url: Optional[str]) -> JobStore:
        if database_url:
            try:
                self.db_pool = await asyncpg.create_pool(database_url)
                store = PostgresJobStore(self.db_pool)
                await store.ensure_schema()
                logger.info("Postgres job store initialized successfully")
                return store
            except (asyncpg.PostgresError, OSError, JobStoreError) as e:
                logger.error(f"Failed to initialize Postgres job store: {e}", exc_info=True)
                if self.db_pool:
                    await self.db_pool.close()
                    self.db_pool = None

        logger.warning("Using in-memory job store, reminders will not survive a restart")
        return InMemoryJobStore()

    def _start_calendar_sync(self) -> None:
        if not self.calendar_config.has_credentials:
            logger.warning("CALENDAR_ENABLED but no Google Calendar credentials, calendar sync disabled")
            return

        self.calendar_client = GoogleCalendarClient(
            calendar_id=self.calendar_config.calendar_id,
            api_key=self.calendar_config.api_key,
            access_token=self.calendar_config.access_token,
        )
        self.calendar_sync = CalendarSync(
            self.calendar_client,
            self.store,
            self.calendar_config,
            self.reminder_config,
        )
        self.calendar_sync.start()

    async def on_ready(self):
        """Called when the bot has connected to Discord."""
        logger.info(f"Logged in as {self.user} (ID: {self.user.id})")
        logger.info(f"Connected to {len(self.guilds)} guild(s)")
        await self.change_presence(
            activity=discord.Activity(type=discord.ActivityType.listening, name="?help")
        )

    async def close(self):
        """Clean up resources on shutdown."""
        if self.calendar_sync:
            self.calendar_sync.stop()
        if self.calendar_client:
            await self.calendar_client.close()
        if self.scheduler:
            await self.scheduler.stop()
        if self.voice_client:
            await self.voice_client.close()
        if self.store:
            await self.store.close()
        if self.db_pool:
            await self.db_pool.close()
        await analytics_shutdown()
        await super().close()


async def main():
    """Run the bot."""
    token = os.getenv("DISCORD_BOT_TOKEN")
    if not token:
        print("Error: DISCORD_BOT_TOKEN environment variable not set")
        print("Please set it in your .env file")
        return

    bot = DiscordBot()
    await bot.start(token)


def run():
    """Console script entry point."""
    asyncio.run(main())


if __name__ == "__main__":
    run()
