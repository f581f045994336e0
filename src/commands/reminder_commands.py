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
Reminder Commands

Discord commands for scheduling phone-call reminders, both as slash commands
(/remind set|list|cancel|status) and as "?" prefixed text commands.
"""

import logging
from datetime import datetime
from typing import Awaitable, Callable, Optional

import discord
from discord import app_commands
from discord.ext import commands

from analytics import track
from commands.parsing import CommandKind, ParsedCommand, parse_command, split_reminder_args
from reminders import (
    JobStore,
    JobStoreError,
    QueueStats,
    ReminderService,
    ScheduledJob,
    ScheduleResult,
    format_delay,
)

logger = logging.getLogger("dialtone.commands.reminder")

STORE_ERROR_MESSAGE = "The reminder queue is unavailable right now. Please try again."

# Discord allows 25 fields per embed
MAX_LIST_FIELDS = 25

HELP_TIME_FORMATS = (
    "- `6h`, `45m`, `2d`, `1w` - relative\n"
    "- `9:00am`, `14:30` - today, or tomorrow if already past\n"
    "- `12/25/2026 9:00am` - specific date and time\n"
    "- `tomorrow 9am`, `friday`, `next monday`\n"
    "- `1767225600` - UNIX timestamp"
)


def _timestamp(dt: datetime, style: str = "f") -> str:
    return f"<t:{int(dt.timestamp())}:{style}>"


def error_embed(message: str) -> discord.Embed:
    return discord.Embed(title="Error", description=message, color=discord.Color.red())


def created_embed(result: ScheduleResult, message: str) -> discord.Embed:
    """Confirmation for a newly scheduled reminder."""
    embed = discord.Embed(
        title="Reminder Set",
        description=f"**Message:** {message[:200]}",
        color=discord.Color.green(),
    )
    parsed = result.parse
    if parsed is not None:
        embed.add_field(
            name="Time",
            value=f"In {format_delay(parsed.delay_ms)} ({_timestamp(parsed.absolute_time)})",
            inline=True,
        )
    embed.add_field(name="Job ID", value=f"`{result.job_id}`", inline=True)
    embed.set_footer(text="Use ?cancel <job-id> or /remind cancel to cancel this reminder")
    return embed


def list_embed(jobs: list[ScheduledJob]) -> discord.Embed:
    """Pending reminders for one user."""
    if not jobs:
        return discord.Embed(
            title="Your Reminders",
            description="You have no active reminders.",
            color=discord.Color.blue(),
        )

    embed = discord.Embed(title="Your Active Reminders", color=discord.Color.blue())
    for index, job in enumerate(jobs[:MAX_LIST_FIELDS], start=1):
        content = job.payload.message
        if len(content) > 50:
            content = content[:47] + "..."
        status = " (retry)" if job.is_retry else ""
        embed.add_field(
            name=f"{index}. {content}{status}",
            value=f"ID: `{job.id}`\nScheduled: {_timestamp(job.due_at)} ({job.status.value})",
            inline=False,
        )

    footer = f"Total: {len(jobs)} reminder(s)"
    if len(jobs) > MAX_LIST_FIELDS:
        footer += f" - showing first {MAX_LIST_FIELDS}"
    embed.set_footer(text=footer)
    return embed


def status_embed(stats: Optional[QueueStats], scheduler_running: bool) -> discord.Embed:
    """Bot and queue health."""
    healthy = stats is not None
    embed = discord.Embed(
        title="Bot Status",
        color=discord.Color.green() if healthy else discord.Color.red(),
    )
    embed.add_field(name="Bot", value="Online and running", inline=True)
    embed.add_field(name="Job Store", value="Connected" if healthy else "Unavailable", inline=True)
    embed.add_field(name="Scheduler", value="Running" if scheduler_running else "Stopped", inline=True)
    if stats is not None:
        embed.add_field(
            name="Queue Statistics",
            value=(
                f"Waiting: {stats.waiting}\n"
                f"Active: {stats.active}\n"
                f"Completed: {stats.completed}\n"
                f"Failed: {stats.failed}\n"
                f"Delayed: {stats.delayed}"
            ),
            inline=False,
        )
    return embed


def help_embed() -> discord.Embed:
    embed = discord.Embed(
        title="Voice Reminder Bot Help",
        description="Set reminders that call your phone at the specified time.",
        color=discord.Color.blue(),
    )
    embed.add_field(
        name="Set a Reminder",
        value=f"`?remind <message> -t <time>`\n\n**Time Formats:**\n{HELP_TIME_FORMATS}",
        inline=False,
    )
    embed.add_field(
        name="Cancel a Reminder",
        value="`?cancel <job-id>`\nUse `?list` to see your active reminders and their IDs.",
        inline=False,
    )
    embed.add_field(name="List Your Reminders", value="`?list`", inline=False)
    embed.add_field(name="Check Bot Status", value="`?status`", inline=False)
    embed.add_field(
        name="Examples",
        value="```\n?remind Attend meeting! -t 6h\n?remind Daily standup -t 9:00am\n"
        "?remind Dentist -t tomorrow 2pm```",
        inline=False,
    )
    embed.set_footer(text="Slash commands: /remind set, /remind list, /remind cancel, /remind status")
    return embed


class ReminderCommands(commands.Cog):
    """
    Commands for reminder management.

    Slash commands:
    - /remind set - Schedule a reminder call
    - /remind list - List your pending reminders
    - /remind cancel - Cancel a reminder that has not started
    - /remind status - Queue statistics

    Text commands: ?remind, ?cancel, ?list, ?help, ?status
    """

    remind_group = app_commands.Group(
        name="remind",
        description="Manage your phone call reminders",
    )

    def __init__(
        self,
        bot: commands.Bot,
        service: ReminderService,
        store: JobStore,
        scheduler_running: Optional[Callable[[], bool]] = None,
    ):
        self.bot = bot
        self.service = service
        self.store = store
        self._scheduler_running = scheduler_running or (lambda: False)

        self._text_handlers: dict[CommandKind, Callable[[discord.Message, str], Awaitable[None]]] = {
            CommandKind.REMIND: self._text_remind,
            CommandKind.CANCEL: self._text_cancel,
            CommandKind.LIST: self._text_list,
            CommandKind.HELP: self._text_help,
            CommandKind.STATUS: self._text_status,
        }

    async def _stats_or_none(self) -> Optional[QueueStats]:
        try:
            return await self.store.stats()
        except JobStoreError as e:
            logger.warning(f"Job store health check failed: {e}")
            return None

    # =========================================================================
    # Slash commands
    # =========================================================================

    @remind_group.command(name="set")
    @app_commands.describe(
        message="What the call should say",
        time="When to call (e.g., '30m', '14:30', 'tomorrow 9am', 'next monday')",
    )
    async def set_reminder(self, interaction: discord.Interaction, message: str, time: str):
        """Schedule a reminder call."""
        await interaction.response.defer(ephemeral=True)
        self._track_command(interaction.user.id, interaction.channel_id, "set")

        result = await self.service.schedule(
            message=message,
            time_expr=time,
            user_id=str(interaction.user.id),
            channel_id=str(interaction.channel_id),
            message_id=str(interaction.id),
        )
        if not result.ok:
            await interaction.followup.send(embed=error_embed(result.error), ephemeral=True)
            return

        await interaction.followup.send(embed=created_embed(result, message), ephemeral=True)

    @remind_group.command(name="list")
    async def list_reminders(self, interaction: discord.Interaction):
        """List your pending reminders."""
        await interaction.response.defer(ephemeral=True)
        self._track_command(interaction.user.id, interaction.channel_id, "list")

        try:
            jobs = await self.service.list_for(str(interaction.user.id))
        except JobStoreError:
            await interaction.followup.send(embed=error_embed(STORE_ERROR_MESSAGE), ephemeral=True)
            return
        await interaction.followup.send(embed=list_embed(jobs), ephemeral=True)

    @remind_group.command(name="cancel")
    @app_commands.describe(job_id="The job ID shown when the reminder was set")
    async def cancel_reminder(self, interaction: discord.Interaction, job_id: str):
        """Cancel a reminder that has not started yet."""
        self._track_command(interaction.user.id, interaction.channel_id, "cancel")

        try:
            cancelled = await self.service.cancel(job_id.strip(), str(interaction.user.id))
        except JobStoreError:
            await interaction.response.send_message(embed=error_embed(STORE_ERROR_MESSAGE), ephemeral=True)
            return

        if cancelled:
            await interaction.response.send_message(
                f"Reminder `{job_id}` has been cancelled.", ephemeral=True
            )
        else:
            await interaction.response.send_message(
                f"No pending reminder `{job_id}` found. It may already be running, "
                "finished, or belong to someone else.",
                ephemeral=True,
            )

    @remind_group.command(name="status")
    async def status(self, interaction: discord.Interaction):
        """Show bot and queue status."""
        self._track_command(interaction.user.id, interaction.channel_id, "status")
        stats = await self._stats_or_none()
        await interaction.response.send_message(
            embed=status_embed(stats, self._scheduler_running()), ephemeral=True
        )

    # =========================================================================
    # Text commands
    # =========================================================================

    @commands.Cog.listener()
    async def on_message(self, message: discord.Message):
        if message.author.bot:
            return

        parsed = parse_command(message.content)
        if parsed is None:
            return

        await self.handle_text_command(message, parsed)

    async def handle_text_command(self, message: discord.Message, parsed: ParsedCommand) -> None:
        """Run a parsed "?" command and reply in the same channel."""
        self._track_command(message.author.id, message.channel.id, parsed.kind.value, text=True)
        handler = self._text_handlers[parsed.kind]
        try:
            await handler(message, parsed.args)
        except JobStoreError as e:
            logger.error(f"Job store error handling ?{parsed.kind.value}: {e}")
            await message.channel.send(embed=error_embed(STORE_ERROR_MESSAGE))
        except Exception as e:
            logger.error(f"Error handling ?{parsed.kind.value}: {e}", exc_info=True)
            await message.channel.send(
                embed=error_embed("An error occurred while processing your command.")
            )

    async def _text_remind(self, message: discord.Message, args: str) -> None:
        if not args:
            await message.channel.send(
                embed=error_embed("Please provide a reminder message and time. Use `?help` for examples.")
            )
            return

        request = split_reminder_args(args)
        if not request.valid:
            await message.channel.send(embed=error_embed(request.error))
            return

        result = await self.service.schedule(
            message=request.message,
            time_expr=request.time_expr,
            user_id=str(message.author.id),
            channel_id=str(message.channel.id),
            message_id=str(message.id),
        )
        if not result.ok:
            await message.channel.send(embed=error_embed(result.error))
            return

        await message.channel.send(embed=created_embed(result, request.message))
        logger.info(
            f"Reminder scheduled for {message.author} in {format_delay(result.parse.delay_ms)}"
        )

    async def _text_cancel(self, message: discord.Message, args: str) -> None:
        if not args:
            await message.channel.send(
                embed=error_embed("Please provide a job ID to cancel. Use `?list` to see your reminders.")
            )
            return

        if await self.service.cancel(args, str(message.author.id)):
            await message.channel.send(
                embed=discord.Embed(
                    title="Reminder Cancelled",
                    description=f"Successfully cancelled reminder with ID: `{args}`",
                    color=discord.Color.orange(),
                )
            )
        else:
            await message.channel.send(embed=error_embed(f"No pending reminder found with ID: `{args}`"))

    async def _text_list(self, message: discord.Message, args: str) -> None:
        jobs = await self.service.list_for(str(message.author.id))
        await message.channel.send(embed=list_embed(jobs))

    async def _text_help(self, message: discord.Message, args: str) -> None:
        await message.channel.send(embed=help_embed())

    async def _text_status(self, message: discord.Message, args: str) -> None:
        stats = await self._stats_or_none()
        await message.channel.send(embed=status_embed(stats, self._scheduler_running()))

    def _track_command(self, user_id: int, channel_id: Optional[int], name: str, text: bool = False) -> None:
        track(
            "command_used",
            "command",
            owner_id=str(user_id),
            channel_id=channel_id,
            properties={"command_name": "remind" if not text else name, "subcommand": name, "text": text},
        )
