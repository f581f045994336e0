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
Reminder Scheduler Module

Background task loop that hands due reminder jobs to the executor.
Uses discord.ext.tasks for reliable scheduling.
"""

import logging
from typing import Optional

from discord.ext import tasks

from analytics import track

from .config import ReminderConfig
from .executor import JobExecutor
from .store import JobStore

logger = logging.getLogger("dialtone.reminders.scheduler")

# Finished jobs are pruned once per this many sweeps
PRUNE_EVERY_SWEEPS = 60


class ReminderScheduler:
    """
    Background scheduler for delivering reminders.

    Sweeps the store every few seconds. Each sweep fills the executor's free
    slots with due jobs; calls run as their own tasks so a slow call never
    holds up the loop.
    """

    def __init__(
        self,
        executor: JobExecutor,
        store: JobStore,
        config: Optional[ReminderConfig] = None,
    ):
        """
        Initialize the reminder scheduler.

        Args:
            executor: Runs claimed jobs
            store: Job store (for crash recovery and pruning)
            config: Sweep interval and retention limits
        """
        self.executor = executor
        self.store = store
        self.config = config or ReminderConfig()
        self._sweeps = 0
        self._started = False

        self._sweep.change_interval(seconds=self.config.sweep_interval_seconds)

    @property
    def is_running(self) -> bool:
        return self._started and self._sweep.is_running()

    async def start(self) -> None:
        """Recover interrupted jobs, then start the scheduler loop."""
        if self._started:
            return

        await self.store.recover_active()

        self._sweep.start()
        self._started = True
        logger.info(
            f"Reminder scheduler started (every {self.config.sweep_interval_seconds:g}s, "
            f"concurrency {self.executor.concurrency})"
        )

    async def stop(self) -> None:
        """Stop the loop and wait for in-flight calls to finish."""
        if self._started:
            self._sweep.cancel()
            self._started = False
            await self.executor.drain()
            logger.info("Reminder scheduler stopped")

    async def sweep_once(self) -> None:
        """Run one sweep: dispatch due jobs and prune periodically."""
        self._sweeps += 1
        await self.executor.dispatch()

        if self._sweeps % PRUNE_EVERY_SWEEPS == 0:
            await self.store.prune(
                keep_completed=self.config.keep_completed_jobs,
                keep_failed=self.config.keep_failed_jobs,
            )

    @tasks.loop(seconds=5)
    async def _sweep(self) -> None:
        """Check for due jobs and start them."""
        try:
            await self.sweep_once()
        except Exception as e:
            logger.error(f"Error in reminder scheduler loop: {e}", exc_info=True)
            track(
                "scheduler_error",
                "error",
                properties={
                    "error_type": type(e).__name__,
                    "error_message": str(e)[:200],
                },
            )
