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

"""Tests for the reminder scheduler sweep."""

import sys
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from reminders.config import ReminderConfig
from reminders.scheduler import PRUNE_EVERY_SWEEPS, ReminderScheduler


@pytest.fixture
def executor():
    executor = MagicMock()
    executor.concurrency = 5
    executor.dispatch = AsyncMock(return_value=[])
    executor.drain = AsyncMock()
    return executor


@pytest.fixture
def store():
    store = MagicMock()
    store.recover_active = AsyncMock(return_value=0)
    store.prune = AsyncMock(return_value=0)
    return store


class TestSweep:
    """Test what a single sweep does."""

    @pytest.mark.asyncio
    async def test_sweep_dispatches(self, executor, store):
        scheduler = ReminderScheduler(executor, store)
        await scheduler.sweep_once()

        executor.dispatch.assert_awaited_once()
        store.prune.assert_not_called()

    @pytest.mark.asyncio
    async def test_prunes_periodically(self, executor, store):
        config = ReminderConfig(keep_completed_jobs=10, keep_failed_jobs=5)
        scheduler = ReminderScheduler(executor, store, config)

        for _ in range(PRUNE_EVERY_SWEEPS):
            await scheduler.sweep_once()

        assert executor.dispatch.await_count == PRUNE_EVERY_SWEEPS
        store.prune.assert_awaited_once_with(keep_completed=10, keep_failed=5)

    @pytest.mark.asyncio
    async def test_loop_survives_errors(self, executor, store):
        executor.dispatch = AsyncMock(side_effect=RuntimeError("boom"))
        scheduler = ReminderScheduler(executor, store)

        # The loop body logs and swallows errors so the next sweep still runs
        await scheduler._sweep.coro(scheduler)


class TestLifecycle:
    """Test start and stop."""

    @pytest.mark.asyncio
    async def test_start_recovers_then_stop_drains(self, executor, store):
        scheduler = ReminderScheduler(executor, store, ReminderConfig(sweep_interval_seconds=60))

        await scheduler.start()
        store.recover_active.assert_awaited_once()
        assert scheduler.is_running is True

        await scheduler.stop()
        executor.drain.assert_awaited_once()
        assert scheduler._started is False
