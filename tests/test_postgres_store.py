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

"""Tests for the Postgres job store against a mocked asyncpg pool."""

import json
import sys
from datetime import datetime, timedelta
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import asyncpg
import pytest
import pytz

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from reminders.models import JobStatus, ReminderPayload, ScheduledJob
from reminders.store import JobStoreError, PostgresJobStore

NOW = datetime(2026, 1, 15, 10, 0, tzinfo=pytz.UTC)


def make_row(**overrides) -> dict:
    row = {
        "id": "remind-200-1768471200000-abcd1234",
        "owner_id": "42",
        "correlation_key": "200",
        "payload": json.dumps(
            {"message": "Call mom", "user_id": "42", "channel_id": "100", "message_id": "200"}
        ),
        "status": "delayed",
        "priority": 0,
        "attempts_remaining": 1,
        "delay_ms": 30_000,
        "due_at": NOW + timedelta(seconds=30),
        "created_at": NOW,
        "claimed_at": None,
        "finished_at": None,
        "correlation_id": None,
        "last_error": None,
        "retry_of": None,
    }
    row.update(overrides)
    return row


@pytest.fixture
def mock_pool():
    pool = MagicMock()
    pool.execute = AsyncMock(return_value="INSERT 0 1")
    pool.fetch = AsyncMock(return_value=[])
    pool.fetchrow = AsyncMock(return_value=None)
    pool.fetchval = AsyncMock(return_value=False)
    return pool


@pytest.fixture
def store(mock_pool):
    return PostgresJobStore(mock_pool, clock=lambda: NOW)


class TestInsert:
    """Test job insertion."""

    @pytest.mark.asyncio
    async def test_insert_delayed(self, store, mock_pool):
        payload = ReminderPayload(message="Call mom", user_id="42", channel_id="100", message_id="200")
        job_id = await store.insert(payload, 30_000, "42", correlation_key="200")

        assert job_id.startswith("remind-200-")
        args = mock_pool.execute.call_args[0]
        assert "INSERT INTO scheduled_jobs" in args[0]
        assert args[1] == job_id
        assert json.loads(args[4])["message"] == "Call mom"
        assert args[5] == "delayed"
        assert args[8] == 30_000
        assert args[9] == NOW + timedelta(seconds=30)

    @pytest.mark.asyncio
    async def test_insert_immediate_is_waiting(self, store, mock_pool):
        payload = ReminderPayload(message="Now", user_id="42", channel_id="100", message_id="201")
        await store.insert(payload, 0, "42", correlation_key="201", priority=10)

        args = mock_pool.execute.call_args[0]
        assert args[5] == "waiting"
        assert args[6] == 10


class TestCancel:
    """Test that cancellation is limited to pending rows."""

    @pytest.mark.asyncio
    async def test_cancel_success(self, store, mock_pool):
        mock_pool.execute = AsyncMock(return_value="DELETE 1")
        assert await store.cancel("job-1") is True

        sql = mock_pool.execute.call_args[0][0]
        assert "status IN ('waiting', 'delayed')" in sql

    @pytest.mark.asyncio
    async def test_cancel_nothing_deleted(self, store, mock_pool):
        mock_pool.execute = AsyncMock(return_value="DELETE 0")
        assert await store.cancel("job-1") is False

    @pytest.mark.asyncio
    async def test_cancel_with_owner(self, store, mock_pool):
        mock_pool.execute = AsyncMock(return_value="DELETE 1")
        await store.cancel("job-1", owner_id="42")

        args = mock_pool.execute.call_args[0]
        assert "owner_id = $2" in args[0]
        assert args[1:] == ("job-1", "42")


class TestClaimDue:
    """Test the claim query and result handling."""

    @pytest.mark.asyncio
    async def test_claim_uses_skip_locked(self, store, mock_pool):
        await store.claim_due(5)

        args = mock_pool.fetch.call_args[0]
        assert "FOR UPDATE SKIP LOCKED" in args[0]
        assert "ORDER BY priority DESC, due_at ASC" in args[0]
        assert args[1] == NOW
        assert args[2] == 5

    @pytest.mark.asyncio
    async def test_claim_sorts_returned_rows(self, store, mock_pool):
        mock_pool.fetch = AsyncMock(
            return_value=[
                make_row(id="low", status="active", priority=0),
                make_row(id="high", status="active", priority=10),
            ]
        )

        jobs = await store.claim_due(5)

        assert [job.id for job in jobs] == ["high", "low"]
        assert all(job.status == JobStatus.ACTIVE for job in jobs)

    @pytest.mark.asyncio
    async def test_claim_zero_skips_query(self, store, mock_pool):
        assert await store.claim_due(0) == []
        mock_pool.fetch.assert_not_called()


class TestQueries:
    """Test read paths."""

    @pytest.mark.asyncio
    async def test_get_builds_job(self, store, mock_pool):
        mock_pool.fetchrow = AsyncMock(return_value=make_row())

        job = await store.get("remind-200-1768471200000-abcd1234")

        assert isinstance(job, ScheduledJob)
        assert job.status == JobStatus.DELAYED
        assert job.payload.message == "Call mom"

    @pytest.mark.asyncio
    async def test_get_missing(self, store):
        assert await store.get("missing") is None

    @pytest.mark.asyncio
    async def test_stats(self, store, mock_pool):
        mock_pool.fetch = AsyncMock(
            return_value=[{"status": "waiting", "count": 2}, {"status": "failed", "count": 1}]
        )

        stats = await store.stats()

        assert stats.waiting == 2
        assert stats.failed == 1
        assert stats.delayed == 0
        assert mock_pool.fetch.call_count == 1

    @pytest.mark.asyncio
    async def test_has_pending(self, store, mock_pool):
        mock_pool.fetchval = AsyncMock(return_value=True)
        assert await store.has_pending("calendar-evt1") is True
        args = mock_pool.fetchval.call_args[0]
        assert args[1:] == ("calendar-evt1", False)

    @pytest.mark.asyncio
    async def test_has_pending_including_finished(self, store, mock_pool):
        mock_pool.fetchval = AsyncMock(return_value=True)
        assert await store.has_pending("calendar-evt1", include_finished=True) is True
        args = mock_pool.fetchval.call_args[0]
        assert args[1:] == ("calendar-evt1", True)


class TestRetry:
    """Test that retry fails the original and inserts the retry in one transaction."""

    @pytest.mark.asyncio
    async def test_retry_transaction(self, store, mock_pool):
        conn = MagicMock()
        conn.execute = AsyncMock()
        conn.transaction = MagicMock()
        conn.transaction.return_value.__aenter__ = AsyncMock()
        conn.transaction.return_value.__aexit__ = AsyncMock(return_value=False)
        mock_pool.acquire = MagicMock()
        mock_pool.acquire.return_value.__aenter__ = AsyncMock(return_value=conn)
        mock_pool.acquire.return_value.__aexit__ = AsyncMock(return_value=False)

        job = ScheduledJob.from_record(make_row(status="active", priority=2))
        retry_id = await store.retry(job, "ETIMEDOUT", 30_000)

        assert retry_id.startswith(f"retry-{job.id}-")
        assert conn.execute.call_count == 2
        fail_args = conn.execute.call_args_list[0][0]
        insert_args = conn.execute.call_args_list[1][0]
        assert "status = 'failed'" in fail_args[0]
        assert insert_args[1] == retry_id
        assert insert_args[6] == 3  # priority + 1
        assert insert_args[7] == 0  # attempts remaining
        assert insert_args[11] == job.id


class TestMaintenance:
    """Test recovery, pruning and error wrapping."""

    @pytest.mark.asyncio
    async def test_recover_active_count(self, store, mock_pool):
        mock_pool.execute = AsyncMock(return_value="UPDATE 3")
        assert await store.recover_active() == 3

    @pytest.mark.asyncio
    async def test_prune_sums_deletes(self, store, mock_pool):
        mock_pool.execute = AsyncMock(side_effect=["DELETE 4", "DELETE 1"])
        assert await store.prune(keep_completed=100, keep_failed=50) == 5

    @pytest.mark.asyncio
    async def test_connection_errors_wrapped(self, store, mock_pool):
        mock_pool.fetch = AsyncMock(side_effect=OSError("connection refused"))
        with pytest.raises(JobStoreError):
            await store.list_by_owner("42")

    @pytest.mark.asyncio
    async def test_postgres_errors_wrapped(self, store, mock_pool):
        mock_pool.execute = AsyncMock(side_effect=asyncpg.PostgresError("boom"))
        with pytest.raises(JobStoreError):
            await store.cancel("job-1")
