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
Event log for reminders, calls and commands.

Events land in the analytics_events table of the job database. Recording is
best effort: a missing DATABASE_URL or a database error never reaches the
caller.

    from analytics import track, track_async

    # From a command handler or the executor; returns immediately
    track("call_placed", "call", owner_id="1234", properties={"job_id": "remind-..."})

    # When the caller wants to know whether the row was written
    await track_async("command_used", "command", owner_id="1234", properties={"command_name": "remind"})
"""

import asyncio
import json
import logging
import os
from typing import Any, Optional

import asyncpg

logger = logging.getLogger("dialtone.analytics")

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS analytics_events (
    id             BIGSERIAL PRIMARY KEY,
    event_name     TEXT NOT NULL,
    event_category TEXT NOT NULL,
    owner_id       TEXT,
    channel_id     BIGINT,
    properties     JSONB NOT NULL DEFAULT '{}',
    created_at     TIMESTAMPTZ NOT NULL DEFAULT NOW()
);
"""

# Opened on first use
_pool: Optional[asyncpg.Pool] = None
_enabled: bool = os.getenv("ANALYTICS_ENABLED", "true").lower() == "true"
_background: set[asyncio.Task] = set()


async def _get_pool() -> Optional[asyncpg.Pool]:
    """Open the analytics pool on first use and make sure the table exists."""
    global _pool
    if _pool is None and _enabled:
        database_url = os.getenv("DATABASE_URL")
        if database_url:
            try:
                _pool = await asyncpg.create_pool(database_url, min_size=1, max_size=3)
                await _pool.execute(SCHEMA_SQL)
            except (asyncpg.PostgresError, OSError) as e:
                logger.warning(f"Analytics pool creation failed: {e}")
                _pool = None
    return _pool


async def track_async(
    event_name: str,
    event_category: str,
    owner_id: Optional[str] = None,
    channel_id: Optional[int] = None,
    properties: Optional[dict[str, Any]] = None,
) -> bool:
    """
    Record one event and wait for the insert.

    Args:
        event_name: What happened, e.g. "call_placed"
        event_category: One of: reminder, call, calendar, command, error
        owner_id: Reminder owner (Discord user ID or "google-calendar")
        channel_id: Channel the command came from, if any
        properties: Free-form event fields, stored as JSONB

    Returns:
        True if a row was written
    """
    if not _enabled:
        return False

    pool = await _get_pool()
    if pool is None:
        return False

    try:
        await pool.execute(
            """
            INSERT INTO analytics_events
                (event_name, event_category, owner_id, channel_id, properties)
            VALUES ($1, $2, $3, $4, $5)
            """,
            event_name,
            event_category,
            owner_id,
            channel_id,
            json.dumps(properties or {}, default=str),
        )
        return True
    except (asyncpg.PostgresError, asyncpg.InterfaceError, OSError) as e:
        logger.debug(f"Analytics tracking failed: {e}")
        return False


def track(
    event_name: str,
    event_category: str,
    owner_id: Optional[str] = None,
    channel_id: Optional[int] = None,
    properties: Optional[dict[str, Any]] = None,
) -> None:
    """Schedule track_async() on the running loop without awaiting it."""
    if not _enabled:
        return

    try:
        loop = asyncio.get_running_loop()
    except RuntimeError:
        # Called outside the event loop (CLI scripts, sync tests)
        return

    task = loop.create_task(track_async(event_name, event_category, owner_id, channel_id, properties))
    _background.add(task)
    task.add_done_callback(_background.discard)


async def shutdown() -> None:
    """Close the analytics pool; the bot calls this from close()."""
    global _pool
    if _pool is not None:
        await _pool.close()
        _pool = None
