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
Job Inspector CLI

Inspect and maintain the scheduled_jobs table from the command line.

Usage:
    # Queue statistics
    python scripts/job_inspector.py stats

    # List pending reminders for a user
    python scripts/job_inspector.py list --owner 123456789

    # Show one job in full
    python scripts/job_inspector.py inspect --job-id remind-1234-1767225600000-ab12cd34

    # Cancel a pending job (any owner)
    python scripts/job_inspector.py cancel --job-id remind-1234-1767225600000-ab12cd34

    # Return jobs stuck in 'active' after a crash to the queue
    python scripts/job_inspector.py recover

    # Drop old finished jobs
    python scripts/job_inspector.py prune --keep-completed 100 --keep-failed 50
"""

import argparse
import asyncio
import logging
import os
import sys
from datetime import datetime
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

import asyncpg
from dotenv import load_dotenv

load_dotenv()

from reminders import PostgresJobStore, ScheduledJob, format_delay

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(message)s",
)
logger = logging.getLogger(__name__)


def format_datetime(dt: datetime) -> str:
    """Format datetime for display."""
    if dt is None:
        return "Never"
    return dt.strftime("%Y-%m-%d %H:%M:%S %Z")


def truncate(text: str, max_len: int = 80) -> str:
    """Truncate text with ellipsis."""
    if len(text) <= max_len:
        return text
    return text[: max_len - 3] + "..."


def print_job(job: ScheduledJob, verbose: bool = False) -> None:
    logger.info(f"[{job.id}] {job.status.value.upper()} | priority {job.priority}")
    logger.info(f"    Owner: {job.owner_id}")
    logger.info(f"    Message: {truncate(job.payload.message, 70)}")
    logger.info(f"    Due: {format_datetime(job.due_at)} (delay {format_delay(job.delay_ms)})")

    if verbose:
        logger.info(f"    Correlation key: {job.correlation_key}")
        logger.info(f"    Attempts remaining: {job.attempts_remaining}")
        logger.info(f"    Created: {format_datetime(job.created_at)}")
        logger.info(f"    Claimed: {format_datetime(job.claimed_at)}")
        logger.info(f"    Finished: {format_datetime(job.finished_at)}")
        if job.retry_of:
            logger.info(f"    Retry of: {job.retry_of}")
        if job.correlation_id:
            logger.info(f"    Call SID: {job.correlation_id}")
        if job.last_error:
            logger.info(f"    Last error: {job.last_error}")
    logger.info("")


async def show_stats(store: PostgresJobStore) -> None:
    stats = await store.stats()
    logger.info(f"\n{'='*60}")
    logger.info("Scheduled Job Statistics")
    logger.info(f"{'='*60}")
    logger.info(f"  Waiting:   {stats.waiting}")
    logger.info(f"  Delayed:   {stats.delayed}")
    logger.info(f"  Active:    {stats.active}")
    logger.info(f"  Completed: {stats.completed}")
    logger.info(f"  Failed:    {stats.failed}")
    logger.info(f"  Total:     {stats.total}")


async def list_jobs(store: PostgresJobStore, owner_id: str, verbose: bool = False) -> None:
    jobs = await store.list_by_owner(owner_id)
    if not jobs:
        logger.info(f"No pending jobs for owner {owner_id}.")
        return

    logger.info(f"\nFound {len(jobs)} pending job(s) for {owner_id}\n")
    for job in jobs:
        print_job(job, verbose)


async def inspect_job(store: PostgresJobStore, job_id: str) -> None:
    job = await store.get(job_id)
    if job is None:
        logger.error(f"Job {job_id} not found")
        sys.exit(1)
    print_job(job, verbose=True)


async def main_async(args):
    """Async main function."""
    db_url = os.environ.get("DATABASE_URL")
    if not db_url:
        logger.error("DATABASE_URL environment variable required")
        sys.exit(1)

    pool = await asyncpg.create_pool(db_url, min_size=1, max_size=2)
    store = PostgresJobStore(pool)

    try:
        if args.command == "stats":
            await show_stats(store)
        elif args.command == "list":
            await list_jobs(store, args.owner, verbose=args.verbose)
        elif args.command == "inspect":
            await inspect_job(store, args.job_id)
        elif args.command == "cancel":
            if await store.cancel(args.job_id):
                logger.info(f"Cancelled {args.job_id}")
            else:
                logger.error(f"{args.job_id} is not pending (unknown, active or finished)")
                sys.exit(1)
        elif args.command == "recover":
            recovered = await store.recover_active()
            logger.info(f"Returned {recovered} active job(s) to the queue")
        elif args.command == "prune":
            removed = await store.prune(args.keep_completed, args.keep_failed)
            logger.info(f"Pruned {removed} finished job(s)")
    finally:
        await pool.close()


def main():
    parser = argparse.ArgumentParser(
        description="Job Inspector CLI - Query and maintain scheduled reminder jobs"
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("stats", help="Show queue statistics")

    list_parser = subparsers.add_parser("list", help="List pending jobs for an owner")
    list_parser.add_argument("--owner", required=True, help="Owner ID (Discord user ID or google-calendar)")
    list_parser.add_argument("--verbose", "-v", action="store_true", help="Show full details")

    inspect_parser = subparsers.add_parser("inspect", help="Inspect a specific job")
    inspect_parser.add_argument("--job-id", required=True, help="Job ID")

    cancel_parser = subparsers.add_parser("cancel", help="Cancel a pending job")
    cancel_parser.add_argument("--job-id", required=True, help="Job ID")

    subparsers.add_parser("recover", help="Requeue jobs left active by a crashed worker")

    prune_parser = subparsers.add_parser("prune", help="Delete old finished jobs")
    prune_parser.add_argument("--keep-completed", type=int, default=100)
    prune_parser.add_argument("--keep-failed", type=int, default=50)

    args = parser.parse_args()
    asyncio.run(main_async(args))


if __name__ == "__main__":
    main()
