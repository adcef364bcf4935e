"""
Clear Old Print Jobs

Deletes printed and failed jobs older than the retention window.
Pending and in-progress jobs are never touched; use the requeue endpoint
to reprint a failed receipt instead.
Run from project root: python scripts/clear_old_print_jobs.py [--days 7] [--dry-run]

Author: Khalil Bannouri
Version: 1.0.0
"""

import argparse
import asyncio
import os
import sys
from datetime import timedelta

# Add parent directory to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from kitchen_print.core.config import get_settings
from kitchen_print.database import standalone_session_maker
from kitchen_print.services.print_queue import PrintQueueRepository


async def clear_old_jobs(days: int, dry_run: bool) -> int:
    async with standalone_session_maker() as session_maker:
        repository = PrintQueueRepository(session_maker)
        before = await repository.stats(recent_limit=0)

        print("=" * 60)
        print("🧹 PRINT QUEUE CLEANUP")
        print("=" * 60)
        print(f"📦 Queue: {before.pending} pending, {before.in_progress} in progress, "
              f"{before.printed} printed, {before.failed} failed")
        print(f"🗓️  Retention: {days} day(s)")

        if dry_run:
            print("\n⏭️  Dry run, nothing deleted")
            return 0

        deleted = await repository.purge_finished(timedelta(days=days))
        print(f"\n✅ Deleted {deleted} finished job(s)")
        print("=" * 60)
        return deleted


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Clear Old Print Jobs")
    parser.add_argument("--days", type=int, default=get_settings().print_job_retention_days,
                        help="Keep jobs newer than this many days")
    parser.add_argument("--dry-run", action="store_true", help="Only show queue counts")
    args = parser.parse_args()

    asyncio.run(clear_old_jobs(args.days, args.dry_run))
