#!/usr/bin/env python3
"""Run the stale-task sweep once, outside the scheduler.

Usage:
    python scripts/run_stale_sweep.py [--date YYYY-MM-DD]

With --date the sweep behaves as if it ran at noon of that local day.
"""

import asyncio
import logging
import sys
from datetime import date, datetime, time

from src.core import clock, db_client
from src.services import notification_service, sweep_service


logging.basicConfig(level=logging.INFO, format="%(message)s")
logger = logging.getLogger(__name__)


def print_usage() -> None:
    logger.info(__doc__)


async def main() -> None:
    """Main entry point."""
    args = sys.argv[1:]

    if "--help" in args or "-h" in args:
        print_usage()
        return

    now = None
    if "--date" in args:
        date_index = args.index("--date")
        if date_index + 1 >= len(args):
            print_usage()
            sys.exit(1)
        try:
            day = date.fromisoformat(args[date_index + 1])
        except ValueError:
            logger.error("Invalid date: %s", args[date_index + 1])
            sys.exit(1)
        now = datetime.combine(day, time(12), tzinfo=clock.tz())

    await db_client.init_db()
    try:
        summary = await sweep_service.run_stale_sweep(now=now)
        await notification_service.flush()
    finally:
        await db_client.close_connection()

    logger.info(
        "Sweep for %s: %d eligible, %d cancelled, %d failed",
        summary.today,
        summary.eligible,
        summary.succeeded,
        summary.failed,
    )
    if summary.failed:
        sys.exit(1)


if __name__ == "__main__":
    asyncio.run(main())
