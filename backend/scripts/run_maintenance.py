#!/usr/bin/env python3
"""
Maintenance Cron Job Script

Runs the same jobs the in-process scheduler runs, for deployments that
set SCHEDULER_ENABLED=false and drive maintenance from cron instead.

Jobs:
- stale_sessions: close sessions idle past SESSION_INACTIVITY_MINUTES
- expired_tokens: delete temporary tokens past their expiry
- session_retention: delete sessions older than SESSION_RETENTION_DAYS
- verification_codes: drop expired owner verification codes

Usage:
    # Run every job:
    python scripts/run_maintenance.py --all

    # Run selected jobs:
    python scripts/run_maintenance.py --job stale_sessions --job expired_tokens

Cron Entry (recommended - every 5 minutes):
    */5 * * * * cd /app && python scripts/run_maintenance.py --all >> /var/log/maintenance.log 2>&1

Environment Variables:
    DATABASE_URL: PostgreSQL connection string (required)
    SESSION_INACTIVITY_MINUTES: Idle minutes before a session is closed (default: 30)
    SESSION_RETENTION_DAYS: Days of session history to keep (default: 90)
"""

import argparse
import asyncio
import logging
import sys
from datetime import datetime, timezone
from pathlib import Path

# Add the backend directory to the path
sys.path.insert(0, str(Path(__file__).parent.parent))

from app.scheduler.maintenance import MAINTENANCE_JOBS, run_maintenance

# Configure logging for cron output
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("maintenance.cron")


async def run_jobs(jobs: list[str] | None) -> int:
    """Run maintenance jobs and print a report."""
    logger.info("Starting maintenance...")

    results = await run_maintenance(jobs)

    print("\n" + "=" * 60)
    print("MAINTENANCE RESULTS")
    print("=" * 60)
    print(f"Completed: {datetime.now(timezone.utc).isoformat()}")
    print()

    has_errors = False
    for result in results:
        print(f"{result.job}:")
        print(f"  Affected: {result.affected:,} records")
        print(f"  Duration: {result.duration_seconds:.2f} seconds")
        if result.error:
            print(f"  ERROR: {result.error}")
            has_errors = True
        print()

    print("=" * 60)

    if has_errors:
        logger.error("Maintenance completed with errors")
        return 1

    logger.info("Maintenance completed successfully")
    return 0


def main():
    parser = argparse.ArgumentParser(
        description="Run token and session maintenance jobs.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )

    group = parser.add_mutually_exclusive_group(required=True)
    group.add_argument(
        "--all",
        action="store_true",
        help="Run every maintenance job",
    )
    group.add_argument(
        "--job",
        action="append",
        choices=sorted(MAINTENANCE_JOBS),
        help="Run a single job (repeatable)",
    )

    args = parser.parse_args()

    exit_code = asyncio.run(run_jobs(None if args.all else args.job))
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
