#!/usr/bin/env python3
"""
Subscription maintenance jobs.

Runs the periodic jobs that keep subscriptions and usage counters current.
Meant to be invoked by an external scheduler (cron, Cloud Scheduler, ...):

    expire-trials   hourly   move ended trials to 'expired' and notify users
    notify-trials   daily    warn users whose trial ends within --days days
    reset-usage     monthly  create zeroed usage rows for the new month

Usage:
    python scripts/run_maintenance.py expire-trials
    python scripts/run_maintenance.py notify-trials --days 3
    python scripts/run_maintenance.py all

Requires SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY (read from .env).
"""

import argparse
import asyncio
import logging
import os
import sys
from typing import Dict

# Add the project root to the path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from neurocal.config import settings
from neurocal.db.client import get_service_role_client
from neurocal.services import maintenance_service
from neurocal.utils.dates import utc_now
from neurocal.utils.logging import configure_logging

configure_logging(settings.LOG_LEVEL)
logger = logging.getLogger(__name__)

JOBS = ("expire-trials", "notify-trials", "reset-usage")


async def run_jobs(job: str, days: int) -> Dict[str, int]:
    """Run one job (or all) and return the number of rows each one touched."""
    supabase_client = get_service_role_client()
    now = utc_now()
    results: Dict[str, int] = {}

    if job in ("expire-trials", "all"):
        results["expire-trials"] = await maintenance_service.expire_trials(supabase_client, now)
    if job in ("notify-trials", "all"):
        results["notify-trials"] = await maintenance_service.notify_trials_ending_soon(
            supabase_client, now, days=days
        )
    if job in ("reset-usage", "all"):
        results["reset-usage"] = await maintenance_service.reset_monthly_usage(supabase_client, now)

    return results


def main() -> int:
    parser = argparse.ArgumentParser(description="Run NeuroCal subscription maintenance jobs")
    parser.add_argument("job", choices=JOBS + ("all",), help="Job to run")
    parser.add_argument(
        "--days",
        type=int,
        default=3,
        help="Notify trials ending within this many days (notify-trials only)",
    )
    args = parser.parse_args()

    try:
        results = asyncio.run(run_jobs(args.job, args.days))
    except Exception as e:
        logger.error(f"Maintenance run failed: {e}", exc_info=True)
        return 1

    for name, count in results.items():
        logger.info(f"{name}: {count} processed")
    return 0


if __name__ == "__main__":
    sys.exit(main())
