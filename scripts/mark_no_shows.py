#!/usr/bin/env python3
"""
Mark unattended appointments as no-shows.

Run periodically (cron, Kubernetes CronJob). Appointments still scheduled or
confirmed, not checked in, whose start time is older than the grace period
become ``no_show``.

Usage:
    python scripts/mark_no_shows.py
    python scripts/mark_no_shows.py --grace-minutes 30

Environment Variables:
    DATABASE_URL: Database to sweep
    NO_SHOW_GRACE_MINUTES: Default grace period
"""

import argparse
import asyncio
import sys

import dotenv

dotenv.load_dotenv()

from app.config import settings  # noqa: E402
from app.database import AsyncSessionLocal, engine  # noqa: E402
from app.middleware.logging import configure_logging  # noqa: E402
from app.services.appointment_service import AppointmentScheduler  # noqa: E402


async def sweep(grace_minutes: int | None) -> int:
    try:
        async with AsyncSessionLocal() as session:
            scheduler = AppointmentScheduler(session)
            return await scheduler.sweep_no_shows(grace_minutes=grace_minutes)
    finally:
        await engine.dispose()


def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(description="Mark unattended appointments as no-shows")
    parser.add_argument(
        "--grace-minutes",
        type=int,
        default=None,
        help=f"Minutes after start before an appointment counts as missed "
        f"(default: {settings.no_show_grace_minutes})",
    )
    args = parser.parse_args()

    configure_logging()

    try:
        marked = asyncio.run(sweep(args.grace_minutes))
    except Exception as e:
        print(f"Error: no-show sweep failed: {e}", file=sys.stderr)
        sys.exit(1)

    print(f"✅ Marked {marked} appointment(s) as no-show")


if __name__ == "__main__":
    main()
