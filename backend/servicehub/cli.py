"""Management CLI for the scheduled jobs.

Usage:
    python -m servicehub.cli run-reminders      # Send due renewal reminders now
    python -m servicehub.cli sweep-discounts    # Clear expired service discounts now

Both commands are safe to run from system cron alongside (or instead of)
the in-process scheduler: reminders are de-duplicated by the ledger and
the sweep only touches discounts that have already ended.
"""

import asyncio
import logging
import sys

from servicehub.config import settings
from servicehub.database import async_session, engine
from servicehub.services.catalog import sweep_expired_discounts
from servicehub.services.notifications import build_notification_service
from servicehub.services.reminders import run_renewal_reminders


async def _run_reminders() -> None:
    notifications = build_notification_service(settings)
    summary = await run_renewal_reminders(async_session, notifications)
    await engine.dispose()
    print(
        f"  Checked {summary.checked} renewals across {summary.assignments} assignments: "
        f"{summary.sent} sent, {summary.skipped} skipped, {summary.failed} failed"
    )


async def _sweep_discounts() -> None:
    async with async_session() as db:
        cleared = await sweep_expired_discounts(db)
        await db.commit()
    await engine.dispose()
    print(f"  Cleared expired discounts on {cleared} services")


def run_reminders():
    asyncio.run(_run_reminders())


def sweep_discounts():
    asyncio.run(_sweep_discounts())


if __name__ == "__main__":
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    cmd = sys.argv[1] if len(sys.argv) > 1 else ""
    if cmd == "run-reminders":
        run_reminders()
    elif cmd == "sweep-discounts":
        sweep_discounts()
    else:
        print("Usage: python -m servicehub.cli [run-reminders|sweep-discounts]")
        sys.exit(1)
