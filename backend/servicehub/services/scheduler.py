"""Background jobs and application lifespan.

Two daily jobs run in-process as asyncio sleep loops:

  - renewal reminders       RENEWAL_REMINDER_CRON   (default "55 13 * * *")
  - discount expiry sweep   DISCOUNT_SWEEP_CRON     (default "31 13 * * *")

Only daily cron expressions ("M H * * *", UTC) are accepted; anything
else fails at startup.  One process runs the loops; with several API
workers set SCHEDULER_ENABLED=false on all but one, or drive the jobs
from system cron with `python -m servicehub.cli`.

The lifespan also builds the external service handles (mailer, payment
gateway) and stores them on app.state.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone
from typing import Awaitable, Callable

from fastapi import FastAPI

from servicehub.config import settings
from servicehub.database import async_session
from servicehub.services.catalog import sweep_expired_discounts
from servicehub.services.notifications import NotificationService, build_notification_service
from servicehub.services.payment_gateway import StripeGateway
from servicehub.services.reminders import run_renewal_reminders

logger = logging.getLogger("servicehub.scheduler")


def parse_daily_cron(expr: str) -> tuple[int, int]:
    """Return (hour, minute) for a daily cron expression "M H * * *"."""
    fields = expr.split()
    if len(fields) != 5 or fields[2:] != ["*", "*", "*"]:
        raise ValueError(f"Only daily cron expressions 'M H * * *' are supported: {expr!r}")
    try:
        minute, hour = int(fields[0]), int(fields[1])
    except ValueError:
        raise ValueError(f"Cron minute and hour must be integers: {expr!r}") from None
    if not (0 <= minute <= 59 and 0 <= hour <= 23):
        raise ValueError(f"Cron time out of range: {expr!r}")
    return hour, minute


def next_run_after(now: datetime, hour: int, minute: int) -> datetime:
    next_run = now.replace(hour=hour, minute=minute, second=0, microsecond=0)
    if next_run <= now:
        next_run += timedelta(days=1)
    return next_run


# ── Jobs ─────────────────────────────────────────────────────

async def reminder_job(notifications: NotificationService) -> None:
    await run_renewal_reminders(async_session, notifications)


async def discount_sweep_job() -> None:
    async with async_session() as db:
        try:
            await sweep_expired_discounts(db)
            await db.commit()
        except Exception:
            await db.rollback()
            raise


async def _daily_loop(
    name: str, hour: int, minute: int, job: Callable[[], Awaitable[None]]
) -> None:
    """Sleep until hour:minute UTC, run `job`, repeat."""
    while True:
        now = datetime.now(timezone.utc)
        next_run = next_run_after(now, hour, minute)
        wait_seconds = (next_run - now).total_seconds()
        logger.info(
            "Next %s run at %s (in %.0f seconds)", name, next_run.isoformat(), wait_seconds
        )

        await asyncio.sleep(wait_seconds)

        try:
            await job()
        except Exception:
            logger.exception("Unhandled error in %s", name)

        # Avoid running twice in the same minute
        await asyncio.sleep(60)


# ── Lifespan ─────────────────────────────────────────────────

def build_services(app: FastAPI) -> None:
    app.state.notifications = build_notification_service(settings)
    app.state.payment_gateway = StripeGateway(settings.stripe_secret_key)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """FastAPI lifespan: wire service handles, start the schedulers, cancel on shutdown."""
    build_services(app)
    notifications = app.state.notifications

    tasks: list[asyncio.Task] = []
    if settings.scheduler_enabled:
        reminder_at = parse_daily_cron(settings.renewal_reminder_cron)
        sweep_at = parse_daily_cron(settings.discount_sweep_cron)
        tasks.append(asyncio.create_task(
            _daily_loop("renewal reminders", *reminder_at, lambda: reminder_job(notifications))
        ))
        tasks.append(asyncio.create_task(
            _daily_loop("discount sweep", *sweep_at, discount_sweep_job)
        ))
        logger.info(
            "Schedulers started (reminders %s, discount sweep %s)",
            settings.renewal_reminder_cron, settings.discount_sweep_cron,
        )
        if settings.run_reminders_on_startup:
            logger.info("RUN_REMINDERS_ON_STARTUP set; running reminders now")
            tasks.append(asyncio.create_task(reminder_job(notifications)))

    try:
        yield
    finally:
        for task in tasks:
            task.cancel()
        for task in tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass
            except Exception:
                logger.exception("Background task failed during shutdown")
        logger.info("Schedulers stopped")
