"""Daily renewal reminder run.

For every unpaid renewal line, a reminder goes to the client 7, 3 and 1
days before its due date.  Each send is recorded in renewal_reminders
keyed on (renewal, offset, due date); a second run on the same day finds
the entry and skips, while moving the due date re-arms all offsets.

One failing send or assignment never aborts the run.
"""

import logging
from dataclasses import asdict, dataclass
from datetime import date, datetime, timezone

from sqlalchemy import exists, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from servicehub.models.assignment import Assignment, RenewalLineItem
from servicehub.models.profile import Profile
from servicehub.models.reminder_log import RenewalReminderLog
from servicehub.services.notifications import NotificationService

logger = logging.getLogger("servicehub.scheduler")

REMINDER_OFFSETS = (7, 3, 1)


@dataclass
class ReminderRunSummary:
    assignments: int = 0
    checked: int = 0
    sent: int = 0
    failed: int = 0
    skipped: int = 0

    def as_dict(self) -> dict:
        return asdict(self)


async def _already_sent(
    db: AsyncSession, renewal_id: str, offset: int, due_date: date
) -> bool:
    return bool(
        await db.scalar(
            select(
                exists().where(
                    RenewalReminderLog.renewal_id == renewal_id,
                    RenewalReminderLog.offset_days == offset,
                    RenewalReminderLog.due_date == due_date,
                )
            )
        )
    )


async def _remind_assignment(
    db: AsyncSession,
    assignment: Assignment,
    notifications: NotificationService,
    today: date,
    summary: ReminderRunSummary,
) -> None:
    # Plain values: a rollback below expires the ORM instances
    email = assignment.email
    context = {
        "client_name": assignment.client_name,
        "service_name": assignment.service_name,
        "currency": assignment.currency,
    }
    renewals = [
        (r.id, r.label, r.due_date, r.price, r.haspaid) for r in assignment.renewals
    ]

    profile = await db.get(Profile, assignment.client_id)
    if profile is None:
        logger.warning(
            "Assignment %s: client profile %s missing, skipping",
            assignment.id, assignment.client_id,
        )
        summary.skipped += len(renewals)
        return
    phone = profile.phone
    assignment_id = assignment.id

    for renewal_id, label, due_date, price, haspaid in renewals:
        summary.checked += 1
        if haspaid or due_date is None:
            continue

        days = (due_date - today).days
        logger.debug(
            "Renewal %s (%s) due %s in %d days", renewal_id, label, due_date, days
        )
        if days not in REMINDER_OFFSETS:
            continue

        try:
            await _remind_line(
                db, notifications, summary,
                renewal_id=renewal_id,
                assignment_id=assignment_id,
                label=label,
                due_date=due_date,
                price=price,
                days=days,
                email=email,
                phone=phone,
                context=context,
            )
        except Exception:
            await db.rollback()
            summary.failed += 1
            logger.exception(
                "Reminder for renewal %s (%d days) failed", renewal_id, days
            )


async def _remind_line(
    db: AsyncSession,
    notifications: NotificationService,
    summary: ReminderRunSummary,
    *,
    renewal_id: str,
    assignment_id: str,
    label: str,
    due_date: date,
    price,
    days: int,
    email: str,
    phone: str | None,
    context: dict,
) -> None:
    if await _already_sent(db, renewal_id, days, due_date):
        summary.skipped += 1
        return

    sent = await notifications.notify_renewal_reminder(
        email=email,
        label=label,
        due_date=due_date,
        price=price,
        days=days,
        phone=phone,
        **context,
    )
    if not sent:
        summary.failed += 1
        logger.error(
            "Failed to send %d-day reminder for renewal %s to %s",
            days, renewal_id, email,
        )
        return

    db.add(
        RenewalReminderLog(
            renewal_id=renewal_id,
            assignment_id=assignment_id,
            offset_days=days,
            due_date=due_date,
            email=email,
        )
    )
    try:
        await db.commit()
    except IntegrityError:
        # Another run logged the same reminder first
        await db.rollback()
        summary.skipped += 1
        return
    summary.sent += 1
    logger.info("Sent %d-day reminder for renewal %s to %s", days, renewal_id, email)


async def run_renewal_reminders(
    session_factory: async_sessionmaker,
    notifications: NotificationService,
    today: date | None = None,
) -> ReminderRunSummary:
    today = today or datetime.now(timezone.utc).date()
    summary = ReminderRunSummary()
    logger.info("Starting renewal reminder run for %s", today.isoformat())

    async with session_factory() as db:
        result = await db.execute(
            select(Assignment.id)
            .where(exists().where(RenewalLineItem.assignment_id == Assignment.id))
            .order_by(Assignment.created_at, Assignment.id)
        )
        assignment_ids = list(result.scalars().all())

    summary.assignments = len(assignment_ids)
    logger.info("Found %d assignments with renewals to check", summary.assignments)

    for assignment_id in assignment_ids:
        try:
            async with session_factory() as db:
                assignment = await db.get(Assignment, assignment_id)
                if assignment is None:
                    continue
                await _remind_assignment(db, assignment, notifications, today, summary)
        except Exception:
            summary.failed += 1
            logger.exception("Reminder run failed for assignment %s", assignment_id)

    logger.info("Renewal reminder run complete: %s", summary.as_dict())
    return summary
