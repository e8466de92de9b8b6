"""Renewal reminder run and scheduler helper tests."""

from datetime import date, datetime, timedelta, timezone
from decimal import Decimal

import pytest
from sqlalchemy import func, select

from servicehub.models.assignment import Assignment, RenewalLineItem
from servicehub.models.reminder_log import RenewalReminderLog
from servicehub.services.reminders import run_renewal_reminders
from servicehub.services.scheduler import next_run_after, parse_daily_cron

TODAY = date(2026, 3, 10)


async def _add_lines(session_factory, assignment, *specs) -> dict[str, str]:
    """specs: (label, days_from_today, haspaid).  Returns {label: id}."""
    ids = {}
    async with session_factory() as session:
        for position, (label, days, haspaid) in enumerate(specs):
            line = RenewalLineItem(
                assignment_id=assignment.id,
                position=position,
                label=label,
                due_date=TODAY + timedelta(days=days),
                price=Decimal("25.00"),
                haspaid=haspaid,
            )
            session.add(line)
            await session.flush()
            ids[label] = line.id
        await session.commit()
    return ids


async def _ledger_count(session_factory) -> int:
    async with session_factory() as session:
        return await session.scalar(select(func.count(RenewalReminderLog.id)))


@pytest.mark.scheduler
@pytest.mark.asyncio
class TestRenewalReminders:

    async def test_sends_on_offsets_only(self, session_factory, notifications, assignment):
        await _add_lines(
            session_factory, assignment,
            ("D7", 7, False), ("D3", 3, False), ("D1", 1, False),
            ("D5", 5, False), ("D3-paid", 3, True), ("D0", 0, False),
        )

        summary = await run_renewal_reminders(session_factory, notifications, today=TODAY)

        sent = notifications.sent("renewal_reminder")
        assert sorted((s["label"], s["days"]) for s in sent) == [("D1", 1), ("D3", 3), ("D7", 7)]
        assert sent[0]["email"] == "jamie@example.com"
        assert sent[0]["service_name"] == "Website Care"
        assert sent[0]["phone"] == "0412 345 678"
        assert summary.assignments == 1
        assert summary.checked == 6
        assert summary.sent == 3
        assert summary.failed == 0
        assert await _ledger_count(session_factory) == 3

    async def test_due_in_three_versus_five_days(self, session_factory, notifications, assignment):
        await _add_lines(session_factory, assignment, ("Soon", 3, False), ("Later", 5, False))

        await run_renewal_reminders(session_factory, notifications, today=TODAY)

        assert [s["label"] for s in notifications.sent("renewal_reminder")] == ["Soon"]

    async def test_same_day_rerun_does_not_resend(self, session_factory, notifications, assignment):
        await _add_lines(session_factory, assignment, ("D7", 7, False), ("D1", 1, False))

        await run_renewal_reminders(session_factory, notifications, today=TODAY)
        summary = await run_renewal_reminders(session_factory, notifications, today=TODAY)

        assert len(notifications.sent("renewal_reminder")) == 2
        assert summary.sent == 0
        assert summary.skipped == 2

    async def test_moved_due_date_rearms(self, session_factory, notifications, assignment):
        ids = await _add_lines(session_factory, assignment, ("D3", 3, False))
        await run_renewal_reminders(session_factory, notifications, today=TODAY)

        async with session_factory() as session:
            line = await session.get(RenewalLineItem, ids["D3"])
            line.due_date = TODAY + timedelta(days=7)
            await session.commit()

        summary = await run_renewal_reminders(session_factory, notifications, today=TODAY)
        assert summary.sent == 1
        assert [s["days"] for s in notifications.sent("renewal_reminder")] == [3, 7]

    async def test_failed_send_continues_and_retries(
        self, session_factory, notifications, assignment
    ):
        await _add_lines(
            session_factory, assignment, ("D7", 7, False), ("D3", 3, False), ("D1", 1, False)
        )
        notifications.fail_labels = {"D3"}

        summary = await run_renewal_reminders(session_factory, notifications, today=TODAY)
        assert summary.sent == 2
        assert summary.failed == 1
        assert await _ledger_count(session_factory) == 2

        notifications.fail_labels = set()
        summary = await run_renewal_reminders(session_factory, notifications, today=TODAY)
        assert summary.sent == 1
        assert summary.skipped == 2

    async def test_raising_send_does_not_skip_later_lines(
        self, session_factory, notifications, assignment
    ):
        await _add_lines(
            session_factory, assignment, ("D7", 7, False), ("D3", 3, False), ("D1", 1, False)
        )
        notifications.raise_labels = {"D3"}

        summary = await run_renewal_reminders(session_factory, notifications, today=TODAY)

        assert summary.sent == 2
        assert summary.failed == 1
        assert await _ledger_count(session_factory) == 2
        labels = [s["label"] for s in notifications.sent("renewal_reminder")]
        assert labels == ["D7", "D3", "D1"]

    async def test_missing_profile_is_skipped(
        self, session_factory, notifications, assignment, service
    ):
        async with session_factory() as session:
            orphan = Assignment(
                client_id="deleted-profile",
                service_catalog_id=service.id,
                invoice_id="INV-1",
                price=Decimal("100.00"),
                currency="AUD",
                cycle="monthly",
                email="gone@example.com",
                service_name=service.name,
                renewals=[],
            )
            session.add(orphan)
            await session.commit()
        await _add_lines(session_factory, orphan, ("Orphan", 3, False))
        await _add_lines(session_factory, assignment, ("Mine", 1, False))

        summary = await run_renewal_reminders(session_factory, notifications, today=TODAY)

        assert [s["label"] for s in notifications.sent("renewal_reminder")] == ["Mine"]
        assert summary.assignments == 2
        assert summary.skipped == 1
        assert summary.sent == 1

    async def test_no_renewals_no_work(self, session_factory, notifications, assignment):
        summary = await run_renewal_reminders(session_factory, notifications, today=TODAY)
        assert summary.as_dict() == {
            "assignments": 0, "checked": 0, "sent": 0, "failed": 0, "skipped": 0,
        }
        assert notifications.calls == []


@pytest.mark.unit
class TestDailyCron:

    def test_parse_defaults(self):
        assert parse_daily_cron("55 13 * * *") == (13, 55)
        assert parse_daily_cron("0 0 * * *") == (0, 0)

    @pytest.mark.parametrize("expr", [
        "*/5 * * * *",
        "55 13 * * 1",
        "55 13 1 * *",
        "60 13 * * *",
        "55 24 * * *",
        "55 13",
    ])
    def test_rejects_non_daily(self, expr):
        with pytest.raises(ValueError):
            parse_daily_cron(expr)

    def test_next_run_today_or_tomorrow(self):
        now = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)
        assert next_run_after(now, 13, 55) == datetime(2026, 3, 10, 13, 55, tzinfo=timezone.utc)
        assert next_run_after(now, 11, 0) == datetime(2026, 3, 11, 11, 0, tzinfo=timezone.utc)
        assert next_run_after(now, 12, 0) == datetime(2026, 3, 11, 12, 0, tzinfo=timezone.utc)
