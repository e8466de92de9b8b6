"""Renewal schedule tests: allocation cap, append vs edit, paid lines."""

from datetime import date, timedelta
from decimal import Decimal

import pytest
from httpx import AsyncClient
from sqlalchemy import select

from servicehub.models.assignment import Assignment, RenewalLineItem
from servicehub.models.billing_history import BillingHistory


def _renewal(label: str, price: float, days: int = 30, **extra) -> dict:
    return {
        "renewal_label": label,
        "renewal_price": price,
        "renewal_date": (date.today() + timedelta(days=days)).isoformat(),
        **extra,
    }


async def _put(client: AsyncClient, headers: dict, assignment_id: str, body: dict):
    return await client.put(
        f"/api/assigned_services/{assignment_id}", json=body, headers=headers
    )


async def _lines(session_factory, assignment_id: str) -> list[RenewalLineItem]:
    async with session_factory() as session:
        result = await session.execute(
            select(RenewalLineItem)
            .where(RenewalLineItem.assignment_id == assignment_id)
            .order_by(RenewalLineItem.position)
        )
        return list(result.scalars().all())


@pytest.mark.api
@pytest.mark.asyncio
class TestRenewalAllocation:
    """Renewal lines may never add up to more than the contracted price."""

    async def test_append_until_cap(
        self, client: AsyncClient, admin_headers, assignment, session_factory
    ):
        response = await _put(client, admin_headers, assignment.id, _renewal("R1", 150))
        assert response.status_code == 200
        assert [r["label"] for r in response.json()["renewals"]] == ["R1"]

        response = await _put(client, admin_headers, assignment.id, _renewal("R2", 200))
        assert response.status_code == 400
        error = response.json()["error"]
        assert error["code"] == "RENEWAL_OVER_ALLOCATION"
        assert error["details"] == {
            "current_total": 150.0,
            "old_price": 0.0,
            "new_price": 200.0,
            "projected_total": 350.0,
            "contracted_price": 300.0,
            "available": 150.0,
        }

        response = await _put(client, admin_headers, assignment.id, _renewal("R2", 150))
        assert response.status_code == 200
        body = response.json()
        assert [r["label"] for r in body["renewals"]] == ["R1", "R2"]
        assert sum(r["price"] for r in body["renewals"]) == 300.0

        lines = await _lines(session_factory, assignment.id)
        assert [line.position for line in lines] == [0, 1]

    async def test_edit_in_place_frees_allocation(
        self, client: AsyncClient, admin_headers, assignment, session_factory
    ):
        await _put(client, admin_headers, assignment.id, _renewal("R1", 150))
        await _put(client, admin_headers, assignment.id, _renewal("R2", 150))
        r1 = (await _lines(session_factory, assignment.id))[0]

        response = await _put(
            client, admin_headers, assignment.id,
            _renewal("R1", 100, days=45, renewal_id=r1.id),
        )
        assert response.status_code == 200

        lines = await _lines(session_factory, assignment.id)
        assert len(lines) == 2
        assert lines[0].id == r1.id
        assert float(lines[0].price) == 100.0
        assert lines[0].due_date == date.today() + timedelta(days=45)

        invoice = await client.get(
            f"/api/assigned_services/{assignment.id}/invoice", headers=admin_headers
        )
        assert invoice.json()["unallocated"] == 50.0

    async def test_edit_checks_projected_total(
        self, client: AsyncClient, admin_headers, assignment, session_factory
    ):
        await _put(client, admin_headers, assignment.id, _renewal("R1", 150))
        await _put(client, admin_headers, assignment.id, _renewal("R2", 100))
        r1 = (await _lines(session_factory, assignment.id))[0]

        response = await _put(
            client, admin_headers, assignment.id, _renewal("R1", 250, renewal_id=r1.id)
        )
        assert response.status_code == 400
        details = response.json()["error"]["details"]
        assert details["old_price"] == 150.0
        assert details["projected_total"] == 350.0
        assert details["available"] == 200.0

        lines = await _lines(session_factory, assignment.id)
        assert [float(line.price) for line in lines] == [150.0, 100.0]

    async def test_rejected_patch_writes_nothing(
        self, client: AsyncClient, admin_headers, assignment, session_factory
    ):
        await _put(client, admin_headers, assignment.id, _renewal("R1", 200))

        response = await _put(
            client, admin_headers, assignment.id,
            {"status": "cancelled", **_renewal("R2", 200)},
        )
        assert response.status_code == 400

        async with session_factory() as session:
            stored = await session.get(Assignment, assignment.id)
            assert stored.status == "active"
        assert len(await _lines(session_factory, assignment.id)) == 1

    async def test_price_patch_rechecks_existing_lines(
        self, client: AsyncClient, admin_headers, assignment
    ):
        await _put(client, admin_headers, assignment.id, _renewal("R1", 200))

        response = await _put(client, admin_headers, assignment.id, {"price": 150})
        assert response.status_code == 400
        assert response.json()["error"]["details"]["contracted_price"] == 150.0

        response = await _put(client, admin_headers, assignment.id, {"price": 250})
        assert response.status_code == 200
        assert response.json()["price"] == 250.0

    async def test_patched_price_is_the_cap(
        self, client: AsyncClient, admin_headers, assignment
    ):
        response = await _put(
            client, admin_headers, assignment.id, {"price": 500, **_renewal("R1", 400)}
        )
        assert response.status_code == 200
        body = response.json()
        assert body["price"] == 500.0
        assert body["renewals"][0]["price"] == 400.0


@pytest.mark.api
@pytest.mark.asyncio
class TestRenewalPatchValidation:

    async def test_partial_renewal_fields_rejected(
        self, client: AsyncClient, admin_headers, assignment
    ):
        response = await _put(
            client, admin_headers, assignment.id, {"renewal_label": "R1", "renewal_price": 50}
        )
        assert response.status_code == 400
        error = response.json()["error"]
        assert error["code"] == "VALIDATION_ERROR"
        assert error["details"] == {"missing": ["renewal_date"]}

    async def test_non_positive_renewal_price_rejected(
        self, client: AsyncClient, admin_headers, assignment
    ):
        response = await _put(client, admin_headers, assignment.id, _renewal("R1", 0))
        assert response.status_code == 400

    async def test_legacy_date_alias_accepted(
        self, client: AsyncClient, admin_headers, assignment
    ):
        body = {
            "renewal_label": "R1",
            "renewal_price": 100,
            "add_renewal_date": (date.today() + timedelta(days=5)).isoformat(),
        }
        response = await _put(client, admin_headers, assignment.id, body)
        assert response.status_code == 200
        assert response.json()["renewals"][0]["date"] == body["add_renewal_date"]

    async def test_unknown_field_rejected(
        self, client: AsyncClient, admin_headers, assignment
    ):
        response = await _put(client, admin_headers, assignment.id, {"invoice_id": "INV-1"})
        assert response.status_code == 422

    async def test_unknown_renewal_id(
        self, client: AsyncClient, admin_headers, assignment
    ):
        response = await _put(
            client, admin_headers, assignment.id, _renewal("R1", 50, renewal_id="nope")
        )
        assert response.status_code == 404

    async def test_paid_line_cannot_be_edited(
        self, client: AsyncClient, admin_headers, assignment, renewal, session_factory
    ):
        async with session_factory() as session:
            line = await session.get(RenewalLineItem, renewal.id)
            line.haspaid = True
            await session.commit()

        response = await _put(
            client, admin_headers, assignment.id, _renewal("R1", 100, renewal_id=renewal.id)
        )
        assert response.status_code == 409

        lines = await _lines(session_factory, assignment.id)
        assert float(lines[0].price) == 150.0

    async def test_line_with_pending_payment_cannot_be_edited(
        self, client: AsyncClient, admin_headers, assignment, renewal, session_factory
    ):
        async with session_factory() as session:
            session.add(BillingHistory(
                user_email="jamie@example.com",
                assign_service_id=assignment.id,
                renewal_id=renewal.id,
                amount=Decimal("150.00"),
                currency="AUD",
                payment_status="pending",
            ))
            await session.commit()

        response = await _put(
            client, admin_headers, assignment.id, _renewal("R1", 50, renewal_id=renewal.id)
        )
        assert response.status_code == 409

        lines = await _lines(session_factory, assignment.id)
        assert float(lines[0].price) == 150.0

    async def test_requires_write_permission(
        self, client: AsyncClient, client_headers, assignment
    ):
        response = await _put(client, client_headers, assignment.id, _renewal("R1", 50))
        assert response.status_code == 403


@pytest.mark.api
@pytest.mark.asyncio
class TestRenewalNotifications:

    async def test_append_notifies_client(
        self, client: AsyncClient, admin_headers, assignment, notifications
    ):
        await _put(client, admin_headers, assignment.id, _renewal("R1", 100))

        sent = notifications.sent("new_renewal")
        assert len(sent) == 1
        assert sent[0]["email"] == "jamie@example.com"
        assert sent[0]["label"] == "R1"
        assert sent[0]["phone"] == "0412 345 678"

    async def test_edit_does_not_notify(
        self, client: AsyncClient, admin_headers, assignment, renewal, notifications
    ):
        response = await _put(
            client, admin_headers, assignment.id, _renewal("R1", 120, renewal_id=renewal.id)
        )
        assert response.status_code == 200
        assert notifications.sent("new_renewal") == []

    async def test_failed_email_keeps_line(
        self, client: AsyncClient, admin_headers, assignment, notifications, session_factory
    ):
        notifications.result = False
        response = await _put(client, admin_headers, assignment.id, _renewal("R1", 100))
        assert response.status_code == 200
        assert len(await _lines(session_factory, assignment.id)) == 1
