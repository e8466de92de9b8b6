"""Assignment endpoint tests: create, list, acceptance links, invoices."""

from datetime import timedelta
from decimal import Decimal

import pytest
from httpx import AsyncClient

from servicehub.auth.jwt import PURPOSE_ASSIGNMENT_ACCEPTANCE, PURPOSE_INVITE, issue_token
from servicehub.models.assignment import Assignment
from servicehub.models.billing_history import BillingHistory
from servicehub.models.profile import Profile


async def _assign(client: AsyncClient, headers: dict, profile, service, **overrides):
    body = {
        "client_id": profile.id,
        "service_catalog_id": service.id,
        "price": 300,
        "cycle": "monthly",
        **overrides,
    }
    return await client.post("/api/assign-service", json=body, headers=headers)


@pytest.mark.api
@pytest.mark.asyncio
class TestAssignService:

    async def test_create_assignment(
        self, client: AsyncClient, admin_headers, profile, service, notifications
    ):
        response = await _assign(client, admin_headers, profile, service, note="Priority client")
        assert response.status_code == 201

        body = response.json()
        assert body["notification_sent"] is True
        assignment = body["assignment"]
        assert assignment["isaccepted"] == "pending"
        assert assignment["status"] == "active"
        assert assignment["invoice_id"].startswith("INV-")
        assert assignment["currency"] == "AUD"
        assert assignment["client_name"] == "Jamie Rivera"
        assert assignment["service_name"] == "Website Care"
        assert assignment["assign_by"] == "admin@servicehub.test"
        assert assignment["renewals"] == []

        sent = notifications.sent("assignment_created")
        assert len(sent) == 1
        assert sent[0]["email"] == "jamie@example.com"
        assert sent[0]["token"]

    async def test_failed_email_keeps_assignment(
        self, client: AsyncClient, admin_headers, profile, service, notifications, session_factory
    ):
        notifications.result = False
        response = await _assign(client, admin_headers, profile, service)
        assert response.status_code == 201
        assert response.json()["notification_sent"] is False

        async with session_factory() as session:
            stored = await session.get(Assignment, response.json()["assignment"]["id"])
            assert stored is not None

    async def test_missing_service(self, client: AsyncClient, admin_headers, profile, service):
        response = await _assign(
            client, admin_headers, profile, service, service_catalog_id="missing"
        )
        assert response.status_code == 404
        assert response.json()["error"]["code"] == "RESOURCE_NOT_FOUND"

    async def test_missing_client(self, client: AsyncClient, admin_headers, profile, service):
        response = await _assign(client, admin_headers, profile, service, client_id="missing")
        assert response.status_code == 404

    async def test_invalid_cycle(self, client: AsyncClient, admin_headers, profile, service):
        response = await _assign(client, admin_headers, profile, service, cycle="weekly")
        assert response.status_code == 422

    async def test_client_cannot_assign(
        self, client: AsyncClient, client_headers, profile, service
    ):
        response = await _assign(client, client_headers, profile, service)
        assert response.status_code == 403
        assert response.json()["error"]["code"] == "PERMISSION_DENIED"

    async def test_requires_authentication(self, client: AsyncClient, profile, service):
        response = await _assign(client, {}, profile, service)
        assert response.status_code == 401
        assert response.headers["WWW-Authenticate"] == "Bearer"


@pytest.mark.api
@pytest.mark.asyncio
class TestAcceptanceLink:

    async def _token(self, client, admin_headers, profile, service, notifications) -> tuple[str, str]:
        response = await _assign(client, admin_headers, profile, service)
        return response.json()["assignment"]["id"], notifications.sent("assignment_created")[-1]["token"]

    async def test_accept_by_token(
        self, client: AsyncClient, admin_headers, profile, service, notifications
    ):
        assignment_id, token = await self._token(client, admin_headers, profile, service, notifications)

        response = await client.post(f"/api/verify_token/{token}")
        assert response.status_code == 200
        assert response.json()["id"] == assignment_id
        assert response.json()["isaccepted"] == "accepted"

    async def test_reject_by_token(
        self, client: AsyncClient, admin_headers, profile, service, notifications
    ):
        _, token = await self._token(client, admin_headers, profile, service, notifications)

        response = await client.post(f"/api/verify_token/{token}", json={"decision": "rejected"})
        assert response.status_code == 200
        assert response.json()["isaccepted"] == "rejected"

    async def test_token_used_twice(
        self, client: AsyncClient, admin_headers, profile, service, notifications
    ):
        _, token = await self._token(client, admin_headers, profile, service, notifications)

        assert (await client.post(f"/api/verify_token/{token}")).status_code == 200
        response = await client.post(f"/api/verify_token/{token}")
        assert response.status_code == 404

    async def test_expired_token(self, client: AsyncClient, profile, assignment):
        token = issue_token(
            profile.email, PURPOSE_ASSIGNMENT_ACCEPTANCE, timedelta(seconds=-1), aid=assignment.id
        )
        response = await client.post(f"/api/verify_token/{token}")
        assert response.status_code == 401
        assert response.json()["error"]["code"] == "TOKEN_EXPIRED"

    async def test_token_for_another_flow(self, client: AsyncClient, profile, assignment):
        token = issue_token(profile.email, PURPOSE_INVITE, timedelta(days=1), aid=assignment.id)
        response = await client.post(f"/api/verify_token/{token}")
        assert response.status_code == 401
        assert response.json()["error"]["code"] == "TOKEN_INVALID"

    async def test_malformed_token(self, client: AsyncClient):
        response = await client.post("/api/verify_token/not-a-jwt")
        assert response.status_code == 401
        assert response.json()["error"]["code"] == "TOKEN_INVALID"

    async def test_token_for_other_email(
        self, client: AsyncClient, admin_headers, profile, service, notifications
    ):
        assignment_id, _ = await self._token(client, admin_headers, profile, service, notifications)
        token = issue_token(
            "mallory@example.com", PURPOSE_ASSIGNMENT_ACCEPTANCE, timedelta(days=1), aid=assignment_id
        )
        response = await client.post(f"/api/verify_token/{token}")
        assert response.status_code == 404

    async def test_admin_sets_acceptance(self, client: AsyncClient, admin_headers, assignment):
        response = await client.patch(
            f"/api/assigned_services/{assignment.id}/acceptance",
            json={"isaccepted": "rejected"},
            headers=admin_headers,
        )
        assert response.status_code == 200
        assert response.json()["isaccepted"] == "rejected"

        response = await client.patch(
            f"/api/assigned_services/{assignment.id}/acceptance",
            json={"isaccepted": "maybe"},
            headers=admin_headers,
        )
        assert response.status_code == 422


@pytest.mark.api
@pytest.mark.asyncio
class TestListAssignedServices:

    async def _create_three(self, client, admin_headers, profile, service) -> list[str]:
        ids = []
        for price in (100, 200, 300):
            response = await _assign(client, admin_headers, profile, service, price=price)
            ids.append(response.json()["assignment"]["id"])
        return ids

    async def test_newest_first_and_stable(
        self, client: AsyncClient, admin_headers, profile, service
    ):
        ids = await self._create_three(client, admin_headers, profile, service)

        first = await client.get("/api/assigned_services", headers=admin_headers)
        second = await client.get("/api/assigned_services", headers=admin_headers)
        assert first.status_code == 200
        assert first.json() == second.json()
        assert [a["id"] for a in first.json()["items"]] == list(reversed(ids))
        assert first.json()["total"] == 3

    async def test_pagination(self, client: AsyncClient, admin_headers, profile, service):
        await self._create_three(client, admin_headers, profile, service)

        response = await client.get(
            "/api/assigned_services", params={"page": 2, "limit": 2}, headers=admin_headers
        )
        body = response.json()
        assert body["total"] == 3
        assert body["pages"] == 2
        assert body["page"] == 2
        assert len(body["items"]) == 1

    async def test_search_and_filters(
        self, client: AsyncClient, admin_headers, profile, service, assignment
    ):
        for term, expected in (("jamie", 1), ("website", 1), ("EXAMPLE.COM", 1), ("zzz", 0)):
            response = await client.get(
                "/api/assigned_services", params={"search": term}, headers=admin_headers
            )
            assert response.json()["total"] == expected, term

        response = await client.get(
            "/api/assigned_services", params={"client_id": profile.id}, headers=admin_headers
        )
        assert response.json()["total"] == 1

        response = await client.get(
            "/api/assigned_services",
            params={"service_catalog_id": service.id},
            headers=admin_headers,
        )
        assert response.json()["total"] == 1

        response = await client.get(
            "/api/assigned_services",
            params={"service_catalog_id": "does-not-exist"},
            headers=admin_headers,
        )
        assert response.json()["total"] == 0

    async def test_names_follow_profile(
        self, client: AsyncClient, admin_headers, profile, assignment, session_factory
    ):
        async with session_factory() as session:
            stored = await session.get(Profile, profile.id)
            stored.first_name = "Jo"
            await session.commit()

        response = await client.get("/api/assigned_services", headers=admin_headers)
        assert response.json()["items"][0]["client_name"] == "Jo Rivera"

        async with session_factory() as session:
            stored = await session.get(Assignment, assignment.id)
            assert stored.client_name == "Jamie Rivera"

    async def test_client_cannot_list(self, client: AsyncClient, client_headers):
        response = await client.get("/api/assigned_services", headers=client_headers)
        assert response.status_code == 403


@pytest.mark.api
@pytest.mark.asyncio
class TestAssignmentReads:

    async def test_get_and_missing(self, client: AsyncClient, admin_headers, assignment):
        response = await client.get(f"/api/assigned_services/{assignment.id}", headers=admin_headers)
        assert response.status_code == 200
        assert response.json()["invoice_id"] == "INV-1700000000000"

        response = await client.get("/api/assigned_services/missing", headers=admin_headers)
        assert response.status_code == 404

    async def test_delete_keeps_billing_history(
        self, client: AsyncClient, admin_headers, assignment, renewal, session_factory
    ):
        async with session_factory() as session:
            record = BillingHistory(
                user_email="jamie@example.com",
                assign_service_id=assignment.id,
                renewal_id=renewal.id,
                amount=Decimal("150.00"),
                currency="AUD",
                payment_status="completed",
            )
            session.add(record)
            await session.commit()

        response = await client.delete(
            f"/api/assigned_services/{assignment.id}", headers=admin_headers
        )
        assert response.status_code == 200
        body = response.json()
        assert body["id"] == assignment.id
        assert body["invoice_id"] == "INV-1700000000000"
        assert [r["label"] for r in body["renewals"]] == ["R1"]

        response = await client.get(f"/api/assigned_services/{assignment.id}", headers=admin_headers)
        assert response.status_code == 404

        async with session_factory() as session:
            assert await session.get(BillingHistory, record.id) is not None

    async def test_assign_details(
        self, client: AsyncClient, admin_headers, profile, service
    ):
        response = await client.get(
            f"/api/assign_details/{profile.id}/{service.id}", headers=admin_headers
        )
        assert response.status_code == 200
        body = response.json()
        assert body["client"]["email"] == "jamie@example.com"
        assert body["service"]["name"] == "Website Care"
        assert body["service"]["price"] == 300.0

        response = await client.get(
            f"/api/assign_details/{profile.id}/missing", headers=admin_headers
        )
        assert response.status_code == 404

    async def test_invoice_totals(
        self, client: AsyncClient, client_headers, assignment, renewal
    ):
        response = await client.get(
            f"/api/assigned_services/{assignment.id}/invoice", headers=client_headers
        )
        assert response.status_code == 200
        body = response.json()
        assert body["contracted_price"] == 300.0
        assert body["allocated"] == 150.0
        assert body["paid"] == 0.0
        assert body["outstanding"] == 150.0
        assert body["unallocated"] == 150.0
        assert body["client"]["first_name"] == "Jamie"

    async def test_invoice_other_client_forbidden(
        self, client: AsyncClient, other_client_headers, assignment
    ):
        response = await client.get(
            f"/api/assigned_services/{assignment.id}/invoice", headers=other_client_headers
        )
        assert response.status_code == 403

    async def test_my_services(
        self, client: AsyncClient, client_headers, other_client_headers, assignment
    ):
        response = await client.get("/api/billing/my-services", headers=client_headers)
        assert response.status_code == 200
        assert [a["id"] for a in response.json()] == [assignment.id]

        response = await client.get("/api/billing/my-services", headers=other_client_headers)
        assert response.json() == []
