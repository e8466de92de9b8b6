"""Service assignments, renewal schedules and acceptance.

Endpoints:
    POST   /api/assign-service                                  Assign a service to a client
    GET    /api/assigned_services                               List (search + filters, paginated)
    GET    /api/assigned_services/{id}                          Get one
    PUT    /api/assigned_services/{id}                          Update / add or edit a renewal
    DELETE /api/assigned_services/{id}                          Delete (billing history kept)
    PATCH  /api/assigned_services/{id}/acceptance               Admin: set acceptance status
    GET    /api/assigned_services/{id}/invoice                  Invoice view (clients: own only)
    GET    /api/assign_details/{client_id}/{service_catalog_id} Client + service snapshot
    POST   /api/verify_token/{token}                            Accept/reject via emailed link
"""

from fastapi import APIRouter, Body, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from servicehub.auth.deps import CurrentUser, get_current_user, require_permission
from servicehub.database import get_db
from servicehub.schemas.assignment import (
    AcceptanceUpdate,
    AssignDetails,
    AssignedServiceUpdate,
    AssignmentCreated,
    AssignmentOut,
    AssignServiceCreate,
    InvoiceOut,
    TokenDecision,
)
from servicehub.schemas.common import PaginatedResponse
from servicehub.services import assignments
from servicehub.services.notifications import NotificationService, get_notifications

router = APIRouter()


# ── POST /api/assign-service ─────────────────────────────────

@router.post(
    "/assign-service",
    response_model=AssignmentCreated,
    status_code=status.HTTP_201_CREATED,
)
async def assign_service(
    body: AssignServiceCreate,
    db: AsyncSession = Depends(get_db),
    notifications: NotificationService = Depends(get_notifications),
    user: CurrentUser = Depends(require_permission("assignments.write")),
):
    assignment, sent = await assignments.assign_service_to_client(
        db, body, notifications, assigned_by=user.email
    )
    return AssignmentCreated(
        assignment=AssignmentOut.model_validate(assignment),
        notification_sent=sent,
    )


# ── /api/assigned_services ───────────────────────────────────

@router.get("/assigned_services", response_model=PaginatedResponse[AssignmentOut])
async def list_assigned_services(
    search: str | None = None,
    client_id: str | None = None,
    service_catalog_id: str | None = None,
    email: str | None = None,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=200),
    db: AsyncSession = Depends(get_db),
    _user: CurrentUser = Depends(require_permission("assignments.read")),
):
    items, total = await assignments.list_assigned_services(
        db,
        search=search,
        client_id=client_id,
        service_id=service_catalog_id,
        email=email,
        page=page,
        limit=limit,
    )
    return PaginatedResponse.build(items, total, page, limit)


@router.get("/assigned_services/{assignment_id}", response_model=AssignmentOut)
async def get_assigned_service(
    assignment_id: str,
    db: AsyncSession = Depends(get_db),
    _user: CurrentUser = Depends(require_permission("assignments.read")),
):
    return await assignments.get_assigned_service(db, assignment_id)


@router.put("/assigned_services/{assignment_id}", response_model=AssignmentOut)
async def update_assigned_service(
    assignment_id: str,
    body: AssignedServiceUpdate,
    db: AsyncSession = Depends(get_db),
    notifications: NotificationService = Depends(get_notifications),
    _user: CurrentUser = Depends(require_permission("assignments.write")),
):
    assignment = await assignments.update_assigned_service(
        db, assignment_id, body, notifications
    )
    return AssignmentOut.model_validate(assignment)


@router.delete("/assigned_services/{assignment_id}", response_model=AssignmentOut)
async def delete_assigned_service(
    assignment_id: str,
    db: AsyncSession = Depends(get_db),
    _user: CurrentUser = Depends(require_permission("assignments.delete")),
):
    return await assignments.delete_assigned_service(db, assignment_id)


@router.patch("/assigned_services/{assignment_id}/acceptance", response_model=AssignmentOut)
async def set_acceptance(
    assignment_id: str,
    body: AcceptanceUpdate,
    db: AsyncSession = Depends(get_db),
    _user: CurrentUser = Depends(require_permission("assignments.write")),
):
    return await assignments.accept_assigned_service(db, assignment_id, body.isaccepted)


@router.get("/assigned_services/{assignment_id}/invoice", response_model=InvoiceOut)
async def get_invoice(
    assignment_id: str,
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(get_current_user),
):
    return await assignments.get_invoice(db, assignment_id, user)


# ── GET /api/assign_details/{client_id}/{service_catalog_id} ─

@router.get(
    "/assign_details/{client_id}/{service_catalog_id}",
    response_model=AssignDetails,
)
async def get_assign_details(
    client_id: str,
    service_catalog_id: str,
    db: AsyncSession = Depends(get_db),
    _user: CurrentUser = Depends(require_permission("assignments.read")),
):
    return await assignments.get_assign_details(db, client_id, service_catalog_id)


# ── POST /api/verify_token/{token} (public) ──────────────────

@router.post("/verify_token/{token}", response_model=AssignmentOut)
async def verify_assignment_token(
    token: str,
    body: TokenDecision | None = Body(default=None),
    db: AsyncSession = Depends(get_db),
):
    """Accept (default) or reject the assignment named in an emailed link."""
    decision = body.decision if body else "accepted"
    return await assignments.accept_assignment_by_token(db, token, decision)
