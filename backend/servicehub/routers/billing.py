"""Renewal payments and billing history.

Endpoints:
    GET    /api/billing/my-services            Caller's own assignments
    POST   /api/billing/process-payment        Pay one renewal installment by card
    GET    /api/billing/history                Caller's billing history
    GET    /api/billing/stats                  Caller's totals per status
    GET    /api/billing/admin/history          All billing history (optional email filter)
    GET    /api/billing/admin/stats            Totals per status across all clients
    DELETE /api/billing/admin/history/{id}     Delete a billing record
"""

from datetime import date

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from servicehub.auth.deps import CurrentUser, require_permission
from servicehub.database import get_db
from servicehub.schemas.assignment import AssignmentOut
from servicehub.schemas.billing import (
    BillingHistoryOut,
    BillingStats,
    PaymentResult,
    ProcessPaymentRequest,
)
from servicehub.schemas.common import PaginatedResponse
from servicehub.services import assignments, billing
from servicehub.services.notifications import NotificationService, get_notifications
from servicehub.services.payment_gateway import StripeGateway, get_payment_gateway

router = APIRouter()


@router.get("/my-services", response_model=list[AssignmentOut])
async def my_services(
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(require_permission("billing.read")),
):
    return await assignments.get_my_services(db, user)


# ── POST /api/billing/process-payment ────────────────────────

@router.post("/process-payment", response_model=PaymentResult)
async def process_payment(
    body: ProcessPaymentRequest,
    db: AsyncSession = Depends(get_db),
    gateway: StripeGateway = Depends(get_payment_gateway),
    notifications: NotificationService = Depends(get_notifications),
    user: CurrentUser = Depends(require_permission("billing.pay")),
):
    return await billing.process_renewal_payment(db, user, body, gateway, notifications)


# ── Self-scoped history ──────────────────────────────────────

@router.get("/history", response_model=PaginatedResponse[BillingHistoryOut])
async def my_history(
    status_filter: str | None = Query(None, alias="status"),
    start_date: date | None = None,
    end_date: date | None = None,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=200),
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(require_permission("billing.read")),
):
    items, total = await billing.get_billing_history(
        db,
        email=user.email,
        status=status_filter,
        start_date=start_date,
        end_date=end_date,
        page=page,
        limit=limit,
    )
    return PaginatedResponse.build(
        [BillingHistoryOut.model_validate(r) for r in items], total, page, limit
    )


@router.get("/stats", response_model=BillingStats)
async def my_stats(
    db: AsyncSession = Depends(get_db),
    user: CurrentUser = Depends(require_permission("billing.read")),
):
    return await billing.get_billing_stats(db, email=user.email)


# ── Admin ────────────────────────────────────────────────────

@router.get("/admin/history", response_model=PaginatedResponse[BillingHistoryOut])
async def admin_history(
    email: str | None = None,
    status_filter: str | None = Query(None, alias="status"),
    start_date: date | None = None,
    end_date: date | None = None,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=200),
    db: AsyncSession = Depends(get_db),
    _user: CurrentUser = Depends(require_permission("billing.admin")),
):
    items, total = await billing.get_billing_history(
        db,
        email=email,
        status=status_filter,
        start_date=start_date,
        end_date=end_date,
        page=page,
        limit=limit,
    )
    return PaginatedResponse.build(
        [BillingHistoryOut.model_validate(r) for r in items], total, page, limit
    )


@router.get("/admin/stats", response_model=BillingStats)
async def admin_stats(
    db: AsyncSession = Depends(get_db),
    _user: CurrentUser = Depends(require_permission("billing.admin")),
):
    return await billing.get_billing_stats(db)


@router.delete("/admin/history/{record_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_billing_record(
    record_id: str,
    db: AsyncSession = Depends(get_db),
    _user: CurrentUser = Depends(require_permission("billing.admin")),
):
    await billing.delete_billing_record(db, record_id)
