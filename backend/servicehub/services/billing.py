"""Renewal payments and billing history.

process_renewal_payment keeps the ledger and the processor in step:

  1. validate: assignment + renewal exist, not already paid, amount matches
  2. commit a `pending` BillingHistory row (the partial unique index on
     renewal_id makes a second concurrent attempt fail here with 409)
  3. charge through the gateway
  4. on `succeeded`: re-read the line under lock, then record -> completed
     and renewal.haspaid = True in ONE commit, then a best-effort receipt
     email.  If the line changed during the charge it is not marked paid;
     the completed record is flagged for reconciliation and the call gets 409.
     otherwise:      record -> failed (with reason), renewal untouched

Every call that reaches the processor leaves exactly one row behind.
"""

import logging
from datetime import date, datetime, time

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from servicehub.auth.deps import CurrentUser
from servicehub.middleware.exceptions import (
    ConflictError,
    ExternalServiceError,
    InvalidInputError,
    PaymentNotCompletedError,
    PermissionDeniedError,
    ResourceNotFoundError,
)
from servicehub.models.assignment import Assignment, RenewalLineItem
from servicehub.models.billing_history import BillingHistory
from servicehub.schemas.billing import (
    BillingStats,
    PaymentIntentSummary,
    PaymentResult,
    ProcessPaymentRequest,
    StatusBucket,
)
from servicehub.services.notifications import NotificationService
from servicehub.services.payment_gateway import StripeGateway
from servicehub.utils.money import to_decimal, to_minor_units

logger = logging.getLogger("servicehub.billing")

PAYMENT_STATUSES = ("pending", "completed", "failed", "refunded")


async def _load_renewal(
    db: AsyncSession, assignment_id: str, renewal_id: str
) -> tuple[Assignment, RenewalLineItem]:
    assignment = await db.get(Assignment, assignment_id)
    if not assignment:
        raise ResourceNotFoundError("Assigned service", assignment_id)
    renewal = next((r for r in assignment.renewals if r.id == renewal_id), None)
    if renewal is None:
        raise ResourceNotFoundError("Renewal", renewal_id)
    return assignment, renewal


async def process_renewal_payment(
    db: AsyncSession,
    user: CurrentUser,
    body: ProcessPaymentRequest,
    gateway: StripeGateway,
    notifications: NotificationService,
) -> PaymentResult:
    assignment, renewal = await _load_renewal(db, body.assign_service_id, body.renewal_id)
    if not user.is_admin and assignment.email.lower() != user.email:
        raise PermissionDeniedError("You can only pay your own renewals")

    if renewal.haspaid:
        raise ConflictError("Renewal has already been paid", details={"renewal_id": renewal.id})

    existing = await db.scalar(
        select(BillingHistory.id).where(
            BillingHistory.renewal_id == renewal.id,
            BillingHistory.payment_status.in_(("pending", "completed")),
        )
    )
    if existing:
        raise ConflictError(
            "A payment for this renewal is already in progress",
            details={"billing_history_id": existing},
        )

    amount = to_decimal(body.amount)
    expected = to_decimal(renewal.price)
    if amount != expected:
        raise InvalidInputError(
            "Amount does not match the renewal price",
            details={"amount": float(amount), "expected": float(expected)},
        )

    # ── 1. Durable pending record ───────────────────────────
    record = BillingHistory(
        user_email=user.email,
        user_id=user.uid,
        assign_service_id=assignment.id,
        renewal_id=renewal.id,
        invoice_id=assignment.invoice_id,
        service_name=assignment.service_name,
        amount=amount,
        currency=assignment.currency,
        payment_status="pending",
        payment_method="card",
        stripe_payment_method_id=body.payment_method_id,
        extra_metadata={"renewal_label": renewal.label},
    )
    db.add(record)
    try:
        await db.flush()
    except IntegrityError:
        await db.rollback()
        raise ConflictError("A payment for this renewal is already in progress")
    await db.commit()
    logger.info("Billing record %s pending for renewal %s", record.id, renewal.id)

    # ── 2. Charge ───────────────────────────────────────────
    try:
        charge = await gateway.charge(
            amount_minor=to_minor_units(amount),
            currency=assignment.currency,
            payment_method_id=body.payment_method_id,
            description=f"Renewal payment for {assignment.service_name} - {assignment.invoice_id}",
            metadata={
                "user_id": user.uid,
                "user_email": user.email,
                "renewal_id": renewal.id,
                "assign_service_id": assignment.id,
                "invoice_id": assignment.invoice_id,
            },
        )
    except Exception as exc:
        record.payment_status = "failed"
        record.failure_reason = str(exc) or exc.__class__.__name__
        await db.commit()
        logger.error("Payment for renewal %s failed at processor: %s", renewal.id, exc)
        raise ExternalServiceError(
            "Payment processing failed",
            details={"billing_history_id": record.id, "retryable": True},
        )

    record.stripe_payment_intent_id = charge.id

    if charge.status != "succeeded":
        record.payment_status = "failed"
        record.failure_reason = f"Payment status: {charge.status}"
        await db.commit()
        logger.warning(
            "Payment for renewal %s not completed (status=%s)", renewal.id, charge.status
        )
        raise PaymentNotCompletedError(
            "Payment was not completed",
            details={
                "status": charge.status,
                "billing_history_id": record.id,
                "retryable": True,
            },
        )

    # ── 3. Settle: record + renewal in one transaction ──────
    line = await db.scalar(
        select(RenewalLineItem)
        .where(RenewalLineItem.id == renewal.id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    record.payment_status = "completed"
    record.payment_date = datetime.utcnow()
    line_price = to_decimal(line.price) if line is not None else None
    if line is None or line.haspaid or line_price != amount:
        # Charged, but the line no longer matches; flag for reconciliation.
        record.extra_metadata = {
            **(record.extra_metadata or {}),
            "reconcile": True,
            "line_price": float(line_price) if line_price is not None else None,
        }
        await db.commit()
        logger.error(
            "Renewal %s changed while payment %s was processing (charged %s)",
            renewal.id, charge.id, amount,
        )
        raise ConflictError(
            "Renewal changed while the payment was processing",
            details={
                "billing_history_id": record.id,
                "payment_intent_id": charge.id,
                "charged": float(amount),
                "line_price": float(line_price) if line_price is not None else None,
            },
        )
    line.haspaid = True
    await db.commit()
    logger.info(
        "Renewal %s paid (record %s, intent %s)", renewal.id, record.id, charge.id
    )

    await notifications.notify_renewal_paid(
        email=assignment.email,
        client_name=assignment.client_name,
        service_name=assignment.service_name,
        label=renewal.label,
        due_date=renewal.due_date,
        amount=amount,
        currency=assignment.currency,
        invoice_id=assignment.invoice_id,
    )

    return PaymentResult(
        billing_history_id=record.id,
        payment_intent=PaymentIntentSummary(
            id=charge.id,
            status=charge.status,
            amount=charge.amount,
            currency=charge.currency,
        ),
    )


# ── History ──────────────────────────────────────────────────

def _history_filters(
    email: str | None,
    status: str | None,
    start_date: date | None,
    end_date: date | None,
) -> list:
    filters = []
    if email:
        filters.append(func.lower(BillingHistory.user_email) == email.lower())
    if status:
        if status not in PAYMENT_STATUSES:
            raise InvalidInputError(
                f"status must be one of: {', '.join(PAYMENT_STATUSES)}"
            )
        filters.append(BillingHistory.payment_status == status)
    if start_date:
        filters.append(BillingHistory.created_at >= datetime.combine(start_date, time.min))
    if end_date:
        filters.append(BillingHistory.created_at <= datetime.combine(end_date, time.max))
    return filters


async def get_billing_history(
    db: AsyncSession,
    *,
    email: str | None = None,
    status: str | None = None,
    start_date: date | None = None,
    end_date: date | None = None,
    page: int = 1,
    limit: int = 20,
) -> tuple[list[BillingHistory], int]:
    """Newest-first billing records; `email=None` is the unscoped admin view."""
    filters = _history_filters(email, status, start_date, end_date)
    total = await db.scalar(select(func.count(BillingHistory.id)).where(*filters)) or 0
    result = await db.execute(
        select(BillingHistory)
        .where(*filters)
        .order_by(BillingHistory.created_at.desc(), BillingHistory.id.desc())
        .limit(limit)
        .offset((page - 1) * limit)
    )
    return list(result.scalars().all()), total


async def get_billing_stats(db: AsyncSession, email: str | None = None) -> BillingStats:
    filters = _history_filters(email, None, None, None)
    result = await db.execute(
        select(
            BillingHistory.payment_status,
            func.count(BillingHistory.id),
            func.coalesce(func.sum(BillingHistory.amount), 0),
        )
        .where(*filters)
        .group_by(BillingHistory.payment_status)
        .order_by(BillingHistory.payment_status)
    )
    buckets = [
        StatusBucket(status=status, count=count, total_amount=float(to_decimal(total)))
        for status, count, total in result.all()
    ]
    total_paid = sum(b.total_amount for b in buckets if b.status == "completed")
    return BillingStats(by_status=buckets, total_paid=total_paid)


async def delete_billing_record(db: AsyncSession, record_id: str) -> None:
    record = await db.get(BillingHistory, record_id)
    if not record:
        raise ResourceNotFoundError("Billing record", record_id)
    await db.delete(record)
    await db.flush()
    logger.info("Deleted billing record %s", record_id)
