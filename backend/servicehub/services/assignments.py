"""Service assignments and their renewal schedules.

An Assignment contracts a catalog Service to a client Profile at a price.
Its renewal lines split that price into dated installments, and the sum
of line prices may never exceed the contracted price:

    sum(line.price for line in assignment.renewals) <= assignment.price

update_assigned_service is the only writer of renewal lines.  It reads the
assignment under a row lock so two admins editing the same schedule
serialize, checks the projected total, and writes nothing when the check
fails.  A line that is paid, or has a pending payment, cannot be edited.

Emails go out after commit and never undo the write; callers get a
`notification_sent` flag instead.
"""

import logging
from datetime import date, datetime, timedelta
from decimal import Decimal

from sqlalchemy import delete, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from servicehub.auth.deps import CurrentUser
from servicehub.auth.jwt import PURPOSE_ASSIGNMENT_ACCEPTANCE, issue_token, verify_token
from servicehub.config import settings
from servicehub.middleware.exceptions import (
    ConflictError,
    InvalidInputError,
    InvariantViolationError,
    PermissionDeniedError,
    ResourceNotFoundError,
    TokenInvalidError,
)
from servicehub.models.assignment import Assignment, RenewalLineItem
from servicehub.models.billing_history import BillingHistory
from servicehub.models.profile import Profile
from servicehub.models.reminder_log import RenewalReminderLog
from servicehub.models.service import Service
from servicehub.schemas.assignment import (
    AssignDetails,
    AssignedServiceUpdate,
    AssignmentOut,
    AssignServiceCreate,
    ClientSnapshot,
    InvoiceOut,
    RenewalOut,
    ServiceSnapshot,
)
from servicehub.services.notifications import NotificationService
from servicehub.utils.money import to_decimal
from servicehub.utils.numbering import generate_invoice_id

logger = logging.getLogger(__name__)

ZERO = Decimal("0.00")


def _full_name(first: str | None, last: str | None) -> str | None:
    name = " ".join(p for p in (first, last) if p).strip()
    return name or None


def renewal_total(lines) -> Decimal:
    return sum((to_decimal(line.price) for line in lines), ZERO)


async def get_assigned_service(db: AsyncSession, assignment_id: str) -> Assignment:
    assignment = await db.get(Assignment, assignment_id)
    if not assignment:
        raise ResourceNotFoundError("Assigned service", assignment_id)
    return assignment


# ── Create ───────────────────────────────────────────────────

async def assign_service_to_client(
    db: AsyncSession,
    body: AssignServiceCreate,
    notifications: NotificationService,
    assigned_by: str | None = None,
) -> tuple[Assignment, bool]:
    """Create a pending assignment, then email the client an acceptance link.

    The assignment is committed before the email goes out.
    """
    service = await db.get(Service, body.service_catalog_id)
    if not service:
        raise ResourceNotFoundError("Service", body.service_catalog_id)
    profile = await db.get(Profile, body.client_id)
    if not profile:
        raise ResourceNotFoundError("Client profile", body.client_id)

    assignment = Assignment(
        client_id=profile.id,
        service_catalog_id=service.id,
        invoice_id=generate_invoice_id(),
        price=to_decimal(body.price),
        currency=service.currency,
        cycle=body.cycle,
        isaccepted="pending",
        status=body.status,
        note=body.note,
        auto_invoice=body.auto_invoice,
        start_date=body.start_date or date.today(),
        end_date=body.end_date,
        assign_by=assigned_by,
        client_name=profile.full_name or profile.email,
        email=profile.email,
        service_name=service.name,
        renewals=[],
    )
    db.add(assignment)
    await db.commit()
    logger.info(
        "Assigned service %s to %s (assignment %s, invoice %s)",
        service.id, profile.email, assignment.id, assignment.invoice_id,
    )

    token = issue_token(
        profile.email,
        PURPOSE_ASSIGNMENT_ACCEPTANCE,
        timedelta(days=settings.acceptance_token_expire_days),
        aid=assignment.id,
    )
    sent = await notifications.notify_assignment_created(
        email=profile.email,
        client_name=assignment.client_name,
        service_name=service.name,
        description=service.description,
        price=assignment.price,
        currency=assignment.currency,
        cycle=assignment.cycle,
        start_date=assignment.start_date,
        token=token,
    )
    if not sent:
        logger.warning("Acceptance email for assignment %s was not delivered", assignment.id)
    return assignment, sent


# ── Update / renewal ledger ──────────────────────────────────

async def _lock_assignment(db: AsyncSession, assignment_id: str) -> Assignment:
    result = await db.execute(
        select(Assignment)
        .where(Assignment.id == assignment_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    assignment = result.scalar_one_or_none()
    if not assignment:
        raise ResourceNotFoundError("Assigned service", assignment_id)
    return assignment


def _check_allocation(
    contracted: Decimal, current_total: Decimal, old_price: Decimal, new_price: Decimal
) -> None:
    projected = current_total - old_price + new_price
    if projected > contracted:
        raise InvariantViolationError(
            "Total renewal amount would exceed the contracted price",
            details={
                "current_total": float(current_total),
                "old_price": float(old_price),
                "new_price": float(new_price),
                "projected_total": float(projected),
                "contracted_price": float(contracted),
                "available": float(contracted - current_total + old_price),
            },
        )


async def update_assigned_service(
    db: AsyncSession,
    assignment_id: str,
    patch: AssignedServiceUpdate,
    notifications: NotificationService,
) -> Assignment:
    """Apply a patch to an assignment and at most one renewal line.

    With renewal fields, the line named by renewal_id is edited in place,
    otherwise a new line is appended.  Nothing is written if any check
    fails.
    """
    assignment = await _lock_assignment(db, assignment_id)
    lines = list(assignment.renewals)

    contracted = to_decimal(patch.price) if patch.price is not None else to_decimal(assignment.price)
    current_total = renewal_total(lines)

    target: RenewalLineItem | None = None
    appended: RenewalLineItem | None = None

    if patch.touches_renewal:
        missing = [
            name for name, value in (
                ("renewal_date", patch.renewal_date),
                ("renewal_label", patch.renewal_label),
                ("renewal_price", patch.renewal_price),
            )
            if value in (None, "")
        ]
        if missing:
            raise InvalidInputError(
                "renewal_date, renewal_label and renewal_price are all required",
                details={"missing": missing},
            )
        new_price = to_decimal(patch.renewal_price)
        if new_price <= ZERO:
            raise InvalidInputError("renewal_price must be positive")

        if patch.renewal_id:
            target = next((line for line in lines if line.id == patch.renewal_id), None)
            if target is None:
                raise ResourceNotFoundError("Renewal", patch.renewal_id)
            if target.haspaid:
                raise ConflictError(
                    "Renewal has already been paid and cannot be edited",
                    details={"renewal_id": target.id},
                )
            attempt = await db.scalar(
                select(BillingHistory.id).where(
                    BillingHistory.renewal_id == target.id,
                    BillingHistory.payment_status.in_(("pending", "completed")),
                )
            )
            if attempt:
                raise ConflictError(
                    "Renewal has a payment in progress and cannot be edited",
                    details={"renewal_id": target.id, "billing_history_id": attempt},
                )

        old_price = to_decimal(target.price) if target else ZERO
        _check_allocation(contracted, current_total, old_price, new_price)
    elif patch.price is not None:
        _check_allocation(contracted, current_total, ZERO, ZERO)

    # All checks passed; apply
    if patch.isaccepted is not None:
        assignment.isaccepted = patch.isaccepted
    if patch.status is not None:
        assignment.status = patch.status
    if patch.price is not None:
        assignment.price = contracted
    if "end_date" in patch.model_fields_set:
        assignment.end_date = patch.end_date

    if patch.touches_renewal:
        if target is not None:
            target.label = patch.renewal_label
            target.due_date = patch.renewal_date
            target.price = to_decimal(patch.renewal_price)
        else:
            appended = RenewalLineItem(
                position=len(lines),
                label=patch.renewal_label,
                due_date=patch.renewal_date,
                price=to_decimal(patch.renewal_price),
                haspaid=False,
            )
            assignment.renewals.append(appended)

    await db.commit()
    logger.info(
        "Updated assignment %s (renewal %s)",
        assignment.id,
        "appended" if appended else ("edited" if target else "unchanged"),
    )

    if appended is not None:
        profile = await db.get(Profile, assignment.client_id)
        await notifications.notify_new_renewal(
            email=assignment.email,
            client_name=assignment.client_name,
            service_name=assignment.service_name,
            label=appended.label,
            due_date=appended.due_date,
            price=appended.price,
            currency=assignment.currency,
            phone=profile.phone if profile else None,
        )
    return assignment


# ── Acceptance ───────────────────────────────────────────────

async def accept_assigned_service(
    db: AsyncSession, assignment_id: str, isaccepted: str
) -> Assignment:
    """Admin override of the acceptance status."""
    assignment = await get_assigned_service(db, assignment_id)
    assignment.isaccepted = isaccepted
    await db.flush()
    logger.info("Assignment %s acceptance set to %s by admin", assignment_id, isaccepted)
    return assignment


async def accept_assignment_by_token(
    db: AsyncSession, token: str, decision: str = "accepted"
) -> Assignment:
    """Verify an acceptance link and move its pending assignment to `decision`.

    The transition is a single conditional UPDATE, so a link used twice (or
    raced) finds no pending row the second time.
    """
    claims = verify_token(token, PURPOSE_ASSIGNMENT_ACCEPTANCE)
    assignment_id = claims.get("aid")
    if not assignment_id:
        raise TokenInvalidError()
    email = claims["sub"].lower()

    result = await db.execute(
        update(Assignment)
        .where(
            Assignment.id == assignment_id,
            func.lower(Assignment.email) == email,
            Assignment.isaccepted == "pending",
        )
        .values(isaccepted=decision, updated_at=datetime.utcnow())
        .execution_options(synchronize_session=False)
    )
    if not result.rowcount:
        raise ResourceNotFoundError("Pending assigned service", assignment_id)
    await db.commit()
    logger.info("Assignment %s %s via emailed link", assignment_id, decision)

    refreshed = await db.execute(
        select(Assignment)
        .where(Assignment.id == assignment_id)
        .execution_options(populate_existing=True)
    )
    return refreshed.scalar_one()


# ── Read side ────────────────────────────────────────────────

async def list_assigned_services(
    db: AsyncSession,
    *,
    search: str | None = None,
    client_id: str | None = None,
    service_id: str | None = None,
    email: str | None = None,
    page: int = 1,
    limit: int = 20,
) -> tuple[list[AssignmentOut], int]:
    """Filtered, newest-first page of assignments with live display names.

    Client and service names come from the joined rows when they still
    exist, else from the values stored at assignment time.
    """
    filters = []
    if client_id:
        filters.append(Assignment.client_id == client_id)
    if service_id:
        filters.append(Assignment.service_catalog_id == service_id)
    if email:
        filters.append(func.lower(Assignment.email) == email.lower())
    if search:
        pattern = f"%{search}%"
        filters.append(
            or_(
                Assignment.client_name.ilike(pattern),
                Assignment.service_name.ilike(pattern),
                Assignment.email.ilike(pattern),
                Profile.first_name.ilike(pattern),
                Profile.last_name.ilike(pattern),
                Service.name.ilike(pattern),
            )
        )

    def _joined(stmt):
        return (
            stmt.outerjoin(Profile, Profile.id == Assignment.client_id)
            .outerjoin(Service, Service.id == Assignment.service_catalog_id)
            .where(*filters)
        )

    total = await db.scalar(
        _joined(select(func.count(Assignment.id)).select_from(Assignment))
    ) or 0

    result = await db.execute(
        _joined(
            select(Assignment, Profile.first_name, Profile.last_name, Service.name)
        )
        .order_by(Assignment.created_at.desc(), Assignment.id.desc())
        .limit(limit)
        .offset((page - 1) * limit)
    )

    items = []
    for assignment, first_name, last_name, service_name in result.all():
        out = AssignmentOut.model_validate(assignment)
        out.client_name = _full_name(first_name, last_name) or assignment.client_name
        out.service_name = service_name or assignment.service_name
        items.append(out)
    return items, total


async def delete_assigned_service(db: AsyncSession, assignment_id: str) -> AssignmentOut:
    """Remove an assignment and its renewal lines.  Billing history is kept.

    Returns a snapshot of the assignment as it was before deletion.
    """
    assignment = await get_assigned_service(db, assignment_id)
    snapshot = AssignmentOut.model_validate(assignment)
    await db.execute(
        delete(RenewalReminderLog).where(RenewalReminderLog.assignment_id == assignment_id)
    )
    await db.delete(assignment)
    await db.flush()
    logger.info("Deleted assignment %s", assignment_id)
    return snapshot


async def get_assign_details(
    db: AsyncSession, client_id: str, service_id: str
) -> AssignDetails:
    profile = await db.get(Profile, client_id)
    if not profile:
        raise ResourceNotFoundError("Client profile", client_id)
    service = await db.get(Service, service_id)
    if not service:
        raise ResourceNotFoundError("Service", service_id)
    return AssignDetails(
        client=ClientSnapshot.model_validate(profile),
        service=ServiceSnapshot.model_validate(service),
    )


async def get_invoice(
    db: AsyncSession, assignment_id: str, user: CurrentUser
) -> InvoiceOut:
    assignment = await get_assigned_service(db, assignment_id)
    if not user.is_admin and assignment.email.lower() != user.email:
        raise PermissionDeniedError("You can only view your own invoices")

    profile = await db.get(Profile, assignment.client_id)
    lines = list(assignment.renewals)
    contracted = to_decimal(assignment.price)
    allocated = renewal_total(lines)
    paid = renewal_total(line for line in lines if line.haspaid)

    return InvoiceOut(
        invoice_id=assignment.invoice_id,
        assignment_id=assignment.id,
        client=ClientSnapshot.model_validate(profile) if profile else None,
        client_name=assignment.client_name,
        email=assignment.email,
        service_name=assignment.service_name,
        currency=assignment.currency,
        cycle=assignment.cycle,
        isaccepted=assignment.isaccepted,
        status=assignment.status,
        start_date=assignment.start_date,
        end_date=assignment.end_date,
        renewals=[RenewalOut.model_validate(line) for line in lines],
        contracted_price=float(contracted),
        allocated=float(allocated),
        paid=float(paid),
        outstanding=float(allocated - paid),
        unallocated=float(contracted - allocated),
    )


async def get_my_services(db: AsyncSession, user: CurrentUser) -> list[Assignment]:
    result = await db.execute(
        select(Assignment)
        .where(func.lower(Assignment.email) == user.email)
        .order_by(Assignment.created_at.desc(), Assignment.id.desc())
    )
    return list(result.scalars().all())
