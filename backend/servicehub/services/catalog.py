"""Catalog store: categories and services.

Routers stay thin; everything that checks references or uniqueness lives
here so the scheduler and CLI share it.
"""

import logging
from datetime import datetime

from sqlalchemy import func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from servicehub.middleware.exceptions import ConflictError, ResourceNotFoundError
from servicehub.models.assignment import Assignment
from servicehub.models.category import Category
from servicehub.models.service import Service
from servicehub.schemas.catalog import (
    CategoryCreate,
    CategoryUpdate,
    ServiceCreate,
    ServiceUpdate,
)
from servicehub.utils.money import to_decimal

logger = logging.getLogger(__name__)

DISCOUNT_FIELDS = (
    "discount_type",
    "discount_value",
    "discount_reason",
    "discount_start_date",
    "discount_end_date",
)

NON_NULLABLE_SERVICE_FIELDS = {
    "name", "description", "price", "currency", "billing_type",
    "category_id", "duration_in_days", "has_discount", "is_featured",
}


# ── Categories ───────────────────────────────────────────────

async def get_category(db: AsyncSession, category_id: str) -> Category:
    category = await db.get(Category, category_id)
    if not category:
        raise ResourceNotFoundError("Category", category_id)
    return category


async def _ensure_category_name_free(
    db: AsyncSession, name: str, exclude_id: str | None = None
) -> None:
    stmt = select(Category.id).where(func.lower(Category.name) == name.lower())
    if exclude_id:
        stmt = stmt.where(Category.id != exclude_id)
    if await db.scalar(stmt):
        raise ConflictError(f"Category '{name}' already exists")


async def create_category(db: AsyncSession, body: CategoryCreate) -> Category:
    await _ensure_category_name_free(db, body.name)
    category = Category(**body.model_dump())
    db.add(category)
    await db.flush()
    logger.info("Created category %s (%s)", category.name, category.id)
    return category


async def list_categories(
    db: AsyncSession, page: int = 1, limit: int = 50
) -> tuple[list[Category], int]:
    total = await db.scalar(select(func.count(Category.id))) or 0
    result = await db.execute(
        select(Category)
        .order_by(Category.created_at.desc(), Category.id.desc())
        .limit(limit)
        .offset((page - 1) * limit)
    )
    return list(result.scalars().all()), total


async def update_category(
    db: AsyncSession, category_id: str, body: CategoryUpdate
) -> Category:
    category = await get_category(db, category_id)
    updates = body.model_dump(exclude_unset=True)

    if updates.get("name") is not None and updates["name"] != category.name:
        await _ensure_category_name_free(db, updates["name"], exclude_id=category.id)
        # Keep the denormalized name on services in step
        await db.execute(
            update(Service)
            .where(Service.category_id == category.id)
            .values(category_name=updates["name"])
        )

    for key, value in updates.items():
        if key == "name" and value is None:
            continue
        setattr(category, key, value)
    await db.flush()
    return category


async def toggle_category_status(
    db: AsyncSession, category_id: str, status: str | None = None
) -> Category:
    """Set the status explicitly, or flip active/inactive when none is given."""
    category = await get_category(db, category_id)
    if status is None:
        status = "inactive" if category.status == "active" else "active"
    category.status = status
    await db.flush()
    return category


async def delete_category(db: AsyncSession, category_id: str) -> None:
    category = await get_category(db, category_id)
    in_use = await db.scalar(
        select(func.count(Service.id)).where(Service.category_id == category_id)
    )
    if in_use:
        raise ConflictError(
            "Category is in use by one or more services",
            details={"services": in_use},
        )
    await db.delete(category)
    await db.flush()
    logger.info("Deleted category %s", category_id)


# ── Services ─────────────────────────────────────────────────

async def get_service(db: AsyncSession, service_id: str) -> Service:
    service = await db.get(Service, service_id)
    if not service:
        raise ResourceNotFoundError("Service", service_id)
    return service


async def _ensure_service_name_free(
    db: AsyncSession, name: str, exclude_id: str | None = None
) -> None:
    stmt = select(Service.id).where(func.lower(Service.name) == name.lower())
    if exclude_id:
        stmt = stmt.where(Service.id != exclude_id)
    if await db.scalar(stmt):
        raise ConflictError(f"Service '{name}' already exists")


def _apply_discount(service: Service, data: dict) -> None:
    """Store discount fields only while has_discount is set; clear them otherwise."""
    if not service.has_discount:
        for field in DISCOUNT_FIELDS:
            setattr(service, field, None)
        return
    for field in DISCOUNT_FIELDS:
        if field in data:
            value = data[field]
            if field == "discount_value" and value is not None:
                value = to_decimal(value)
            setattr(service, field, value)


async def create_service(db: AsyncSession, body: ServiceCreate) -> Service:
    category = await get_category(db, body.category_id)
    await _ensure_service_name_free(db, body.name)

    data = body.model_dump()
    discount_data = {f: data.pop(f) for f in DISCOUNT_FIELDS}
    data["price"] = to_decimal(data["price"])

    service = Service(**data, category_name=category.name)
    _apply_discount(service, discount_data)
    db.add(service)
    await db.flush()
    logger.info("Created service %s (%s)", service.name, service.id)
    return service


async def list_services(
    db: AsyncSession,
    page: int = 1,
    limit: int = 50,
    category_id: str | None = None,
    search: str | None = None,
) -> tuple[list[Service], int]:
    filters = []
    if category_id:
        filters.append(Service.category_id == category_id)
    if search:
        pattern = f"%{search.lower()}%"
        filters.append(
            or_(
                func.lower(Service.name).like(pattern),
                func.lower(Service.description).like(pattern),
            )
        )

    total = await db.scalar(select(func.count(Service.id)).where(*filters)) or 0
    result = await db.execute(
        select(Service)
        .where(*filters)
        .order_by(Service.created_at.desc(), Service.id.desc())
        .limit(limit)
        .offset((page - 1) * limit)
    )
    return list(result.scalars().all()), total


async def update_service(
    db: AsyncSession, service_id: str, body: ServiceUpdate
) -> Service:
    service = await get_service(db, service_id)
    updates = body.model_dump(exclude_unset=True)

    if updates.get("name") is not None and updates["name"] != service.name:
        await _ensure_service_name_free(db, updates["name"], exclude_id=service.id)

    if updates.get("category_id") is not None and updates["category_id"] != service.category_id:
        category = await get_category(db, updates["category_id"])
        service.category_name = category.name

    if "price" in updates and updates["price"] is not None:
        updates["price"] = to_decimal(updates["price"])
    if "currency" in updates and updates["currency"]:
        updates["currency"] = updates["currency"].upper()

    discount_data = {f: updates.pop(f) for f in DISCOUNT_FIELDS if f in updates}
    for key, value in updates.items():
        if value is None and key in NON_NULLABLE_SERVICE_FIELDS:
            continue
        setattr(service, key, value)

    _apply_discount(service, discount_data)
    await db.flush()
    return service


async def delete_service(db: AsyncSession, service_id: str) -> None:
    service = await get_service(db, service_id)
    in_use = await db.scalar(
        select(func.count(Assignment.id)).where(Assignment.service_catalog_id == service_id)
    )
    if in_use:
        raise ConflictError(
            "Service is assigned to one or more clients",
            details={"assignments": in_use},
        )
    await db.delete(service)
    await db.flush()
    logger.info("Deleted service %s", service_id)


# ── Discount expiry ──────────────────────────────────────────

async def sweep_expired_discounts(db: AsyncSession, now: datetime | None = None) -> int:
    """Clear the discount on every service whose window ended before `now`.

    Returns the number of services changed.  The caller commits.
    """
    now = now or datetime.utcnow()
    result = await db.execute(
        update(Service)
        .where(
            Service.has_discount == True,  # noqa: E712
            Service.discount_end_date.is_not(None),
            Service.discount_end_date < now,
        )
        .values(
            has_discount=False,
            discount_type=None,
            discount_value=None,
            discount_reason=None,
            discount_start_date=None,
            discount_end_date=None,
            updated_at=datetime.utcnow(),
        )
        .execution_options(synchronize_session=False)
    )
    cleared = result.rowcount or 0
    logger.info("Discount sweep cleared %d expired discounts", cleared)
    return cleared
