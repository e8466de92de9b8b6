"""Catalog categories.

Endpoints:
    GET    /api/categories                List categories (newest first)
    POST   /api/categories                Create a category
    GET    /api/categories/{id}           Get a category
    PUT    /api/categories/{id}           Update name/description
    PATCH  /api/categories/{id}/status    Set or toggle active/inactive
    DELETE /api/categories/{id}           Delete (409 while services use it)
"""

from fastapi import APIRouter, Body, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from servicehub.auth.deps import CurrentUser, require_permission
from servicehub.database import get_db
from servicehub.schemas.catalog import (
    CategoryCreate,
    CategoryOut,
    CategoryStatusUpdate,
    CategoryUpdate,
)
from servicehub.schemas.common import PaginatedResponse
from servicehub.services import catalog

router = APIRouter()


@router.get("", response_model=PaginatedResponse[CategoryOut])
async def list_categories(
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=500),
    db: AsyncSession = Depends(get_db),
    _user: CurrentUser = Depends(require_permission("catalog.read")),
):
    items, total = await catalog.list_categories(db, page=page, limit=limit)
    return PaginatedResponse.build(
        [CategoryOut.model_validate(c) for c in items], total, page, limit
    )


@router.post("", response_model=CategoryOut, status_code=status.HTTP_201_CREATED)
async def create_category(
    body: CategoryCreate,
    db: AsyncSession = Depends(get_db),
    _user: CurrentUser = Depends(require_permission("catalog.write")),
):
    return await catalog.create_category(db, body)


@router.get("/{category_id}", response_model=CategoryOut)
async def get_category(
    category_id: str,
    db: AsyncSession = Depends(get_db),
    _user: CurrentUser = Depends(require_permission("catalog.read")),
):
    return await catalog.get_category(db, category_id)


@router.put("/{category_id}", response_model=CategoryOut)
async def update_category(
    category_id: str,
    body: CategoryUpdate,
    db: AsyncSession = Depends(get_db),
    _user: CurrentUser = Depends(require_permission("catalog.write")),
):
    return await catalog.update_category(db, category_id, body)


@router.patch("/{category_id}/status", response_model=CategoryOut)
async def toggle_category_status(
    category_id: str,
    body: CategoryStatusUpdate | None = Body(default=None),
    db: AsyncSession = Depends(get_db),
    _user: CurrentUser = Depends(require_permission("catalog.write")),
):
    """Set the status from the body, or flip it when no body is sent."""
    return await catalog.toggle_category_status(
        db, category_id, body.status if body else None
    )


@router.delete("/{category_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_category(
    category_id: str,
    db: AsyncSession = Depends(get_db),
    _user: CurrentUser = Depends(require_permission("catalog.write")),
):
    await catalog.delete_category(db, category_id)
