"""Catalog services.

Endpoints:
    GET    /api/services          List services (category filter, name search)
    POST   /api/services          Create a service
    GET    /api/services/{id}     Get a service
    PUT    /api/services/{id}     Update allow-listed fields
    DELETE /api/services/{id}     Delete (409 while assigned to a client)
"""

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from servicehub.auth.deps import CurrentUser, require_permission
from servicehub.database import get_db
from servicehub.schemas.catalog import ServiceCreate, ServiceOut, ServiceUpdate
from servicehub.schemas.common import PaginatedResponse
from servicehub.services import catalog

router = APIRouter()


@router.get("", response_model=PaginatedResponse[ServiceOut])
async def list_services(
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=500),
    category_id: str | None = None,
    search: str | None = None,
    db: AsyncSession = Depends(get_db),
    _user: CurrentUser = Depends(require_permission("catalog.read")),
):
    items, total = await catalog.list_services(
        db, page=page, limit=limit, category_id=category_id, search=search
    )
    return PaginatedResponse.build(
        [ServiceOut.model_validate(s) for s in items], total, page, limit
    )


@router.post("", response_model=ServiceOut, status_code=status.HTTP_201_CREATED)
async def create_service(
    body: ServiceCreate,
    db: AsyncSession = Depends(get_db),
    _user: CurrentUser = Depends(require_permission("catalog.write")),
):
    return await catalog.create_service(db, body)


@router.get("/{service_id}", response_model=ServiceOut)
async def get_service(
    service_id: str,
    db: AsyncSession = Depends(get_db),
    _user: CurrentUser = Depends(require_permission("catalog.read")),
):
    return await catalog.get_service(db, service_id)


@router.put("/{service_id}", response_model=ServiceOut)
async def update_service(
    service_id: str,
    body: ServiceUpdate,
    db: AsyncSession = Depends(get_db),
    _user: CurrentUser = Depends(require_permission("catalog.write")),
):
    return await catalog.update_service(db, service_id, body)


@router.delete("/{service_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_service(
    service_id: str,
    db: AsyncSession = Depends(get_db),
    _user: CurrentUser = Depends(require_permission("catalog.write")),
):
    await catalog.delete_service(db, service_id)
