"""Common schemas used across the application."""

import math
from typing import Generic, TypeVar

from pydantic import BaseModel

T = TypeVar("T")


class PaginatedResponse(BaseModel, Generic[T]):
    """Generic page-numbered response wrapper.

    Usage:
        response_model=PaginatedResponse[ServiceOut]

    Returns:
        {
            "items": [...],
            "total": 150,
            "page": 2,
            "limit": 50,
            "pages": 3
        }
    """
    items: list[T]
    total: int
    page: int
    limit: int
    pages: int

    @classmethod
    def build(cls, items: list, total: int, page: int, limit: int):
        return cls(
            items=items,
            total=total,
            page=page,
            limit=limit,
            pages=math.ceil(total / limit) if limit else 0,
        )


class MessageResponse(BaseModel):
    message: str
