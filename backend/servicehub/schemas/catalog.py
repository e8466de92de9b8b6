"""Pydantic schemas for categories and catalog services."""

from datetime import datetime, timezone

from pydantic import BaseModel, Field, field_validator

BILLING_TYPES = ("one-time", "recurring")
DISCOUNT_TYPES = ("percentage", "fixed")
CATEGORY_STATUSES = ("active", "inactive")


def _naive_utc(v: datetime | None) -> datetime | None:
    """Stored timestamps are naive UTC; normalize aware inputs."""
    if v is not None and v.tzinfo is not None:
        return v.astimezone(timezone.utc).replace(tzinfo=None)
    return v


# ── Categories ───────────────────────────────────────────────

class CategoryCreate(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    description: str | None = None
    status: str = "active"

    @field_validator("status")
    @classmethod
    def valid_status(cls, v: str) -> str:
        if v not in CATEGORY_STATUSES:
            raise ValueError("status must be 'active' or 'inactive'")
        return v


class CategoryUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=255)
    description: str | None = None

    model_config = {"extra": "forbid"}


class CategoryStatusUpdate(BaseModel):
    status: str

    @field_validator("status")
    @classmethod
    def valid_status(cls, v: str) -> str:
        if v not in CATEGORY_STATUSES:
            raise ValueError("status must be 'active' or 'inactive'")
        return v


class CategoryOut(BaseModel):
    id: str
    name: str
    description: str | None = None
    status: str
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


# ── Services ─────────────────────────────────────────────────

class _DiscountFields(BaseModel):
    has_discount: bool | None = None
    discount_type: str | None = None
    discount_value: float | None = None
    discount_reason: str | None = None
    discount_start_date: datetime | None = None
    discount_end_date: datetime | None = None

    @field_validator("discount_type")
    @classmethod
    def valid_discount_type(cls, v: str | None) -> str | None:
        if v is not None and v not in DISCOUNT_TYPES:
            raise ValueError("discount_type must be 'percentage' or 'fixed'")
        return v

    @field_validator("discount_value")
    @classmethod
    def discount_non_negative(cls, v: float | None) -> float | None:
        if v is not None and v < 0:
            raise ValueError("discount_value must not be negative")
        return v

    @field_validator("discount_start_date", "discount_end_date")
    @classmethod
    def to_naive_utc(cls, v: datetime | None) -> datetime | None:
        return _naive_utc(v)


class ServiceCreate(_DiscountFields):
    name: str = Field(min_length=1, max_length=255)
    description: str = Field(min_length=1)
    price: float
    currency: str = Field(min_length=3, max_length=3)
    billing_type: str
    category_id: str
    duration_in_days: int = Field(gt=0)
    has_discount: bool = False
    tags: list[str] | None = None
    features: list[str] | None = None
    is_featured: bool = False
    notes: str | None = None
    image: str | None = None

    @field_validator("price")
    @classmethod
    def price_non_negative(cls, v: float) -> float:
        if v < 0:
            raise ValueError("price must not be negative")
        return v

    @field_validator("billing_type")
    @classmethod
    def valid_billing_type(cls, v: str) -> str:
        if v not in BILLING_TYPES:
            raise ValueError("billing_type must be 'one-time' or 'recurring'")
        return v

    @field_validator("currency")
    @classmethod
    def upper_currency(cls, v: str) -> str:
        return v.upper()


class ServiceUpdate(_DiscountFields):
    """Allow-listed service fields; anything else in the body is rejected."""
    name: str | None = Field(default=None, min_length=1, max_length=255)
    description: str | None = None
    price: float | None = None
    currency: str | None = Field(default=None, min_length=3, max_length=3)
    billing_type: str | None = None
    category_id: str | None = None
    duration_in_days: int | None = Field(default=None, gt=0)
    tags: list[str] | None = None
    features: list[str] | None = None
    is_featured: bool | None = None
    notes: str | None = None
    image: str | None = None

    model_config = {"extra": "forbid"}

    @field_validator("price")
    @classmethod
    def price_non_negative(cls, v: float | None) -> float | None:
        if v is not None and v < 0:
            raise ValueError("price must not be negative")
        return v

    @field_validator("billing_type")
    @classmethod
    def valid_billing_type(cls, v: str | None) -> str | None:
        if v is not None and v not in BILLING_TYPES:
            raise ValueError("billing_type must be 'one-time' or 'recurring'")
        return v


class ServiceOut(BaseModel):
    id: str
    name: str
    description: str
    price: float
    currency: str
    billing_type: str
    category_id: str
    category_name: str | None = None
    has_discount: bool = False
    discount_type: str | None = None
    discount_value: float | None = None
    discount_reason: str | None = None
    discount_start_date: datetime | None = None
    discount_end_date: datetime | None = None
    discount_active: bool = False
    effective_price: float
    tags: list[str] | None = None
    features: list[str] | None = None
    is_featured: bool = False
    duration_in_days: int
    notes: str | None = None
    image: str | None = None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}
