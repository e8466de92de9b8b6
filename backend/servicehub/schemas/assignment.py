"""Pydantic schemas for service assignments and their renewal schedules."""

import datetime as dt

from pydantic import AliasChoices, BaseModel, Field, field_validator

CYCLES = ("monthly", "annual", "none")
ACCEPTANCE_STATUSES = ("pending", "accepted", "rejected")
LIFECYCLE_STATUSES = ("active", "expired", "cancelled")


def _check_acceptance(v: str | None) -> str | None:
    if v is not None and v not in ACCEPTANCE_STATUSES:
        raise ValueError("isaccepted must be 'pending', 'accepted' or 'rejected'")
    return v


def _check_lifecycle(v: str | None) -> str | None:
    if v is not None and v not in LIFECYCLE_STATUSES:
        raise ValueError("status must be 'active', 'expired' or 'cancelled'")
    return v


# ── Requests ─────────────────────────────────────────────────

class AssignServiceCreate(BaseModel):
    client_id: str
    service_catalog_id: str
    price: float = Field(gt=0)
    cycle: str
    status: str = "active"
    note: str | None = None
    auto_invoice: bool = False
    start_date: dt.date | None = None
    end_date: dt.date | None = None

    @field_validator("cycle")
    @classmethod
    def valid_cycle(cls, v: str) -> str:
        if v not in CYCLES:
            raise ValueError("cycle must be 'monthly', 'annual' or 'none'")
        return v

    @field_validator("status")
    @classmethod
    def valid_status(cls, v: str) -> str:
        return _check_lifecycle(v)


class AssignedServiceUpdate(BaseModel):
    """Patch for an assignment and (optionally) one renewal line.

    Supplying any renewal_* field edits the line named by renewal_id, or
    appends a new line when renewal_id is absent.
    """
    isaccepted: str | None = None
    status: str | None = None
    price: float | None = Field(default=None, gt=0)
    end_date: dt.date | None = None

    renewal_date: dt.date | None = Field(
        default=None,
        validation_alias=AliasChoices("renewal_date", "add_renewal_date"),
    )
    renewal_label: str | None = None
    renewal_price: float | None = None
    renewal_id: str | None = None

    model_config = {"extra": "forbid", "populate_by_name": True}

    @field_validator("isaccepted")
    @classmethod
    def valid_acceptance(cls, v: str | None) -> str | None:
        return _check_acceptance(v)

    @field_validator("status")
    @classmethod
    def valid_status(cls, v: str | None) -> str | None:
        return _check_lifecycle(v)

    @property
    def touches_renewal(self) -> bool:
        return any(
            v is not None
            for v in (self.renewal_date, self.renewal_label, self.renewal_price, self.renewal_id)
        )


class AcceptanceUpdate(BaseModel):
    isaccepted: str

    @field_validator("isaccepted")
    @classmethod
    def valid_acceptance(cls, v: str) -> str:
        return _check_acceptance(v)


class TokenDecision(BaseModel):
    decision: str = "accepted"

    @field_validator("decision")
    @classmethod
    def valid_decision(cls, v: str) -> str:
        if v not in ("accepted", "rejected"):
            raise ValueError("decision must be 'accepted' or 'rejected'")
        return v


# ── Responses ────────────────────────────────────────────────

class RenewalOut(BaseModel):
    id: str
    position: int
    label: str
    date: dt.date = Field(validation_alias=AliasChoices("due_date", "date"))
    price: float
    haspaid: bool = False

    model_config = {"from_attributes": True}


class AssignmentOut(BaseModel):
    id: str
    client_id: str
    service_catalog_id: str
    invoice_id: str
    price: float
    currency: str
    cycle: str
    isaccepted: str
    status: str
    note: str | None = None
    auto_invoice: bool = False
    start_date: dt.date | None = None
    end_date: dt.date | None = None
    assign_by: str | None = None
    client_name: str | None = None
    email: str
    service_name: str | None = None
    renewals: list[RenewalOut] = []
    created_at: dt.datetime
    updated_at: dt.datetime

    model_config = {"from_attributes": True}


class AssignmentCreated(BaseModel):
    assignment: AssignmentOut
    notification_sent: bool


class ClientSnapshot(BaseModel):
    id: str
    email: str
    first_name: str | None = None
    last_name: str | None = None
    phone: str | None = None

    model_config = {"from_attributes": True}


class ServiceSnapshot(BaseModel):
    id: str
    name: str
    description: str
    price: float
    currency: str
    billing_type: str
    category_name: str | None = None
    duration_in_days: int

    model_config = {"from_attributes": True}


class AssignDetails(BaseModel):
    client: ClientSnapshot
    service: ServiceSnapshot


class InvoiceOut(BaseModel):
    invoice_id: str
    assignment_id: str
    client: ClientSnapshot | None = None
    client_name: str | None = None
    email: str
    service_name: str | None = None
    currency: str
    cycle: str
    isaccepted: str
    status: str
    start_date: dt.date | None = None
    end_date: dt.date | None = None
    renewals: list[RenewalOut]
    contracted_price: float
    allocated: float
    paid: float
    outstanding: float
    unallocated: float
