"""Assignment: a service contracted to a client, with its renewal schedule.

The renewal lines split the contracted price into dated installments.
Invariant: sum(line.price) <= assignment.price.  Writers go through
services.assignments.update_assigned_service, which re-reads the row under
a lock before checking it.
"""

import uuid
from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import Boolean, Date, DateTime, ForeignKey, Integer, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from servicehub.database import Base


class Assignment(Base):
    __tablename__ = "assigned_services"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    client_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("profiles.id"), nullable=False, index=True
    )
    service_catalog_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("services.id"), nullable=False, index=True
    )
    invoice_id: Mapped[str] = mapped_column(String(50), nullable=False, index=True)

    # ── Contract ─────────────────────────────────────────────
    price: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    cycle: Mapped[str] = mapped_column(String(30), nullable=False)  # monthly, annual, none
    isaccepted: Mapped[str] = mapped_column(String(30), default="pending")  # pending, accepted, rejected
    status: Mapped[str] = mapped_column(String(30), default="active")  # active, expired, cancelled
    note: Mapped[str | None] = mapped_column(Text)
    auto_invoice: Mapped[bool] = mapped_column(Boolean, default=False)
    start_date: Mapped[date] = mapped_column(Date, default=date.today)
    end_date: Mapped[date | None] = mapped_column(Date)
    assign_by: Mapped[str | None] = mapped_column(String(255))

    # ── Denormalized display fields ──────────────────────────
    client_name: Mapped[str | None] = mapped_column(String(255))
    email: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    service_name: Mapped[str | None] = mapped_column(String(255))

    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, index=True
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    # ── Relationships ────────────────────────────────────────
    renewals = relationship(
        "RenewalLineItem",
        back_populates="assignment",
        lazy="selectin",
        order_by="RenewalLineItem.position",
        cascade="all, delete-orphan",
    )


class RenewalLineItem(Base):
    __tablename__ = "renewal_line_items"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    assignment_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("assigned_services.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    label: Mapped[str] = mapped_column(String(255), nullable=False)
    due_date: Mapped[date] = mapped_column("date", Date, nullable=False)
    price: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    haspaid: Mapped[bool] = mapped_column(Boolean, default=False)

    assignment = relationship("Assignment", back_populates="renewals")
