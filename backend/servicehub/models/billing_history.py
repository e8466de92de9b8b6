"""BillingHistory: one row per payment attempt that reached the processor.

assign_service_id is a plain reference (no FK) so the audit trail
survives deletion of the assignment.  The partial unique index allows at
most one pending/completed attempt per renewal line; failed attempts may
repeat.
"""

import uuid
from datetime import datetime
from decimal import Decimal

from sqlalchemy import JSON, DateTime, Index, Numeric, String, Text, text
from sqlalchemy.orm import Mapped, mapped_column

from servicehub.database import Base


class BillingHistory(Base):
    __tablename__ = "billing_history"
    __table_args__ = (
        Index(
            "uq_billing_history_active_renewal",
            "renewal_id",
            unique=True,
            postgresql_where=text("payment_status IN ('pending', 'completed')"),
            sqlite_where=text("payment_status IN ('pending', 'completed')"),
        ),
    )

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    user_email: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    user_id: Mapped[str | None] = mapped_column(String(255))

    assign_service_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    renewal_id: Mapped[str] = mapped_column(String(36), nullable=False)
    invoice_id: Mapped[str | None] = mapped_column(String(50))
    service_name: Mapped[str | None] = mapped_column(String(255))

    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    # pending | completed | failed | refunded
    payment_status: Mapped[str] = mapped_column(String(30), default="pending", index=True)
    payment_method: Mapped[str] = mapped_column(String(30), default="card")

    # ── Processor references ─────────────────────────────────
    stripe_payment_intent_id: Mapped[str | None] = mapped_column(String(255))
    stripe_payment_method_id: Mapped[str | None] = mapped_column(String(255))

    payment_date: Mapped[datetime | None] = mapped_column(DateTime)
    failure_reason: Mapped[str | None] = mapped_column(Text)
    # {"renewal_label": "..."}
    extra_metadata: Mapped[dict | None] = mapped_column("metadata", JSON)

    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, index=True
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )
