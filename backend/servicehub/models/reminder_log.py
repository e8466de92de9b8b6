"""RenewalReminderLog: which reminder offsets were already sent.

Keyed on the due date as well as the offset, so moving a renewal's due
date re-arms its reminders.
"""

import uuid
from datetime import date, datetime

from sqlalchemy import Date, DateTime, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from servicehub.database import Base


class RenewalReminderLog(Base):
    __tablename__ = "renewal_reminders"
    __table_args__ = (
        UniqueConstraint(
            "renewal_id", "offset_days", "due_date",
            name="uq_renewal_reminders_offset",
        ),
    )

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    renewal_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    assignment_id: Mapped[str] = mapped_column(String(36), nullable=False)
    offset_days: Mapped[int] = mapped_column(Integer, nullable=False)
    due_date: Mapped[date] = mapped_column(Date, nullable=False)
    email: Mapped[str] = mapped_column(String(255), nullable=False)
    sent_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
