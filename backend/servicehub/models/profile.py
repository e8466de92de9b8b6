"""Profile: a client known to the platform (invited or self-registered)."""

import uuid
from datetime import datetime

from sqlalchemy import Boolean, DateTime, String
from sqlalchemy.orm import Mapped, mapped_column

from servicehub.database import Base


class Profile(Base):
    __tablename__ = "profiles"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    first_name: Mapped[str | None] = mapped_column(String(100))
    last_name: Mapped[str | None] = mapped_column(String(100))
    phone: Mapped[str | None] = mapped_column(String(50))

    # Invitation
    invite_type: Mapped[str] = mapped_column(String(30), default="non invite")  # invite, non invite
    invite_email: Mapped[str | None] = mapped_column(String(255))
    invite_by: Mapped[str | None] = mapped_column(String(255))
    invite_status: Mapped[str | None] = mapped_column(String(30))  # pending, accepted, rejected
    invite_expiry: Mapped[datetime | None] = mapped_column(DateTime)

    email_verified: Mapped[bool] = mapped_column(Boolean, default=False)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    @property
    def full_name(self) -> str:
        return " ".join(p for p in (self.first_name, self.last_name) if p).strip()
