"""Service: a catalog entry clients can be assigned to.

The discount sub-record is flattened onto the row.  A discount is only
*active* while has_discount is set and `now` falls inside
[discount_start_date, discount_end_date]; the daily sweep clears expired ones.
"""

import uuid
from datetime import datetime
from decimal import Decimal

from sqlalchemy import JSON, Boolean, DateTime, ForeignKey, Integer, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from servicehub.database import Base


class Service(Base):
    __tablename__ = "services"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    name: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    price: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    billing_type: Mapped[str] = mapped_column(String(30), nullable=False)  # one-time, recurring

    category_id: Mapped[str] = mapped_column(
        ForeignKey("categories.id"), nullable=False, index=True
    )
    category_name: Mapped[str | None] = mapped_column(String(255))

    # Discount
    has_discount: Mapped[bool] = mapped_column(Boolean, default=False)
    discount_type: Mapped[str | None] = mapped_column(String(30))  # percentage, fixed
    discount_value: Mapped[Decimal | None] = mapped_column(Numeric(12, 2))
    discount_reason: Mapped[str | None] = mapped_column(String(255))
    discount_start_date: Mapped[datetime | None] = mapped_column(DateTime)
    discount_end_date: Mapped[datetime | None] = mapped_column(DateTime)

    tags: Mapped[list | None] = mapped_column(JSON)
    features: Mapped[list | None] = mapped_column(JSON)
    is_featured: Mapped[bool] = mapped_column(Boolean, default=False)
    duration_in_days: Mapped[int] = mapped_column(Integer, nullable=False)
    notes: Mapped[str | None] = mapped_column(Text)
    image: Mapped[str | None] = mapped_column(String(1024))  # URL from image storage

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    def discount_active_at(self, now: datetime) -> bool:
        if not self.has_discount:
            return False
        if self.discount_start_date and now < self.discount_start_date:
            return False
        if self.discount_end_date and now > self.discount_end_date:
            return False
        return True

    def price_at(self, now: datetime) -> Decimal:
        """Catalog price after any discount active at `now`."""
        price = Decimal(self.price)
        if not self.discount_active_at(now) or self.discount_value is None:
            return price
        value = Decimal(self.discount_value)
        if self.discount_type == "percentage":
            reduced = price - (price * value / Decimal(100))
        else:
            reduced = price - value
        return max(reduced, Decimal("0")).quantize(Decimal("0.01"))

    @property
    def discount_active(self) -> bool:
        return self.discount_active_at(datetime.utcnow())

    @property
    def effective_price(self) -> Decimal:
        return self.price_at(datetime.utcnow())
