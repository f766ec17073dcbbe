# bakery_pos/models.py
from datetime import datetime, timezone
from enum import Enum
from uuid import uuid4

from sqlalchemy import Boolean, Column, DateTime, Numeric, String, Text
from sqlalchemy import Enum as SAEnum

from bakery_pos.database import Base


class OrderStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"


def _new_order_id() -> str:
    return uuid4().hex


class Order(Base):
    """A storefront or counter order. ``created_at`` is always set server-side."""

    __tablename__ = "Order"

    id = Column(String(64), primary_key=True, default=_new_order_id)
    status = Column(
        SAEnum(
            OrderStatus,
            name="order_status",
            native_enum=False,
            validate_strings=True,
            values_callable=lambda members: [m.value for m in members],
        ),
        default=OrderStatus.PENDING,
        nullable=False,
    )
    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
    description = Column(Text, nullable=False)
    amount = Column(Numeric(10, 2), nullable=False, default=0)
    from_storefront = Column(Boolean, nullable=False, default=False)

    @property
    def is_pending(self) -> bool:
        return self.status == OrderStatus.PENDING

    def to_dict(self):
        created_at = self.created_at
        if created_at is not None and created_at.tzinfo is None:
            created_at = created_at.replace(tzinfo=timezone.utc)
        return {
            "id": self.id,
            "status": self.status.value if self.status else None,
            "created_at": created_at.isoformat() if created_at else None,
            "description": self.description,
            "amount": float(self.amount) if self.amount is not None else 0.0,
            "from_storefront": bool(self.from_storefront),
        }

    def __repr__(self):
        return f"<Order {self.id} {self.status}>"
