from __future__ import annotations

import logging
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Callable, List, Optional

from sqlalchemy.orm import Session

from bakery_pos.models import Order, OrderStatus
from bakery_pos.services.order_events import (
    ChangeType,
    OrderChangeEvent,
    OrderChangeHub,
    publish_change_event,
    publish_order_change,
)


class OrderValidationError(ValueError):
    """Raised when order input is rejected."""


class OrderNotFoundError(LookupError):
    """Raised when an order id does not exist."""


class OrderService:
    """
    Persists counter and storefront orders.

    Every committed mutation is published on the order change feed so the
    admin dashboard's notifier sees it.
    """

    def __init__(
        self,
        db_session: Session,
        hub: Optional[OrderChangeHub] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self.db = db_session
        self.hub = hub
        self.clock = clock or (lambda: datetime.now(timezone.utc))
        self.logger = logging.getLogger(__name__)

    def create_order(self, description: str, amount, from_storefront: bool = False) -> Order:
        """Create a pending order stamped with the server clock."""
        description = (description or "").strip()
        if not description:
            raise OrderValidationError("Order description is required.")
        value = self._parse_amount(amount)

        order = Order(
            description=description,
            amount=value,
            status=OrderStatus.PENDING,
            created_at=self.clock(),
            from_storefront=from_storefront,
        )
        self._commit(order)
        self.logger.info("Order %s created (%s)", order.id, "storefront" if from_storefront else "counter")

        publish_order_change(order, ChangeType.ADDED, hub=self.hub)
        return order

    def mark_paid(self, order_id: str) -> Order:
        order = self._require(order_id)
        if order.status == OrderStatus.PAID:
            return order
        order.status = OrderStatus.PAID
        self._commit(order)
        self.logger.info("Order %s marked as paid", order_id)

        publish_order_change(order, ChangeType.MODIFIED, hub=self.hub)
        return order

    def delete_order(self, order_id: str) -> None:
        order = self._require(order_id)
        # Snapshot first: the row is gone once the delete commits
        event = OrderChangeEvent.from_order(order, ChangeType.REMOVED)
        try:
            self.db.delete(order)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        self.logger.info("Order %s deleted", order_id)

        publish_change_event(event, hub=self.hub)

    def get_order(self, order_id: str) -> Optional[Order]:
        return self.db.query(Order).filter_by(id=order_id).first()

    def list_pending_orders(self) -> List[Order]:
        return (
            self.db.query(Order)
            .filter(Order.status == OrderStatus.PENDING)
            .order_by(Order.created_at.desc())
            .all()
        )

    def pending_order_ids(self) -> List[str]:
        """Ids of every order currently pending. Seeds the notifier backlog."""
        rows = self.db.query(Order.id).filter(Order.status == OrderStatus.PENDING).all()
        return [row[0] for row in rows]

    def count_pending(self) -> int:
        return self.db.query(Order).filter(Order.status == OrderStatus.PENDING).count()

    def _require(self, order_id: str) -> Order:
        order = self.get_order(order_id)
        if order is None:
            raise OrderNotFoundError(f"Order {order_id} not found.")
        return order

    def _commit(self, order: Order) -> None:
        try:
            self.db.add(order)
            self.db.commit()
            self.db.refresh(order)
        except Exception:
            self.db.rollback()
            raise

    @staticmethod
    def _parse_amount(amount) -> Decimal:
        try:
            value = Decimal(str(amount))
        except (InvalidOperation, TypeError, ValueError):
            raise OrderValidationError("Order amount must be a number.")
        if not value.is_finite() or value < 0:
            raise OrderValidationError("Order amount must be zero or positive.")
        return value.quantize(Decimal("0.01"))


def make_backlog_loader(session_factory: Callable[[], Session]) -> Callable[[], List[str]]:
    """Build a loader that opens its own session, for use off the request thread."""

    def load_pending_order_ids() -> List[str]:
        db = session_factory()
        try:
            return OrderService(db).pending_order_ids()
        finally:
            db.close()

    return load_pending_order_ids
