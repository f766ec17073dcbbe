"""
Order change feed.

Publish-Subscribe hub for order row changes. The order service publishes
``added`` / ``modified`` / ``removed`` events after each commit; listeners
such as the pending order notifier subscribe with a creation-time
watermark and receive batches of matching events.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from itertools import count
from threading import Lock
from typing import Any, Callable, Dict, Iterable, List, Optional

from bakery_pos.models import Order, OrderStatus
from bakery_pos.observability import increment_counter, record_event

logger = logging.getLogger(__name__)


class ChangeType(str, Enum):
    ADDED = "added"
    MODIFIED = "modified"
    REMOVED = "removed"


def as_utc(value: datetime) -> datetime:
    """SQLite hands back naive datetimes; everything here is UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


@dataclass(frozen=True)
class OrderChangeEvent:
    order_id: str
    change_type: ChangeType
    status: OrderStatus
    created_at: datetime
    description: str = ""
    amount: Decimal = Decimal("0")

    @classmethod
    def from_order(cls, order: Order, change_type: ChangeType) -> "OrderChangeEvent":
        return cls(
            order_id=order.id,
            change_type=ChangeType(change_type),
            status=OrderStatus(order.status),
            created_at=as_utc(order.created_at),
            description=order.description or "",
            amount=Decimal(str(order.amount if order.amount is not None else 0)),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "order_id": self.order_id,
            "change_type": self.change_type.value,
            "status": self.status.value,
            "created_at": self.created_at.isoformat(),
            "description": self.description,
            "amount": float(self.amount),
        }


ChangesCallback = Callable[[List[OrderChangeEvent]], None]
ErrorCallback = Callable[[BaseException], None]
Unsubscribe = Callable[[], None]


@dataclass
class _Subscription:
    id: int
    created_after: Optional[datetime]
    on_changes: ChangesCallback
    on_error: Optional[ErrorCallback]

    def matches(self, event: OrderChangeEvent) -> bool:
        if self.created_after is None:
            return True
        return event.created_at > self.created_after


class OrderChangeHub:
    """
    In-process live collection of order changes.

    ``subscribe`` mirrors a document-database listener: a filter, a
    callback for change batches, an error callback, and an unsubscribe
    handle in return. Callbacks run on the publisher's thread.
    """

    def __init__(self) -> None:
        self._subscriptions: Dict[int, _Subscription] = {}
        self._ids = count(1)
        self._lock = Lock()
        self.logger = logging.getLogger(__name__)

    def subscribe(
        self,
        created_after: Optional[datetime],
        on_changes: ChangesCallback,
        on_error: Optional[ErrorCallback] = None,
    ) -> Unsubscribe:
        """Listen to orders created strictly after ``created_after``."""
        watermark = as_utc(created_after) if created_after is not None else None
        with self._lock:
            subscription = _Subscription(next(self._ids), watermark, on_changes, on_error)
            self._subscriptions[subscription.id] = subscription
        self.logger.debug("Order feed subscription %d opened (created_after=%s)", subscription.id, watermark)

        def unsubscribe() -> None:
            with self._lock:
                removed = self._subscriptions.pop(subscription.id, None)
            if removed is not None:
                self.logger.debug("Order feed subscription %d closed", subscription.id)

        return unsubscribe

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscriptions)

    def publish(self, events: Iterable[OrderChangeEvent]) -> None:
        batch = list(events)
        if not batch:
            return
        with self._lock:
            subscriptions = list(self._subscriptions.values())

        for subscription in subscriptions:
            matching = [event for event in batch if subscription.matches(event)]
            if not matching:
                continue
            try:
                subscription.on_changes(matching)
            except Exception as exc:
                self.logger.exception("Order feed subscriber %d failed", subscription.id)
                self._deliver_error(subscription, exc)

    def fail(self, exc: BaseException) -> None:
        """Push a transport failure to every listener."""
        with self._lock:
            subscriptions = list(self._subscriptions.values())
        for subscription in subscriptions:
            self._deliver_error(subscription, exc)

    def _deliver_error(self, subscription: _Subscription, exc: BaseException) -> None:
        if subscription.on_error is None:
            return
        try:
            subscription.on_error(exc)
        except Exception:
            self.logger.exception("Error callback of subscription %d raised", subscription.id)


_hub = OrderChangeHub()


def get_order_change_hub() -> OrderChangeHub:
    return _hub


def publish_order_change(
    order: Order,
    change_type: ChangeType,
    hub: Optional[OrderChangeHub] = None,
) -> OrderChangeEvent:
    """
    Publish a single order change.

    Called by OrderService after each committed mutation.
    """
    return publish_change_event(OrderChangeEvent.from_order(order, change_type), hub=hub)


def publish_change_event(event: OrderChangeEvent, hub: Optional[OrderChangeHub] = None) -> OrderChangeEvent:
    record_event("order_changed", event.to_dict())
    increment_counter(
        "order_changes_total",
        labels={"change_type": event.change_type.value, "status": event.status.value},
    )

    (hub or _hub).publish([event])
    return event
