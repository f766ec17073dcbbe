from .order_events import ChangeType, OrderChangeEvent, OrderChangeHub, get_order_change_hub
from .order_service import OrderNotFoundError, OrderService, OrderValidationError
from .order_notifier import NotifierState, PendingOrderNotifier, should_alert
from .notification_service import NotificationService

__all__ = [
    "ChangeType",
    "OrderChangeEvent",
    "OrderChangeHub",
    "get_order_change_hub",
    "OrderNotFoundError",
    "OrderService",
    "OrderValidationError",
    "NotifierState",
    "PendingOrderNotifier",
    "should_alert",
    "NotificationService",
]
