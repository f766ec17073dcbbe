from __future__ import annotations

from concurrent.futures import Future
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from bakery_pos.database import SessionLocal
from bakery_pos.models import OrderStatus
from bakery_pos.services.order_events import ChangeType, OrderChangeHub
from bakery_pos.services.order_notifier import PendingOrderNotifier
from bakery_pos.services.order_service import (
    OrderNotFoundError,
    OrderService,
    OrderValidationError,
    make_backlog_loader,
)

T0 = datetime(2026, 5, 1, 12, 0, 0, tzinfo=timezone.utc)


class _InlineExecutor:
    def submit(self, fn, *args, **kwargs):
        future = Future()
        future.set_result(fn(*args, **kwargs))
        return future


class _Clock:
    def __init__(self, now):
        self.now = now

    def __call__(self):
        return self.now


def _service(db_session, hub=None, now=T0):
    hub = hub or OrderChangeHub()
    return OrderService(db_session, hub=hub, clock=_Clock(now)), hub


def _collect(hub):
    received = []
    hub.subscribe(None, received.extend)
    return received


def test_create_order_persists_pending_order_and_publishes_added(db_session):
    service, hub = _service(db_session)
    received = _collect(hub)

    order = service.create_order("  Bolo de chocolate ", "59.9", from_storefront=True)

    assert order.status == OrderStatus.PENDING
    assert order.description == "Bolo de chocolate"
    assert order.amount == Decimal("59.90")
    assert order.from_storefront is True
    assert [(e.order_id, e.change_type) for e in received] == [(order.id, ChangeType.ADDED)]
    assert received[0].created_at == T0


@pytest.mark.parametrize(
    "description, amount",
    [("", "10"), ("   ", "10"), ("Pão", "-1"), ("Pão", "abc"), ("Pão", None), ("Pão", "NaN")],
)
def test_create_order_rejects_invalid_input(db_session, description, amount):
    service, hub = _service(db_session)
    received = _collect(hub)

    with pytest.raises(OrderValidationError):
        service.create_order(description, amount)

    assert received == []
    assert service.count_pending() == 0


def test_mark_paid_publishes_modified_once(db_session):
    service, hub = _service(db_session)
    order = service.create_order("Sonho", "7.50")
    received = _collect(hub)

    service.mark_paid(order.id)
    service.mark_paid(order.id)

    assert [(e.change_type, e.status) for e in received] == [(ChangeType.MODIFIED, OrderStatus.PAID)]
    assert service.count_pending() == 0


def test_delete_order_publishes_removed_snapshot(db_session):
    service, hub = _service(db_session)
    order = service.create_order("Quindim", "6")
    order_id = order.id
    received = _collect(hub)

    service.delete_order(order_id)

    assert service.get_order(order_id) is None
    assert received[0].order_id == order_id
    assert received[0].change_type == ChangeType.REMOVED
    assert received[0].description == "Quindim"


def test_unknown_order_raises_not_found(db_session):
    service, _ = _service(db_session)
    with pytest.raises(OrderNotFoundError):
        service.mark_paid("missing")
    with pytest.raises(OrderNotFoundError):
        service.delete_order("missing")


def test_pending_order_ids_and_backlog_loader(db_session):
    service, _ = _service(db_session)
    first = service.create_order("Coxinha", "8")
    second = service.create_order("Empada", "9")
    paid = service.create_order("Esfiha", "7")
    service.mark_paid(paid.id)

    assert sorted(service.pending_order_ids()) == sorted([first.id, second.id])
    assert len(service.list_pending_orders()) == 2
    assert sorted(make_backlog_loader(SessionLocal)()) == sorted([first.id, second.id])


def test_notifier_on_live_orders_announces_only_new_pending_orders(db_session):
    hub = OrderChangeHub()
    clock = _Clock(T0 - timedelta(seconds=10))
    service = OrderService(db_session, hub=hub, clock=clock)
    backlog_order = service.create_order("Torta de frango", "70")

    alerts = []

    class _Sink:
        def raise_alert(self, title, body, duration_ms, tag=None):
            alerts.append(tag)

        def play_sound(self):
            raise RuntimeError("no audio device")

    notifier = PendingOrderNotifier(
        alert_sink=_Sink(),
        executor=_InlineExecutor(),
        clock=lambda: T0,
    )
    notifier.start(hub.subscribe, make_backlog_loader(SessionLocal))
    assert notifier.wait_until_ready(1) is True

    clock.now = T0 + timedelta(seconds=5)
    new_order = service.create_order("Pudim", "35")
    service.mark_paid(new_order.id)
    clock.now = T0 + timedelta(seconds=6)
    paid_later = service.create_order("Cuca", "22")
    service.mark_paid(paid_later.id)

    assert alerts == [new_order.id, paid_later.id]
    assert backlog_order.id not in alerts
    notifier.stop()
    assert hub.subscriber_count == 0
