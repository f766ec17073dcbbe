"""
Pending order notifier.

Watches the order change feed for the admin dashboard and raises exactly
one alert per order that is created after the notifier started and is
still pending. Orders already pending when the notifier starts (the
backlog) are never announced.

Session lifecycle::

    start() -> watermark captured -> feed subscribed -> backlog loading
            -> backlog applied (initialized) -> buffered events drained
            -> live events handled one at a time
    stop()  -> subscription cancelled, state discarded

Callbacks from the feed, from the backlog worker and from ``stop`` all
serialize on one lock. A callback belonging to a discarded session is
ignored, so nothing is announced after ``stop`` even if a slow backlog
load or a late feed delivery arrives afterwards.
"""
from __future__ import annotations

import logging
import threading
from collections import deque
from concurrent.futures import Executor, Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from functools import partial
from typing import Any, Callable, Deque, Dict, Iterable, List, Optional, Protocol, Set, Tuple

from bakery_pos.config import Config
from bakery_pos.models import OrderStatus
from bakery_pos.observability import increment_counter, record_event, set_gauge
from bakery_pos.services.order_events import ChangeType, OrderChangeEvent, as_utc

logger = logging.getLogger(__name__)

ChangesCallback = Callable[[List[OrderChangeEvent]], None]
FeedErrorCallback = Callable[[BaseException], None]
OrdersFeed = Callable[[datetime, ChangesCallback, FeedErrorCallback], Callable[[], None]]
BacklogLoader = Callable[[], Iterable[str]]
ErrorSink = Callable[[BaseException, str], None]


class AlertSink(Protocol):
    def raise_alert(self, title: str, body: str, duration_ms: int, tag: Optional[str] = None) -> Any:
        ...

    def play_sound(self) -> Any:
        ...


@dataclass
class NotifierState:
    """De-duplication state for one notifier session."""

    watermark: datetime
    seen: Set[str] = field(default_factory=set)
    initialized: bool = False

    def mark_initialized(self) -> None:
        # One-way flag
        self.initialized = True


def should_alert(event: OrderChangeEvent, state: NotifierState) -> bool:
    """Return True when ``event`` announces a new pending order not yet seen."""
    if event.change_type != ChangeType.ADDED:
        return False
    if event.status != OrderStatus.PENDING:
        return False
    if event.order_id in state.seen:
        return False
    return as_utc(event.created_at) > state.watermark


def format_amount(amount: Decimal, currency: str) -> str:
    """pt-BR money: ``R$ 1.234,50``."""
    text = f"{Decimal(amount):,.2f}"
    text = text.replace(",", "_").replace(".", ",").replace("_", ".")
    return f"{currency} {text}"


def build_order_alert(event: OrderChangeEvent, currency: Optional[str] = None) -> Tuple[str, str]:
    if currency is None:
        currency = Config.ORDER_ALERT_CURRENCY
    title = "New order received!"
    body = f"Order: {event.description}\nAmount: {format_amount(event.amount, currency)}"
    return title, body


@dataclass
class _Session:
    state: NotifierState
    buffer: Deque[OrderChangeEvent] = field(default_factory=deque)
    ready: threading.Event = field(default_factory=threading.Event)
    unsubscribe: Optional[Callable[[], None]] = None
    backlog: Optional[Future] = None


class PendingOrderNotifier:
    """
    Announces new pending orders to the operator exactly once.

    ``alert_sink`` receives the visual alert and the best-effort chime.
    ``on_error`` observes feed, backlog and sink failures; the notifier
    itself never raises into the feed. ``executor`` runs the one-shot
    backlog loader and ``clock`` supplies the watermark; both are
    injectable for tests.
    """

    def __init__(
        self,
        alert_sink: AlertSink,
        on_error: Optional[ErrorSink] = None,
        executor: Optional[Executor] = None,
        clock: Optional[Callable[[], datetime]] = None,
        alert_duration_ms: Optional[int] = None,
        sound_enabled: Optional[bool] = None,
        currency: Optional[str] = None,
    ) -> None:
        self.alert_sink = alert_sink
        self.on_error = on_error
        self.clock = clock or (lambda: datetime.now(timezone.utc))
        self.alert_duration_ms = (
            Config.ORDER_ALERT_DURATION_MS if alert_duration_ms is None else alert_duration_ms
        )
        self.sound_enabled = Config.ORDER_ALERT_SOUND_ENABLED if sound_enabled is None else sound_enabled
        self.currency = Config.ORDER_ALERT_CURRENCY if currency is None else currency
        self._owns_executor = executor is None
        self._executor = executor or ThreadPoolExecutor(max_workers=1, thread_name_prefix="order-backlog")
        self._lock = threading.RLock()
        self._session: Optional[_Session] = None
        self._last_error: Optional[str] = None
        self.logger = logging.getLogger(__name__)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self, orders_feed: OrdersFeed, backlog_loader: BacklogLoader) -> None:
        """
        Begin a fresh session.

        A running session is stopped first, so two subscriptions never
        overlap. The watermark is read before the feed is subscribed.
        """
        with self._lock:
            self._stop_locked()
            self._last_error = None
            session = _Session(state=NotifierState(watermark=as_utc(self.clock())))
            self._session = session
            try:
                session.unsubscribe = orders_feed(
                    session.state.watermark,
                    partial(self._on_changes, session),
                    partial(self._on_feed_error, session),
                )
            except Exception as exc:
                self._session = None
                session.ready.set()
                self._report(exc, "subscribe")
                return
            self.logger.info("Order notifier started (watermark=%s)", session.state.watermark.isoformat())

        try:
            session.backlog = self._executor.submit(self._load_backlog, session, backlog_loader)
        except RuntimeError as exc:
            # Executor already shut down
            with self._lock:
                if self._session is session:
                    self._report(exc, "backlog")
                    self._apply_backlog_locked(session, [])

    def stop(self) -> None:
        """Cancel the subscription and discard the session. Idempotent."""
        with self._lock:
            self._stop_locked()

    def shutdown(self) -> None:
        self.stop()
        if self._owns_executor:
            self._executor.shutdown(wait=False)

    def wait_until_ready(self, timeout: Optional[float] = None) -> bool:
        """Block until the current session has applied its backlog."""
        with self._lock:
            session = self._session
        if session is None:
            return False
        if not session.ready.wait(timeout):
            return False
        with self._lock:
            return self._session is session and session.state.initialized

    @property
    def running(self) -> bool:
        with self._lock:
            return self._session is not None

    def status(self) -> Dict[str, Any]:
        with self._lock:
            session = self._session
            if session is None:
                return {
                    "running": False,
                    "initialized": False,
                    "watermark": None,
                    "seen_count": 0,
                    "buffered": 0,
                    "last_error": self._last_error,
                }
            return {
                "running": True,
                "initialized": session.state.initialized,
                "watermark": session.state.watermark.isoformat(),
                "seen_count": len(session.state.seen),
                "buffered": len(session.buffer),
                "last_error": self._last_error,
            }

    # ------------------------------------------------------------------
    # Callbacks
    # ------------------------------------------------------------------

    def _load_backlog(self, session: _Session, backlog_loader: BacklogLoader) -> None:
        try:
            order_ids = list(backlog_loader())
            error = None
        except Exception as exc:
            order_ids = []
            error = exc

        with self._lock:
            if self._session is not session:
                self.logger.info("Discarding backlog result of a stopped notifier session")
                return
            if error is not None:
                # Treated as an empty backlog so live events are not held forever
                self._report(error, "backlog")
            self._apply_backlog_locked(session, order_ids)

    def _apply_backlog_locked(self, session: _Session, order_ids: Iterable[str]) -> None:
        state = session.state
        state.seen.update(order_ids)
        state.mark_initialized()
        self.logger.info(
            "Order notifier backlog loaded: %d pending orders, %d buffered events",
            len(state.seen),
            len(session.buffer),
        )
        try:
            while session.buffer:
                self._handle_event_guarded_locked(session, session.buffer.popleft())
            set_gauge("order_notifier_seen_orders", len(state.seen))
        finally:
            session.ready.set()

    def _on_changes(self, session: _Session, events: List[OrderChangeEvent]) -> None:
        with self._lock:
            if self._session is not session:
                return
            for event in events:
                if not session.state.initialized:
                    session.buffer.append(event)
                    continue
                self._handle_event_guarded_locked(session, event)

    def _on_feed_error(self, session: _Session, exc: BaseException) -> None:
        with self._lock:
            if self._session is not session:
                return
            self._report(exc, "feed")

    def _handle_event_guarded_locked(self, session: _Session, event: OrderChangeEvent) -> None:
        # One bad event must not strand the rest of the batch or buffer
        try:
            self._handle_event_locked(session, event)
        except Exception as exc:
            self._report(exc, "event")

    def _handle_event_locked(self, session: _Session, event: OrderChangeEvent) -> None:
        if not should_alert(event, session.state):
            return
        # Recorded before the alert goes out so a replayed delivery is a no-op
        session.state.seen.add(event.order_id)
        set_gauge("order_notifier_seen_orders", len(session.state.seen))
        self._emit(event)

    def _emit(self, event: OrderChangeEvent) -> None:
        title, body = build_order_alert(event, self.currency)
        try:
            self.alert_sink.raise_alert(title, body, self.alert_duration_ms, tag=event.order_id)
        except Exception as exc:
            self._report(exc, "alert")
        else:
            increment_counter("order_alerts_total")
            record_event("order_alert_raised", event.to_dict())
            self.logger.warning("New pending order %s: %s", event.order_id, event.description)

        if not self.sound_enabled:
            return
        try:
            self.alert_sink.play_sound()
        except Exception as exc:
            self.logger.debug("Order alert sound not played: %s", exc)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _stop_locked(self) -> None:
        session = self._session
        if session is None:
            return
        self._session = None
        if session.unsubscribe is not None:
            try:
                session.unsubscribe()
            except Exception as exc:
                self.logger.warning("Order feed unsubscribe failed: %s", exc)
        if session.backlog is not None:
            session.backlog.cancel()
        session.buffer.clear()
        session.ready.set()
        self.logger.info("Order notifier stopped (%d orders seen)", len(session.state.seen))

    def _report(self, exc: BaseException, source: str) -> None:
        self._last_error = f"{source}: {exc}"
        increment_counter("order_notifier_errors_total", labels={"source": source})
        self.logger.error("Order notifier %s error: %s", source, exc)
        if self.on_error is None:
            return
        try:
            self.on_error(exc, source)
        except Exception:
            self.logger.exception("Order notifier error sink raised")
