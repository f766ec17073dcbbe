"""
Admin alert board.

Receives new-order alerts from the pending order notifier and keeps them,
together with the navbar badge counters and queued sound cues, until the
admin dashboard polls for them.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from itertools import count
from threading import Lock
from typing import Any, Dict, List, Optional

from bakery_pos.config import Config
from bakery_pos.observability import increment_counter, set_gauge


class SoundUnavailableError(RuntimeError):
    """Raised by play_sound when alert sounds are switched off or no sound file is set."""


@dataclass
class OrderAlert:
    """A toast shown on the admin dashboard."""
    id: str
    title: str
    body: str
    duration_ms: int
    tag: Optional[str] = None
    target_url: Optional[str] = None
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    read: bool = False
    read_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "body": self.body,
            "duration_ms": self.duration_ms,
            "tag": self.tag,
            "target_url": self.target_url,
            "created_at": self.created_at.isoformat(),
            "read": self.read,
            "read_at": self.read_at.isoformat() if self.read_at else None,
        }


class NotificationService:
    """
    In-memory alert sink for the admin dashboard.

    Architectural Pattern: Publish-Subscribe (Subscriber for order alerts)
    - raise_alert stores the toast and bumps the new-orders badge
    - play_sound queues a chime the dashboard plays on its next poll
    - pending_orders_count mirrors the number of orders awaiting payment
    """

    _instance: Optional["NotificationService"] = None
    _lock: Lock = Lock()

    def __new__(cls) -> "NotificationService":
        """Singleton so every request sees the same board."""
        if cls._instance is None:
            with cls._lock:
                if cls._instance is None:
                    cls._instance = super().__new__(cls)
                    cls._instance._initialized = False
        return cls._instance

    def __init__(self) -> None:
        if self._initialized:
            return
        self._alerts: List[OrderAlert] = []
        self._ids = count(1)
        self._max_alerts: int = Config.MAX_ALERTS_RETAINED
        self._sound_enabled: bool = Config.ORDER_ALERT_SOUND_ENABLED
        self._sound_url: str = Config.ORDER_ALERT_SOUND_URL
        self._pending_sound_cues: int = 0
        self.new_orders_badge_count: int = 0
        self.pending_orders_count: int = 0
        self.logger = logging.getLogger(__name__)
        self._initialized = True

    def raise_alert(
        self,
        title: str,
        body: str,
        duration_ms: int,
        tag: Optional[str] = None,
    ) -> OrderAlert:
        """
        Store a new alert, most recent first.

        Args:
            title: Short toast title
            body: Toast body, may contain newlines
            duration_ms: How long the dashboard keeps the toast on screen
            tag: Stable key (the order id) so the browser collapses repeats

        Returns:
            The stored OrderAlert
        """
        with self._lock:
            alert = OrderAlert(
                id=f"alert_{next(self._ids)}_{int(datetime.now(timezone.utc).timestamp())}",
                title=title,
                body=body,
                duration_ms=duration_ms,
                tag=tag,
                target_url=Config.ORDER_ALERT_TARGET_URL,
            )
            self._alerts.insert(0, alert)
            if len(self._alerts) > self._max_alerts:
                self._alerts = self._alerts[: self._max_alerts]

            self.new_orders_badge_count += 1
            badge = self.new_orders_badge_count

        increment_counter("dashboard_alerts_total")
        set_gauge("new_orders_badge", badge)
        self.logger.info("Dashboard alert stored: %s (%s)", title, tag)
        return alert

    def play_sound(self) -> None:
        """Queue a chime for the dashboard."""
        if not self._sound_enabled:
            raise SoundUnavailableError("Alert sounds are disabled.")
        if not self._sound_url:
            raise SoundUnavailableError("No alert sound configured (ORDER_ALERT_SOUND_URL).")
        with self._lock:
            self._pending_sound_cues += 1

    def consume_sound_cues(self) -> Dict[str, Any]:
        """Return and clear queued chimes."""
        with self._lock:
            cues = self._pending_sound_cues
            self._pending_sound_cues = 0
        return {"play": cues > 0, "count": cues, "url": self._sound_url}

    def get_alerts(self, unread_only: bool = False, limit: int = 20) -> List[Dict[str, Any]]:
        with self._lock:
            alerts = list(self._alerts)
        if unread_only:
            alerts = [a for a in alerts if not a.read]
        return [a.to_dict() for a in alerts[:limit]]

    def get_unread_count(self) -> int:
        with self._lock:
            return sum(1 for a in self._alerts if not a.read)

    def mark_as_read(self, alert_id: str) -> bool:
        with self._lock:
            for alert in self._alerts:
                if alert.id == alert_id:
                    alert.read = True
                    alert.read_at = datetime.now(timezone.utc)
                    return True
        return False

    def mark_all_as_read(self) -> int:
        marked = 0
        now = datetime.now(timezone.utc)
        with self._lock:
            for alert in self._alerts:
                if not alert.read:
                    alert.read = True
                    alert.read_at = now
                    marked += 1
        return marked

    def get_badge(self) -> Dict[str, int]:
        with self._lock:
            return {
                "new_orders": self.new_orders_badge_count,
                "pending_orders": self.pending_orders_count,
            }

    def reset_badge(self) -> None:
        """Operator opened the orders page."""
        with self._lock:
            self.new_orders_badge_count = 0
        set_gauge("new_orders_badge", 0)

    def set_pending_count(self, value: int) -> None:
        with self._lock:
            self.pending_orders_count = max(0, int(value))

    def configure_sound(self, enabled: bool, url: Optional[str] = None) -> None:
        with self._lock:
            self._sound_enabled = enabled
            if url is not None:
                self._sound_url = url

    def clear(self) -> None:
        """Drop every alert and counter."""
        with self._lock:
            self._alerts = []
            self._pending_sound_cues = 0
            self.new_orders_badge_count = 0
            self.pending_orders_count = 0
