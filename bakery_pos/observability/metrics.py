from __future__ import annotations

import threading
import time
from collections import defaultdict, deque
from typing import Any, Deque, Dict, Optional, Tuple

MetricKey = Tuple[str, Tuple[Tuple[str, str], ...]]

_MAX_EVENTS = 100

_lock = threading.Lock()
_counters: Dict[MetricKey, float] = defaultdict(float)
_gauges: Dict[MetricKey, float] = {}
_events: Deque[Dict[str, Any]] = deque(maxlen=_MAX_EVENTS)


def _key(name: str, labels: Optional[Dict[str, str]]) -> MetricKey:
    if not labels:
        return (name, ())
    return (name, tuple(sorted((k, str(v)) for k, v in labels.items())))


def increment_counter(name: str, amount: float = 1.0, labels: Optional[Dict[str, str]] = None) -> None:
    with _lock:
        _counters[_key(name, labels)] += amount


def set_gauge(name: str, value: float, labels: Optional[Dict[str, str]] = None) -> None:
    with _lock:
        _gauges[_key(name, labels)] = value


def record_event(name: str, payload: Dict[str, Any]) -> None:
    """Append to the bounded event log shown on /admin/metrics."""
    event = {"name": name, "timestamp": time.time(), "payload": payload}
    with _lock:
        _events.append(event)


def get_counter_value(name: str, labels: Optional[Dict[str, str]] = None) -> float:
    with _lock:
        return _counters.get(_key(name, labels), 0.0)


def get_metrics_snapshot() -> Dict[str, Any]:
    snapshot: Dict[str, Any] = {"counters": {}, "gauges": {}}
    with _lock:
        for (name, labels), value in _counters.items():
            snapshot["counters"].setdefault(name, []).append({"labels": dict(labels), "value": value})
        for (name, labels), value in _gauges.items():
            snapshot["gauges"].setdefault(name, []).append({"labels": dict(labels), "value": value})
        snapshot["events"] = list(_events)
    return snapshot


def reset_metrics() -> None:
    """Testing helper."""
    with _lock:
        _counters.clear()
        _gauges.clear()
        _events.clear()
