"""Observability helpers: logging, metrics, and health checks."""

from .logging_config import configure_logging
from .metrics import (
    increment_counter,
    set_gauge,
    record_event,
    get_metrics_snapshot,
)
from .health import check_database_health, check_notifier_health

__all__ = [
    "configure_logging",
    "increment_counter",
    "set_gauge",
    "record_event",
    "get_metrics_snapshot",
    "check_database_health",
    "check_notifier_health",
]
