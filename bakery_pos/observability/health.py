from __future__ import annotations

from typing import Any, Dict, Optional

from sqlalchemy import text
from sqlalchemy.exc import OperationalError

from bakery_pos.database import engine


def check_database_health() -> Dict[str, str]:
    """Attempt a lightweight DB query to ensure connectivity."""
    try:
        with engine.connect() as connection:
            connection.execute(text("SELECT 1"))
        return {"status": "UP"}
    except OperationalError as exc:
        return {"status": "DOWN", "detail": str(exc)}


def check_notifier_health(notifier: Optional[Any]) -> Dict[str, Any]:
    """Report the order notifier; DISABLED when the app did not start one."""
    if notifier is None:
        return {"status": "DISABLED"}
    status = notifier.status()
    if not status["running"]:
        return {"status": "DOWN", **status}
    if status["last_error"]:
        return {"status": "DEGRADED", **status}
    return {"status": "UP", **status}
