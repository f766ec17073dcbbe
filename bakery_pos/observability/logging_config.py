from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict
from uuid import uuid4

from flask import Flask, g, has_request_context, request, session

from bakery_pos.config import Config

_CONTEXT_FIELDS = ("request_id", "path", "method", "is_admin")


class RequestContextFilter(logging.Filter):
    """Stamp records with the current request, or None off-request."""

    def filter(self, record: logging.LogRecord) -> bool:  # type: ignore[override]
        context: Dict[str, Any] = dict.fromkeys(_CONTEXT_FIELDS)
        if has_request_context():
            context.update(
                request_id=getattr(g, "request_id", None),
                path=request.path,
                method=request.method,
                is_admin=bool(session.get("is_admin")),
            )
        # Notifier callbacks on the backlog worker land in the else branch
        for key, value in context.items():
            setattr(record, key, value)
        return True


class JsonFormatter(logging.Formatter):
    """One JSON object per line."""

    def format(self, record: logging.LogRecord) -> str:  # type: ignore[override]
        payload: Dict[str, Any] = {
            "ts": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "thread": record.threadName,
            "msg": record.getMessage(),
        }
        payload.update({key: getattr(record, key, None) for key in _CONTEXT_FIELDS})
        for extra_key in ("status_code", "duration_ms"):
            if hasattr(record, extra_key):
                payload[extra_key] = getattr(record, extra_key)
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


def configure_logging(app: Flask) -> None:
    """Install the JSON handler on root and app loggers, unless disabled."""
    level = Config.LOG_LEVEL
    if not Config.STRUCTURED_LOGS_ENABLED:
        app.logger.setLevel(level)
        return

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JsonFormatter())
    handler.addFilter(RequestContextFilter())

    root = logging.getLogger()
    root.setLevel(level)
    # Replacing, not appending, keeps a reload from doubling output
    root.handlers = [handler]
    app.logger.handlers = [handler]
    app.logger.debug("Structured logging configured.")


def ensure_request_id() -> str:
    """Reuse the caller's request id header or mint one."""
    existing = getattr(g, "request_id", None)
    if existing:
        return existing
    g.request_id = request.headers.get(Config.REQUEST_ID_HEADER) or str(uuid4())
    return g.request_id
