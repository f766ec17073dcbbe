# bakery_pos/main.py
import atexit
import logging
import time

from flask import Flask, abort, g, jsonify, request, session

from bakery_pos.blueprints.alerts import alerts_bp
from bakery_pos.blueprints.orders import orders_bp
from bakery_pos.config import Config
from bakery_pos.database import Base, SessionLocal, close_db, engine
from bakery_pos.observability import (
    check_database_health,
    check_notifier_health,
    configure_logging,
    get_metrics_snapshot,
    increment_counter,
)
from bakery_pos.observability.logging_config import ensure_request_id
from bakery_pos.services.notification_service import NotificationService
from bakery_pos.services.order_events import get_order_change_hub
from bakery_pos.services.order_notifier import PendingOrderNotifier
from bakery_pos.services.order_service import make_backlog_loader

app = Flask(__name__)
Config.configure_app(app)
configure_logging(app)
app.register_blueprint(orders_bp)
app.register_blueprint(alerts_bp)

logger = logging.getLogger(__name__)


def init_database():
    """Initialize database tables"""
    try:
        Base.metadata.create_all(bind=engine)
        logger.info("Database tables initialized successfully")
    except Exception as e:
        logger.exception("Error initializing database: %s", e)


init_database()


# --- New order alerts ---

order_notifier = None


def start_order_notifier():
    """(Re)start the dashboard notifier against the process order feed."""
    order_notifier.start(
        get_order_change_hub().subscribe,
        make_backlog_loader(SessionLocal),
    )


if Config.ORDER_NOTIFIER_ENABLED:
    order_notifier = PendingOrderNotifier(alert_sink=NotificationService())
    app.extensions["order_notifier"] = order_notifier
    app.extensions["order_notifier_start"] = start_order_notifier
    start_order_notifier()
    atexit.register(order_notifier.shutdown)


@app.before_request
def before_request_logging():
    g.request_started_at = time.perf_counter()
    g.request_id = ensure_request_id()
    increment_counter(
        "http_requests_total",
        labels={
            "method": request.method,
            "endpoint": request.endpoint or request.path,
        },
    )


@app.after_request
def after_request_logging(response):
    started = getattr(g, "request_started_at", None)
    duration_ms = (time.perf_counter() - started) * 1000 if started is not None else None
    if response.status_code >= 500:
        increment_counter(
            "http_errors_total",
            labels={
                "method": request.method,
                "endpoint": request.endpoint or request.path,
                "status": str(response.status_code),
            },
        )
        logger.error("Request finished with error status %s", response.status_code)
    else:
        logger.info(
            "Request finished",
            extra={"status_code": response.status_code, "duration_ms": duration_ms},
        )
    return response


@app.teardown_appcontext
def teardown_db(exception):
    close_db(exception)


@app.route("/health", methods=["GET"])
def health():
    db_status = check_database_health()
    notifier_status = check_notifier_health(order_notifier)
    healthy = db_status.get("status") == "UP" and notifier_status.get("status") in ("UP", "DISABLED")
    return jsonify({
        "status": "UP" if healthy else "DEGRADED",
        "components": {
            "database": db_status,
            "order_notifier": notifier_status,
        },
    }), 200 if healthy else 503


@app.route("/admin/metrics", methods=["GET"])
def admin_metrics():
    if not session.get("is_admin"):
        abort(403)
    return jsonify(get_metrics_snapshot())
