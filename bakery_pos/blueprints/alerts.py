from __future__ import annotations

from flask import Blueprint, abort, current_app, jsonify, request, session

from bakery_pos.database import get_db
from bakery_pos.services.notification_service import NotificationService
from bakery_pos.services.order_service import OrderService

alerts_bp = Blueprint("alerts", __name__, url_prefix="/admin")


@alerts_bp.before_request
def _require_admin():
    if not session.get("is_admin"):
        abort(403)


def _notifier():
    return current_app.extensions.get("order_notifier")


@alerts_bp.route("/alerts", methods=["GET"])
def list_alerts():
    board = NotificationService()
    unread_only = request.args.get("unread_only", "false").lower() == "true"
    limit = request.args.get("limit", 20, type=int)
    return jsonify({
        "alerts": board.get_alerts(unread_only=unread_only, limit=limit),
        "unread_count": board.get_unread_count(),
    })


@alerts_bp.route("/alerts/<alert_id>/read", methods=["POST"])
def mark_alert_read(alert_id: str):
    board = NotificationService()
    success = board.mark_as_read(alert_id)
    return jsonify({"success": success, "unread_count": board.get_unread_count()})


@alerts_bp.route("/alerts/mark-all-read", methods=["POST"])
def mark_all_alerts_read():
    board = NotificationService()
    marked = board.mark_all_as_read()
    return jsonify({"success": True, "marked_count": marked, "unread_count": 0})


@alerts_bp.route("/alerts/badge", methods=["GET"])
def alert_badge():
    board = NotificationService()
    board.set_pending_count(OrderService(get_db()).count_pending())
    return jsonify(board.get_badge())


@alerts_bp.route("/alerts/badge/reset", methods=["POST"])
def reset_alert_badge():
    board = NotificationService()
    board.reset_badge()
    return jsonify(board.get_badge())


@alerts_bp.route("/alerts/sound", methods=["GET"])
def alert_sound():
    return jsonify(NotificationService().consume_sound_cues())


@alerts_bp.route("/notifier", methods=["GET"])
def notifier_status():
    notifier = _notifier()
    if notifier is None:
        return jsonify({"running": False, "enabled": False})
    return jsonify({"enabled": True, **notifier.status()})


@alerts_bp.route("/notifier/restart", methods=["POST"])
def restart_notifier():
    """Start a fresh notifier session, e.g. after a feed or backlog failure."""
    start = current_app.extensions.get("order_notifier_start")
    if start is None:
        return jsonify({"error": "Order notifier is disabled"}), 409
    start()
    return jsonify({"enabled": True, **_notifier().status()})
