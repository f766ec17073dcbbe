from __future__ import annotations

from typing import Any, Dict

from flask import Blueprint, abort, jsonify, request, session

from bakery_pos.database import get_db
from bakery_pos.services.notification_service import NotificationService
from bakery_pos.services.order_service import (
    OrderNotFoundError,
    OrderService,
    OrderValidationError,
)

orders_bp = Blueprint("orders", __name__)


def _is_admin() -> bool:
    # Lightweight admin gate; login is handled elsewhere.
    return bool(session.get("is_admin"))


def _require_admin() -> None:
    if not _is_admin():
        abort(403)


def _get_order_service() -> OrderService:
    return OrderService(get_db())


def _refresh_pending_count(service: OrderService) -> None:
    NotificationService().set_pending_count(service.count_pending())


@orders_bp.route("/api/orders", methods=["POST"])
def api_create_order():
    """Storefront checkout."""
    payload: Dict[str, Any] = request.get_json(silent=True) or {}
    service = _get_order_service()
    try:
        order = service.create_order(
            description=payload.get("description", ""),
            amount=payload.get("amount"),
            from_storefront=bool(payload.get("from_storefront", True)),
        )
    except OrderValidationError as exc:
        return jsonify({"error": str(exc)}), 400
    _refresh_pending_count(service)
    return jsonify(order.to_dict()), 201


@orders_bp.route("/api/orders/pending", methods=["GET"])
def api_pending_orders():
    _require_admin()
    orders = _get_order_service().list_pending_orders()
    return jsonify({"orders": [o.to_dict() for o in orders], "count": len(orders)})


@orders_bp.route("/api/orders/<order_id>/pay", methods=["POST"])
def api_mark_order_paid(order_id: str):
    _require_admin()
    service = _get_order_service()
    try:
        order = service.mark_paid(order_id)
    except OrderNotFoundError as exc:
        return jsonify({"error": str(exc)}), 404
    _refresh_pending_count(service)
    return jsonify(order.to_dict())


@orders_bp.route("/api/orders/<order_id>", methods=["DELETE"])
def api_delete_order(order_id: str):
    _require_admin()
    service = _get_order_service()
    try:
        service.delete_order(order_id)
    except OrderNotFoundError as exc:
        return jsonify({"error": str(exc)}), 404
    _refresh_pending_count(service)
    return jsonify({"success": True})
