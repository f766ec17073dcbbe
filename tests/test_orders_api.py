"""
HTTP tests for the storefront order endpoint and the admin alert board.

The app starts its own notifier on import, wired to the process-wide
order feed, so orders created through the API show up as alerts.
"""
import pytest

from bakery_pos.database import SessionLocal
from bakery_pos.main import app, order_notifier
from bakery_pos.models import Order


@pytest.fixture
def client(test_db, alert_board):
    assert order_notifier is not None
    assert order_notifier.wait_until_ready(5)
    with app.test_client() as client:
        yield client
    db = SessionLocal()
    db.query(Order).delete(synchronize_session=False)
    db.commit()
    db.close()


def _as_admin(client):
    with client.session_transaction() as sess:
        sess["is_admin"] = True


def test_health_endpoint(client):
    response = client.get("/health")
    assert response.status_code == 200
    body = response.get_json()
    assert body["status"] == "UP"
    assert body["components"]["order_notifier"]["status"] == "UP"


def test_storefront_order_raises_exactly_one_alert(client):
    response = client.post("/api/orders", json={"description": "Bolo de cenoura", "amount": 45})
    assert response.status_code == 201
    order = response.get_json()
    assert order["status"] == "pending"

    _as_admin(client)
    alerts = client.get("/admin/alerts").get_json()["alerts"]
    assert [a["tag"] for a in alerts] == [order["id"]]
    assert alerts[0]["body"] == "Order: Bolo de cenoura\nAmount: R$ 45,00"

    badge = client.get("/admin/alerts/badge").get_json()
    assert badge == {"new_orders": 1, "pending_orders": 1}

    sound = client.get("/admin/alerts/sound").get_json()
    assert sound["play"] is True


def test_paying_and_deleting_orders_raise_no_alerts(client):
    order_id = client.post("/api/orders", json={"description": "Sonho", "amount": "7.5"}).get_json()["id"]
    _as_admin(client)

    paid = client.post(f"/api/orders/{order_id}/pay")
    assert paid.status_code == 200
    assert paid.get_json()["status"] == "paid"

    assert client.delete(f"/api/orders/{order_id}").status_code == 200
    assert client.delete(f"/api/orders/{order_id}").status_code == 404

    assert len(client.get("/admin/alerts").get_json()["alerts"]) == 1


def test_pending_orders_listing(client):
    client.post("/api/orders", json={"description": "Coxinha", "amount": 8})
    _as_admin(client)

    body = client.get("/api/orders/pending").get_json()
    assert body["count"] == 1
    assert body["orders"][0]["description"] == "Coxinha"


def test_invalid_order_is_rejected(client):
    response = client.post("/api/orders", json={"description": "", "amount": 10})
    assert response.status_code == 400
    assert "error" in response.get_json()


def test_admin_routes_require_admin(client):
    assert client.get("/admin/alerts").status_code == 403
    assert client.get("/admin/notifier").status_code == 403
    assert client.get("/api/orders/pending").status_code == 403
    assert client.post("/api/orders/whatever/pay").status_code == 403
    assert client.get("/admin/metrics").status_code == 403


def test_alert_read_and_badge_reset(client):
    client.post("/api/orders", json={"description": "Pudim", "amount": 35})
    _as_admin(client)
    alert_id = client.get("/admin/alerts").get_json()["alerts"][0]["id"]

    read = client.post(f"/admin/alerts/{alert_id}/read").get_json()
    assert read == {"success": True, "unread_count": 0}

    reset = client.post("/admin/alerts/badge/reset").get_json()
    assert reset["new_orders"] == 0

    marked = client.post("/admin/alerts/mark-all-read").get_json()
    assert marked["marked_count"] == 0


def test_notifier_restart_starts_fresh_session(client):
    _as_admin(client)
    before = client.get("/admin/notifier").get_json()
    assert before["running"] is True

    after = client.post("/admin/notifier/restart").get_json()
    assert after["enabled"] is True
    assert after["running"] is True
    assert order_notifier.wait_until_ready(5)

    order_id = client.post("/api/orders", json={"description": "Cuca", "amount": 22}).get_json()["id"]
    assert [a["tag"] for a in client.get("/admin/alerts").get_json()["alerts"]] == [order_id]

    metrics = client.get("/admin/metrics").get_json()
    assert "order_alerts_total" in metrics["counters"]
