# tests/conftest.py
"""
Pytest configuration and shared fixtures.

The environment is pinned before any bakery_pos import so Config picks up
a throwaway SQLite database.
"""
import os
import sys
import tempfile

import pytest

_TEST_DB_DIR = tempfile.mkdtemp(prefix="bakery_pos_tests_")
os.environ.setdefault("DATABASE_URL", f"sqlite:///{_TEST_DB_DIR}/bakery_test.db")
os.environ.setdefault("STRUCTURED_LOGS_ENABLED", "false")
os.environ.setdefault("FLASK_TESTING", "true")

# Make the package importable without installing it
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from bakery_pos.database import Base, SessionLocal, engine  # noqa: E402
from bakery_pos.models import Order  # noqa: E402
from bakery_pos.observability.metrics import reset_metrics  # noqa: E402
from bakery_pos.services.notification_service import NotificationService  # noqa: E402


@pytest.fixture(scope="session")
def test_db():
    """Create the schema once for the whole session"""
    Base.metadata.create_all(bind=engine)
    return engine, SessionLocal


@pytest.fixture
def db_session(test_db):
    """Fresh session per test; orders are wiped afterwards"""
    _, session_factory = test_db
    session = session_factory()
    try:
        yield session
    finally:
        try:
            session.query(Order).delete(synchronize_session=False)
            session.commit()
        except Exception as e:
            print(f"Database cleanup warning: {e}")
            session.rollback()
        finally:
            session.close()


@pytest.fixture
def alert_board():
    board = NotificationService()
    board.clear()
    board.configure_sound(True, "/sounds/new-order.mp3")
    yield board
    board.clear()


@pytest.fixture(autouse=True)
def _clean_metrics():
    reset_metrics()
    yield
