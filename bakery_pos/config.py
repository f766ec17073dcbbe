"""Application settings, read once from the environment (and .env)."""
from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Final

from dotenv import load_dotenv

BASE_DIR: Final[Path] = Path(__file__).resolve().parent.parent
ENV_PATH = BASE_DIR / ".env"

# Values already in the process environment take priority
load_dotenv(dotenv_path=ENV_PATH, override=False)

_TRUTHY = {"1", "true", "yes", "on"}


def _env_bool(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in _TRUTHY


def _env_int(name: str, default: int) -> int:
    return int(os.getenv(name, str(default)))


def _database_url() -> str:
    """
    DATABASE_URL wins; otherwise build a PostgreSQL URL from DB_* parts;
    otherwise use a SQLite file under db/.
    """
    if os.getenv("DATABASE_URL"):
        return os.environ["DATABASE_URL"]

    parts = {key: os.getenv(f"DB_{key}") for key in ("USERNAME", "PASSWORD", "HOST", "PORT", "NAME")}
    if all(parts.values()):
        driver = os.getenv("DB_DRIVER", "postgresql+psycopg2")
        return "{driver}://{USERNAME}:{PASSWORD}@{HOST}:{PORT}/{NAME}".format(driver=driver, **parts)

    sqlite_file = BASE_DIR / "db" / "bakery.db"
    sqlite_file.parent.mkdir(parents=True, exist_ok=True)
    return f"sqlite:///{sqlite_file.as_posix()}"


class Config:
    """Settings shared by the Flask app, the services and run.py."""

    APP_NAME: Final[str] = os.getenv("APP_NAME", "Bakery POS")
    APP_ENV: Final[str] = os.getenv("APP_ENV", "development")

    SECRET_KEY: Final[str] = os.getenv("SECRET_KEY", "change-me-in-prod")
    DEBUG: Final[bool] = _env_bool("FLASK_DEBUG", default=APP_ENV == "development")
    TESTING: Final[bool] = _env_bool("FLASK_TESTING")

    FLASK_RUN_HOST: Final[str] = os.getenv("FLASK_RUN_HOST", "0.0.0.0")
    FLASK_RUN_PORT: Final[int] = _env_int("FLASK_RUN_PORT", 5000)

    # Database
    DATABASE_URL: Final[str] = _database_url()
    SQL_ECHO: Final[bool] = _env_bool("SQL_ECHO")
    DB_POOL_SIZE: Final[int] = _env_int("DB_POOL_SIZE", 10)
    DB_MAX_OVERFLOW: Final[int] = _env_int("DB_MAX_OVERFLOW", 20)

    # Logging
    STRUCTURED_LOGS_ENABLED: Final[bool] = _env_bool("STRUCTURED_LOGS_ENABLED", default=True)
    LOG_LEVEL: Final[str] = os.getenv("LOG_LEVEL", "INFO")
    REQUEST_ID_HEADER: Final[str] = os.getenv("REQUEST_ID_HEADER", "X-Request-ID")

    # New order alerts on the admin dashboard
    ORDER_NOTIFIER_ENABLED: Final[bool] = _env_bool("ORDER_NOTIFIER_ENABLED", default=True)
    ORDER_ALERT_DURATION_MS: Final[int] = _env_int("ORDER_ALERT_DURATION_MS", 20000)
    ORDER_ALERT_SOUND_ENABLED: Final[bool] = _env_bool("ORDER_ALERT_SOUND_ENABLED", default=True)
    ORDER_ALERT_SOUND_URL: Final[str] = os.getenv("ORDER_ALERT_SOUND_URL", "")
    ORDER_ALERT_CURRENCY: Final[str] = os.getenv("ORDER_ALERT_CURRENCY", "R$")
    ORDER_ALERT_TARGET_URL: Final[str] = os.getenv("ORDER_ALERT_TARGET_URL", "/store-orders")
    MAX_ALERTS_RETAINED: Final[int] = _env_int("MAX_ALERTS_RETAINED", 50)

    @classmethod
    def configure_app(cls, app: Any) -> None:
        """Copy the Flask-relevant settings onto ``app.config``."""
        app.config.update(
            SECRET_KEY=cls.SECRET_KEY,
            ENV=cls.APP_ENV,
            DEBUG=cls.DEBUG,
            TESTING=cls.TESTING,
            SQLALCHEMY_DATABASE_URI=cls.DATABASE_URL,
            SQLALCHEMY_ECHO=cls.SQL_ECHO,
            STRUCTURED_LOGS_ENABLED=cls.STRUCTURED_LOGS_ENABLED,
            ORDER_NOTIFIER_ENABLED=cls.ORDER_NOTIFIER_ENABLED,
            ORDER_ALERT_DURATION_MS=cls.ORDER_ALERT_DURATION_MS,
        )
