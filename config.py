"""
Application configuration.
This module defines the configuration settings for the Flask application, including database connection, secret key,
session lifetime and connection pool settings. It uses environment variables (optionally from a .env file) for
sensitive information and defaults for development. In production, make sure to set the appropriate environment
variables and secure the secret key.
"""

import os
from datetime import timedelta
from pathlib import Path

from dotenv import load_dotenv

BASE_DIR = Path(__file__).resolve().parent

load_dotenv(BASE_DIR / ".env")


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _engine_options(database_uri: str) -> dict:
    """Pool settings for server databases. SQLite keeps the driver defaults."""
    if database_uri.startswith("sqlite"):
        return {}
    return {
        "pool_size": int(os.environ.get("DB_POOL_SIZE", "10")),
        "max_overflow": int(os.environ.get("DB_MAX_OVERFLOW", "20")),
        # Seconds a request waits for a pooled connection before failing with 503
        "pool_timeout": int(os.environ.get("DB_POOL_TIMEOUT", "10")),
        "pool_pre_ping": True,
    }


class Config:
    """Base configuration shared by all environments."""

    # IMPORTANT: change this in production
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-change-me-please")

    # Database: SQLite for development (simple file in project folder)
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",
        f"sqlite:///{BASE_DIR / 'bizdash.db'}"
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = _engine_options(SQLALCHEMY_DATABASE_URI)

    # Server-held sessions (token cookie -> user_sessions row)
    PERMANENT_SESSION_LIFETIME = timedelta(hours=int(os.environ.get("SESSION_LIFETIME_HOURS", "24")))
    SESSION_COOKIE_HTTPONLY = True
    SESSION_COOKIE_SAMESITE = "Lax"
    SESSION_COOKIE_SECURE = _env_bool("SESSION_COOKIE_SECURE", False)

    # CSRF protection for cookie-authenticated mutations (X-CSRFToken header)
    WTF_CSRF_ENABLED = _env_bool("WTF_CSRF_ENABLED", True)

    # Unknown usernames on login become new accounts when enabled
    AUTO_REGISTER_ON_LOGIN = _env_bool("AUTO_REGISTER_ON_LOGIN", False)

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    APP_NAME = "Business Dashboard"


class TestConfig(Config):
    """Configuration used by the test suite."""

    TESTING = True
    SECRET_KEY = "test-secret"
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    SQLALCHEMY_ENGINE_OPTIONS = {}
    WTF_CSRF_ENABLED = False
    AUTO_REGISTER_ON_LOGIN = False
    LOG_LEVEL = "WARNING"
