"""
ConsultFlow
Configuration classes for the Flask app factory.

Usage:
    config_name = os.getenv("APP_ENV", "development")
    app.config.from_object(config[config_name])
"""

import os
import secrets
import tempfile

basedir = os.path.abspath(os.path.dirname(os.path.dirname(__file__)))

_SQLITE_DEV = f"sqlite:///{os.path.join(basedir, 'instance', 'consultflow_dev.db')}"
_SQLITE_TEST = "sqlite:///:memory:"

# Production MUST use a stable SECRET_KEY from the environment
_DEV_SECRET = secrets.token_hex(32)


def _optional_float(name: str):
    raw = os.getenv(name, "").strip()
    return float(raw) if raw else None


def _database_url(default=None):
    # Heroku-style postgres:// URLs are rejected by SQLAlchemy 2.0
    raw = os.getenv("DATABASE_URL", "")
    return raw.replace("postgres://", "postgresql://", 1) if raw else default


class Config:
    """Base configuration shared across all environments."""

    SECRET_KEY = os.getenv("SECRET_KEY", _DEV_SECRET)
    DEBUG = False
    TESTING = False
    LOG_LEVEL = os.getenv("LOG_LEVEL")

    # SQLAlchemy
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = {
        "pool_pre_ping": True,
        "pool_recycle": 300,
    }

    # CORS
    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "*")

    # Request guard: attachments are capped at 20 MB in the service layer
    MAX_CONTENT_LENGTH = 25 * 1024 * 1024

    # Completion service (LLM gateway, SSE streaming)
    COMPLETION_SERVICE_URL = os.getenv("COMPLETION_SERVICE_URL", "http://localhost:8080/v1/chat")
    COMPLETION_SERVICE_KEY = os.getenv("COMPLETION_SERVICE_KEY", "")
    COMPLETION_CONNECT_TIMEOUT = float(os.getenv("COMPLETION_CONNECT_TIMEOUT", "10"))
    COMPLETION_READ_TIMEOUT = _optional_float("COMPLETION_READ_TIMEOUT")
    DEFAULT_AGENT_MODEL = os.getenv("DEFAULT_AGENT_MODEL") or None
    EXECUTION_WORKERS = int(os.getenv("EXECUTION_WORKERS", "4"))

    # Object storage
    OBJECT_STORAGE_ROOT = os.getenv("OBJECT_STORAGE_ROOT", os.path.join(basedir, "instance", "storage"))

    # Identity
    ELEVATED_ROLES = os.getenv("ELEVATED_ROLES", "admin")
    API_KEYS = os.getenv("API_KEYS", "")
    API_AUTH_ENABLED = os.getenv("API_AUTH_ENABLED", "true")

    # Rate limiting
    RATELIMIT_ENABLED = True
    EXECUTION_RATE_LIMIT = os.getenv("EXECUTION_RATE_LIMIT", "10/minute")


class DevelopmentConfig(Config):
    """Development environment configuration."""

    DEBUG = True
    SQLALCHEMY_DATABASE_URI = _database_url(_SQLITE_DEV)
    # Auth disabled by default in development for convenience
    API_AUTH_ENABLED = os.getenv("API_AUTH_ENABLED", "false")


class TestingConfig(Config):
    """Testing environment configuration."""

    TESTING = True
    SQLALCHEMY_DATABASE_URI = os.getenv("TEST_DATABASE_URL", _SQLITE_TEST)
    SQLALCHEMY_ENGINE_OPTIONS = {}
    API_AUTH_ENABLED = "false"
    RATELIMIT_ENABLED = False
    COMPLETION_SERVICE_URL = "http://completion.test/v1/chat"
    COMPLETION_SERVICE_KEY = "test-key"
    DEFAULT_AGENT_MODEL = None
    EXECUTION_WORKERS = 1
    OBJECT_STORAGE_ROOT = os.path.join(tempfile.gettempdir(), "consultflow-test-storage")


class ProductionConfig(Config):
    """Production environment configuration."""

    DEBUG = False
    SQLALCHEMY_DATABASE_URI = _database_url()
    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "")  # Must be set explicitly in production

    SQLALCHEMY_ENGINE_OPTIONS = {
        "pool_pre_ping": True,
        "pool_size": 5,
        "max_overflow": 10,
        "pool_recycle": 300,
        "pool_timeout": 20,
    }

    def __init__(self):
        if not self.SQLALCHEMY_DATABASE_URI:
            raise RuntimeError("DATABASE_URL environment variable is required in production")
        if not os.getenv("SECRET_KEY"):
            raise RuntimeError("SECRET_KEY environment variable must be set in production")


config = {
    "development": DevelopmentConfig,
    "testing": TestingConfig,
    "production": ProductionConfig,
    "default": DevelopmentConfig,
}
