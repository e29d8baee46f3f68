"""
Employee Journey Engine
Configuration classes for Flask App Factory.

Usage:
    config_name = os.getenv("APP_ENV", "development")
    app.config.from_object(config[config_name])
"""

import os
import secrets

basedir = os.path.abspath(os.path.dirname(os.path.dirname(__file__)))

# Default SQLite path for local dev when PostgreSQL is not running
_SQLITE_DEV = f"sqlite:///{os.path.join(basedir, 'instance', 'journey_engine_dev.db')}"
_SQLITE_TEST = "sqlite:///:memory:"

# Generate a random key for development; production MUST use a stable env var
_DEV_SECRET = secrets.token_hex(32)

_POOL_OPTIONS = {
    "pool_pre_ping": True,
    "pool_size": 5,
    "max_overflow": 10,
    "pool_recycle": 300,   # recycle connections every 5 min
    "pool_timeout": 20,    # wait max 20s for a connection from pool
}


def _database_url(default=None):
    # Railway/Heroku use postgres:// but SQLAlchemy 2.0 requires postgresql://
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
    SQLALCHEMY_ENGINE_OPTIONS = dict(_POOL_OPTIONS)

    # Redis (rate-limit storage)
    REDIS_URL = os.getenv("REDIS_URL", "redis://localhost:6379/0")

    # CORS
    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "*")

    # Email / SMTP (optional; dev mode logs without sending)
    MAIL_SERVER = os.getenv("MAIL_SERVER")
    MAIL_PORT = int(os.getenv("MAIL_PORT", "587"))
    MAIL_USE_TLS = os.getenv("MAIL_USE_TLS", "true").lower() == "true"
    MAIL_USERNAME = os.getenv("MAIL_USERNAME")
    MAIL_PASSWORD = os.getenv("MAIL_PASSWORD")
    MAIL_DEFAULT_SENDER = os.getenv("MAIL_DEFAULT_SENDER", "noreply@journeys.local")

    # Journey engine
    JOURNEY_TX_MAX_ATTEMPTS = int(os.getenv("JOURNEY_TX_MAX_ATTEMPTS", "3"))
    JOURNEY_RENEW_EXISTING_EMPLOYEE_CYCLE = (
        os.getenv("JOURNEY_RENEW_EXISTING_EMPLOYEE_CYCLE", "true").lower() == "true"
    )
    JOURNEY_ACTIVITY_PAGE_SIZE = int(os.getenv("JOURNEY_ACTIVITY_PAGE_SIZE", "50"))

    # Assessment subsystem (unset → every assessment is accepted locally)
    ASSESSMENT_SERVICE_URL = os.getenv("ASSESSMENT_SERVICE_URL")
    ASSESSMENT_SERVICE_TOKEN = os.getenv("ASSESSMENT_SERVICE_TOKEN")
    ASSESSMENT_SERVICE_TIMEOUT = int(os.getenv("ASSESSMENT_SERVICE_TIMEOUT", "10"))

    # Bearer token expected on /api/v1/signals/* (unset → signals are open)
    SIGNAL_SHARED_SECRET = os.getenv("SIGNAL_SHARED_SECRET")


class DevelopmentConfig(Config):
    """Development environment configuration."""

    DEBUG = True
    SQLALCHEMY_DATABASE_URI = _database_url(_SQLITE_DEV)
    # SQLite does not take pool sizing options
    SQLALCHEMY_ENGINE_OPTIONS = (
        dict(_POOL_OPTIONS) if SQLALCHEMY_DATABASE_URI.startswith("postgresql") else {}
    )


class TestingConfig(Config):
    """Testing environment configuration."""

    TESTING = True
    SQLALCHEMY_DATABASE_URI = os.getenv("TEST_DATABASE_URL", _SQLITE_TEST)
    SQLALCHEMY_ENGINE_OPTIONS = {}
    RATELIMIT_ENABLED = False
    MAIL_SERVER = None
    ASSESSMENT_SERVICE_URL = None
    SIGNAL_SHARED_SECRET = None
    LOG_LEVEL = "WARNING"


class ProductionConfig(Config):
    """Production environment configuration."""

    DEBUG = False
    SQLALCHEMY_DATABASE_URI = _database_url()
    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "")  # Must be set explicitly in production

    # Override engine options with PostgreSQL statement timeout
    SQLALCHEMY_ENGINE_OPTIONS = {
        **_POOL_OPTIONS,
        "connect_args": {
            "options": "-c statement_timeout=30000 -c lock_timeout=5000",
        },
    }

    def __init__(self):
        if not self.SQLALCHEMY_DATABASE_URI:
            raise RuntimeError("DATABASE_URL environment variable is required in production")
        if not os.getenv("SECRET_KEY"):
            raise RuntimeError("SECRET_KEY environment variable must be set in production")


# Configuration mapping: environment name -> config class
config = {
    "development": DevelopmentConfig,
    "testing": TestingConfig,
    "production": ProductionConfig,
    "default": DevelopmentConfig,
}
