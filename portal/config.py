"""
Portal role/permission service
Configuration classes for the Flask App Factory.

Usage:
    config_name = os.getenv("APP_ENV", "development")
    app.config.from_object(config[config_name])
"""

import os

basedir = os.path.abspath(os.path.dirname(os.path.dirname(__file__)))

# Default SQLite path for local dev when no DATABASE_URL is set
_SQLITE_DEV = f"sqlite:///{os.path.join(basedir, 'instance', 'portal_dev.db')}"
_SQLITE_TEST = "sqlite:///:memory:"


def _split_csv(raw):
    return tuple(part.strip() for part in (raw or "").split(",") if part.strip())


def _normalise_db_url(raw):
    # Heroku-style URLs use postgres:// but SQLAlchemy 2.0 requires postgresql://
    return raw.replace("postgres://", "postgresql://", 1) if raw else raw


class Config:
    """Base configuration shared across all environments."""

    DEBUG = False
    TESTING = False

    # SQLAlchemy
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = {
        "pool_pre_ping": True,
        "pool_size": 5,
        "max_overflow": 10,
        "pool_recycle": 300,   # recycle connections every 5 min
        "pool_timeout": 20,    # wait max 20s for a connection from pool
    }

    # Users that pass every permission check
    SUPER_ADMINS = _split_csv(os.getenv("SUPER_ADMINS"))

    # Callable ``(user_id) -> UserInfo | None``; None means the users table
    USER_INFO_RESOLVER = None


class DevelopmentConfig(Config):
    """Development environment configuration."""

    DEBUG = True
    SQLALCHEMY_DATABASE_URI = _normalise_db_url(os.getenv("DATABASE_URL", "")) or _SQLITE_DEV
    SQLALCHEMY_ENGINE_OPTIONS = {"pool_pre_ping": True}


class TestingConfig(Config):
    """Testing environment configuration."""

    TESTING = True
    SQLALCHEMY_DATABASE_URI = os.getenv("TEST_DATABASE_URL", _SQLITE_TEST)
    # Pool sizing does not apply to the in-memory SQLite engine
    SQLALCHEMY_ENGINE_OPTIONS = {}
    SUPER_ADMINS = ()


class ProductionConfig(Config):
    """Production environment configuration."""

    DEBUG = False
    SQLALCHEMY_DATABASE_URI = _normalise_db_url(os.getenv("DATABASE_URL", "")) or None

    # Override engine options with PostgreSQL statement timeout
    SQLALCHEMY_ENGINE_OPTIONS = {
        "pool_pre_ping": True,
        "pool_size": 5,
        "max_overflow": 10,
        "pool_recycle": 300,
        "pool_timeout": 20,
        "connect_args": {
            "options": "-c statement_timeout=30000",  # 30s query timeout
        },
    }

    def __init__(self):
        if not self.SQLALCHEMY_DATABASE_URI:
            raise RuntimeError("DATABASE_URL environment variable is required in production")


# Configuration mapping: environment name -> config class
config = {
    "development": DevelopmentConfig,
    "testing": TestingConfig,
    "production": ProductionConfig,
    "default": DevelopmentConfig,
}
