"""
Hubo configuration.

create_app() picks a class from ``config`` by name (APP_ENV, default
"development") and loads an instance of it, so ProductionConfig can refuse
to start without DATABASE_URL / SECRET_KEY.

Environment variables
---------------------
DATABASE_URL             PostgreSQL URL (``postgres://`` is accepted)
TEST_DATABASE_URL        database for the test suite (default in-memory SQLite)
SECRET_KEY               required in production
REDIS_URL                rate-limit storage (default ``memory://``)
CORS_ORIGINS             comma separated, ``*`` in development
TASK_GENERATOR_BACKEND   llm | http | none
TASK_GENERATOR_URL       endpoint for the http backend
TASK_GENERATOR_API_KEY   bearer token for the http backend
TASK_GENERATOR_TIMEOUT   seconds, single attempt
LLM_DEFAULT_CHAT_MODEL   model used by the llm backend
PROGRESSION_RATE_LIMIT   Flask-Limiter string for progression endpoints
CRUD_RATE_LIMIT          Flask-Limiter string for project/task endpoints
SLOW_REQUEST_MS          access-log WARNING threshold
"""

import os
import secrets

basedir = os.path.abspath(os.path.dirname(os.path.dirname(__file__)))


def _database_url(env_var, fallback=None):
    # SQLAlchemy 2.x only understands the postgresql:// scheme
    raw = os.getenv(env_var, "")
    return raw.replace("postgres://", "postgresql://", 1) if raw else fallback


class Config:
    SECRET_KEY = os.getenv("SECRET_KEY") or secrets.token_hex(32)
    DEBUG = False
    TESTING = False

    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = {"pool_pre_ping": True, "pool_recycle": 300}

    REDIS_URL = os.getenv("REDIS_URL", "memory://")
    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "*")

    # Task generation on stage advance
    TASK_GENERATOR_BACKEND = os.getenv("TASK_GENERATOR_BACKEND", "llm")
    TASK_GENERATOR_URL = os.getenv("TASK_GENERATOR_URL")
    TASK_GENERATOR_API_KEY = os.getenv("TASK_GENERATOR_API_KEY")
    TASK_GENERATOR_TIMEOUT = float(os.getenv("TASK_GENERATOR_TIMEOUT", "30"))
    LLM_DEFAULT_CHAT_MODEL = os.getenv("LLM_DEFAULT_CHAT_MODEL", "gemini-2.5-flash")

    PROGRESSION_RATE_LIMIT = os.getenv("PROGRESSION_RATE_LIMIT", "10/minute")
    CRUD_RATE_LIMIT = os.getenv("CRUD_RATE_LIMIT", "60/minute")
    SLOW_REQUEST_MS = int(os.getenv("SLOW_REQUEST_MS", "1000"))


class DevelopmentConfig(Config):
    DEBUG = True
    SQLALCHEMY_DATABASE_URI = _database_url(
        "DATABASE_URL", f"sqlite:///{os.path.join(basedir, 'instance', 'hubo_dev.db')}"
    )


class TestingConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = os.getenv("TEST_DATABASE_URL", "sqlite:///:memory:")
    SQLALCHEMY_ENGINE_OPTIONS = {}
    RATELIMIT_ENABLED = False
    # generation runs offline against the local stub model
    TASK_GENERATOR_BACKEND = "llm"
    LLM_DEFAULT_CHAT_MODEL = "local-stub"


class ProductionConfig(Config):
    SQLALCHEMY_DATABASE_URI = _database_url("DATABASE_URL")
    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "")
    SQLALCHEMY_ENGINE_OPTIONS = {
        "pool_pre_ping": True,
        "pool_size": 5,
        "max_overflow": 10,
        "pool_recycle": 300,
        "pool_timeout": 20,
        # statement timeout in ms, PostgreSQL only
        "connect_args": {"options": "-c statement_timeout=30000"},
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
