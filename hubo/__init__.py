"""
Hubo
Flask application factory.

    from hubo import create_app
    app = create_app()           # APP_ENV, default "development"
    app = create_app("testing")
"""

import logging
import os

from flask import Flask, request
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_migrate import Migrate
from sqlalchemy import event
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from hubo.config import config
from hubo.middleware.logging_config import configure_logging
from hubo.middleware.rate_limiter import init_rate_limits
from hubo.middleware.timing import init_request_timing
from hubo.models import db
from hubo.utils.errors import E, api_error

logger = logging.getLogger(__name__)

migrate = Migrate()
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[],
    storage_uri=os.getenv("REDIS_URL", "memory://"),
)


@event.listens_for(Engine, "connect")
def _sqlite_foreign_keys(dbapi_conn, connection_record):
    # task -> project and activity -> task cascades rely on FK enforcement
    if "sqlite" in type(dbapi_conn).__module__:
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


def create_app(config_name=None):
    """Build the app for ``config_name`` ("development", "testing", "production")."""
    config_name = config_name or os.getenv("APP_ENV", "development")

    app = Flask(__name__, instance_relative_config=True)
    # an instance, so ProductionConfig.__init__ can reject missing env vars
    app.config.from_object(config[config_name]())

    configure_logging(app)
    _init_extensions(app)
    init_request_timing(app)
    _create_tables(app)
    _register_blueprints(app)
    _register_app_error_handlers(app)
    init_rate_limits(app, limiter)

    logger.debug("Hubo app created config=%s", config_name)
    return app


def _init_extensions(app):
    uri = app.config["SQLALCHEMY_DATABASE_URI"]
    if uri.startswith("sqlite:///") and not app.testing:
        os.makedirs(os.path.dirname(uri[len("sqlite:///"):]), exist_ok=True)

    db.init_app(app)
    migrate.init_app(app, db)
    limiter.init_app(app)

    origins = app.config.get("CORS_ORIGINS", "*")
    if origins and origins != "*":
        CORS(app, origins=[o.strip() for o in origins.split(",") if o.strip()])
    else:
        CORS(app)


def _create_tables(app):
    # models must be imported for metadata and for `flask db migrate`
    from hubo.models import audit, project, task  # noqa: F401

    with app.app_context():
        try:
            db.create_all()
        except SQLAlchemyError as exc:
            logger.warning("db.create_all() failed: %s", exc)


def _register_blueprints(app):
    from hubo.blueprints.health_bp import health_bp
    from hubo.blueprints.progression_bp import progression_bp
    from hubo.blueprints.project_bp import project_bp
    from hubo.blueprints.task_bp import task_bp

    for bp in (project_bp, task_bp, progression_bp, health_bp):
        app.register_blueprint(bp)

    @app.route("/api/v1/health")
    def health():
        return {"status": "ok", "app": "Hubo"}


def _register_app_error_handlers(app):
    """Errors raised outside any blueprint use the same body as blueprint errors."""

    @app.errorhandler(404)
    def not_found(e):
        return api_error(E.NOT_FOUND, "Not found", details={"path": request.path})

    @app.errorhandler(405)
    def method_not_allowed(e):
        return api_error(E.METHOD_NOT_ALLOWED, "Method not allowed",
                         details={"method": request.method, "path": request.path})

    @app.errorhandler(429)
    def rate_limited(e):
        return api_error(E.RATE_LIMITED, "Too many requests", details={"limit": e.description})

    @app.errorhandler(500)
    def server_error(e):
        logger.error("500 error: %s", e, exc_info=True)
        return api_error(E.INTERNAL, "Internal server error")
