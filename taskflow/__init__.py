"""
TaskFlow
Flask Application Factory.

Usage:
    from taskflow import create_app
    app = create_app()           # defaults to APP_ENV, else "development"
    app = create_app("testing")  # explicit config
"""

import logging
import os

from flask import Flask, abort, request
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_migrate import Migrate
from sqlalchemy import engine as _sa_engine
from sqlalchemy import event as _sa_event
from werkzeug.exceptions import HTTPException

from taskflow.config import config
from taskflow.core.exceptions import TaskFlowError, ValidationError
from taskflow.datastore import DataStore
from taskflow.middleware.jwt_auth import init_jwt_middleware
from taskflow.middleware.logging_config import configure_logging
from taskflow.middleware.rate_limiter import init_rate_limits
from taskflow.middleware.timing import init_request_timing
from taskflow.models import db
from taskflow.utils.errors import E, api_error

logger = logging.getLogger(__name__)


# ── SQLite FK enforcement (global engine event) ─────────────────────────
@_sa_event.listens_for(_sa_engine.Engine, "connect")
def _enable_sqlite_fk(dbapi_conn, connection_record):
    """Enable foreign key enforcement for SQLite connections."""
    if "sqlite" in type(dbapi_conn).__module__:
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


migrate = Migrate()
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[],                     # per-blueprint limits only
)

_HTTP_CODES = {
    404: E.NOT_FOUND,
    405: E.METHOD_NOT_ALLOWED,
    413: E.PAYLOAD_TOO_LARGE,
    415: E.UNSUPPORTED_MEDIA,
    429: E.RATE_LIMITED,
}


def _register_error_handlers(app):
    """Map domain exceptions and HTTP errors onto the standard error body."""

    @app.errorhandler(TaskFlowError)
    def _domain_error(exc):
        db.session.rollback()
        if exc.status_code >= 500:
            logger.error("Unhandled domain error: %s", exc.message, exc_info=exc)
        elif exc.status_code != 404:
            logger.info("%s on %s %s: %s", type(exc).__name__, request.method, request.path, exc.message)
        errors = exc.errors if isinstance(exc, ValidationError) else None
        return api_error(exc.code, exc.message, status=exc.status_code, errors=errors)

    @app.errorhandler(HTTPException)
    def _http_error(exc):
        code = _HTTP_CODES.get(exc.code)
        if code is None:
            return exc
        message = exc.description if exc.code in (413, 415) else {
            404: f"Route {request.path} not found",
            405: "Method not allowed",
            429: "Too many requests, please try again later",
        }[exc.code]
        return api_error(code, message, status=exc.code)

    @app.errorhandler(Exception)
    def _server_error(exc):
        db.session.rollback()
        logger.error("500 error on %s %s: %s", request.method, request.path, exc, exc_info=True)
        details = {"error": str(exc)} if app.debug else None
        return api_error(E.INTERNAL, "Internal server error", details=details)


def create_app(config_name=None):
    """
    Create and configure the Flask application.

    Args:
        config_name: Configuration environment name.
                     One of: "development", "testing", "production".
                     Defaults to APP_ENV env var, or "development" if unset.

    Returns:
        Configured Flask application instance.
    """
    if config_name is None:
        config_name = os.getenv("APP_ENV", "development")

    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(config[config_name]())

    # ── Structured logging (must be first) ───────────────────────────────
    configure_logging(app)

    # ── Extensions ───────────────────────────────────────────────────────
    db.init_app(app)
    migrate.init_app(app, db)
    limiter.init_app(app)
    cors_origins = app.config.get("CORS_ORIGINS", "*")
    if cors_origins and cors_origins != "*":
        CORS(app, origins=[o.strip() for o in cors_origins.split(",") if o.strip()])
    else:
        CORS(app)

    # ── Request timing middleware ────────────────────────────────────────
    init_request_timing(app)

    # ── JWT auth middleware ──────────────────────────────────────────────
    init_jwt_middleware(app)

    # ── Request guards (input length + Content-Type) ─────────────────────
    @app.before_request
    def _guard_request():
        max_len = app.config.get("MAX_CONTENT_LENGTH")
        if max_len and request.content_length and request.content_length > max_len:
            abort(413, description="Request body too large")
        if request.method in ("POST", "PUT", "PATCH") and request.path.startswith("/api/"):
            ct = request.content_type or ""
            if request.data and "json" not in ct:
                abort(415, description="Content-Type must be application/json")

    # ── Import all models so Alembic can detect them ─────────────────────
    from taskflow.models import comment as _comment_models  # noqa: F401
    from taskflow.models import project as _project_models  # noqa: F401
    from taskflow.models import task as _task_models        # noqa: F401
    from taskflow.models import user as _user_models        # noqa: F401

    if config_name == "development":
        os.makedirs(os.path.join(os.path.dirname(app.root_path), "instance"), exist_ok=True)

    # ── Data store lifecycle (connect + CREATE IF NOT EXISTS at startup) ──
    DataStore(app)

    # ── Blueprints ───────────────────────────────────────────────────────
    from taskflow.blueprints import all_blueprints

    for bp in all_blueprints():
        app.register_blueprint(bp)

    _register_error_handlers(app)
    init_rate_limits(app, limiter)

    logger.info("TaskFlow app created (env=%s)", config_name)
    return app
