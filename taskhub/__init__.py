"""
TaskHub
Flask Application Factory.

Usage:
    from taskhub import create_app
    app = create_app()           # defaults to "development"
    app = create_app("testing")  # explicit config
"""

import logging
import os

from flask import Flask
from flask_cors import CORS
from flask_migrate import Migrate

from taskhub.config import config
from taskhub.core.exceptions import (
    ConfirmationRequiredError,
    ConstraintMigrationError,
    NotFoundError,
    PersistenceDisabledError,
    RemediationBlockedError,
    TenantContextError,
    TenantContextMissingError,
    ValidationError,
)
from taskhub.middleware.diagnostics import run_startup_diagnostics
from taskhub.middleware.jwt_auth import init_jwt_middleware
from taskhub.middleware.logging_config import configure_logging
from taskhub.middleware.tenant_context import init_tenant_context
from taskhub.middleware.timing import init_request_timing
from taskhub.models import db
from taskhub.services.enforcement import EnforcementModeController, init_tenancy_warn_header
from taskhub.services.health_tracker import build_health_tracker
from taskhub.utils.errors import E, api_error

logger = logging.getLogger(__name__)

# ── SQLite engine events (global) ───────────────────────────────────────
# Foreign keys on, and pysqlite's implicit transaction handling replaced by
# an explicit BEGIN so DDL takes part in transactions and rolls back.
from sqlalchemy import event as _sa_event, engine as _sa_engine

_SQLITE_FK_ENFORCEMENT = True


@_sa_event.listens_for(_sa_engine.Engine, "connect")
def _configure_sqlite(dbapi_conn, connection_record):
    """Enable foreign keys and transactional DDL for SQLite connections."""
    if "sqlite" in type(dbapi_conn).__module__:
        dbapi_conn.isolation_level = None
        cursor = dbapi_conn.cursor()
        cursor.execute(f"PRAGMA foreign_keys={'ON' if _SQLITE_FK_ENFORCEMENT else 'OFF'}")
        cursor.close()


@_sa_event.listens_for(_sa_engine.Engine, "begin")
def _sqlite_begin(conn):
    if conn.dialect.name == "sqlite":
        conn.exec_driver_sql("BEGIN")


migrate = Migrate()


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
    # ProductionConfig validates the environment in __init__
    app.config.from_object(config[config_name]())

    # ── Structured logging (must be first) ───────────────────────────────
    configure_logging(app)

    # ── Extensions ───────────────────────────────────────────────────────
    db.init_app(app)
    migrate.init_app(app, db)
    cors_origins = app.config.get("CORS_ORIGINS", "*")
    if cors_origins and cors_origins != "*":
        CORS(app, origins=[o.strip() for o in cors_origins.split(",") if o.strip()])
    else:
        CORS(app)

    # ── Tenancy services ─────────────────────────────────────────────────
    health = build_health_tracker(
        persist=app.config.get("TENANCY_WARN_PERSIST", False),
        buffer_size=app.config.get("TENANCY_WARN_BUFFER_SIZE", 1000),
    )
    app.extensions["tenancy_health"] = health
    app.extensions["tenancy_enforcement"] = EnforcementModeController(
        app.config.get("TENANCY_ENFORCEMENT"), health,
    )

    # ── Request pipeline ─────────────────────────────────────────────────
    init_request_timing(app)
    init_jwt_middleware(app)
    init_tenant_context(app)
    init_tenancy_warn_header(app)

    # ── Import all models so Alembic can detect them ─────────────────────
    from taskhub.models import auth as _auth_models          # noqa: F401
    from taskhub.models import work as _work_models          # noqa: F401
    from taskhub.models import tenancy as _tenancy_models    # noqa: F401
    from taskhub.models import audit as _audit_models        # noqa: F401

    with app.app_context():
        if app.config.get("SQLALCHEMY_DATABASE_URI", "").startswith("sqlite"):
            os.makedirs(app.instance_path, exist_ok=True)
            db.create_all()

    # ── Blueprints ───────────────────────────────────────────────────────
    from taskhub.blueprints.health_bp import health_bp
    from taskhub.blueprints.tenancy_bp import tenancy_bp, tenant_tenancy_bp

    app.register_blueprint(health_bp)
    app.register_blueprint(tenancy_bp)
    app.register_blueprint(tenant_tenancy_bp)

    _register_error_handlers(app)

    # ── Startup diagnostics ──────────────────────────────────────────────
    run_startup_diagnostics(app)

    return app


def _register_error_handlers(app):
    @app.errorhandler(NotFoundError)
    def _not_found(e):
        return api_error(E.NOT_FOUND, f"{e.resource} not found")

    @app.errorhandler(ValidationError)
    def _validation(e):
        return api_error(E.VALIDATION_INVALID, str(e), details=e.details)

    @app.errorhandler(ConfirmationRequiredError)
    def _confirmation(e):
        return api_error(E.CONFIRMATION_REQUIRED, str(e),
                         details={"operation": e.operation, "hint": e.hint})

    @app.errorhandler(TenantContextError)
    def _tenant_context_required(e):
        return api_error(E.TENANT_CONTEXT_REQUIRED, str(e))

    @app.errorhandler(TenantContextMissingError)
    def _tenant_context_missing(e):
        return api_error(E.TENANT_CONTEXT_MISSING, str(e))

    @app.errorhandler(RemediationBlockedError)
    def _blocked(e):
        return api_error(E.REMEDIATION_BLOCKED, str(e), details={"blocked": e.blocked})

    @app.errorhandler(ConstraintMigrationError)
    def _migration_failed(e):
        return api_error(E.TRANSACTION_FAILED, str(e),
                         details={"table": e.table, "db_message": e.db_message})

    @app.errorhandler(PersistenceDisabledError)
    def _persistence_disabled(e):
        return api_error(E.NOT_IMPLEMENTED, str(e))

    @app.errorhandler(404)
    def _route_not_found(e):
        return api_error(E.NOT_FOUND, "Not found")

    @app.errorhandler(405)
    def _method_not_allowed(e):
        return {"error": "Method not allowed"}, 405

    @app.errorhandler(500)
    def _server_error(e):
        logger.error("500 error: %s", e, exc_info=True)
        return api_error(E.INTERNAL, "Internal server error")
