"""
ConsultFlow
Flask Application Factory.

Usage:
    from consultflow import create_app
    app = create_app()           # defaults to APP_ENV or "development"
    app = create_app("testing")  # explicit config
"""

import logging
import os

from flask import Flask
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_migrate import Migrate
from sqlalchemy import engine as _sa_engine
from sqlalchemy import event as _sa_event

from consultflow.auth import init_auth
from consultflow.config import config
from consultflow.middleware.logging_config import configure_logging
from consultflow.middleware.tenant_context import init_tenant_context
from consultflow.middleware.timing import init_request_timing
from consultflow.models import db

logger = logging.getLogger(__name__)


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
    default_limits=[],
    storage_uri="memory://",
)


def create_app(config_name=None):
    """
    Create and configure the Flask application.

    Args:
        config_name: One of "development", "testing", "production".
                     Defaults to the APP_ENV env var, or "development".

    Returns:
        Configured Flask application instance.
    """
    if config_name is None:
        config_name = os.getenv("APP_ENV", "development")

    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(config[config_name]())
    os.makedirs(app.instance_path, exist_ok=True)

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

    # ── Request middleware (order matters: timing → auth → tenant) ───────
    init_request_timing(app)
    init_auth(app)
    init_tenant_context(app)

    # ── Models (registered on db.metadata for create_all / migrations) ──
    from consultflow.models import agent as _agent_models        # noqa: F401
    from consultflow.models import base as _base_models          # noqa: F401
    from consultflow.models import delivery as _delivery_models  # noqa: F401
    from consultflow.models import funnel as _funnel_models      # noqa: F401

    with app.app_context():
        db.create_all()
        app.logger.debug("db.create_all() completed")

    # ── Collaborators ────────────────────────────────────────────────────
    from consultflow.ai.orchestrator import init_orchestrator
    from consultflow.integrations.object_storage import init_storage

    init_storage(app)
    init_orchestrator(app)

    # ── Blueprints ───────────────────────────────────────────────────────
    from consultflow.blueprints.agent_bp import agent_bp
    from consultflow.blueprints.delivery_bp import delivery_bp
    from consultflow.blueprints.funnel_bp import funnel_bp
    from consultflow.blueprints.health_bp import health_bp
    from consultflow.blueprints.portal_bp import portal_bp
    from consultflow.blueprints.tenant_bp import tenant_bp

    app.register_blueprint(health_bp)
    app.register_blueprint(tenant_bp)
    app.register_blueprint(funnel_bp)
    app.register_blueprint(agent_bp)
    app.register_blueprint(delivery_bp)
    app.register_blueprint(portal_bp)
    limiter.exempt(health_bp)

    # ── App-level error handlers ─────────────────────────────────────────
    @app.errorhandler(404)
    def not_found(e):
        from flask import request
        return {"error": "Not found", "path": request.path}, 404

    @app.errorhandler(405)
    def method_not_allowed(e):
        return {"error": "Method not allowed"}, 405

    @app.errorhandler(413)
    def too_large(e):
        return {"error": "Request body too large"}, 413

    @app.errorhandler(429)
    def rate_limited(e):
        return {"error": "Too many requests", "retry_after": e.description}, 429

    return app
