"""
Health check blueprint.

Endpoints:
    GET /api/v1/health/ready  — simple 200 for load balancers
    GET /api/v1/health/live   — database, object storage and worker pool status
"""

import logging
import time

from flask import Blueprint, current_app, jsonify

from consultflow.ai.orchestrator import EXTENSION_KEY as ORCHESTRATOR_KEY
from consultflow.integrations.object_storage import EXTENSION_KEY as STORAGE_KEY
from consultflow.models import db

logger = logging.getLogger(__name__)

health_bp = Blueprint("health", __name__, url_prefix="/api/v1/health")


@health_bp.route("/ready", methods=["GET"])
def ready():
    """Readiness probe — always 200 if the app is running."""
    return jsonify({"status": "ok"}), 200


@health_bp.route("/live", methods=["GET"])
def live():
    """Liveness check with dependency status."""
    checks = {}
    overall = True

    try:
        t0 = time.perf_counter()
        db.session.execute(db.text("SELECT 1"))
        db_ms = (time.perf_counter() - t0) * 1000
        checks["database"] = {"status": "ok", "latency_ms": round(db_ms, 1)}
    except Exception as exc:
        db.session.rollback()
        checks["database"] = {"status": "error", "detail": str(exc)}
        overall = False
        logger.error("Health check — database failed: %s", exc)

    storage = current_app.extensions.get(STORAGE_KEY)
    checks["object_storage"] = {
        "status": "ok" if storage is not None else "not_configured",
        "backend": type(storage).__name__ if storage is not None else None,
    }

    orchestrator = current_app.extensions.get(ORCHESTRATOR_KEY)
    runner = getattr(orchestrator, "runner", None)
    checks["executions"] = {
        "status": "ok" if runner is not None else "not_configured",
        "running": len(runner.running_ids()) if runner is not None else 0,
        "completion_service_configured": bool(current_app.config.get("COMPLETION_SERVICE_URL")),
    }

    checks["app"] = {
        "name": "ConsultFlow",
        "debug": current_app.debug,
        "testing": current_app.testing,
    }

    status_code = 200 if overall else 503
    return jsonify({
        "status": "healthy" if overall else "degraded",
        "checks": checks,
    }), status_code
