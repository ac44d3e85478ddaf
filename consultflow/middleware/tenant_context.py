"""
Tenant context middleware.

Every tenant-scoped API request names its tenant, either in the X-Tenant-Id
header or as a ``tenant_id`` query parameter.  The tenant must exist and be
active; its id is stored on ``g.tenant_id`` and blueprints pass it as the
first argument of every service call.

Chain order:
    auth.py  →  tenant_context.py  →  route handler
"""

import logging

from flask import g, jsonify, request

from consultflow.models import db
from consultflow.models.base import Tenant

logger = logging.getLogger(__name__)

TENANT_SKIP_PREFIXES = (
    "/api/v1/health",
    "/api/v1/tenants",
)


def _requested_tenant_id():
    raw = request.headers.get("X-Tenant-Id") or request.args.get("tenant_id")
    if raw is None or str(raw).strip() == "":
        return None
    try:
        return int(raw)
    except (TypeError, ValueError):
        return False


def init_tenant_context(app):
    """Register the tenant resolver as a before_request hook."""

    @app.before_request
    def _tenant_context():
        g.tenant_id = None

        if not request.path.startswith("/api/v1/"):
            return None
        if request.method == "OPTIONS":
            return None
        for prefix in TENANT_SKIP_PREFIXES:
            if request.path.startswith(prefix):
                return None

        tenant_id = _requested_tenant_id()
        if tenant_id is None:
            return jsonify({"error": "X-Tenant-Id header is required"}), 400
        if tenant_id is False:
            return jsonify({"error": "X-Tenant-Id must be an integer"}), 400

        tenant = db.session.get(Tenant, tenant_id)
        if tenant is None or not tenant.is_active:
            logger.warning("Request for unknown or inactive tenant %s", tenant_id,
                           extra={"tenant_id": tenant_id})
            return jsonify({"error": "Tenant not found or inactive"}), 403

        g.tenant_id = tenant.id
        return None
