"""
Tenant administration blueprint.

Routes:
  GET   /api/v1/tenants            – list tenants
  POST  /api/v1/tenants            – create {name, slug}
  PUT   /api/v1/tenants/<tid>      – activate / deactivate {is_active}

Not tenant-scoped; requires the ``admin`` API key role.
"""

from __future__ import annotations

from flask import Blueprint, jsonify

from consultflow.auth import require_role
from consultflow.blueprints import json_body, register_error_handlers
from consultflow.services import tenant_service

tenant_bp = Blueprint("tenants", __name__, url_prefix="/api/v1/tenants")
register_error_handlers(tenant_bp)


@tenant_bp.route("", methods=["GET"])
@require_role("admin")
def list_tenants():
    return jsonify(tenant_service.list_tenants())


@tenant_bp.route("", methods=["POST"])
@require_role("admin")
def create_tenant():
    data = json_body()
    return jsonify(tenant_service.create_tenant(data.get("name"), data.get("slug"))), 201


@tenant_bp.route("/<int:tenant_id>", methods=["PUT"])
@require_role("admin")
def update_tenant(tenant_id):
    data = json_body()
    if not isinstance(data.get("is_active"), bool):
        return jsonify({"error": "is_active must be a boolean"}), 400
    return jsonify(tenant_service.set_active(tenant_id, data["is_active"]))
