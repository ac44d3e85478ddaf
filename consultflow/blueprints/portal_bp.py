"""
Client portal blueprint — read-only view for the client of a project.

Routes:
  GET  /api/v1/portal/projects/<pid>                                  – phases, status labels, deliverables
  GET  /api/v1/portal/projects/<pid>/phases/<n>/deliverable           – latest human version as .txt

Only ``human`` output versions are reachable from here.
"""

from __future__ import annotations

from flask import Blueprint, Response, jsonify

from consultflow.blueprints import current_tenant_id, register_error_handlers
from consultflow.services import portal_service

portal_bp = Blueprint("portal", __name__, url_prefix="/api/v1/portal")
register_error_handlers(portal_bp)


@portal_bp.route("/projects/<int:project_id>", methods=["GET"])
def project_deliverables(project_id):
    return jsonify(portal_service.get_project_deliverables(current_tenant_id(), project_id))


@portal_bp.route("/projects/<int:project_id>/phases/<int:phase_number>/deliverable",
                 methods=["GET"])
def download_deliverable(project_id, phase_number):
    file_name, data = portal_service.download_deliverable(current_tenant_id(), project_id, phase_number)
    return Response(
        data,
        mimetype="text/plain",
        headers={"Content-Disposition": f'attachment; filename="{file_name}"'},
    )
