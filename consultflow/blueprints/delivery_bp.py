"""
Delivery pipeline blueprint.

Routes (all under /api/v1):
  Projects
    GET    /projects                                          – list (?lead_id=)
    POST   /projects                                          – create {name, lead_id}
    GET    /projects/<pid>                                    – detail with phases
    PUT    /projects/<pid>                                    – update
    POST   /projects/<pid>/pipeline                           – create the seven phase rows
  Phases
    GET    /projects/<pid>/phases                             – list phases
    GET    /projects/<pid>/phases/<n>                         – phase detail + latest outputs
    PUT    /projects/<pid>/phases/<n>/agent                   – bind/clear agent {agent_id|null}
    POST   /projects/<pid>/phases/<n>/start                   – not_started → in_progress
    POST   /projects/<pid>/phases/<n>/review                  – in_progress → review
    POST   /projects/<pid>/phases/<n>/reopen                  – review → in_progress
    POST   /projects/<pid>/phases/<n>/approve                 – approval gate
  Executions
    POST   /projects/<pid>/phases/<n>/execute                 – run bound agent (202; ?wait=true blocks)
    GET    /projects/<pid>/executions                         – run history (?phase_number=)
    GET    /projects/<pid>/executions/<eid>                   – one run
  Outputs
    GET    /projects/<pid>/phases/<n>/outputs                 – versions newest first (?version_type=)
    GET    /projects/<pid>/phases/<n>/outputs/latest          – {"ai", "human"}
    POST   /projects/<pid>/phases/<n>/outputs                 – save a human version {content}
  Conversation
    GET    /projects/<pid>/phases/<n>/messages                – turns, oldest first
    DELETE /projects/<pid>/phases/<n>/messages                – reset
  Attachments
    GET    /projects/<pid>/attachments                        – list (?phase=)
    POST   /projects/<pid>/attachments                        – multipart upload (file, phase?, description?)
    GET    /projects/<pid>/attachments/<aid>                  – download
    DELETE /projects/<pid>/attachments/<aid>                  – delete
    GET    /files/<key>                                       – raw object for a storage key

The acting user comes from X-User-Id / X-User-Roles (consultflow.auth).
"""

from __future__ import annotations

import io
import logging

from flask import Blueprint, current_app, jsonify, request, send_file

from consultflow import limiter
from consultflow.ai.orchestrator import get_execution, get_orchestrator, list_executions
from consultflow.auth import current_user_id, is_elevated
from consultflow.blueprints import current_tenant_id, json_body, register_error_handlers
from consultflow.integrations.object_storage import get_storage
from consultflow.services import (
    approval_service,
    attachment_service,
    conversation_service,
    delivery_service,
    output_service,
    project_service,
)

logger = logging.getLogger(__name__)

delivery_bp = Blueprint("delivery", __name__, url_prefix="/api/v1")
register_error_handlers(delivery_bp)


def _execution_rate_limit() -> str:
    return current_app.config.get("EXECUTION_RATE_LIMIT", "10/minute")


# ═════════════════════════════════════════════════════════════════════════
# Projects
# ═════════════════════════════════════════════════════════════════════════


@delivery_bp.route("/projects", methods=["GET"])
def list_projects():
    return jsonify(project_service.list_projects(
        current_tenant_id(), lead_id=request.args.get("lead_id", type=int),
    ))


@delivery_bp.route("/projects", methods=["POST"])
def create_project():
    """Body: { name, lead_id, description?, owner_id? }"""
    data = json_body()
    if not (data.get("name") or "").strip():
        return jsonify({"error": "name is required"}), 400
    if not data.get("lead_id"):
        return jsonify({"error": "lead_id is required"}), 400
    project = project_service.create_project(current_tenant_id(), data, owner_id=current_user_id())
    return jsonify(project), 201


@delivery_bp.route("/projects/<int:project_id>", methods=["GET"])
def get_project(project_id):
    return jsonify(project_service.get_project(current_tenant_id(), project_id, include_phases=True))


@delivery_bp.route("/projects/<int:project_id>", methods=["PUT"])
def update_project(project_id):
    return jsonify(project_service.update_project(current_tenant_id(), project_id, json_body()))


@delivery_bp.route("/projects/<int:project_id>/pipeline", methods=["POST"])
def init_pipeline(project_id):
    phases = delivery_service.init_pipeline(current_tenant_id(), project_id)
    return jsonify(phases), 201


# ═════════════════════════════════════════════════════════════════════════
# Phases
# ═════════════════════════════════════════════════════════════════════════


@delivery_bp.route("/projects/<int:project_id>/phases", methods=["GET"])
def list_phases(project_id):
    return jsonify(delivery_service.list_phases(current_tenant_id(), project_id))


@delivery_bp.route("/projects/<int:project_id>/phases/<int:phase_number>", methods=["GET"])
def get_phase(project_id, phase_number):
    tenant_id = current_tenant_id()
    detail = delivery_service.get_phase_detail(tenant_id, project_id, phase_number)
    detail["latest_outputs"] = output_service.latest_outputs(tenant_id, project_id, phase_number)
    return jsonify(detail)


@delivery_bp.route("/projects/<int:project_id>/phases/<int:phase_number>/agent", methods=["PUT"])
def assign_agent(project_id, phase_number):
    """Body: { agent_id: int | null }"""
    data = json_body()
    if "agent_id" not in data:
        return jsonify({"error": "agent_id is required (null clears the binding)"}), 400
    agent_id = data["agent_id"]
    if agent_id is not None and (isinstance(agent_id, bool) or not isinstance(agent_id, int)):
        return jsonify({"error": "agent_id must be an integer or null"}), 400
    phase = delivery_service.assign_agent(current_tenant_id(), project_id, phase_number, agent_id)
    return jsonify(phase)


@delivery_bp.route("/projects/<int:project_id>/phases/<int:phase_number>/start", methods=["POST"])
def start_phase(project_id, phase_number):
    return jsonify(delivery_service.start_phase(current_tenant_id(), project_id, phase_number))


@delivery_bp.route("/projects/<int:project_id>/phases/<int:phase_number>/review", methods=["POST"])
def submit_for_review(project_id, phase_number):
    return jsonify(delivery_service.submit_for_review(current_tenant_id(), project_id, phase_number))


@delivery_bp.route("/projects/<int:project_id>/phases/<int:phase_number>/reopen", methods=["POST"])
def reopen_phase(project_id, phase_number):
    return jsonify(delivery_service.reopen_phase(current_tenant_id(), project_id, phase_number))


@delivery_bp.route("/projects/<int:project_id>/phases/<int:phase_number>/approve", methods=["POST"])
def approve_phase(project_id, phase_number):
    """Approve as the acting user.  Owner or elevated role required."""
    result = approval_service.approve_phase(
        current_tenant_id(), project_id, phase_number,
        approver_id=current_user_id(),
        is_elevated=is_elevated(),
    )
    return jsonify(result)


# ═════════════════════════════════════════════════════════════════════════
# Executions
# ═════════════════════════════════════════════════════════════════════════


@delivery_bp.route("/projects/<int:project_id>/phases/<int:phase_number>/execute", methods=["POST"])
@limiter.limit(_execution_rate_limit)
def execute_phase(project_id, phase_number):
    """Run the phase's bound agent.

    Body: { prompt? }  — overrides the default phase instruction
    Query: wait=true   — stream inline and return the terminal run (200 / 502)

    Default: the run record is created now and streamed on the worker pool;
    returns 202 with the ``running`` record to poll.
    """
    tenant_id = current_tenant_id()
    prompt = (json_body().get("prompt") or "").strip() or None
    orchestrator = get_orchestrator()

    if request.args.get("wait", "").lower() in ("1", "true", "yes"):
        result = orchestrator.run(tenant_id, project_id, phase_number,
                                  requested_by=current_user_id(), prompt=prompt)
        return jsonify(result), 200

    execution, _future = orchestrator.submit(tenant_id, project_id, phase_number,
                                             requested_by=current_user_id(), prompt=prompt)
    response = jsonify({"execution": execution})
    response.headers["Location"] = f"/api/v1/projects/{project_id}/executions/{execution['id']}"
    return response, 202


@delivery_bp.route("/projects/<int:project_id>/executions", methods=["GET"])
def executions(project_id):
    return jsonify(list_executions(
        current_tenant_id(), project_id, phase_number=request.args.get("phase_number", type=int),
    ))


@delivery_bp.route("/projects/<int:project_id>/executions/<int:execution_id>", methods=["GET"])
def execution_detail(project_id, execution_id):
    return jsonify(get_execution(current_tenant_id(), project_id, execution_id))


# ═════════════════════════════════════════════════════════════════════════
# Outputs
# ═════════════════════════════════════════════════════════════════════════


@delivery_bp.route("/projects/<int:project_id>/phases/<int:phase_number>/outputs", methods=["GET"])
def list_outputs(project_id, phase_number):
    return jsonify(output_service.list_outputs(
        current_tenant_id(), project_id, phase_number,
        version_type=request.args.get("version_type"),
    ))


@delivery_bp.route("/projects/<int:project_id>/phases/<int:phase_number>/outputs/latest",
                   methods=["GET"])
def latest_outputs(project_id, phase_number):
    return jsonify(output_service.latest_outputs(current_tenant_id(), project_id, phase_number))


@delivery_bp.route("/projects/<int:project_id>/phases/<int:phase_number>/outputs", methods=["POST"])
def save_human_output(project_id, phase_number):
    """Save a consultant-edited version.  Body: { content }

    ``ai`` versions are only written by the execution orchestrator.
    """
    content = json_body().get("content")
    if not isinstance(content, str) or not content.strip():
        return jsonify({"error": "content is required"}), 400
    output = output_service.save_output(
        current_tenant_id(), project_id, phase_number, "human", content,
        created_by=current_user_id(),
    )
    return jsonify(output), 201


# ═════════════════════════════════════════════════════════════════════════
# Conversation
# ═════════════════════════════════════════════════════════════════════════


@delivery_bp.route("/projects/<int:project_id>/phases/<int:phase_number>/messages", methods=["GET"])
def list_messages(project_id, phase_number):
    return jsonify(conversation_service.list_messages(current_tenant_id(), project_id, phase_number))


@delivery_bp.route("/projects/<int:project_id>/phases/<int:phase_number>/messages",
                   methods=["DELETE"])
def reset_messages(project_id, phase_number):
    removed = conversation_service.reset_conversation(current_tenant_id(), project_id, phase_number)
    return jsonify({"deleted": removed})


# ═════════════════════════════════════════════════════════════════════════
# Attachments
# ═════════════════════════════════════════════════════════════════════════


@delivery_bp.route("/projects/<int:project_id>/attachments", methods=["GET"])
def list_attachments(project_id):
    return jsonify(attachment_service.list_attachments(
        current_tenant_id(), project_id, phase=request.args.get("phase", type=int),
    ))


@delivery_bp.route("/projects/<int:project_id>/attachments", methods=["POST"])
def upload_attachment(project_id):
    """Multipart form: file (required), phase?, description?"""
    upload = request.files.get("file")
    if upload is None or not upload.filename:
        return jsonify({"error": "file is required"}), 400
    attachment = attachment_service.upload(
        current_tenant_id(), project_id, upload.filename, upload.read(),
        uploaded_by=current_user_id(),
        content_type=upload.mimetype,
        phase=request.form.get("phase", type=int),
        description=request.form.get("description"),
    )
    return jsonify(attachment), 201


@delivery_bp.route("/projects/<int:project_id>/attachments/<int:attachment_id>", methods=["GET"])
def download_attachment(project_id, attachment_id):
    meta, data = attachment_service.download(current_tenant_id(), project_id, attachment_id)
    return send_file(
        io.BytesIO(data),
        mimetype=meta.get("content_type") or "application/octet-stream",
        as_attachment=True,
        download_name=meta["file_name"],
    )


@delivery_bp.route("/projects/<int:project_id>/attachments/<int:attachment_id>",
                   methods=["DELETE"])
def delete_attachment(project_id, attachment_id):
    attachment_service.delete(current_tenant_id(), project_id, attachment_id)
    return jsonify({"deleted": True})


@delivery_bp.route("/files/<path:key>", methods=["GET"])
def raw_file(key):
    """Serve a stored object; keys outside the caller's tenant are 404."""
    if not key.startswith(f"{current_tenant_id()}/"):
        return jsonify({"error": "File not found"}), 404
    data = get_storage().get(key)
    return send_file(io.BytesIO(data), mimetype="application/octet-stream",
                     as_attachment=True, download_name=key.rsplit("/", 1)[-1])
