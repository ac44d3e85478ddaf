"""
Sales funnel blueprint.

Routes:
  GET    /api/v1/leads                                   – list leads (?status=)
  POST   /api/v1/leads                                   – create lead
  GET    /api/v1/leads/<lead_id>                         – lead detail
  PUT    /api/v1/leads/<lead_id>                         – update qualification fields
  DELETE /api/v1/leads/<lead_id>                         – delete lead
  GET    /api/v1/funnel/board                            – kanban columns with progress
  POST   /api/v1/leads/<lead_id>/move                    – move card {target_phase}
  GET    /api/v1/leads/<lead_id>/checklist               – stored items + per-phase progress
  PUT    /api/v1/leads/<lead_id>/checklist/<phase>/<key> – toggle item {completed}
  GET    /api/v1/funnel/phases                           – phase order and checklist definitions

The tenant comes from the X-Tenant-Id header (middleware.tenant_context).
Service layer owns validation and commits.
"""

from __future__ import annotations

import logging

from flask import Blueprint, jsonify, request

from consultflow.auth import current_user_id
from consultflow.blueprints import current_tenant_id, json_body, register_error_handlers
from consultflow.core.funnel_config import DEFAULT_FUNNEL
from consultflow.services import checklist_service, funnel_board_service, lead_service

logger = logging.getLogger(__name__)

funnel_bp = Blueprint("funnel", __name__, url_prefix="/api/v1")
register_error_handlers(funnel_bp)


# ═════════════════════════════════════════════════════════════════════════
# Leads
# ═════════════════════════════════════════════════════════════════════════


@funnel_bp.route("/leads", methods=["GET"])
def list_leads():
    return jsonify(lead_service.list_leads(current_tenant_id(), status=request.args.get("status")))


@funnel_bp.route("/leads", methods=["POST"])
def create_lead():
    """Create a lead.

    Body: { company_name, tax_id?, sector?, revenue_range?, tax_regime?,
            icp_score?, has_budget?, has_authority?, has_need?, has_timeline?,
            pain_points?, notes?, deal_value?, probability?, status? }
    """
    data = json_body()
    if not (data.get("company_name") or "").strip():
        return jsonify({"error": "company_name is required"}), 400
    lead = lead_service.create_lead(current_tenant_id(), data,
                                    owner_id=data.get("owner_id") or current_user_id())
    return jsonify(lead), 201


@funnel_bp.route("/leads/<int:lead_id>", methods=["GET"])
def get_lead(lead_id):
    return jsonify(lead_service.get_lead(current_tenant_id(), lead_id))


@funnel_bp.route("/leads/<int:lead_id>", methods=["PUT"])
def update_lead(lead_id):
    return jsonify(lead_service.update_lead(current_tenant_id(), lead_id, json_body()))


@funnel_bp.route("/leads/<int:lead_id>", methods=["DELETE"])
def delete_lead(lead_id):
    lead_service.delete_lead(current_tenant_id(), lead_id)
    return jsonify({"deleted": True})


# ═════════════════════════════════════════════════════════════════════════
# Board
# ═════════════════════════════════════════════════════════════════════════


@funnel_bp.route("/funnel/phases", methods=["GET"])
def funnel_phases():
    return jsonify([
        {
            "phase": phase.key,
            "label": phase.label,
            "checklist": [
                {"item_key": d.item_key, "label": d.label, "locked": d.locked}
                for d in phase.checklist
            ],
        }
        for phase in DEFAULT_FUNNEL.all_phases
    ])


@funnel_bp.route("/funnel/board", methods=["GET"])
def board():
    return jsonify(funnel_board_service.get_board(current_tenant_id()))


@funnel_bp.route("/leads/<int:lead_id>/move", methods=["POST"])
def move_lead(lead_id):
    """Drop a lead card on another column.

    Body: { target_phase }
    Returns 200 with {"moved": bool, ...}; 422 GATE_BLOCKED when a checklist
    is incomplete, with blocking_phase and pending_items in details.
    """
    target_phase = (json_body().get("target_phase") or "").strip()
    if not target_phase:
        return jsonify({"error": "target_phase is required"}), 400
    result = funnel_board_service.move_lead(current_tenant_id(), lead_id, target_phase)
    if result["reason"] == "lead_not_found":
        return jsonify({"error": "Lead not found", **result}), 404
    return jsonify(result)


# ═════════════════════════════════════════════════════════════════════════
# Checklist
# ═════════════════════════════════════════════════════════════════════════


@funnel_bp.route("/leads/<int:lead_id>/checklist", methods=["GET"])
def get_checklist(lead_id):
    items = checklist_service.get_checklist(current_tenant_id(), lead_id)
    progress = {
        key: checklist_service.phase_progress(items, key, DEFAULT_FUNNEL)
        for key in DEFAULT_FUNNEL.active_keys
    }
    return jsonify({"items": items, "progress": progress})


@funnel_bp.route("/leads/<int:lead_id>/checklist/<phase>/<item_key>", methods=["PUT"])
def toggle_checklist_item(lead_id, phase, item_key):
    """Body: { completed: bool }"""
    data = json_body()
    if not isinstance(data.get("completed"), bool):
        return jsonify({"error": "completed must be a boolean"}), 400
    item = checklist_service.toggle_item(
        current_tenant_id(), lead_id, phase, item_key, data["completed"],
    )
    return jsonify({"completed": item is not None, "item": item})
