"""
Agent catalogue blueprint.

Routes:
  GET    /api/v1/agents              – list agents (?status=)
  POST   /api/v1/agents              – create agent
  GET    /api/v1/agents/<agent_id>   – agent detail
  PUT    /api/v1/agents/<agent_id>   – update agent
  DELETE /api/v1/agents/<agent_id>   – delete agent (bound phases are unbound)
"""

from __future__ import annotations

import logging

from flask import Blueprint, jsonify, request

from consultflow.auth import current_user_id, require_role
from consultflow.blueprints import current_tenant_id, json_body, register_error_handlers
from consultflow.services import agent_service

logger = logging.getLogger(__name__)

agent_bp = Blueprint("agents", __name__, url_prefix="/api/v1/agents")
register_error_handlers(agent_bp)


@agent_bp.route("", methods=["GET"])
def list_agents():
    return jsonify(agent_service.list_agents(current_tenant_id(), status=request.args.get("status")))


@agent_bp.route("", methods=["POST"])
def create_agent():
    """Create an agent.

    Body: { name, description?, persona?, instructions?, temperature?,
            model_config?: {"model": "<identifier>", ...}, status? }
    """
    data = json_body()
    if not (data.get("name") or "").strip():
        return jsonify({"error": "name is required"}), 400
    agent = agent_service.create_agent(current_tenant_id(), data, owner_id=current_user_id())
    return jsonify(agent), 201


@agent_bp.route("/<int:agent_id>", methods=["GET"])
def get_agent(agent_id):
    return jsonify(agent_service.get_agent(current_tenant_id(), agent_id))


@agent_bp.route("/<int:agent_id>", methods=["PUT"])
def update_agent(agent_id):
    return jsonify(agent_service.update_agent(current_tenant_id(), agent_id, json_body()))


@agent_bp.route("/<int:agent_id>", methods=["DELETE"])
@require_role("editor")
def delete_agent(agent_id):
    agent_service.delete_agent(current_tenant_id(), agent_id)
    return jsonify({"deleted": True})
