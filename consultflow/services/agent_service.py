"""
Agent catalogue — CRUD for the LLM personas that can be bound to phases.
"""

from __future__ import annotations

import logging

from sqlalchemy import select

from consultflow.core.exceptions import ValidationError
from consultflow.models import db
from consultflow.models.agent import AGENT_STATUSES, Agent
from consultflow.services.helpers.scoped_queries import get_scoped

logger = logging.getLogger(__name__)


def _apply_fields(agent: Agent, data: dict) -> None:
    for field in ("name", "description", "persona", "instructions", "owner_id"):
        if field in data:
            value = data[field]
            setattr(agent, field, value.strip() if isinstance(value, str) else value)

    if "temperature" in data:
        try:
            temperature = float(data["temperature"])
        except (TypeError, ValueError):
            raise ValidationError("temperature must be a number",
                                  details={"temperature": data["temperature"]}) from None
        if not 0 <= temperature <= 2:
            raise ValidationError("temperature must be between 0 and 2",
                                  details={"temperature": temperature})
        agent.temperature = temperature

    if "model_config" in data:
        config = data["model_config"]
        if config is not None and not isinstance(config, dict):
            raise ValidationError("model_config must be an object",
                                  details={"model_config": type(config).__name__})
        agent.model_config = dict(config or {})

    if "status" in data:
        if data["status"] not in AGENT_STATUSES:
            raise ValidationError(
                f"status must be one of: {', '.join(AGENT_STATUSES)}",
                details={"status": data["status"]},
            )
        agent.status = data["status"]


def create_agent(tenant_id: int, data: dict, *, owner_id: str | None = None) -> dict:
    name = (data.get("name") or "").strip()
    if not name:
        raise ValidationError("name is required", details={"name": "required"})
    agent = Agent(tenant_id=tenant_id, owner_id=owner_id, model_config={})
    _apply_fields(agent, data)
    db.session.add(agent)
    db.session.commit()
    logger.info("Agent created", extra={"tenant_id": tenant_id, "agent_id": agent.id})
    return agent.to_dict()


def get_agent(tenant_id: int, agent_id: int) -> dict:
    return get_scoped(Agent, agent_id, tenant_id=tenant_id).to_dict()


def list_agents(tenant_id: int, *, status: str | None = None) -> list[dict]:
    stmt = select(Agent).where(Agent.tenant_id == tenant_id)
    if status:
        stmt = stmt.where(Agent.status == status)
    stmt = stmt.order_by(Agent.name)
    return [a.to_dict() for a in db.session.execute(stmt).scalars().all()]


def update_agent(tenant_id: int, agent_id: int, data: dict) -> dict:
    agent = get_scoped(Agent, agent_id, tenant_id=tenant_id)
    if "name" in data and not (data.get("name") or "").strip():
        raise ValidationError("name cannot be empty", details={"name": "required"})
    _apply_fields(agent, data)
    db.session.commit()
    logger.info("Agent updated", extra={"tenant_id": tenant_id, "agent_id": agent_id})
    return agent.to_dict()


def delete_agent(tenant_id: int, agent_id: int) -> None:
    """Delete an agent; phases bound to it are unbound by the FK (SET NULL)."""
    agent = get_scoped(Agent, agent_id, tenant_id=tenant_id)
    db.session.delete(agent)
    db.session.commit()
    logger.info("Agent deleted", extra={"tenant_id": tenant_id, "agent_id": agent_id})
