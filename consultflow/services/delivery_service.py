"""
Delivery pipeline — phase rows, agent binding and manual status moves.

Phase status lifecycle:
    not_started → in_progress → review → approved
                  (in_progress → approved directly is also allowed by the
                   approval gate; see approval_service)

Only approval_service writes ``approved``.  The engine does not force phases
to be worked in order: phase 5 can be started or executed while phase 1 is
still in progress.
"""

from __future__ import annotations

import logging

from flask import current_app
from sqlalchemy import select

from consultflow.ai.agent_config import AgentModelConfig
from consultflow.core.exceptions import ConflictError, ValidationError
from consultflow.core.phase_registry import DEFAULT_DELIVERY_PHASES, DeliveryPhaseRegistry
from consultflow.models import db
from consultflow.models.agent import Agent
from consultflow.models.delivery import Project, ProjectPhase
from consultflow.models.funnel import Lead
from consultflow.services.helpers.scoped_queries import get_phase, get_scoped, get_scoped_or_none

logger = logging.getLogger(__name__)

# Manual moves: from → allowed targets
PHASE_TRANSITIONS = {
    "not_started": {"in_progress"},
    "in_progress": {"review"},
    "review": {"in_progress"},
    "approved": set(),
}


def validate_phase_transition(current: str, target: str) -> dict:
    """Check a manual phase status move against PHASE_TRANSITIONS.

    Returns:
        {"valid": bool, "from": str, "to": str, "reason": str|None}
    """
    allowed = PHASE_TRANSITIONS.get(current, set())
    if target in allowed:
        return {"valid": True, "from": current, "to": target, "reason": None}
    return {
        "valid": False,
        "from": current,
        "to": target,
        "reason": f"Cannot move phase from '{current}' to '{target}'. "
                  f"Allowed: {sorted(allowed) or 'none'}",
    }


def init_pipeline(
    tenant_id: int,
    project_id: int,
    *,
    registry: DeliveryPhaseRegistry = DEFAULT_DELIVERY_PHASES,
) -> list[dict]:
    """Create one phase row per registry entry: phase 1 in_progress, rest not_started.

    Raises:
        NotFoundError: project not in tenant.
        ValidationError: the project's lead has not been won.
        ConflictError: the pipeline already exists.
    """
    project = get_scoped(Project, project_id, tenant_id=tenant_id)
    lead = get_scoped_or_none(Lead, project.lead_id, tenant_id=tenant_id) if project.lead_id else None
    if lead is None or lead.status != "won":
        raise ValidationError(
            "Delivery can only start for a project whose lead is won",
            details={"lead_id": project.lead_id, "lead_status": lead.status if lead else None},
        )

    existing = db.session.execute(
        select(ProjectPhase.id).where(
            ProjectPhase.tenant_id == tenant_id,
            ProjectPhase.project_id == project_id,
        ).limit(1)
    ).first()
    if existing:
        raise ConflictError("ProjectPhase", "project_id", str(project_id))

    rows = []
    for phase in registry:
        row = ProjectPhase(
            tenant_id=tenant_id,
            project_id=project_id,
            phase_number=phase.phase_number,
            phase_name=phase.phase_name,
            status="in_progress" if phase.phase_number == 1 else "not_started",
        )
        db.session.add(row)
        rows.append(row)
    db.session.commit()
    logger.info(
        "Delivery pipeline initialised (%d phases)", len(rows),
        extra={"tenant_id": tenant_id, "project_id": project_id},
    )
    return [r.to_dict() for r in rows]


def list_phases(tenant_id: int, project_id: int) -> list[dict]:
    get_scoped(Project, project_id, tenant_id=tenant_id)
    rows = db.session.execute(
        select(ProjectPhase)
        .where(ProjectPhase.tenant_id == tenant_id, ProjectPhase.project_id == project_id)
        .order_by(ProjectPhase.phase_number)
    ).scalars().all()
    return [r.to_dict() for r in rows]


def get_phase_detail(
    tenant_id: int,
    project_id: int,
    phase_number: int,
    *,
    registry: DeliveryPhaseRegistry = DEFAULT_DELIVERY_PHASES,
) -> dict:
    number = registry.validate_phase_number(phase_number)
    phase = get_phase(tenant_id, project_id, number)
    result = phase.to_dict()
    result["label"] = registry.label_for(number)
    return result


def assign_agent(
    tenant_id: int,
    project_id: int,
    phase_number: int,
    agent_id: int | None,
    *,
    registry: DeliveryPhaseRegistry = DEFAULT_DELIVERY_PHASES,
) -> dict:
    """Bind ``agent_id`` to the phase, or clear the binding when None.

    Only ``agent_id`` is written.  The agent's status is not checked here.
    Its model_config must name a model (or a DEFAULT_AGENT_MODEL must be
    configured) so the binding is runnable.

    Raises:
        ValidationError: bad phase number or unusable agent model_config.
        NotFoundError: project, phase or agent not in tenant.
    """
    number = registry.validate_phase_number(phase_number)
    get_scoped(Project, project_id, tenant_id=tenant_id)
    phase = get_phase(tenant_id, project_id, number)

    if agent_id is not None:
        agent = get_scoped(Agent, agent_id, tenant_id=tenant_id)
        AgentModelConfig.parse(
            agent.model_config,
            default_model=current_app.config.get("DEFAULT_AGENT_MODEL"),
        )

    phase.agent_id = agent_id
    db.session.commit()
    logger.info(
        "Phase agent %s", "bound" if agent_id is not None else "cleared",
        extra={"tenant_id": tenant_id, "project_id": project_id,
               "phase_number": number, "agent_id": agent_id},
    )
    return phase.to_dict()


def _move_phase(tenant_id: int, project_id: int, phase_number: int, source: str, target: str,
                registry: DeliveryPhaseRegistry) -> dict:
    number = registry.validate_phase_number(phase_number)
    get_scoped(Project, project_id, tenant_id=tenant_id)
    phase = get_phase(tenant_id, project_id, number)
    result = validate_phase_transition(phase.status, target)
    if result["valid"] and phase.status != source:
        result = {**result, "valid": False,
                  "reason": f"Phase must be '{source}', it is '{phase.status}'"}
    if not result["valid"]:
        raise ValidationError(result["reason"], details=result)
    phase.status = target
    db.session.commit()
    logger.info(
        "Phase status %s → %s", result["from"], target,
        extra={"tenant_id": tenant_id, "project_id": project_id, "phase_number": number},
    )
    return phase.to_dict()


def start_phase(tenant_id: int, project_id: int, phase_number: int, *,
                registry: DeliveryPhaseRegistry = DEFAULT_DELIVERY_PHASES) -> dict:
    """not_started → in_progress."""
    return _move_phase(tenant_id, project_id, phase_number, "not_started", "in_progress", registry)


def submit_for_review(tenant_id: int, project_id: int, phase_number: int, *,
                      registry: DeliveryPhaseRegistry = DEFAULT_DELIVERY_PHASES) -> dict:
    """in_progress → review."""
    return _move_phase(tenant_id, project_id, phase_number, "in_progress", "review", registry)


def reopen_phase(tenant_id: int, project_id: int, phase_number: int, *,
                 registry: DeliveryPhaseRegistry = DEFAULT_DELIVERY_PHASES) -> dict:
    """review → in_progress (reviewer sends the work back)."""
    return _move_phase(tenant_id, project_id, phase_number, "review", "in_progress", registry)
