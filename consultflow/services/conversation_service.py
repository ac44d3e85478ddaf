"""
Phase conversation turns — the chat history sent to the completion service.
"""

from __future__ import annotations

import logging

from sqlalchemy import delete, select

from consultflow.core.exceptions import ValidationError
from consultflow.core.phase_registry import DEFAULT_DELIVERY_PHASES, DeliveryPhaseRegistry
from consultflow.models import db
from consultflow.models.delivery import MESSAGE_ROLES, PhaseMessage, Project
from consultflow.services.helpers.scoped_queries import get_scoped

logger = logging.getLogger(__name__)


def get_history(tenant_id: int, project_id: int, phase_number: int) -> list[dict]:
    """Turns in chronological order as ``{"role", "content"}`` dicts."""
    rows = db.session.execute(
        select(PhaseMessage)
        .where(
            PhaseMessage.tenant_id == tenant_id,
            PhaseMessage.project_id == project_id,
            PhaseMessage.phase_number == phase_number,
        )
        .order_by(PhaseMessage.created_at, PhaseMessage.id)
    ).scalars().all()
    return [{"role": m.role, "content": m.content} for m in rows]


def list_messages(tenant_id: int, project_id: int, phase_number: int, *,
                  registry: DeliveryPhaseRegistry = DEFAULT_DELIVERY_PHASES) -> list[dict]:
    number = registry.validate_phase_number(phase_number)
    get_scoped(Project, project_id, tenant_id=tenant_id)
    rows = db.session.execute(
        select(PhaseMessage)
        .where(
            PhaseMessage.tenant_id == tenant_id,
            PhaseMessage.project_id == project_id,
            PhaseMessage.phase_number == number,
        )
        .order_by(PhaseMessage.created_at, PhaseMessage.id)
    ).scalars().all()
    return [m.to_dict() for m in rows]


def add_message(tenant_id: int, project_id: int, phase_number: int, role: str, content: str,
                *, commit: bool = True,
                registry: DeliveryPhaseRegistry = DEFAULT_DELIVERY_PHASES) -> dict:
    number = registry.validate_phase_number(phase_number)
    if role not in MESSAGE_ROLES:
        raise ValidationError(f"role must be one of: {', '.join(MESSAGE_ROLES)}",
                              details={"role": role})
    if not content or (role == "user" and not content.strip()):
        raise ValidationError("content is required", details={"content": "required"})
    get_scoped(Project, project_id, tenant_id=tenant_id)
    message = PhaseMessage(
        tenant_id=tenant_id,
        project_id=project_id,
        phase_number=number,
        role=role,
        content=content,
    )
    db.session.add(message)
    if commit:
        db.session.commit()
    else:
        db.session.flush()
    return message.to_dict()


def reset_conversation(tenant_id: int, project_id: int, phase_number: int, *,
                       registry: DeliveryPhaseRegistry = DEFAULT_DELIVERY_PHASES) -> int:
    """Delete every turn of the phase conversation; returns the number removed."""
    number = registry.validate_phase_number(phase_number)
    get_scoped(Project, project_id, tenant_id=tenant_id)
    result = db.session.execute(
        delete(PhaseMessage).where(
            PhaseMessage.tenant_id == tenant_id,
            PhaseMessage.project_id == project_id,
            PhaseMessage.phase_number == number,
        )
    )
    db.session.commit()
    logger.info(
        "Phase conversation reset (%d messages)", result.rowcount,
        extra={"tenant_id": tenant_id, "project_id": project_id, "phase_number": number},
    )
    return result.rowcount
