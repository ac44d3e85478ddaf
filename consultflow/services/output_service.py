"""
Output Versioning — append-only phase artifacts.

Every save is a new PhaseOutput row; nothing is updated or deleted.  Ordering
is by created_at then id, newest first, so two rows saved in the same clock
tick still have a stable "latest".
"""

from __future__ import annotations

import logging

from sqlalchemy import select

from consultflow.core.exceptions import ValidationError
from consultflow.core.phase_registry import DEFAULT_DELIVERY_PHASES, DeliveryPhaseRegistry
from consultflow.models import db
from consultflow.models.delivery import VERSION_TYPES, PhaseOutput, Project
from consultflow.services.helpers.scoped_queries import get_scoped

logger = logging.getLogger(__name__)


def _newest_first(stmt):
    return stmt.order_by(PhaseOutput.created_at.desc(), PhaseOutput.id.desc())


def save_output(
    tenant_id: int,
    project_id: int,
    phase_number: int,
    version_type: str,
    content: str,
    created_by=None,
    execution_id: int | None = None,
    *,
    registry: DeliveryPhaseRegistry = DEFAULT_DELIVERY_PHASES,
    commit: bool = True,
) -> dict:
    """Append an output version.

    ``commit=False`` lets the orchestrator flush the row inside its own
    transaction ordering.

    Raises:
        ValidationError: unknown version_type, empty content or bad phase number.
        NotFoundError: project not in tenant.
    """
    number = registry.validate_phase_number(phase_number)
    if version_type not in VERSION_TYPES:
        raise ValidationError(
            f"version_type must be one of: {', '.join(VERSION_TYPES)}",
            details={"version_type": version_type},
        )
    # model text is stored as streamed; only human edits must carry visible text
    if not content or (version_type == "human" and not content.strip()):
        raise ValidationError("content is required", details={"content": "required"})
    get_scoped(Project, project_id, tenant_id=tenant_id)

    output = PhaseOutput(
        tenant_id=tenant_id,
        project_id=project_id,
        phase_number=number,
        version_type=version_type,
        content=content,
        execution_id=execution_id,
        created_by=str(created_by) if created_by is not None else None,
    )
    db.session.add(output)
    if commit:
        db.session.commit()
    else:
        db.session.flush()
    logger.info(
        "Phase output saved (%s, %d chars)", version_type, len(content),
        extra={"tenant_id": tenant_id, "project_id": project_id,
               "phase_number": number, "execution_id": execution_id},
    )
    return output.to_dict()


def list_outputs(
    tenant_id: int,
    project_id: int,
    phase_number: int,
    *,
    version_type: str | None = None,
    registry: DeliveryPhaseRegistry = DEFAULT_DELIVERY_PHASES,
) -> list[dict]:
    """All versions of a phase, newest first."""
    number = registry.validate_phase_number(phase_number)
    get_scoped(Project, project_id, tenant_id=tenant_id)
    stmt = select(PhaseOutput).where(
        PhaseOutput.tenant_id == tenant_id,
        PhaseOutput.project_id == project_id,
        PhaseOutput.phase_number == number,
    )
    if version_type:
        stmt = stmt.where(PhaseOutput.version_type == version_type)
    return [o.to_dict() for o in db.session.execute(_newest_first(stmt)).scalars().all()]


def latest_output(tenant_id: int, project_id: int, phase_number: int,
                  version_type: str) -> PhaseOutput | None:
    return db.session.execute(
        _newest_first(
            select(PhaseOutput).where(
                PhaseOutput.tenant_id == tenant_id,
                PhaseOutput.project_id == project_id,
                PhaseOutput.phase_number == phase_number,
                PhaseOutput.version_type == version_type,
            )
        ).limit(1)
    ).scalar_one_or_none()


def latest_outputs(tenant_id: int, project_id: int, phase_number: int, *,
                   registry: DeliveryPhaseRegistry = DEFAULT_DELIVERY_PHASES) -> dict:
    """{"ai": newest ai version|None, "human": newest human version|None}."""
    number = registry.validate_phase_number(phase_number)
    get_scoped(Project, project_id, tenant_id=tenant_id)
    result = {}
    for version_type in VERSION_TYPES:
        row = latest_output(tenant_id, project_id, number, version_type)
        result[version_type] = row.to_dict() if row is not None else None
    return result


def latest_human_output(tenant_id: int, project_id: int, phase_number: int, *,
                        registry: DeliveryPhaseRegistry = DEFAULT_DELIVERY_PHASES) -> dict | None:
    number = registry.validate_phase_number(phase_number)
    get_scoped(Project, project_id, tenant_id=tenant_id)
    row = latest_output(tenant_id, project_id, number, "human")
    return row.to_dict() if row is not None else None
