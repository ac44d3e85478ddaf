"""
Approval Gate — human sign-off of a delivery phase.

Preconditions, checked before anything is written:
    1. approver is the project owner or holds an elevated role → else PermissionDenied
    2. phase status is in_progress or review
         approved    → PhaseAlreadyApproved (re-approval would overwrite the
                       recorded approver and timestamp)
         not_started → ValidationError ("nothing to approve")

On success the phase becomes approved with approved_by / approved_at, and the
next phase, if still not_started, is moved to in_progress.  That unlock is a
readiness signal only; execution never checks it.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from consultflow.core.exceptions import PermissionDenied, PhaseAlreadyApproved, ValidationError
from consultflow.core.phase_registry import DEFAULT_DELIVERY_PHASES, DeliveryPhaseRegistry
from consultflow.models import db
from consultflow.models.delivery import Project
from consultflow.services.helpers.scoped_queries import get_phase, get_scoped

logger = logging.getLogger(__name__)

APPROVABLE_STATUSES = frozenset({"in_progress", "review"})


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _is_owner(project: Project, user_id) -> bool:
    return user_id is not None and project.owner_id is not None and str(project.owner_id) == str(user_id)


def approve_phase(
    tenant_id: int,
    project_id: int,
    phase_number: int,
    approver_id,
    is_elevated: bool = False,
    *,
    registry: DeliveryPhaseRegistry = DEFAULT_DELIVERY_PHASES,
) -> dict:
    """Approve a delivery phase.

    Args:
        tenant_id:   Tenant scope.
        project_id:  Project owning the phase.
        phase_number: 1..N per registry.
        approver_id: Acting user id (from the identity collaborator).
        is_elevated: Whether the acting user holds an elevated role.

    Returns:
        {"phase": <approved phase>, "next_phase": <unlocked phase>|None}

    Raises:
        PermissionDenied: approver is neither owner nor elevated.
        PhaseAlreadyApproved: the phase is already approved.
        ValidationError: the phase is not_started, or bad phase number.
        NotFoundError: project/phase not in tenant.
    """
    number = registry.validate_phase_number(phase_number)
    project = get_scoped(Project, project_id, tenant_id=tenant_id)
    phase = get_phase(tenant_id, project_id, number)

    if approver_id is None or str(approver_id).strip() == "":
        raise PermissionDenied(None, f"approve phase {number}",
                               reason="approval requires an identified user")
    if not (is_elevated or _is_owner(project, approver_id)):
        logger.warning(
            "Approval denied: user %s is neither owner nor elevated", approver_id,
            extra={"tenant_id": tenant_id, "project_id": project_id, "phase_number": number},
        )
        raise PermissionDenied(
            approver_id,
            f"approve phase {number}",
            reason="only the project owner or an elevated role may approve",
        )

    if phase.status == "approved":
        raise PhaseAlreadyApproved(project_id, number, phase.approved_by, phase.approved_at)
    if phase.status not in APPROVABLE_STATUSES:
        raise ValidationError(
            f"Phase {number} is '{phase.status}'; there is nothing to approve",
            details={"phase_number": number, "status": phase.status},
        )

    phase.status = "approved"
    phase.approved_by = str(approver_id)
    phase.approved_at = _utcnow()

    next_row = None
    next_number = registry.next_phase(number)
    if next_number is not None:
        candidate = get_phase(tenant_id, project_id, next_number)
        if candidate.status == "not_started":
            candidate.status = "in_progress"
            next_row = candidate

    db.session.commit()
    logger.info(
        "Phase approved by %s", approver_id,
        extra={"tenant_id": tenant_id, "project_id": project_id, "phase_number": number},
    )
    return {
        "phase": phase.to_dict(),
        "next_phase": next_row.to_dict() if next_row is not None else None,
    }
