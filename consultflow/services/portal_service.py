"""
Client portal read surface.

Shows the client, per delivery phase, a friendly status label and the latest
``human`` output as a downloadable report.  ``ai`` outputs never leave this
module: every query below filters on version_type == "human".
"""

from __future__ import annotations

import logging
import re

from consultflow.core.exceptions import NotFoundError
from consultflow.core.phase_registry import DEFAULT_DELIVERY_PHASES, DeliveryPhaseRegistry
from consultflow.models.delivery import Project
from consultflow.services import delivery_service
from consultflow.services.helpers.scoped_queries import get_scoped
from consultflow.services.output_service import latest_output

logger = logging.getLogger(__name__)

CLIENT_STATUS_LABELS = {
    "not_started": "In technical analysis",
    "in_progress": "In technical analysis",
    "review": "Under review",
    "approved": "Completed",
}
DEFAULT_CLIENT_STATUS = "In progress"


def client_status_label(phase_status: str) -> str:
    return CLIENT_STATUS_LABELS.get(phase_status, DEFAULT_CLIENT_STATUS)


def current_phase(phases: list[dict], total: int = len(DEFAULT_DELIVERY_PHASES)) -> int:
    """Phase number the client should see as "current".

    First in_progress/review phase; otherwise the one after the last approved
    phase (capped at ``total``); 1 when nothing has started; 0 with no phases.
    """
    if not phases:
        return 0
    for phase in phases:
        if phase["status"] in ("in_progress", "review"):
            return phase["phase_number"]
    for phase in reversed(phases):
        if phase["status"] == "approved":
            return min(phase["phase_number"] + 1, total)
    return 1


def _report_file_name(phase_name: str) -> str:
    stem = re.sub(r"\s+", "_", phase_name.strip())
    return f"{stem}_report.txt"


def get_project_deliverables(
    tenant_id: int,
    project_id: int,
    *,
    registry: DeliveryPhaseRegistry = DEFAULT_DELIVERY_PHASES,
) -> dict:
    """Per-phase client view of a project.

    Returns:
        {"project": {...}, "current_phase": int,
         "phases": [{"phase_number", "phase_name", "status_label",
                     "deliverable": {"output_id", "file_name", "created_at"}|None}]}
    """
    project = get_scoped(Project, project_id, tenant_id=tenant_id)
    phases = delivery_service.list_phases(tenant_id, project_id)

    items = []
    for phase in phases:
        human = latest_output(tenant_id, project_id, phase["phase_number"], "human")
        items.append({
            "phase_number": phase["phase_number"],
            "phase_name": phase["phase_name"],
            "status_label": client_status_label(phase["status"]),
            "deliverable": {
                "output_id": human.id,
                "file_name": _report_file_name(phase["phase_name"]),
                "created_at": human.created_at.isoformat() if human.created_at else None,
            } if human is not None else None,
        })

    return {
        "project": {"id": project.id, "name": project.name},
        "current_phase": current_phase(phases, total=len(registry)),
        "phases": items,
    }


def download_deliverable(
    tenant_id: int,
    project_id: int,
    phase_number: int,
    *,
    registry: DeliveryPhaseRegistry = DEFAULT_DELIVERY_PHASES,
) -> tuple[str, bytes]:
    """(file_name, UTF-8 bytes) of the latest human output for the phase.

    Raises:
        NotFoundError: project not in tenant or no human output yet.
    """
    number = registry.validate_phase_number(phase_number)
    get_scoped(Project, project_id, tenant_id=tenant_id)
    human = latest_output(tenant_id, project_id, number, "human")
    if human is None:
        raise NotFoundError(resource="Deliverable", resource_id=f"{project_id}/{number}",
                            tenant_id=tenant_id)
    logger.info(
        "Deliverable downloaded",
        extra={"tenant_id": tenant_id, "project_id": project_id, "phase_number": number},
    )
    return _report_file_name(registry.name_for(number)), human.content.encode("utf-8")
