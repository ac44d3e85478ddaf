"""
Delivery project CRUD.

A project hangs off a lead.  Creating one does not start delivery; that is
delivery_service.init_pipeline(), which requires the lead to be ``won``.
"""

from __future__ import annotations

import logging

from sqlalchemy import select

from consultflow.core.exceptions import ValidationError
from consultflow.models import db
from consultflow.models.delivery import Project
from consultflow.models.funnel import Lead
from consultflow.services.helpers.scoped_queries import get_scoped

logger = logging.getLogger(__name__)


def create_project(tenant_id: int, data: dict, *, owner_id: str | None = None) -> dict:
    """Create a delivery project for a lead.

    Body keys: name (required), lead_id (required), description, owner_id.
    The creating user becomes the owner unless ``owner_id`` is supplied in data.

    Raises:
        ValidationError: name or lead_id missing.
        NotFoundError: lead not in tenant.
    """
    name = (data.get("name") or "").strip()
    if not name:
        raise ValidationError("name is required", details={"name": "required"})
    lead_id = data.get("lead_id")
    if not lead_id:
        raise ValidationError("lead_id is required", details={"lead_id": "required"})
    get_scoped(Lead, lead_id, tenant_id=tenant_id)

    project = Project(
        tenant_id=tenant_id,
        lead_id=lead_id,
        owner_id=data.get("owner_id") or owner_id,
        name=name,
        description=data.get("description"),
    )
    db.session.add(project)
    db.session.commit()
    logger.info("Project created", extra={"tenant_id": tenant_id, "project_id": project.id})
    return project.to_dict()


def get_project(tenant_id: int, project_id: int, *, include_phases: bool = False) -> dict:
    return get_scoped(Project, project_id, tenant_id=tenant_id).to_dict(include_phases=include_phases)


def list_projects(tenant_id: int, *, lead_id: int | None = None) -> list[dict]:
    stmt = select(Project).where(Project.tenant_id == tenant_id)
    if lead_id is not None:
        stmt = stmt.where(Project.lead_id == lead_id)
    stmt = stmt.order_by(Project.created_at.desc(), Project.id.desc())
    return [p.to_dict() for p in db.session.execute(stmt).scalars().all()]


def update_project(tenant_id: int, project_id: int, data: dict) -> dict:
    project = get_scoped(Project, project_id, tenant_id=tenant_id)
    if "name" in data:
        name = (data.get("name") or "").strip()
        if not name:
            raise ValidationError("name cannot be empty", details={"name": "required"})
        project.name = name
    if "description" in data:
        project.description = data["description"]
    if "owner_id" in data:
        project.owner_id = data["owner_id"]
    db.session.commit()
    logger.info("Project updated", extra={"tenant_id": tenant_id, "project_id": project_id})
    return project.to_dict()
