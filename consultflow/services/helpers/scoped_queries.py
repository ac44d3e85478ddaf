"""
Tenant-scoped query helpers.

Every get-by-id in the services goes through these helpers instead of
db.session.get(Model, pk).  A bare .get() ignores tenant_id, so a lookup
from the wrong tenant would succeed.

Usage:
    project = get_scoped(Project, project_id, tenant_id=tenant_id)
    lead = get_scoped_or_none(Lead, lead_id, tenant_id=tenant_id)
    phase = get_phase(tenant_id, project_id, 3)
"""

import logging

from sqlalchemy import select

from consultflow.core.exceptions import NotFoundError
from consultflow.models import db
from consultflow.models.delivery import ProjectPhase

logger = logging.getLogger(__name__)


def get_scoped(model, pk: int, *, tenant_id: int, project_id: int | None = None):
    """Fetch a single entity by PK inside ``tenant_id`` (and ``project_id`` if given).

    Cross-tenant access is indistinguishable from a missing record: both
    raise NotFoundError → HTTP 404.

    Raises:
        ValueError: If tenant_id is None (unscoped lookups are refused).
        NotFoundError: If the entity does not exist within scope.
    """
    if tenant_id is None:
        raise ValueError(
            f"{model.__name__} id={pk} requires tenant_id. "
            "Unscoped lookups are forbidden."
        )

    stmt = select(model).where(model.id == pk, model.tenant_id == tenant_id)
    if project_id is not None:
        stmt = stmt.where(model.project_id == project_id)

    result = db.session.execute(stmt).scalar_one_or_none()
    if result is None:
        logger.debug(
            "get_scoped: %s id=%s not found (tenant=%s project=%s)",
            model.__name__, pk, tenant_id, project_id,
        )
        raise NotFoundError(resource=model.__name__, resource_id=pk, tenant_id=tenant_id)
    return result


def get_scoped_or_none(model, pk: int, *, tenant_id: int, project_id: int | None = None):
    """Same as get_scoped but returns None instead of raising NotFoundError."""
    try:
        return get_scoped(model, pk, tenant_id=tenant_id, project_id=project_id)
    except NotFoundError:
        return None


def get_phase(tenant_id: int, project_id: int, phase_number: int) -> ProjectPhase:
    """Load the ProjectPhase row for (project, phase_number) or raise NotFoundError."""
    phase = db.session.execute(
        select(ProjectPhase).where(
            ProjectPhase.tenant_id == tenant_id,
            ProjectPhase.project_id == project_id,
            ProjectPhase.phase_number == phase_number,
        )
    ).scalar_one_or_none()
    if phase is None:
        raise NotFoundError(
            resource="ProjectPhase",
            resource_id=f"{project_id}/{phase_number}",
            tenant_id=tenant_id,
        )
    return phase
