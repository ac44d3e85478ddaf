"""
Tenant (workspace) administration.
"""

from __future__ import annotations

import logging
import re

from sqlalchemy import select

from consultflow.core.exceptions import ConflictError, NotFoundError, ValidationError
from consultflow.models import db
from consultflow.models.base import Tenant

logger = logging.getLogger(__name__)

_SLUG_RE = re.compile(r"^[a-z0-9][a-z0-9-]{0,99}$")


def create_tenant(name: str, slug: str) -> dict:
    name = (name or "").strip()
    slug = (slug or "").strip().lower()
    if not name:
        raise ValidationError("name is required")
    if not _SLUG_RE.match(slug):
        raise ValidationError(
            "slug must be lowercase letters, digits and dashes", details={"slug": slug},
        )
    exists = db.session.execute(select(Tenant.id).where(Tenant.slug == slug)).first()
    if exists:
        raise ConflictError("Tenant", "slug", slug)

    tenant = Tenant(name=name, slug=slug)
    db.session.add(tenant)
    db.session.commit()
    logger.info("Tenant created: %s", slug, extra={"tenant_id": tenant.id})
    return tenant.to_dict()


def list_tenants() -> list[dict]:
    stmt = select(Tenant).order_by(Tenant.id)
    return [t.to_dict() for t in db.session.execute(stmt).scalars().all()]


def set_active(tenant_id: int, is_active: bool) -> dict:
    tenant = db.session.get(Tenant, tenant_id)
    if tenant is None:
        raise NotFoundError(resource="Tenant", resource_id=tenant_id)
    tenant.is_active = bool(is_active)
    db.session.commit()
    logger.info("Tenant %s active=%s", tenant.slug, tenant.is_active,
                extra={"tenant_id": tenant.id})
    return tenant.to_dict()
