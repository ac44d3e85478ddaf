"""
Project attachments — metadata rows in the database, bytes in object storage.
"""

from __future__ import annotations

import logging

from sqlalchemy import select

from consultflow.core.exceptions import ValidationError
from consultflow.core.phase_registry import DEFAULT_DELIVERY_PHASES, DeliveryPhaseRegistry
from consultflow.integrations.object_storage import build_storage_key, get_storage, safe_file_name
from consultflow.models import db
from consultflow.models.delivery import Project, ProjectAttachment
from consultflow.services.helpers.scoped_queries import get_scoped

logger = logging.getLogger(__name__)

MAX_ATTACHMENT_BYTES = 20 * 1024 * 1024


def _describe(attachment: ProjectAttachment, storage) -> dict:
    item = attachment.to_dict()
    item["url"] = storage.url_for(attachment.storage_path)
    return item


def upload(
    tenant_id: int,
    project_id: int,
    file_name: str,
    data: bytes,
    *,
    uploaded_by=None,
    content_type: str | None = None,
    phase: int | None = None,
    description: str | None = None,
    registry: DeliveryPhaseRegistry = DEFAULT_DELIVERY_PHASES,
) -> dict:
    """Store the file and record its metadata.

    Raises:
        ValidationError: empty/oversized file or bad phase number.
        NotFoundError: project not in tenant.
    """
    get_scoped(Project, project_id, tenant_id=tenant_id)
    if not data:
        raise ValidationError("file is empty", details={"file_name": file_name})
    if len(data) > MAX_ATTACHMENT_BYTES:
        raise ValidationError(
            f"file exceeds {MAX_ATTACHMENT_BYTES // (1024 * 1024)} MB",
            details={"file_size": len(data)},
        )
    if phase is not None:
        phase = registry.validate_phase_number(phase)

    key = build_storage_key(tenant_id, project_id, file_name)
    get_storage().put(key, data, content_type=content_type)

    attachment = ProjectAttachment(
        tenant_id=tenant_id,
        project_id=project_id,
        uploaded_by=str(uploaded_by) if uploaded_by is not None else None,
        file_name=safe_file_name(file_name),
        file_size=len(data),
        content_type=content_type,
        storage_path=key,
        phase=phase,
        description=description,
    )
    db.session.add(attachment)
    db.session.commit()
    logger.info(
        "Attachment uploaded (%d bytes)", len(data),
        extra={"tenant_id": tenant_id, "project_id": project_id},
    )
    return _describe(attachment, get_storage())


def list_attachments(tenant_id: int, project_id: int, *, phase: int | None = None) -> list[dict]:
    get_scoped(Project, project_id, tenant_id=tenant_id)
    stmt = select(ProjectAttachment).where(
        ProjectAttachment.tenant_id == tenant_id,
        ProjectAttachment.project_id == project_id,
    )
    if phase is not None:
        stmt = stmt.where(ProjectAttachment.phase == phase)
    stmt = stmt.order_by(ProjectAttachment.created_at.desc(), ProjectAttachment.id.desc())
    storage = get_storage()
    return [_describe(a, storage) for a in db.session.execute(stmt).scalars().all()]


def download(tenant_id: int, project_id: int, attachment_id: int) -> tuple[dict, bytes]:
    """Return (metadata, bytes) for one attachment."""
    attachment = get_scoped(ProjectAttachment, attachment_id, tenant_id=tenant_id,
                            project_id=project_id)
    return attachment.to_dict(), get_storage().get(attachment.storage_path)


def delete(tenant_id: int, project_id: int, attachment_id: int) -> None:
    attachment = get_scoped(ProjectAttachment, attachment_id, tenant_id=tenant_id,
                            project_id=project_id)
    get_storage().delete(attachment.storage_path)
    db.session.delete(attachment)
    db.session.commit()
    logger.info(
        "Attachment deleted", extra={"tenant_id": tenant_id, "project_id": project_id},
    )
