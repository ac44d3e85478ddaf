"""
Checklist Store — per-lead, per-phase completion flags.

Rows exist only for completed items:
    toggle_item(..., True)   → upsert on (lead_id, phase, item_key); a second
                               call keeps the original completed_at
    toggle_item(..., False)  → delete the row if present

The progress helpers are pure and take the funnel explicitly so the board and
the gate read the same definitions.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy import select

from consultflow.core.exceptions import ValidationError
from consultflow.core.funnel_config import DEFAULT_FUNNEL, FunnelSequence
from consultflow.models import db
from consultflow.models.funnel import Lead, LeadChecklistItem
from consultflow.services.helpers.scoped_queries import get_scoped

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _validate_item(phase: str, item_key: str, funnel: FunnelSequence):
    if not funnel.is_valid(phase):
        raise ValidationError(
            f"Unknown funnel phase '{phase}'",
            details={"phase": phase, "valid_phases": funnel.keys},
        )
    definition = funnel.get(phase).item(item_key)
    if definition is None:
        raise ValidationError(
            f"Unknown checklist item '{item_key}' for phase '{phase}'",
            details={"phase": phase, "item_key": item_key},
        )
    if definition.locked:
        raise ValidationError(
            f"Checklist item '{item_key}' is locked and cannot be toggled",
            details={"phase": phase, "item_key": item_key},
        )
    return definition


def toggle_item(
    tenant_id: int,
    lead_id: int,
    phase: str,
    item_key: str,
    completed: bool,
    *,
    funnel: FunnelSequence = DEFAULT_FUNNEL,
) -> dict | None:
    """Mark a checklist item completed (upsert) or uncompleted (delete).

    Returns:
        The item dict after completion, or None after an uncompletion.

    Raises:
        NotFoundError: lead does not exist in tenant.
        ValidationError: unknown phase/item, or a locked item.
    """
    get_scoped(Lead, lead_id, tenant_id=tenant_id)
    _validate_item(phase, item_key, funnel)

    existing = db.session.execute(
        select(LeadChecklistItem).where(
            LeadChecklistItem.tenant_id == tenant_id,
            LeadChecklistItem.lead_id == lead_id,
            LeadChecklistItem.phase == phase,
            LeadChecklistItem.item_key == item_key,
        )
    ).scalar_one_or_none()

    if completed:
        if existing is not None:
            return existing.to_dict()
        item = LeadChecklistItem(
            tenant_id=tenant_id,
            lead_id=lead_id,
            phase=phase,
            item_key=item_key,
            completed=True,
            completed_at=_utcnow(),
        )
        db.session.add(item)
        db.session.commit()
        logger.info(
            "Checklist item completed",
            extra={"tenant_id": tenant_id, "lead_id": lead_id, "phase": phase, "item_key": item_key},
        )
        return item.to_dict()

    if existing is not None:
        db.session.delete(existing)
        db.session.commit()
        logger.info(
            "Checklist item cleared",
            extra={"tenant_id": tenant_id, "lead_id": lead_id, "phase": phase, "item_key": item_key},
        )
    return None


def get_checklist(tenant_id: int, lead_id: int) -> list[dict]:
    """Return every stored checklist row for the lead."""
    get_scoped(Lead, lead_id, tenant_id=tenant_id)
    rows = db.session.execute(
        select(LeadChecklistItem)
        .where(
            LeadChecklistItem.tenant_id == tenant_id,
            LeadChecklistItem.lead_id == lead_id,
        )
        .order_by(LeadChecklistItem.id)
    ).scalars().all()
    return [r.to_dict() for r in rows]


def get_checklists_for_leads(tenant_id: int, lead_ids: list[int]) -> dict[int, list[dict]]:
    """Batch-load checklists: {lead_id: [item, ...]} with an entry per requested lead."""
    result: dict[int, list[dict]] = {lid: [] for lid in lead_ids}
    if not lead_ids:
        return result
    rows = db.session.execute(
        select(LeadChecklistItem)
        .where(
            LeadChecklistItem.tenant_id == tenant_id,
            LeadChecklistItem.lead_id.in_(lead_ids),
        )
        .order_by(LeadChecklistItem.id)
    ).scalars().all()
    for row in rows:
        result[row.lead_id].append(row.to_dict())
    return result


# ── Pure progress helpers ────────────────────────────────────────────────────


def _is_satisfied(checklist, phase: str, definition) -> bool:
    if definition.locked:
        return True
    return any(
        c["phase"] == phase and c["item_key"] == definition.item_key and c["completed"]
        for c in checklist
    )


def phase_progress(checklist: list[dict], phase: str,
                   funnel: FunnelSequence = DEFAULT_FUNNEL) -> dict:
    """{completed, total} for a phase; locked items count as completed."""
    definitions = funnel.checklist_for(phase)
    done = sum(1 for d in definitions if _is_satisfied(checklist, phase, d))
    return {"completed": done, "total": len(definitions)}


def pending_items(checklist: list[dict], phase: str,
                  funnel: FunnelSequence = DEFAULT_FUNNEL) -> list[str]:
    """Labels of the unmet, non-locked items of ``phase`` in definition order."""
    return [
        d.label
        for d in funnel.checklist_for(phase)
        if not _is_satisfied(checklist, phase, d)
    ]


def is_phase_complete(checklist: list[dict], phase: str,
                      funnel: FunnelSequence = DEFAULT_FUNNEL) -> bool:
    return not pending_items(checklist, phase, funnel)
