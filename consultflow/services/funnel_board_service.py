"""
Funnel Board Controller — buckets leads by phase and executes card moves.

move_lead() is the only code path that changes Lead.status:
    - missing lead or same phase  → no-op result, nothing written
    - gate denial                 → FunnelTransitionDenied, nothing written
    - gate approval               → exactly one UPDATE of leads.status
"""

from __future__ import annotations

import logging
from collections import OrderedDict

from sqlalchemy import select, update

from consultflow.core.exceptions import FunnelTransitionDenied, ValidationError
from consultflow.core.funnel_config import DEFAULT_FUNNEL, FunnelSequence
from consultflow.models import db
from consultflow.models.funnel import Lead
from consultflow.services import checklist_service
from consultflow.services.funnel_gate import can_advance
from consultflow.services.helpers.scoped_queries import get_scoped_or_none

logger = logging.getLogger(__name__)


def bucket_leads(leads: list[dict], funnel: FunnelSequence = DEFAULT_FUNNEL) -> "OrderedDict[str, list[dict]]":
    """Group leads by status, one bucket per funnel phase, preserving input order.

    Leads whose status is not in the funnel are left out.
    """
    buckets: OrderedDict[str, list[dict]] = OrderedDict((key, []) for key in funnel.keys)
    for lead in leads:
        bucket = buckets.get(lead["status"])
        if bucket is not None:
            bucket.append(lead)
    return buckets


def get_board(tenant_id: int, funnel: FunnelSequence = DEFAULT_FUNNEL) -> dict:
    """Load leads (updated_at desc) with checklists and bucket them.

    Returns:
        {"columns": [{"phase", "label", "leads": [lead + "checklist_progress"]}]}
    """
    leads = db.session.execute(
        select(Lead)
        .where(Lead.tenant_id == tenant_id)
        .order_by(Lead.updated_at.desc(), Lead.id.desc())
    ).scalars().all()
    checklists = checklist_service.get_checklists_for_leads(tenant_id, [lead.id for lead in leads])

    cards = []
    for lead in leads:
        card = lead.to_dict()
        if lead.status in funnel.keys:
            card["checklist_progress"] = checklist_service.phase_progress(
                checklists[lead.id], lead.status, funnel,
            )
        cards.append(card)

    buckets = bucket_leads(cards, funnel)
    return {
        "columns": [
            {"phase": phase, "label": funnel.label_for(phase), "leads": items}
            for phase, items in buckets.items()
        ]
    }


def move_lead(
    tenant_id: int,
    lead_id: int,
    target_phase: str,
    *,
    funnel: FunnelSequence = DEFAULT_FUNNEL,
) -> dict:
    """Move a lead card to ``target_phase`` if the funnel gate allows it.

    Returns:
        {"moved": bool, "lead_id", "from", "to", "reason"}

    Raises:
        ValidationError: target_phase is not a funnel phase.
        FunnelTransitionDenied: the gate refused the move (blocking phase and
            pending checklist labels in ``details``).
    """
    if not funnel.is_valid(target_phase):
        raise ValidationError(
            f"Unknown funnel phase '{target_phase}'",
            details={"target_phase": target_phase, "valid_phases": funnel.keys},
        )

    lead = get_scoped_or_none(Lead, lead_id, tenant_id=tenant_id)
    if lead is None:
        return {"moved": False, "lead_id": lead_id, "from": None, "to": target_phase,
                "reason": "lead_not_found"}
    current_phase = lead.status
    if current_phase == target_phase:
        return {"moved": False, "lead_id": lead_id, "from": current_phase, "to": target_phase,
                "reason": "already_in_phase"}

    checklist = checklist_service.get_checklist(tenant_id, lead_id)
    decision = can_advance(current_phase, target_phase, checklist, funnel)
    if not decision["allowed"]:
        blocking = decision["blocking_phase"]
        logger.info(
            "Funnel move denied",
            extra={"tenant_id": tenant_id, "lead_id": lead_id,
                   "from_phase": current_phase, "to_phase": target_phase,
                   "blocking_phase": blocking},
        )
        raise FunnelTransitionDenied(
            lead_id=lead_id,
            current_phase=current_phase,
            target_phase=target_phase,
            blocking_phase=blocking,
            blocking_label=funnel.label_for(blocking) if blocking else None,
            pending_items=decision["pending_items"],
            reason=decision["reason"],
        )

    db.session.execute(
        update(Lead)
        .where(Lead.id == lead_id, Lead.tenant_id == tenant_id)
        .values(status=target_phase)
    )
    db.session.commit()
    logger.info(
        "Lead moved %s → %s", current_phase, target_phase,
        extra={"tenant_id": tenant_id, "lead_id": lead_id},
    )
    return {"moved": True, "lead_id": lead_id, "from": current_phase, "to": target_phase,
            "reason": None}
