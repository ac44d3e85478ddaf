"""
Lead CRUD.

Status changes never go through update_lead — they are owned by the funnel
board (funnel_board_service.move_lead) so the gate cannot be bypassed.
"""

from __future__ import annotations

import logging

from sqlalchemy import select

from consultflow.core.exceptions import ValidationError
from consultflow.core.funnel_config import DEFAULT_FUNNEL, FunnelSequence
from consultflow.models import db
from consultflow.models.funnel import Lead
from consultflow.services.helpers.scoped_queries import get_scoped

logger = logging.getLogger(__name__)

_TEXT_FIELDS = (
    "company_name", "tax_id", "sector", "revenue_range", "tax_regime",
    "pain_points", "notes", "owner_id",
)
_BOOL_FIELDS = ("has_budget", "has_authority", "has_need", "has_timeline")


def _apply_fields(lead: Lead, data: dict) -> None:
    for field in _TEXT_FIELDS:
        if field in data:
            value = data[field]
            setattr(lead, field, value.strip() if isinstance(value, str) else value)
    for field in _BOOL_FIELDS:
        if field in data:
            setattr(lead, field, bool(data[field]))

    if "icp_score" in data:
        score = data["icp_score"]
        if score is not None:
            try:
                score = float(score)
            except (TypeError, ValueError):
                raise ValidationError("icp_score must be a number", details={"icp_score": score}) from None
            if not 0 <= score <= 10:
                raise ValidationError("icp_score must be between 0 and 10", details={"icp_score": score})
        lead.icp_score = score

    if "probability" in data:
        probability = data["probability"]
        if probability is not None:
            try:
                probability = int(probability)
            except (TypeError, ValueError):
                raise ValidationError("probability must be an integer",
                                      details={"probability": probability}) from None
            if not 0 <= probability <= 100:
                raise ValidationError("probability must be between 0 and 100",
                                      details={"probability": probability})
        lead.probability = probability

    if "deal_value" in data:
        lead.deal_value = data["deal_value"]


def create_lead(tenant_id: int, data: dict, *, owner_id: str | None = None,
                funnel: FunnelSequence = DEFAULT_FUNNEL) -> dict:
    """Create a lead.  ``status`` defaults to the first funnel phase.

    Raises:
        ValidationError: company_name missing, bad numeric field or unknown status.
    """
    company_name = (data.get("company_name") or "").strip()
    if not company_name:
        raise ValidationError("company_name is required", details={"company_name": "required"})

    status = data.get("status") or funnel.active_keys[0]
    if not funnel.is_valid(status):
        raise ValidationError(
            f"Unknown funnel phase '{status}'",
            details={"status": status, "valid_phases": funnel.keys},
        )

    lead = Lead(tenant_id=tenant_id, status=status, owner_id=owner_id)
    _apply_fields(lead, data)
    db.session.add(lead)
    db.session.commit()
    logger.info("Lead created", extra={"tenant_id": tenant_id, "lead_id": lead.id})
    return lead.to_dict()


def get_lead(tenant_id: int, lead_id: int) -> dict:
    return get_scoped(Lead, lead_id, tenant_id=tenant_id).to_dict()


def list_leads(tenant_id: int, *, status: str | None = None) -> list[dict]:
    """Leads newest-activity first (updated_at desc)."""
    stmt = select(Lead).where(Lead.tenant_id == tenant_id)
    if status:
        stmt = stmt.where(Lead.status == status)
    stmt = stmt.order_by(Lead.updated_at.desc(), Lead.id.desc())
    return [lead.to_dict() for lead in db.session.execute(stmt).scalars().all()]


def update_lead(tenant_id: int, lead_id: int, data: dict) -> dict:
    """Update qualification attributes.  ``status`` is rejected here."""
    if "status" in data:
        raise ValidationError(
            "status cannot be updated directly; move the lead on the funnel board",
            details={"status": data["status"]},
        )
    lead = get_scoped(Lead, lead_id, tenant_id=tenant_id)
    if "company_name" in data and not (data.get("company_name") or "").strip():
        raise ValidationError("company_name cannot be empty", details={"company_name": "required"})
    _apply_fields(lead, data)
    db.session.commit()
    logger.info("Lead updated", extra={"tenant_id": tenant_id, "lead_id": lead_id})
    return lead.to_dict()


def delete_lead(tenant_id: int, lead_id: int) -> None:
    lead = get_scoped(Lead, lead_id, tenant_id=tenant_id)
    db.session.delete(lead)
    db.session.commit()
    logger.info("Lead deleted", extra={"tenant_id": tenant_id, "lead_id": lead_id})
