"""
Sales funnel models — Lead and LeadChecklistItem.

Lead.status is one of the funnel phase keys (see consultflow.core.funnel_config).
Checklist rows exist only for completed items: created on first completion,
deleted on uncompletion, unique per (lead_id, phase, item_key).
"""

from datetime import datetime, timezone

from consultflow.models import db
from consultflow.models.base import TenantModel


def _utcnow():
    return datetime.now(timezone.utc)


class Lead(TenantModel):
    """Prospective client company moving through the sales funnel."""

    __tablename__ = "leads"

    id = db.Column(db.Integer, primary_key=True)
    owner_id = db.Column(db.String(64), nullable=True, index=True)
    company_name = db.Column(db.String(255), nullable=False)
    tax_id = db.Column(db.String(32), nullable=True)
    sector = db.Column(db.String(100), nullable=True)
    revenue_range = db.Column(db.String(50), nullable=True)
    tax_regime = db.Column(db.String(50), nullable=True)
    icp_score = db.Column(db.Float, nullable=True)

    # BANT qualification flags
    has_budget = db.Column(db.Boolean, nullable=False, default=False)
    has_authority = db.Column(db.Boolean, nullable=False, default=False)
    has_need = db.Column(db.Boolean, nullable=False, default=False)
    has_timeline = db.Column(db.Boolean, nullable=False, default=False)

    pain_points = db.Column(db.Text, nullable=True)
    notes = db.Column(db.Text, nullable=True)
    deal_value = db.Column(db.Numeric(14, 2), nullable=True)
    probability = db.Column(db.Integer, nullable=True, comment="0-100")
    status = db.Column(
        db.String(30),
        nullable=False,
        default="prospecting",
        index=True,
        comment="prospecting | qualification | diagnosis | proposal | closing | won | lost",
    )
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    checklist_items = db.relationship(
        "LeadChecklistItem",
        backref="lead",
        lazy="select",
        cascade="all, delete-orphan",
    )

    def to_dict(self):
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "owner_id": self.owner_id,
            "company_name": self.company_name,
            "tax_id": self.tax_id,
            "sector": self.sector,
            "revenue_range": self.revenue_range,
            "tax_regime": self.tax_regime,
            "icp_score": self.icp_score,
            "has_budget": self.has_budget,
            "has_authority": self.has_authority,
            "has_need": self.has_need,
            "has_timeline": self.has_timeline,
            "pain_points": self.pain_points,
            "notes": self.notes,
            "deal_value": float(self.deal_value) if self.deal_value is not None else None,
            "probability": self.probability,
            "status": self.status,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self):
        return f"<Lead {self.id}: {self.company_name} [{self.status}]>"


class LeadChecklistItem(TenantModel):
    """Completion flag for one checklist item of one funnel phase."""

    __tablename__ = "lead_checklist_items"
    __table_args__ = (
        db.UniqueConstraint("lead_id", "phase", "item_key", name="uq_lead_checklist_item"),
    )

    id = db.Column(db.Integer, primary_key=True)
    lead_id = db.Column(
        db.Integer,
        db.ForeignKey("leads.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    phase = db.Column(db.String(30), nullable=False)
    item_key = db.Column(db.String(64), nullable=False)
    completed = db.Column(db.Boolean, nullable=False, default=True)
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)

    def to_dict(self):
        return {
            "id": self.id,
            "lead_id": self.lead_id,
            "phase": self.phase,
            "item_key": self.item_key,
            "completed": self.completed,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<LeadChecklistItem lead={self.lead_id} {self.phase}/{self.item_key}>"
