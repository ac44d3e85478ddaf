"""
Agent model — an LLM persona that can be bound to a delivery phase.

model_config is a loosely-typed JSON blob; it is parsed into
``consultflow.ai.agent_config.AgentModelConfig`` wherever it is used.
"""

from datetime import datetime, timezone

from consultflow.models import db
from consultflow.models.base import TenantModel

AGENT_STATUSES = ("active", "inactive", "draft")


def _utcnow():
    return datetime.now(timezone.utc)


class Agent(TenantModel):
    __tablename__ = "agents"

    id = db.Column(db.Integer, primary_key=True)
    owner_id = db.Column(db.String(64), nullable=True)
    name = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, nullable=True)
    persona = db.Column(db.Text, nullable=True, comment="System prompt; wins over instructions")
    instructions = db.Column(db.Text, nullable=True)
    temperature = db.Column(db.Float, nullable=False, default=0.7)
    model_config = db.Column(db.JSON, nullable=False, default=dict)
    status = db.Column(db.String(20), nullable=False, default="draft",
                       comment="active | inactive | draft")
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    @property
    def system_prompt(self) -> str:
        return self.persona or self.instructions or ""

    def to_dict(self):
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "owner_id": self.owner_id,
            "name": self.name,
            "description": self.description,
            "persona": self.persona,
            "instructions": self.instructions,
            "temperature": self.temperature,
            "model_config": self.model_config or {},
            "status": self.status,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self):
        return f"<Agent {self.id}: {self.name} [{self.status}]>"
