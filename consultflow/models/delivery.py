"""
Delivery pipeline models.

    Project ─┬─ ProjectPhase        one row per (project, phase_number), never deleted
             ├─ PhaseExecution      append-only run records (running → completed | failed)
             ├─ PhaseOutput         append-only artifacts tagged ai | human
             ├─ PhaseMessage        conversation turns per phase
             └─ ProjectAttachment   files uploaded to object storage

PhaseExecution and PhaseOutput are history: rows are appended and, for
executions, status-updated by their own id.  Nothing here is overwritten.
"""

from datetime import datetime, timezone

from consultflow.models import db
from consultflow.models.base import TenantModel

PHASE_STATUSES = ("not_started", "in_progress", "review", "approved")
EXECUTION_STATUSES = ("running", "completed", "failed")
VERSION_TYPES = ("ai", "human")
MESSAGE_ROLES = ("user", "assistant")


def _utcnow():
    return datetime.now(timezone.utc)


class Project(TenantModel):
    """Delivery project opened for a won lead."""

    __tablename__ = "projects"

    id = db.Column(db.Integer, primary_key=True)
    lead_id = db.Column(
        db.Integer,
        db.ForeignKey("leads.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    owner_id = db.Column(db.String(64), nullable=True, comment="May approve phases without an elevated role")
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    phases = db.relationship(
        "ProjectPhase",
        backref="project",
        lazy="select",
        cascade="all, delete-orphan",
        order_by="ProjectPhase.phase_number",
    )

    def to_dict(self, include_phases=False):
        result = {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "lead_id": self.lead_id,
            "owner_id": self.owner_id,
            "name": self.name,
            "description": self.description,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
        if include_phases:
            result["phases"] = [p.to_dict() for p in self.phases]
        return result

    def __repr__(self):
        return f"<Project {self.id}: {self.name}>"


class ProjectPhase(TenantModel):
    __tablename__ = "project_phases"
    __table_args__ = (
        db.UniqueConstraint("project_id", "phase_number", name="uq_project_phase_number"),
    )

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(
        db.Integer,
        db.ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    phase_number = db.Column(db.Integer, nullable=False)
    phase_name = db.Column(db.String(100), nullable=False)
    status = db.Column(db.String(20), nullable=False, default="not_started",
                       comment="not_started | in_progress | review | approved")
    agent_id = db.Column(
        db.Integer,
        db.ForeignKey("agents.id", ondelete="SET NULL"),
        nullable=True,
    )
    approved_by = db.Column(db.String(64), nullable=True)
    approved_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    agent = db.relationship("Agent", lazy="joined")

    def to_dict(self):
        return {
            "id": self.id,
            "project_id": self.project_id,
            "phase_number": self.phase_number,
            "phase_name": self.phase_name,
            "status": self.status,
            "agent_id": self.agent_id,
            "agent_name": self.agent.name if self.agent else None,
            "approved_by": self.approved_by,
            "approved_at": self.approved_at.isoformat() if self.approved_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self):
        return f"<ProjectPhase project={self.project_id} #{self.phase_number} [{self.status}]>"


class PhaseExecution(TenantModel):
    """One attempt to run a phase's agent.  Status only moves running → terminal."""

    __tablename__ = "phase_executions"

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(
        db.Integer,
        db.ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    phase_number = db.Column(db.Integer, nullable=False)
    # agent at run time; no FK so deleting the agent leaves run history intact
    agent_id = db.Column(db.Integer, nullable=True)
    status = db.Column(db.String(20), nullable=False, default="running",
                       comment="running | completed | failed")
    error_message = db.Column(db.Text, nullable=True)
    requested_by = db.Column(db.String(64), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    def to_dict(self):
        return {
            "id": self.id,
            "project_id": self.project_id,
            "phase_number": self.phase_number,
            "agent_id": self.agent_id,
            "status": self.status,
            "error_message": self.error_message,
            "requested_by": self.requested_by,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
        }

    def __repr__(self):
        return f"<PhaseExecution {self.id} project={self.project_id} #{self.phase_number} [{self.status}]>"


class PhaseOutput(TenantModel):
    """Immutable phase artifact.  Corrections are new rows, never updates."""

    __tablename__ = "phase_outputs"
    __table_args__ = (
        db.Index("ix_phase_outputs_lookup", "project_id", "phase_number", "version_type"),
    )

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(
        db.Integer,
        db.ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False,
    )
    phase_number = db.Column(db.Integer, nullable=False)
    version_type = db.Column(db.String(10), nullable=False, comment="ai | human")
    content = db.Column(db.Text, nullable=False)
    execution_id = db.Column(
        db.Integer,
        db.ForeignKey("phase_executions.id", ondelete="SET NULL"),
        nullable=True,
    )
    created_by = db.Column(db.String(64), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)

    def to_dict(self):
        return {
            "id": self.id,
            "project_id": self.project_id,
            "phase_number": self.phase_number,
            "version_type": self.version_type,
            "content": self.content,
            "execution_id": self.execution_id,
            "created_by": self.created_by,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<PhaseOutput {self.id} project={self.project_id} #{self.phase_number} {self.version_type}>"


class PhaseMessage(TenantModel):
    __tablename__ = "phase_messages"

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(
        db.Integer,
        db.ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    phase_number = db.Column(db.Integer, nullable=False)
    role = db.Column(db.String(20), nullable=False, comment="user | assistant")
    content = db.Column(db.Text, nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)

    def to_dict(self):
        return {
            "id": self.id,
            "project_id": self.project_id,
            "phase_number": self.phase_number,
            "role": self.role,
            "content": self.content,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<PhaseMessage {self.id} {self.role}>"


class ProjectAttachment(TenantModel):
    __tablename__ = "project_attachments"

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(
        db.Integer,
        db.ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    uploaded_by = db.Column(db.String(64), nullable=True)
    file_name = db.Column(db.String(255), nullable=False)
    file_size = db.Column(db.Integer, nullable=False, default=0)
    content_type = db.Column(db.String(100), nullable=True)
    storage_path = db.Column(db.String(500), nullable=False)
    phase = db.Column(db.Integer, nullable=True, comment="Optional delivery phase number")
    description = db.Column(db.Text, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)

    def to_dict(self):
        return {
            "id": self.id,
            "project_id": self.project_id,
            "uploaded_by": self.uploaded_by,
            "file_name": self.file_name,
            "file_size": self.file_size,
            "content_type": self.content_type,
            "storage_path": self.storage_path,
            "phase": self.phase,
            "description": self.description,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<ProjectAttachment {self.id}: {self.file_name}>"
