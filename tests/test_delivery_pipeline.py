"""Tests for the delivery pipeline and the approval gate.

Coverage:
  1. init_pipeline: won lead required, one row per phase, no duplicates
  2. assign_agent: bind, clear, unusable model config, tenant scope
  3. Manual status moves: start / review / reopen
  4. approve_phase: owner or elevated only, approvable statuses, re-approval
     rejected without touching the recorded approval, next phase unlocked
"""

import pytest

from conftest import OWNER_ID
from consultflow.core.exceptions import (
    ConflictError,
    NotFoundError,
    PermissionDenied,
    PhaseAlreadyApproved,
    ValidationError,
)
from consultflow.core.phase_registry import DeliveryPhase, DeliveryPhaseRegistry
from consultflow.models import db
from consultflow.models.delivery import ProjectPhase
from consultflow.services import agent_service, approval_service, delivery_service, project_service


def _statuses(tenant_id, project_id):
    return {p["phase_number"]: p["status"] for p in delivery_service.list_phases(tenant_id, project_id)}


class TestInitPipeline:
    def test_creates_seven_phases_first_in_progress(self, tenant, project):
        phases = delivery_service.init_pipeline(tenant.id, project["id"])

        assert [p["phase_number"] for p in phases] == list(range(1, 8))
        assert phases[0]["status"] == "in_progress"
        assert {p["status"] for p in phases[1:]} == {"not_started"}
        assert phases[2]["phase_name"] == "Traceability"

    def test_requires_won_lead(self, tenant, lead):
        open_project = project_service.create_project(
            tenant.id, {"name": "Too early", "lead_id": lead["id"]}, owner_id=OWNER_ID,
        )
        with pytest.raises(ValidationError, match="won"):
            delivery_service.init_pipeline(tenant.id, open_project["id"])
        assert ProjectPhase.query.filter_by(project_id=open_project["id"]).count() == 0

    def test_second_init_conflicts(self, tenant, project, pipeline):
        with pytest.raises(ConflictError):
            delivery_service.init_pipeline(tenant.id, project["id"])

    def test_injected_registry(self, tenant, project):
        registry = DeliveryPhaseRegistry([DeliveryPhase(1, "Draft"), DeliveryPhase(2, "Final")])
        phases = delivery_service.init_pipeline(tenant.id, project["id"], registry=registry)
        assert [p["phase_name"] for p in phases] == ["Draft", "Final"]

    def test_other_tenant_project(self, other_tenant, project):
        with pytest.raises(NotFoundError):
            delivery_service.init_pipeline(other_tenant.id, project["id"])


class TestAssignAgent:
    def test_bind_and_clear(self, tenant, project, pipeline, agent):
        bound = delivery_service.assign_agent(tenant.id, project["id"], 3, agent["id"])
        assert bound["agent_id"] == agent["id"]
        assert bound["agent_name"] == "Eligibility Analyst"
        assert bound["status"] == "not_started"

        cleared = delivery_service.assign_agent(tenant.id, project["id"], 3, None)
        assert cleared["agent_id"] is None

    def test_agent_without_model_rejected(self, tenant, project, pipeline):
        bare = agent_service.create_agent(tenant.id, {"name": "No model", "model_config": {}})
        with pytest.raises(ValidationError, match="model identifier"):
            delivery_service.assign_agent(tenant.id, project["id"], 1, bare["id"])
        assert db.session.get(ProjectPhase, pipeline[0]["id"]).agent_id is None

    def test_default_model_makes_agent_runnable(self, app, tenant, project, pipeline, monkeypatch):
        monkeypatch.setitem(app.config, "DEFAULT_AGENT_MODEL", "house-model")
        bare = agent_service.create_agent(tenant.id, {"name": "No model"})
        bound = delivery_service.assign_agent(tenant.id, project["id"], 1, bare["id"])
        assert bound["agent_id"] == bare["id"]

    def test_agent_from_other_tenant(self, tenant, other_tenant, project, pipeline):
        foreign = agent_service.create_agent(other_tenant.id, {
            "name": "Foreign", "model_config": {"model": "m"},
        })
        with pytest.raises(NotFoundError):
            delivery_service.assign_agent(tenant.id, project["id"], 1, foreign["id"])

    def test_deleting_agent_unbinds_phase(self, tenant, project, pipeline, agent):
        delivery_service.assign_agent(tenant.id, project["id"], 2, agent["id"])
        agent_service.delete_agent(tenant.id, agent["id"])
        db.session.expire_all()
        assert delivery_service.get_phase_detail(tenant.id, project["id"], 2)["agent_id"] is None


class TestStatusMoves:
    def test_start_review_reopen(self, tenant, project, pipeline):
        pid = project["id"]
        assert delivery_service.start_phase(tenant.id, pid, 2)["status"] == "in_progress"
        assert delivery_service.submit_for_review(tenant.id, pid, 2)["status"] == "review"
        assert delivery_service.reopen_phase(tenant.id, pid, 2)["status"] == "in_progress"

    def test_start_requires_not_started(self, tenant, project, pipeline):
        with pytest.raises(ValidationError, match="Cannot move phase"):
            delivery_service.start_phase(tenant.id, project["id"], 1)

    def test_review_requires_in_progress(self, tenant, project, pipeline):
        with pytest.raises(ValidationError):
            delivery_service.submit_for_review(tenant.id, project["id"], 4)

    def test_approved_is_final_for_manual_moves(self, tenant, project, pipeline):
        approval_service.approve_phase(tenant.id, project["id"], 1, OWNER_ID)
        with pytest.raises(ValidationError):
            delivery_service.reopen_phase(tenant.id, project["id"], 1)

    def test_phase_detail_label(self, tenant, project, pipeline):
        detail = delivery_service.get_phase_detail(tenant.id, project["id"], 4)
        assert detail["label"] == "Phase 4/7 — Calculation Memorandum"


class TestApprovalGate:
    def test_owner_approves_and_next_phase_unlocks(self, tenant, project, pipeline):
        result = approval_service.approve_phase(tenant.id, project["id"], 1, OWNER_ID)

        assert result["phase"]["status"] == "approved"
        assert result["phase"]["approved_by"] == OWNER_ID
        assert result["phase"]["approved_at"] is not None
        assert result["next_phase"]["phase_number"] == 2
        assert _statuses(tenant.id, project["id"])[2] == "in_progress"

    def test_approve_from_review(self, tenant, project, pipeline):
        delivery_service.submit_for_review(tenant.id, project["id"], 1)
        result = approval_service.approve_phase(tenant.id, project["id"], 1, OWNER_ID)
        assert result["phase"]["status"] == "approved"

    def test_elevated_non_owner_may_approve(self, tenant, project, pipeline):
        result = approval_service.approve_phase(
            tenant.id, project["id"], 1, "partner-9", is_elevated=True,
        )
        assert result["phase"]["approved_by"] == "partner-9"

    def test_non_owner_denied(self, tenant, project, pipeline):
        with pytest.raises(PermissionDenied, match="owner"):
            approval_service.approve_phase(tenant.id, project["id"], 1, "intruder")
        assert _statuses(tenant.id, project["id"])[1] == "in_progress"

    @pytest.mark.parametrize("approver", [None, "", "   "])
    def test_anonymous_denied(self, tenant, project, pipeline, approver):
        with pytest.raises(PermissionDenied):
            approval_service.approve_phase(tenant.id, project["id"], 1, approver, is_elevated=True)

    def test_reapproval_rejected_and_record_kept(self, tenant, project, pipeline):
        first = approval_service.approve_phase(tenant.id, project["id"], 1, OWNER_ID)

        with pytest.raises(PhaseAlreadyApproved) as excinfo:
            approval_service.approve_phase(tenant.id, project["id"], 1, "partner-9",
                                           is_elevated=True)

        assert excinfo.value.details["approved_by"] == OWNER_ID
        db.session.expire_all()
        phase = delivery_service.get_phase_detail(tenant.id, project["id"], 1)
        assert phase["approved_by"] == OWNER_ID
        assert phase["approved_at"] == first["phase"]["approved_at"]

    def test_not_started_has_nothing_to_approve(self, tenant, project, pipeline):
        with pytest.raises(ValidationError, match="nothing to approve"):
            approval_service.approve_phase(tenant.id, project["id"], 3, OWNER_ID)

    def test_unlock_skips_already_started_phase(self, tenant, project, pipeline):
        delivery_service.start_phase(tenant.id, project["id"], 2)
        delivery_service.submit_for_review(tenant.id, project["id"], 2)

        result = approval_service.approve_phase(tenant.id, project["id"], 1, OWNER_ID)

        assert result["next_phase"] is None
        assert _statuses(tenant.id, project["id"])[2] == "review"

    def test_last_phase_has_no_successor(self, tenant, project, pipeline):
        delivery_service.start_phase(tenant.id, project["id"], 7)
        result = approval_service.approve_phase(tenant.id, project["id"], 7, OWNER_ID)
        assert result["next_phase"] is None
