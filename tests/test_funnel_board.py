"""Tests for the checklist store and the funnel board controller.

Coverage:
  1. toggle_item is idempotent; completed_at survives a repeated completion
  2. Uncompleting deletes the row; unknown/locked items are rejected
  3. bucket_leads keeps fetch order and ignores unknown statuses
  4. move_lead: no-op results, gate denial, single status update
  5. Tenant isolation on leads and checklists
"""

import pytest

from consultflow.core.exceptions import FunnelTransitionDenied, NotFoundError, ValidationError
from consultflow.core.funnel_config import DEFAULT_FUNNEL
from consultflow.models import db
from consultflow.models.funnel import Lead, LeadChecklistItem
from consultflow.services import checklist_service, funnel_board_service, lead_service


def _complete_phase(tenant_id, lead_id, phase):
    for definition in DEFAULT_FUNNEL.checklist_for(phase):
        if not definition.locked:
            checklist_service.toggle_item(tenant_id, lead_id, phase, definition.item_key, True)


class TestChecklistStore:
    def test_toggle_true_twice_keeps_one_row_and_timestamp(self, tenant, lead):
        first = checklist_service.toggle_item(tenant.id, lead["id"], "prospecting", "tax_id_validated", True)
        second = checklist_service.toggle_item(tenant.id, lead["id"], "prospecting", "tax_id_validated", True)

        assert first["completed_at"] is not None
        assert second["completed_at"] == first["completed_at"]
        assert second["id"] == first["id"]
        assert LeadChecklistItem.query.filter_by(lead_id=lead["id"]).count() == 1

    def test_toggle_false_deletes_row(self, tenant, lead):
        checklist_service.toggle_item(tenant.id, lead["id"], "prospecting", "sector_confirmed", True)
        assert checklist_service.toggle_item(
            tenant.id, lead["id"], "prospecting", "sector_confirmed", False,
        ) is None
        assert checklist_service.get_checklist(tenant.id, lead["id"]) == []

    def test_toggle_false_without_row_is_noop(self, tenant, lead):
        assert checklist_service.toggle_item(
            tenant.id, lead["id"], "closing", "contract_signed", False,
        ) is None

    def test_unknown_item_rejected(self, tenant, lead):
        with pytest.raises(ValidationError, match="Unknown checklist item"):
            checklist_service.toggle_item(tenant.id, lead["id"], "prospecting", "bogus", True)

    def test_unknown_phase_rejected(self, tenant, lead):
        with pytest.raises(ValidationError, match="Unknown funnel phase"):
            checklist_service.toggle_item(tenant.id, lead["id"], "negotiation", "x", True)

    def test_locked_item_rejected(self, tenant, lead):
        with pytest.raises(ValidationError, match="locked"):
            checklist_service.toggle_item(tenant.id, lead["id"], "prospecting", "icp_score_ok", False)

    def test_progress_counts_locked_items(self, tenant, lead):
        checklist_service.toggle_item(tenant.id, lead["id"], "prospecting", "tax_id_validated", True)
        items = checklist_service.get_checklist(tenant.id, lead["id"])
        assert checklist_service.phase_progress(items, "prospecting") == {"completed": 2, "total": 4}

    def test_other_tenant_cannot_toggle(self, tenant, other_tenant, lead):
        with pytest.raises(NotFoundError):
            checklist_service.toggle_item(other_tenant.id, lead["id"], "prospecting", "tax_id_validated", True)


class TestBucketLeads:
    def test_keeps_fetch_order_within_column(self):
        leads = [
            {"id": 3, "status": "qualification"},
            {"id": 1, "status": "prospecting"},
            {"id": 2, "status": "qualification"},
            {"id": 9, "status": "archived"},
        ]
        buckets = funnel_board_service.bucket_leads(leads)

        assert list(buckets) == ["prospecting", "qualification", "diagnosis", "proposal",
                                 "closing", "won", "lost"]
        assert [lead["id"] for lead in buckets["qualification"]] == [3, 2]
        assert sum(len(v) for v in buckets.values()) == 3


class TestMoveLead:
    def test_missing_lead_is_noop(self, tenant):
        result = funnel_board_service.move_lead(tenant.id, 999, "qualification")
        assert result["moved"] is False
        assert result["reason"] == "lead_not_found"

    def test_same_phase_is_noop(self, tenant, lead):
        result = funnel_board_service.move_lead(tenant.id, lead["id"], "prospecting")
        assert result["moved"] is False
        assert result["reason"] == "already_in_phase"

    def test_unknown_target_rejected(self, tenant, lead):
        with pytest.raises(ValidationError, match="Unknown funnel phase"):
            funnel_board_service.move_lead(tenant.id, lead["id"], "negotiation")

    def test_scenario_one_pending_item_blocks_proposal(self, tenant):
        created = lead_service.create_lead(tenant.id, {"company_name": "Q Corp", "status": "qualification"})
        for key in ("tax_regime", "revenue_range", "qualification_meeting"):
            checklist_service.toggle_item(tenant.id, created["id"], "qualification", key, True)

        with pytest.raises(FunnelTransitionDenied) as excinfo:
            funnel_board_service.move_lead(tenant.id, created["id"], "proposal")

        err = excinfo.value
        assert err.blocking_phase == "qualification"
        assert err.pending_items == ["Frascati filter complete (5/5)"]
        assert err.details["blocking_phase"] == "qualification"
        assert db.session.get(Lead, created["id"]).status == "qualification"

    def test_allowed_move_updates_only_status(self, tenant, lead):
        _complete_phase(tenant.id, lead["id"], "prospecting")
        before = lead_service.get_lead(tenant.id, lead["id"])

        result = funnel_board_service.move_lead(tenant.id, lead["id"], "qualification")

        assert result == {"moved": True, "lead_id": lead["id"], "from": "prospecting",
                          "to": "qualification", "reason": None}
        db.session.expire_all()
        after = lead_service.get_lead(tenant.id, lead["id"])
        changed = {k for k in before if before[k] != after[k]}
        assert changed <= {"status", "updated_at"}
        assert after["status"] == "qualification"

    def test_lost_is_reachable_from_any_phase(self, tenant, lead):
        result = funnel_board_service.move_lead(tenant.id, lead["id"], "lost")
        assert result["moved"] is True

    def test_won_lead_cannot_move(self, tenant, won_lead):
        with pytest.raises(FunnelTransitionDenied, match="Won leads"):
            funnel_board_service.move_lead(tenant.id, won_lead["id"], "closing")

    def test_other_tenant_sees_missing_lead(self, tenant, other_tenant, lead):
        result = funnel_board_service.move_lead(other_tenant.id, lead["id"], "lost")
        assert result["reason"] == "lead_not_found"
        assert db.session.get(Lead, lead["id"]).status == "prospecting"


class TestBoard:
    def test_board_columns_carry_progress(self, tenant, lead):
        checklist_service.toggle_item(tenant.id, lead["id"], "prospecting", "tax_id_validated", True)
        board = funnel_board_service.get_board(tenant.id)

        columns = {c["phase"]: c for c in board["columns"]}
        assert columns["prospecting"]["label"] == "Prospecting"
        card = columns["prospecting"]["leads"][0]
        assert card["id"] == lead["id"]
        assert card["checklist_progress"] == {"completed": 2, "total": 4}

    def test_board_is_tenant_scoped(self, tenant, other_tenant, lead):
        board = funnel_board_service.get_board(other_tenant.id)
        assert all(not c["leads"] for c in board["columns"])


class TestLeadService:
    def test_status_cannot_be_updated_directly(self, tenant, lead):
        with pytest.raises(ValidationError, match="funnel board"):
            lead_service.update_lead(tenant.id, lead["id"], {"status": "won"})

    def test_icp_score_range(self, tenant, lead):
        with pytest.raises(ValidationError, match="icp_score"):
            lead_service.update_lead(tenant.id, lead["id"], {"icp_score": 11})

    def test_company_name_required(self, tenant):
        with pytest.raises(ValidationError, match="company_name"):
            lead_service.create_lead(tenant.id, {"company_name": "  "})
