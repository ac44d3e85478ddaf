"""Tests for the funnel gate (pure transition decision).

Coverage:
  1. Same-phase and won-origin moves are always denied
  2. Terminal targets (won/lost) bypass checklist gating
  3. Backward moves are ungated, including re-opening a lost lead
  4. Forward moves walk every phase being left, fail-fast on the first gap
  5. Locked items count as satisfied; phases without definitions pass
  6. Alternate funnel sequences can be injected
"""

import pytest

from consultflow.core.funnel_config import (
    DEFAULT_FUNNEL,
    ChecklistItemDefinition,
    FunnelPhase,
    FunnelSequence,
)
from consultflow.services.funnel_gate import can_advance


def _done(phase, *keys):
    return [{"phase": phase, "item_key": k, "completed": True} for k in keys]


def _complete(phase, funnel=DEFAULT_FUNNEL):
    return _done(phase, *[d.item_key for d in funnel.checklist_for(phase) if not d.locked])


class TestAbsorbingAndNoop:
    def test_same_phase_is_denied(self):
        result = can_advance("qualification", "qualification", [])
        assert result["allowed"] is False
        assert result["blocking_phase"] is None

    @pytest.mark.parametrize("target", DEFAULT_FUNNEL.keys)
    def test_won_is_absorbing_for_every_target(self, target):
        result = can_advance("won", target, [])
        assert result["allowed"] is False

    def test_unknown_phase_raises(self):
        with pytest.raises(ValueError, match="Unknown funnel phase"):
            can_advance("prospecting", "negotiation", [])


class TestTerminalAndBackward:
    @pytest.mark.parametrize("current", DEFAULT_FUNNEL.active_keys)
    def test_terminal_targets_ignore_checklist(self, current):
        assert can_advance(current, "won", [])["allowed"] is True
        assert can_advance(current, "lost", [])["allowed"] is True

    def test_backward_moves_are_ungated(self):
        keys = DEFAULT_FUNNEL.active_keys
        for i, current in enumerate(keys):
            for target in keys[:i]:
                assert can_advance(current, target, [])["allowed"] is True, (current, target)

    def test_lost_lead_can_be_reopened(self):
        assert can_advance("lost", "qualification", [])["allowed"] is True


class TestForwardGating:
    def test_single_pending_item_blocks_with_its_label(self):
        checklist = _complete("prospecting") + _done(
            "qualification", "tax_regime", "revenue_range", "qualification_meeting",
        )
        result = can_advance("qualification", "proposal", checklist)

        assert result["allowed"] is False
        assert result["blocking_phase"] == "qualification"
        assert result["pending_items"] == ["Frascati filter complete (5/5)"]
        assert "Qualification" in result["reason"]

    def test_first_failing_phase_is_reported(self):
        # qualification and diagnosis both incomplete; qualification wins
        result = can_advance("prospecting", "proposal", _complete("prospecting"))
        assert result["blocking_phase"] == "qualification"

    def test_current_phase_is_checked(self):
        result = can_advance("prospecting", "qualification", [])
        assert result["allowed"] is False
        assert result["blocking_phase"] == "prospecting"
        assert "ICP score >= 7.5 (eligibility confirmed)" not in result["pending_items"]

    def test_target_checklist_is_not_required_to_enter(self):
        result = can_advance("prospecting", "qualification", _complete("prospecting"))
        assert result == {"allowed": True, "blocking_phase": None, "pending_items": [], "reason": None}

    def test_multi_step_move_passes_when_every_left_phase_is_complete(self):
        checklist = _complete("prospecting") + _complete("qualification") + _complete("diagnosis")
        assert can_advance("prospecting", "proposal", checklist)["allowed"] is True

    def test_uncompleted_rows_do_not_count(self):
        checklist = [{"phase": "proposal", "item_key": "proposal_sent", "completed": False},
                     *_done("proposal", "client_feedback")]
        result = can_advance("proposal", "closing", checklist)
        assert result["pending_items"] == ["Commercial proposal sent"]


class TestInjectedSequence:
    def test_phase_without_definitions_passes(self):
        funnel = FunnelSequence(phases=(
            FunnelPhase("intro", "Intro"),
            FunnelPhase("pitch", "Pitch", (ChecklistItemDefinition("deck", "Deck ready"),)),
            FunnelPhase("close", "Close"),
        ))
        assert can_advance("intro", "pitch", [], funnel)["allowed"] is True
        blocked = can_advance("intro", "close", [], funnel)
        assert blocked["blocking_phase"] == "pitch"
        assert blocked["pending_items"] == ["Deck ready"]

    def test_locked_only_phase_passes(self):
        funnel = FunnelSequence(phases=(
            FunnelPhase("a", "A", (ChecklistItemDefinition("auto", "Automatic", locked=True),)),
            FunnelPhase("b", "B"),
        ))
        assert can_advance("a", "b", [], funnel)["allowed"] is True

    def test_duplicate_keys_are_rejected(self):
        with pytest.raises(ValueError, match="Duplicate"):
            FunnelSequence(phases=(FunnelPhase("won", "Won"),))
