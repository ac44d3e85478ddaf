"""Tests for the delivery phase registry and the agent model config view.

Coverage:
  1. Default registry: seven phases numbered 1..7 with fixed names
  2. validate_phase_number rejects out-of-range, non-integer and bool input
  3. next_phase / label_for
  4. AgentModelConfig.parse: model identifier, extensions, default model
"""

import pytest

from consultflow.ai.agent_config import AgentModelConfig
from consultflow.core.exceptions import ValidationError
from consultflow.core.phase_registry import (
    DEFAULT_DELIVERY_PHASES,
    DeliveryPhase,
    DeliveryPhaseRegistry,
)


class TestDeliveryPhaseRegistry:
    def test_default_pipeline_has_seven_ordered_phases(self):
        names = [p.phase_name for p in DEFAULT_DELIVERY_PHASES]
        assert [p.phase_number for p in DEFAULT_DELIVERY_PHASES] == list(range(1, 8))
        assert names[0] == "Eligibility"
        assert names[-1] == "Submission"

    @pytest.mark.parametrize("value", [0, 8, -1, "abc", None, True])
    def test_invalid_phase_numbers_rejected(self, value):
        with pytest.raises(ValidationError, match="phase_number"):
            DEFAULT_DELIVERY_PHASES.validate_phase_number(value)

    def test_numeric_strings_are_accepted(self):
        assert DEFAULT_DELIVERY_PHASES.validate_phase_number("3") == 3

    def test_next_phase_stops_at_last(self):
        assert DEFAULT_DELIVERY_PHASES.next_phase(6) == 7
        assert DEFAULT_DELIVERY_PHASES.next_phase(7) is None

    def test_label_carries_position(self):
        assert DEFAULT_DELIVERY_PHASES.label_for(3) == "Phase 3/7 — Traceability"

    def test_gaps_in_numbering_rejected(self):
        with pytest.raises(ValueError, match="numbered"):
            DeliveryPhaseRegistry([DeliveryPhase(1, "One"), DeliveryPhase(3, "Three")])

    def test_short_registry(self):
        registry = DeliveryPhaseRegistry([DeliveryPhase(1, "Draft"), DeliveryPhase(2, "Final")])
        assert len(registry) == 2
        assert registry.name_for(2) == "Final"
        with pytest.raises(ValidationError):
            registry.get(3)


class TestAgentModelConfig:
    def test_model_and_extensions_split(self):
        cfg = AgentModelConfig.parse({"model": "gpt-4o-mini", "top_p": 0.9})
        assert cfg.model_identifier == "gpt-4o-mini"
        assert cfg.extensions == {"top_p": 0.9}
        assert cfg.to_dict() == {"model": "gpt-4o-mini", "top_p": 0.9}

    def test_default_model_fills_gap(self):
        cfg = AgentModelConfig.parse({"max_tokens": 512}, default_model="fallback-model")
        assert cfg.model_identifier == "fallback-model"

    def test_stored_model_wins_over_default(self):
        cfg = AgentModelConfig.parse({"model": "own"}, default_model="fallback-model")
        assert cfg.model_identifier == "own"

    @pytest.mark.parametrize("raw", [None, {}, {"model": "   "}])
    def test_missing_model_rejected(self, raw):
        with pytest.raises(ValidationError, match="no model identifier"):
            AgentModelConfig.parse(raw)

    def test_non_string_model_rejected(self):
        with pytest.raises(ValidationError, match="must be a string"):
            AgentModelConfig.parse({"model": 42})

    def test_non_mapping_rejected(self):
        with pytest.raises(ValidationError, match="must be an object"):
            AgentModelConfig.parse(["gpt"])
