"""
Delivery phase registry — the fixed, ordered seven-phase delivery pipeline.

Injected into services as ``registry=`` (default ``DEFAULT_DELIVERY_PHASES``)
so tests can substitute a shorter pipeline.
"""

from __future__ import annotations

from dataclasses import dataclass

from consultflow.core.exceptions import ValidationError


@dataclass(frozen=True)
class DeliveryPhase:
    phase_number: int
    phase_name: str


class DeliveryPhaseRegistry:
    """Immutable ordered list of delivery phases numbered 1..N."""

    def __init__(self, phases):
        phases = tuple(phases)
        expected = list(range(1, len(phases) + 1))
        if [p.phase_number for p in phases] != expected:
            raise ValueError(
                f"Delivery phases must be numbered {expected}, "
                f"got {[p.phase_number for p in phases]}"
            )
        self._phases = phases

    def __iter__(self):
        return iter(self._phases)

    def __len__(self):
        return len(self._phases)

    @property
    def phases(self) -> tuple[DeliveryPhase, ...]:
        return self._phases

    def validate_phase_number(self, phase_number) -> int:
        """Return ``phase_number`` as int or raise ValidationError when out of range."""
        try:
            number = int(phase_number)
        except (TypeError, ValueError):
            raise ValidationError(
                f"phase_number must be an integer between 1 and {len(self)}",
                details={"phase_number": phase_number},
            ) from None
        if isinstance(phase_number, bool) or not 1 <= number <= len(self):
            raise ValidationError(
                f"phase_number must be between 1 and {len(self)}",
                details={"phase_number": phase_number},
            )
        return number

    def get(self, phase_number) -> DeliveryPhase:
        return self._phases[self.validate_phase_number(phase_number) - 1]

    def name_for(self, phase_number) -> str:
        return self.get(phase_number).phase_name

    def next_phase(self, phase_number) -> int | None:
        """Number of the phase after ``phase_number``, or None for the last one."""
        number = self.validate_phase_number(phase_number)
        return number + 1 if number < len(self) else None

    def label_for(self, phase_number) -> str:
        """Sequence-aware label, e.g. ``Phase 3/7 — Traceability``."""
        phase = self.get(phase_number)
        return f"Phase {phase.phase_number}/{len(self)} — {phase.phase_name}"


DEFAULT_DELIVERY_PHASES = DeliveryPhaseRegistry(
    DeliveryPhase(number, name)
    for number, name in enumerate(
        (
            "Eligibility",
            "Technical Diagnosis",
            "Traceability",
            "Calculation Memorandum",
            "Narrative Engineering",
            "Stress Test",
            "Submission",
        ),
        start=1,
    )
)
