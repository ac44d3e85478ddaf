"""
Sales funnel configuration — phase order and per-phase checklist definitions.

The funnel is an immutable table passed into the gate, the board and the
checklist store.  Tests build alternate sequences with ``FunnelSequence(...)``
instead of patching module state.

Sequence:
    prospecting → qualification → diagnosis → proposal → closing → {won, lost}

``won`` is absorbing.  ``lost`` is reachable from every active phase.
"""

from __future__ import annotations

from dataclasses import dataclass, field

WON = "won"
LOST = "lost"
TERMINAL_PHASES = frozenset({WON, LOST})


@dataclass(frozen=True)
class ChecklistItemDefinition:
    """One required (or informational, when locked) checklist entry."""

    item_key: str
    label: str
    locked: bool = False


@dataclass(frozen=True)
class FunnelPhase:
    key: str
    label: str
    checklist: tuple[ChecklistItemDefinition, ...] = ()

    def item(self, item_key: str) -> ChecklistItemDefinition | None:
        for definition in self.checklist:
            if definition.item_key == item_key:
                return definition
        return None


@dataclass(frozen=True)
class FunnelSequence:
    """Ordered funnel phases.

    ``phases`` holds the active (pre-terminal) phases in order; ``won`` and
    ``lost`` are appended after them so every status has an ordinal.  The
    last active phase is the last gated one.
    """

    phases: tuple[FunnelPhase, ...]
    terminal: tuple[FunnelPhase, ...] = field(default=(
        FunnelPhase(WON, "Won"),
        FunnelPhase(LOST, "Lost"),
    ))

    def __post_init__(self):
        keys = [p.key for p in self.all_phases]
        if len(keys) != len(set(keys)):
            raise ValueError(f"Duplicate funnel phase keys: {keys}")
        if not self.phases:
            raise ValueError("A funnel needs at least one active phase")

    @property
    def all_phases(self) -> tuple[FunnelPhase, ...]:
        return self.phases + self.terminal

    @property
    def keys(self) -> list[str]:
        return [p.key for p in self.all_phases]

    @property
    def active_keys(self) -> list[str]:
        return [p.key for p in self.phases]

    @property
    def last_gated_index(self) -> int:
        return len(self.phases) - 1

    def is_valid(self, phase: str) -> bool:
        return phase in self.keys

    def index(self, phase: str) -> int:
        """Ordinal of ``phase``; raises ValueError for unknown keys."""
        try:
            return self.keys.index(phase)
        except ValueError:
            raise ValueError(f"Unknown funnel phase '{phase}'") from None

    def get(self, phase: str) -> FunnelPhase:
        for p in self.all_phases:
            if p.key == phase:
                return p
        raise ValueError(f"Unknown funnel phase '{phase}'")

    def label_for(self, phase: str) -> str:
        return self.get(phase).label

    def checklist_for(self, phase: str) -> tuple[ChecklistItemDefinition, ...]:
        return self.get(phase).checklist


DEFAULT_FUNNEL = FunnelSequence(phases=(
    FunnelPhase("prospecting", "Prospecting", (
        ChecklistItemDefinition("decision_maker_contact", "Decision-maker contact identified"),
        ChecklistItemDefinition("tax_id_validated", "Tax ID validated"),
        ChecklistItemDefinition("sector_confirmed", "Sector confirmed"),
        ChecklistItemDefinition(
            "icp_score_ok", "ICP score >= 7.5 (eligibility confirmed)", locked=True,
        ),
    )),
    FunnelPhase("qualification", "Qualification", (
        ChecklistItemDefinition("tax_regime", "Tax regime defined"),
        ChecklistItemDefinition("revenue_range", "Revenue range filled in"),
        ChecklistItemDefinition("qualification_meeting", "Qualification meeting held"),
        ChecklistItemDefinition("frascati_complete", "Frascati filter complete (5/5)"),
    )),
    FunnelPhase("diagnosis", "Diagnosis", (
        ChecklistItemDefinition("engineering_headcount", "Engineering headcount informed"),
        ChecklistItemDefinition("rd_budget", "R&D budget filled in"),
        ChecklistItemDefinition("tax_simulation", "Tax simulation executed"),
    )),
    FunnelPhase("proposal", "Proposal", (
        ChecklistItemDefinition("proposal_sent", "Commercial proposal sent"),
        ChecklistItemDefinition("client_feedback", "Client feedback recorded"),
    )),
    FunnelPhase("closing", "Closing", (
        ChecklistItemDefinition("contract_signed", "Contract signed"),
        ChecklistItemDefinition("kickoff_scheduled", "Kickoff scheduled"),
    )),
))
