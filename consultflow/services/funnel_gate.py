"""
Funnel Gate — pure decision function for sales-funnel transitions.

No database access; callers pass the checklist rows they already loaded.

Rules, evaluated in order:
    1. same phase                 → denied (no-op move)
    2. current is ``won``         → denied (absorbing)
    3. target is ``won``/``lost`` → allowed, no checklist gating
    4. backward move              → allowed, no checklist gating
                                    (leaving ``lost`` for an active phase counts as backward)
    5. forward move               → every phase being left, from current up to
                                    the one before target and never past the last
                                    active phase, must have all non-locked items
                                    completed; the first failing phase is reported
"""

from __future__ import annotations

import logging

from consultflow.core.funnel_config import DEFAULT_FUNNEL, LOST, WON, FunnelSequence
from consultflow.services.checklist_service import pending_items

logger = logging.getLogger(__name__)


def _decision(allowed: bool, reason: str | None = None,
              blocking_phase: str | None = None, pending: list[str] | None = None) -> dict:
    return {
        "allowed": allowed,
        "blocking_phase": blocking_phase,
        "pending_items": pending or [],
        "reason": reason,
    }


def can_advance(
    current_phase: str,
    target_phase: str,
    checklist: list[dict],
    funnel: FunnelSequence = DEFAULT_FUNNEL,
) -> dict:
    """Decide whether a lead in ``current_phase`` may move to ``target_phase``.

    Args:
        current_phase: The lead's status.
        target_phase:  Requested status.
        checklist:     Stored checklist rows (dicts with phase/item_key/completed).
        funnel:        Phase order and checklist definitions.

    Returns:
        {"allowed": bool, "blocking_phase": str|None,
         "pending_items": [label, ...], "reason": str|None}

    Raises:
        ValueError: If either phase is not part of ``funnel``.
    """
    current_idx = funnel.index(current_phase)
    target_idx = funnel.index(target_phase)

    if current_phase == target_phase:
        return _decision(False, reason="Lead is already in this phase")

    if current_phase == WON:
        return _decision(False, reason="Won leads cannot change phase")

    if target_phase in (WON, LOST):
        return _decision(True)

    if target_idx < current_idx:
        return _decision(True)

    upper = min(target_idx, funnel.last_gated_index + 1)
    for idx in range(current_idx, upper):
        phase = funnel.keys[idx]
        pending = pending_items(checklist, phase, funnel)
        if pending:
            logger.debug(
                "Funnel gate blocked %s → %s at %s (%d pending)",
                current_phase, target_phase, phase, len(pending),
            )
            return _decision(
                False,
                reason=f'Complete the "{funnel.label_for(phase)}" checklist before advancing',
                blocking_phase=phase,
                pending=pending,
            )

    return _decision(True)
