"""
Notification Policy

Decides which single phase (if any) a task should fire on this tick.
"""
from typing import AbstractSet, Iterable, Optional

from .evaluator import DeadlineState, Overdue, Pending
from .tasks import OVERDUE, Phase


def next_phase(
    state: DeadlineState,
    history: AbstractSet[Phase],
    offsets: Iterable[int],
) -> Optional[Phase]:
    """
    Return the phase to fire for ``state`` given the already-fired ``history``.

    - Overdue and not yet notified -> OVERDUE, whatever the offset history.
    - Pending(m) -> the largest configured offset o with m <= o that has not
      fired yet. Only one phase per call, so a task sends at most one
      notification per tick even when several thresholds were skipped.
    - Anything else -> None.
    """
    if isinstance(state, Overdue):
        if OVERDUE in history:
            return None
        return OVERDUE

    if isinstance(state, Pending):
        eligible = [
            o for o in offsets
            if o > 0 and o not in history and state.minutes_remaining <= o
        ]
        return max(eligible) if eligible else None

    return None
