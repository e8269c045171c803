"""
Task value type used by the reminder scheduler.

Store rows (SQL objects or JSON dicts from the internal API) are converted
here so the scheduler never touches untyped records.
"""
import logging
from dataclasses import dataclass, field
from datetime import date, time
from typing import FrozenSet, Mapping, Optional, Union

from .evaluator import parse_deadline_date, parse_time_of_day

logger = logging.getLogger(__name__)

OVERDUE = "overdue"

# A phase is either a pre-deadline offset in minutes or OVERDUE.
Phase = Union[int, str]

STATUS_OPEN = "open"
STATUS_DONE = "done"


def phase_key(phase: Phase) -> str:
    """Wire/log form of a phase: 'overdue' or the offset as digits."""
    return OVERDUE if phase == OVERDUE else str(int(phase))


def parse_phase(value) -> Optional[Phase]:
    """Inverse of phase_key. Returns None for anything that is not a valid phase."""
    if value == OVERDUE:
        return OVERDUE
    try:
        offset = int(value)
    except (TypeError, ValueError):
        return None
    return offset if offset > 0 else None


@dataclass(frozen=True)
class Task:
    id: int
    owner: str
    label: str
    deadline_date: Optional[date] = None
    deadline_time: Optional[time] = None
    status: str = STATUS_OPEN
    notified_offsets: FrozenSet[int] = field(default_factory=frozenset)
    overdue_notified: bool = False
    notifications_enabled: bool = True
    email: Optional[str] = None

    @property
    def is_open(self) -> bool:
        return self.status == STATUS_OPEN

    @property
    def history(self) -> FrozenSet[Phase]:
        """Phases already fired for this task."""
        if self.overdue_notified:
            return frozenset(self.notified_offsets) | {OVERDUE}
        return frozenset(self.notified_offsets)

    @property
    def deadline_text(self) -> str:
        if self.deadline_date is None:
            return ""
        if self.deadline_time is None:
            return self.deadline_date.isoformat()
        return f"{self.deadline_date.isoformat()} {self.deadline_time.strftime('%H:%M')}"

    @classmethod
    def from_record(cls, record: Mapping) -> Optional["Task"]:
        """
        Build a Task from a store record.

        Malformed deadline fields become None (no deadline) rather than
        raising. Records without an id or owner cannot be notified and are
        dropped with a warning, as are ids that are not integers. A malformed
        notification history is ignored.
        """
        owner = record.get("user_id")
        try:
            task_id = int(record.get("id"))
        except (TypeError, ValueError):
            task_id = None
        if task_id is None or not owner:
            logger.warning(f"Dropping task record without id/owner: {dict(record)!r}")
            return None

        history = record.get("notified_offsets") or []
        if not isinstance(history, (list, tuple, set, frozenset)):
            logger.warning(f"Ignoring malformed notified_offsets for task {task_id}: {history!r}")
            history = []

        offsets = set()
        for value in history:
            offset = parse_phase(value)
            if isinstance(offset, int):
                offsets.add(offset)

        enabled = record.get("notifications_enabled")
        return cls(
            id=task_id,
            owner=str(owner),
            label=record.get("label") or "Untitled",
            deadline_date=parse_deadline_date(record.get("deadline_date")),
            deadline_time=parse_time_of_day(record.get("deadline_time")),
            status=str(record.get("status") or STATUS_OPEN),
            notified_offsets=frozenset(offsets),
            overdue_notified=bool(record.get("is_notified")),
            notifications_enabled=True if enabled is None else bool(enabled),
            email=record.get("email"),
        )
