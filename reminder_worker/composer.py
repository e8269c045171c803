"""
Message Composer

Builds the LINE message objects sent for a notification phase.

Overdue:      1 escalation text + ``burst_size`` stickers
Pre-deadline: 1 sticker + 1 reminder text
"""
import math
import random
from typing import Dict, List, Optional, Sequence, Tuple

from .tasks import OVERDUE, Phase

MessageUnit = Dict[str, str]

DEFAULT_BURST_SIZE = 10

# (packageId, stickerId) pairs from the LINE default sticker packages
STICKER_POOL: Tuple[Tuple[str, str], ...] = (
    ("446", "1988"),
    ("446", "1989"),
    ("446", "1990"),
    ("446", "2005"),
    ("446", "2011"),
    ("11537", "52002734"),
    ("11537", "52002736"),
    ("11537", "52002740"),
    ("11538", "51626496"),
    ("11538", "51626501"),
    ("11539", "52114110"),
    ("11539", "52114122"),
)

REMINDER_TEXTS: Tuple[str, ...] = (
    "⏰ Reminder: \"{label}\" is due in {remaining} ({deadline}).",
    "🔔 Heads up! \"{label}\" has {remaining} left. Deadline: {deadline}",
    "📋 Don't forget \"{label}\": due {deadline}, {remaining} to go.",
    "⚡ {remaining} until \"{label}\" is due ({deadline}). Time to wrap it up!",
)

OVERDUE_TEXTS: Tuple[str, ...] = (
    "💣 \"{label}\" is past its deadline ({deadline})! Hurry up!!",
    "🚨 OVERDUE: \"{label}\" was due {deadline}. Get it done NOW!",
    "⌛ Time's up for \"{label}\" ({deadline}). Finish it and reply 'done {label}'!",
)


def _plural(value: int, unit: str) -> str:
    return f"{value} {unit}" if value == 1 else f"{value} {unit}s"


def format_remaining(minutes: float) -> str:
    """2880 -> '2 days', 1437 -> '23 hours 57 minutes', 7.2 -> '8 minutes'."""
    minutes = max(1, math.ceil(minutes))
    if minutes >= 1440:
        days, rest = divmod(minutes, 1440)
        hours = rest // 60
        return _plural(days, "day") + (f" {_plural(hours, 'hour')}" if hours else "")
    if minutes >= 60:
        hours, rest = divmod(minutes, 60)
        return _plural(hours, "hour") + (f" {_plural(rest, 'minute')}" if rest else "")
    return _plural(minutes, "minute")


def text_unit(text: str) -> MessageUnit:
    return {"type": "text", "text": text}


def sticker_unit(sticker: Tuple[str, str]) -> MessageUnit:
    package_id, sticker_id = sticker
    return {"type": "sticker", "packageId": package_id, "stickerId": sticker_id}


class MessageComposer:
    def __init__(
        self,
        rng: Optional[random.Random] = None,
        burst_size: int = DEFAULT_BURST_SIZE,
        sticker_pool: Sequence[Tuple[str, str]] = STICKER_POOL,
    ) -> None:
        if not sticker_pool:
            raise ValueError("sticker_pool must not be empty")
        self.rng = rng or random.Random()
        self.burst_size = max(0, burst_size)
        self.sticker_pool = tuple(sticker_pool)

    def _sticker(self) -> MessageUnit:
        return sticker_unit(self.rng.choice(self.sticker_pool))

    def compose(
        self,
        phase: Phase,
        label: str,
        deadline: str = "",
        minutes_remaining: Optional[float] = None,
    ) -> List[MessageUnit]:
        """
        Return the ordered message units for ``phase``.

        Reminder texts state ``minutes_remaining`` when given, so a reminder
        sent after its offset still reports the real time left.
        """
        deadline = deadline or "no time set"
        if phase == OVERDUE:
            text = self.rng.choice(OVERDUE_TEXTS).format(label=label, deadline=deadline)
            return [text_unit(text)] + [self._sticker() for _ in range(self.burst_size)]

        text = self.rng.choice(REMINDER_TEXTS).format(
            label=label,
            deadline=deadline,
            remaining=format_remaining(int(phase) if minutes_remaining is None else minutes_remaining),
        )
        return [self._sticker(), text_unit(text)]
