"""
Deadline Evaluator

Classifies a task deadline relative to a reference instant. Pure: no I/O,
no clock reads.
"""
from dataclasses import dataclass
from datetime import date, datetime, time
from typing import Optional, Union

import pytz


@dataclass(frozen=True)
class NoDeadline:
    """Date or time missing: the task is never notified."""


@dataclass(frozen=True)
class Pending:
    minutes_remaining: float


@dataclass(frozen=True)
class Overdue:
    minutes_past: float


DeadlineState = Union[NoDeadline, Pending, Overdue]

DateLike = Union[date, str, None]
TimeLike = Union[time, str, None]


def parse_deadline_date(value: DateLike) -> Optional[date]:
    """Accepts a date or an ISO 'YYYY-MM-DD' string. Bad input -> None."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return datetime.strptime(str(value).strip()[:10], "%Y-%m-%d").date()
    except ValueError:
        return None


def parse_time_of_day(value: TimeLike) -> Optional[time]:
    """
    Accepts a time or an 'HH:MM[:SS]' string.

    'HH:MM' values get a ':00' seconds component before parsing so both
    forms compare the same way.
    """
    if value is None or value == "":
        return None
    if isinstance(value, time):
        return value
    text = str(value).strip()
    if text.count(":") == 1:
        text = f"{text}:00"
    try:
        return datetime.strptime(text, "%H:%M:%S").time()
    except ValueError:
        return None


def deadline_at(deadline_date: DateLike, deadline_time: TimeLike, tz) -> Optional[datetime]:
    """Combine date and time-of-day into an aware datetime in ``tz``."""
    d = parse_deadline_date(deadline_date)
    t = parse_time_of_day(deadline_time)
    if d is None or t is None:
        return None
    return tz.localize(datetime.combine(d, t.replace(tzinfo=None)))


def evaluate_deadline(
    deadline_date: DateLike,
    deadline_time: TimeLike,
    now: datetime,
    tz,
) -> DeadlineState:
    """
    Return the temporal state of a deadline at ``now``.

    Arguments:
        deadline_date: Deadline day, in the operating time zone.
        deadline_time: Deadline time-of-day, in the operating time zone.
        now: Reference instant. Naive values are taken as operating-zone local time.
        tz: Operating time zone, a pytz zone or its name.
    """
    if isinstance(tz, str):
        tz = pytz.timezone(tz)

    deadline = deadline_at(deadline_date, deadline_time, tz)
    if deadline is None:
        return NoDeadline()

    if now.tzinfo is None:
        now = tz.localize(now)
    else:
        now = now.astimezone(tz)

    minutes = (deadline - now).total_seconds() / 60
    if minutes >= 0:
        return Pending(minutes)
    return Overdue(-minutes)
