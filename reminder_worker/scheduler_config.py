"""
Scheduler Configuration for Deadline Reminders

Defines reminder offsets, pacing and scheduler settings. Every value has a
default; bad values are logged and replaced, never raised.
"""
import logging
import os
from dataclasses import dataclass
from typing import Mapping, Optional, Tuple

import pytz

logger = logging.getLogger(__name__)

# Reminder offsets in minutes before deadline: 2 days, 1 day, 6h, 2h, 1h, 30m, 10m, 5m, 1m
DEFAULT_REMINDER_OFFSETS: Tuple[int, ...] = (2880, 1440, 360, 120, 60, 30, 10, 5, 1)

# How often the scheduler checks for tasks (in seconds)
DEFAULT_TICK_INTERVAL_SECONDS = 60  # Every 1 minute

# Stickers sent after the overdue text
DEFAULT_BURST_SIZE = 10

# Messages per push call and wait between calls
DEFAULT_BATCH_SIZE = 5
DEFAULT_BATCH_PACING_SECONDS = 1.0

# Upper bound for a single channel call
DEFAULT_DISPATCH_TIMEOUT_SECONDS = 10.0

DEFAULT_TIMEZONE = "Asia/Tokyo"


@dataclass(frozen=True)
class ReminderSettings:
    tick_interval_seconds: int = DEFAULT_TICK_INTERVAL_SECONDS
    offsets: Tuple[int, ...] = DEFAULT_REMINDER_OFFSETS
    burst_size: int = DEFAULT_BURST_SIZE
    batch_size: int = DEFAULT_BATCH_SIZE
    batch_pacing_seconds: float = DEFAULT_BATCH_PACING_SECONDS
    dispatch_timeout_seconds: float = DEFAULT_DISPATCH_TIMEOUT_SECONDS
    timezone: str = DEFAULT_TIMEZONE

    @property
    def tz(self):
        return pytz.timezone(self.timezone)


def parse_offsets(raw: Optional[str]) -> Tuple[int, ...]:
    """
    Parse '2880,1440,60' into a descending tuple of unique positive ints.

    Non-numeric and non-positive entries are dropped. An empty result falls
    back to the defaults.
    """
    if raw is None or not raw.strip():
        return DEFAULT_REMINDER_OFFSETS

    offsets = set()
    for part in raw.split(","):
        part = part.strip()
        if not part:
            continue
        try:
            value = int(part)
        except ValueError:
            logger.warning(f"Ignoring non-numeric reminder offset {part!r}")
            continue
        if value <= 0:
            logger.warning(f"Ignoring non-positive reminder offset {value}")
            continue
        offsets.add(value)

    if not offsets:
        logger.warning(f"No usable reminder offsets in {raw!r}, using defaults")
        return DEFAULT_REMINDER_OFFSETS
    return tuple(sorted(offsets, reverse=True))


def _positive(env: Mapping[str, str], name: str, default, cast):
    raw = env.get(name)
    if raw is None or str(raw).strip() == "":
        return default
    try:
        value = cast(raw)
    except (TypeError, ValueError):
        logger.warning(f"Invalid {name}={raw!r}, using default {default}")
        return default
    if value <= 0:
        logger.warning(f"{name} must be positive, got {raw!r}; using default {default}")
        return default
    return value


def _non_negative(env: Mapping[str, str], name: str, default, cast):
    raw = env.get(name)
    if raw is None or str(raw).strip() == "":
        return default
    try:
        value = cast(raw)
    except (TypeError, ValueError):
        logger.warning(f"Invalid {name}={raw!r}, using default {default}")
        return default
    if value < 0:
        logger.warning(f"{name} must not be negative, got {raw!r}; using default {default}")
        return default
    return value


def _timezone(env: Mapping[str, str]) -> str:
    name = (env.get("TIMEZONE") or "").strip()
    if not name:
        return DEFAULT_TIMEZONE
    try:
        pytz.timezone(name)
    except pytz.UnknownTimeZoneError:
        logger.warning(f"Unknown TIMEZONE {name!r}, using {DEFAULT_TIMEZONE}")
        return DEFAULT_TIMEZONE
    return name


def min_offset_gap(offsets: Tuple[int, ...]) -> Optional[int]:
    """Smallest spacing between neighbouring offsets (including the deadline itself)."""
    if not offsets:
        return None
    ordered = sorted(set(offsets))
    gaps = [ordered[0]] + [b - a for a, b in zip(ordered, ordered[1:])]
    return min(gaps)


def load_reminder_settings(env: Optional[Mapping[str, str]] = None) -> ReminderSettings:
    """Build ReminderSettings from environment variables."""
    if env is None:
        env = os.environ

    settings = ReminderSettings(
        tick_interval_seconds=_positive(env, "TICK_INTERVAL_SECONDS", DEFAULT_TICK_INTERVAL_SECONDS, int),
        offsets=parse_offsets(env.get("REMINDER_OFFSETS")),
        burst_size=_non_negative(env, "BURST_SIZE", DEFAULT_BURST_SIZE, int),
        batch_size=_positive(env, "BATCH_SIZE", DEFAULT_BATCH_SIZE, int),
        batch_pacing_seconds=_non_negative(env, "BATCH_PACING_SECONDS", DEFAULT_BATCH_PACING_SECONDS, float),
        dispatch_timeout_seconds=_positive(env, "DISPATCH_TIMEOUT_SECONDS", DEFAULT_DISPATCH_TIMEOUT_SECONDS, float),
        timezone=_timezone(env),
    )

    gap = min_offset_gap(settings.offsets)
    if gap is not None and settings.tick_interval_seconds > gap * 60:
        logger.warning(
            f"Tick interval {settings.tick_interval_seconds}s is longer than the smallest "
            f"reminder gap ({gap} min); some reminders will be skipped"
        )
    return settings
