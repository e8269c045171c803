import os
import random

import pytest

# must be set before server.database is imported
os.environ["DATABASE_URL"] = "sqlite://"

from reminder_worker.composer import MessageComposer  # noqa: E402
from reminder_worker.dispatcher import Dispatcher  # noqa: E402
from reminder_worker.scheduler import DeadlineScheduler  # noqa: E402
from reminder_worker.scheduler_config import ReminderSettings  # noqa: E402
from tests.fakes import Clock, FakeChannel  # noqa: E402


@pytest.fixture
def clock():
    return Clock()


@pytest.fixture
def channel():
    return FakeChannel()


@pytest.fixture
def sleeps():
    return []


@pytest.fixture
def settings():
    return ReminderSettings(offsets=(60, 15), burst_size=10, batch_size=5, batch_pacing_seconds=1.0)


@pytest.fixture
def build_scheduler(channel, clock, settings, sleeps):
    """Factory: DeadlineScheduler over the given store with fake channel and clock."""
    def _build(store, **overrides):
        cfg = overrides.pop("settings", settings)
        dispatcher = Dispatcher(
            overrides.pop("channel", channel),
            batch_size=cfg.batch_size,
            pacing_seconds=cfg.batch_pacing_seconds,
            sleep=sleeps.append,
        )
        composer = MessageComposer(random.Random(7), burst_size=cfg.burst_size)
        return DeadlineScheduler(store, dispatcher, composer, cfg, clock=clock)
    return _build
