"""
Reminder worker entry point.

Builds the store, channel and dispatcher once, hands them to the
DeadlineScheduler, and keeps the process alive while ticks run in the
background.
"""
import logging
import signal
import threading

from prometheus_client import start_http_server

from line_channel import LineChannel
from .composer import MessageComposer
from .config import config
from .dispatcher import Dispatcher
from .scheduler import DeadlineScheduler
from .scheduler_config import ReminderSettings, load_reminder_settings
from .store import ApiTaskStore

logger = logging.getLogger(__name__)


def build_scheduler(settings: ReminderSettings) -> DeadlineScheduler:
    store = ApiTaskStore(config.INTERNAL_API_URL)
    channel = LineChannel(timeout=settings.dispatch_timeout_seconds)
    dispatcher = Dispatcher(
        channel,
        batch_size=settings.batch_size,
        pacing_seconds=settings.batch_pacing_seconds,
    )
    composer = MessageComposer(burst_size=settings.burst_size)
    return DeadlineScheduler(store, dispatcher, composer, settings)


def start_worker():
    """Run the deadline reminder job until SIGINT/SIGTERM."""
    logging.basicConfig(level=getattr(logging, config.LOG_LEVEL, logging.INFO))

    settings = load_reminder_settings()
    scheduler = build_scheduler(settings)

    start_http_server(config.METRICS_PORT)
    logger.info(f"Worker metrics on :{config.METRICS_PORT}, store at {config.INTERNAL_API_URL}")

    stop = threading.Event()
    signal.signal(signal.SIGTERM, lambda *_: stop.set())
    signal.signal(signal.SIGINT, lambda *_: stop.set())

    scheduler.start()
    try:
        stop.wait()
    finally:
        scheduler.shutdown()


if __name__ == "__main__":
    start_worker()
