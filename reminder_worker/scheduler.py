"""
Deadline Reminder Scheduler

Periodically checks open tasks against their deadlines and sends LINE
notifications: one reminder per configured offset before the deadline,
then a single overdue burst once it has passed.

Which phases already fired lives in the store, not in this process. A phase
is recorded only after a successful send, through the store's conditional
write, so the tick and the on-demand webhook path can both evaluate the same
task without double-recording it.
"""
import logging
import threading
import time
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Dict, Optional

from apscheduler.schedulers.background import BackgroundScheduler

from . import metrics
from .composer import MessageComposer
from .dispatcher import Dispatcher
from .evaluator import NoDeadline, Pending, evaluate_deadline
from .policy import next_phase
from .scheduler_config import ReminderSettings
from .store import MarkResult, StoreError
from .tasks import Task, phase_key

logger = logging.getLogger(__name__)


class TaskOutcome:
    no_deadline = "no_deadline"
    closed = "closed"
    disabled = "disabled"
    not_due = "not_due"
    fired = "fired"
    already_fired = "already_fired"
    dispatch_failed = "dispatch_failed"
    mark_failed = "mark_failed"
    error = "error"


@dataclass
class TickReport:
    skipped: bool = False
    store_error: bool = False
    tasks_seen: int = 0
    outcomes: Dict[str, int] = field(default_factory=dict)

    def count(self, outcome: str) -> int:
        return self.outcomes.get(outcome, 0)


class DeadlineScheduler:
    """
    Arguments:
        store: ``list_open_tasks()`` / ``mark_phase_fired(task_id, phase)`` provider.
        dispatcher: Dispatcher bound to the messaging channel.
        composer: MessageComposer for phase messages.
        settings: ReminderSettings (offsets, tick interval, time zone).
        clock: Returns the current aware datetime; defaults to now in the operating zone.
    """

    def __init__(
        self,
        store,
        dispatcher: Dispatcher,
        composer: Optional[MessageComposer] = None,
        settings: Optional[ReminderSettings] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self.store = store
        self.dispatcher = dispatcher
        self.settings = settings or ReminderSettings()
        self.composer = composer or MessageComposer(burst_size=self.settings.burst_size)
        self.tz = self.settings.tz
        self.clock = clock or (lambda: datetime.now(self.tz))
        self._tick_lock = threading.Lock()
        self._scheduler: Optional[BackgroundScheduler] = None

    # =========================================================
    # PER-TASK EVALUATION
    # =========================================================
    def evaluate_task(self, task: Task, now: Optional[datetime] = None) -> str:
        """
        Evaluate one task and fire at most one phase for it.

        Shared by the periodic tick and the on-demand webhook path.
        Returns a TaskOutcome value.
        """
        if now is None:
            now = self.clock()

        if not task.is_open:
            return TaskOutcome.closed
        if not task.notifications_enabled:
            return TaskOutcome.disabled

        state = evaluate_deadline(task.deadline_date, task.deadline_time, now, self.tz)
        if isinstance(state, NoDeadline):
            return TaskOutcome.no_deadline

        phase = next_phase(state, task.history, self.settings.offsets)
        if phase is None:
            return TaskOutcome.not_due

        key = phase_key(phase)
        logger.info(f"Task {task.id} ({task.label!r}): {state}, firing phase {key}")

        remaining = state.minutes_remaining if isinstance(state, Pending) else None
        units = self.composer.compose(phase, task.label, task.deadline_text, remaining)
        result = self.dispatcher.send(task.owner, units)
        if not result.ok:
            logger.error(
                f"❌ Dispatch of phase {key} for task {task.id} failed after "
                f"{result.batches_sent}/{result.batches_total} batches: {result.error}. Will retry next tick"
            )
            return TaskOutcome.dispatch_failed

        marked = self.store.mark_phase_fired(task.id, phase)
        if marked == MarkResult.fired:
            logger.info(f"✅ Sent phase {key} for task {task.id} to {task.owner}")
            metrics.NOTIFICATIONS_FIRED.labels(phase=key).inc()
            return TaskOutcome.fired
        if marked == MarkResult.already_fired:
            logger.warning(f"Phase {key} for task {task.id} was already recorded by another path")
            return TaskOutcome.already_fired

        logger.error(f"Sent phase {key} for task {task.id} but could not record it; it may be re-sent next tick")
        return TaskOutcome.mark_failed

    # =========================================================
    # TICK
    # =========================================================
    def run_tick(self) -> TickReport:
        """
        Main job: evaluate every open task once.

        Returns immediately with ``skipped=True`` if a tick is already running.
        """
        if not self._tick_lock.acquire(blocking=False):
            logger.warning("Previous deadline check still running, skipping this tick")
            metrics.TICKS.labels(result="overlap").inc()
            return TickReport(skipped=True)

        started = time.monotonic()
        try:
            return self._run_tick()
        finally:
            metrics.TICK_DURATION.observe(time.monotonic() - started)
            self._tick_lock.release()

    def _run_tick(self) -> TickReport:
        logger.info("🔍 Checking task deadlines for reminders...")

        try:
            tasks = self.store.list_open_tasks()
        except StoreError as e:
            logger.error(f"Skipping tick, could not load open tasks: {e}")
            metrics.TICKS.labels(result="store_error").inc()
            return TickReport(store_error=True)

        now = self.clock()
        outcomes = Counter()
        for task in tasks:
            try:
                outcome = self.evaluate_task(task, now)
            except Exception as e:
                logger.error(f"Error evaluating task {task.id}: {e}", exc_info=True)
                outcome = TaskOutcome.error
            outcomes[outcome] += 1
            metrics.TASK_OUTCOMES.labels(outcome=outcome).inc()

        metrics.TICKS.labels(result="ok").inc()
        logger.info(
            f"✅ Deadline check complete. Processed {len(tasks)} tasks, "
            f"{outcomes[TaskOutcome.fired]} notified, "
            f"{outcomes[TaskOutcome.dispatch_failed] + outcomes[TaskOutcome.mark_failed] + outcomes[TaskOutcome.error]} failed"
        )
        return TickReport(tasks_seen=len(tasks), outcomes=dict(outcomes))

    # =========================================================
    # BACKGROUND JOB
    # =========================================================
    def start(self) -> None:
        """Run ``run_tick`` every ``tick_interval_seconds`` in a background thread."""
        if self._scheduler is not None:
            return
        self._scheduler = BackgroundScheduler(timezone=self.tz)
        self._scheduler.add_job(
            self.run_tick,
            'interval',
            seconds=self.settings.tick_interval_seconds,
            id='deadline_reminder_job',
            replace_existing=True,
            max_instances=1,
            coalesce=True,
            next_run_time=datetime.now(self.tz),
        )
        self._scheduler.start()
        logger.info(
            f"🚀 Scheduler started: deadline reminders every {self.settings.tick_interval_seconds}s, "
            f"offsets {list(self.settings.offsets)} min"
        )

    def shutdown(self) -> None:
        """Stop the background job without waiting for a running tick."""
        if self._scheduler is None:
            return
        self._scheduler.shutdown(wait=False)
        self._scheduler = None
        logger.info("🛑 Scheduler stopped")
