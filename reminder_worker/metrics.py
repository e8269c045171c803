from prometheus_client import Counter, Histogram

TICKS = Counter(
    "reminder_ticks_total",
    "Scheduler ticks",
    ["result"]
)

TICK_DURATION = Histogram(
    "reminder_tick_duration_seconds",
    "Time spent evaluating all open tasks in one tick"
)

TASK_OUTCOMES = Counter(
    "reminder_task_outcomes_total",
    "Per-task evaluation outcomes",
    ["outcome"]
)

NOTIFICATIONS_FIRED = Counter(
    "reminder_notifications_fired_total",
    "Notification phases dispatched and recorded",
    ["phase"]
)
