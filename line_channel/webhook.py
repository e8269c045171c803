"""
LINE webhook command handling.

Text messages are parsed into commands (Japanese keywords or English aliases)
that create, list and complete todos. The deadline-check command also runs
the reminder evaluation for the sender's open todos right away, through the
same DeadlineScheduler.evaluate_task the worker tick uses.
"""
import logging
import re
from typing import List, Mapping, Optional, Tuple

from sqlalchemy.orm import Session

from reminder_worker.evaluator import parse_deadline_date, parse_time_of_day
from reminder_worker.scheduler import TaskOutcome
from server import store
from server.enums import TaskStatus

logger = logging.getLogger(__name__)

ADD_RE = re.compile(r"^(?:追加|登録|add)\s+", re.IGNORECASE)
EMAIL_RE = re.compile(r"^(?:メールアドレス|email)\s+", re.IGNORECASE)
DONE_RE = re.compile(r"^(?:完了|done)\s+", re.IGNORECASE)
PROGRESS_COMMANDS = {"進捗確認", "progress"}
DEADLINE_COMMANDS = {"締め切り確認", "deadlines"}
NOTIFY_OFF_COMMANDS = {"通知オフ", "notify off"}
NOTIFY_ON_COMMANDS = {"通知オン", "notify on"}
EMAIL_ADDRESS_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")

HELP_TEXT = (
    "📌 Commands:\n"
    "追加 / add <task> [YYYY-MM-DD] [HH:MM]\n"
    "メールアドレス / email <address>\n"
    "進捗確認 / progress\n"
    "締め切り確認 / deadlines\n"
    "完了 / done <task>\n"
    "通知オフ / notify off, 通知オン / notify on"
)


def _format_todo_line(todo) -> str:
    parts = []
    if todo.deadline_date:
        parts.append(todo.deadline_date.isoformat())
    if todo.deadline_time:
        parts.append(todo.deadline_time.strftime("%H:%M"))
    when = " ".join(parts) or "no deadline"
    status = todo.status.value if isinstance(todo.status, TaskStatus) else todo.status
    return f"🔹 {todo.label} - {when} [{status}]"


# =========================================================
# COMMANDS
# =========================================================
def handle_add(db: Session, user_id: str, args: str, notifier) -> List[str]:
    parts = args.split()
    if not parts:
        return ["⚠️ Please give a task name.\nExample: add homework 2025-08-30 21:00"]

    label = parts[0]
    today = notifier.clock().date()

    deadline_date = today
    if len(parts) > 1:
        deadline_date = parse_deadline_date(parts[1])
        if deadline_date is None:
            return [f"⚠️ Could not read the date {parts[1]!r}. Use YYYY-MM-DD."]

    deadline_time = None
    if len(parts) > 2:
        deadline_time = parse_time_of_day(parts[2])
        if deadline_time is None:
            return [f"⚠️ Could not read the time {parts[2]!r}. Use HH:MM."]

    email = store.get_user_email(db, user_id)
    todo = store.create_todo(db, user_id, label, deadline_date, deadline_time, email)
    logger.info(f"Created todo {todo.id} for {user_id}: {label!r}")

    replies = []
    if not email:
        replies.append("⚠️ No email address registered. Example: email sample@example.com")
    if deadline_time:
        replies.append(f"🆕 Added \"{label}\" (due {deadline_date.isoformat()} {deadline_time.strftime('%H:%M')})")
    else:
        replies.append(f"🆕 Added \"{label}\"")
    return replies


def handle_email(db: Session, user_id: str, args: str) -> List[str]:
    email = args.strip()
    if not EMAIL_ADDRESS_RE.match(email):
        return ["⚠️ Please enter a valid email address.\nExample: email sample@example.com"]

    created = store.register_email(db, user_id, email)
    if created:
        return [f"📧 Email registered: {email}"]
    return [f"📧 Email updated: {email}"]


def handle_progress(db: Session, user_id: str) -> List[str]:
    todos = store.list_user_todos(db, user_id, store.get_user_email(db, user_id))
    if not todos:
        return ["📭 No tasks in progress."]
    return ["\n".join(_format_todo_line(t) for t in todos)]


def handle_deadlines(db: Session, user_id: str, notifier) -> List[str]:
    """List the user's todos and fire any notification that is due right now."""
    todos = store.list_user_todos(db, user_id, store.get_user_email(db, user_id))
    if not todos:
        return ["📭 No tasks registered."]

    now = notifier.clock()
    fired = 0
    for task in store.fetch_open_tasks(db, owner=user_id):
        try:
            if notifier.evaluate_task(task, now) == TaskOutcome.fired:
                fired += 1
        except Exception as e:
            logger.error(f"On-demand evaluation failed for task {task.id}: {e}", exc_info=True)

    if fired:
        logger.info(f"On-demand deadline check for {user_id} sent {fired} notifications")
    return ["\n".join(_format_todo_line(t) for t in todos)]


def handle_done(db: Session, user_id: str, args: str) -> List[str]:
    label = args.strip()
    if not label:
        return ["⚠️ Please give the task to complete."]
    count = store.complete_todos(db, user_id, label)
    if not count:
        return [f"🤔 No open task named \"{label}\"."]
    return [f"✅ Marked \"{label}\" as done."]


def handle_notify(db: Session, user_id: str, enabled: bool) -> List[str]:
    store.set_notifications(db, user_id, enabled)
    return ["🔔 Deadline notifications on." if enabled else "🔕 Deadline notifications off."]


def dispatch_command(db: Session, user_id: str, text: str, notifier) -> List[str]:
    """Run the command in ``text`` and return the reply lines."""
    lowered = text.lower()

    if ADD_RE.match(text):
        return handle_add(db, user_id, ADD_RE.sub("", text, count=1), notifier)
    if EMAIL_RE.match(text):
        return handle_email(db, user_id, EMAIL_RE.sub("", text, count=1))
    if text in PROGRESS_COMMANDS or lowered in PROGRESS_COMMANDS:
        return handle_progress(db, user_id)
    if text in DEADLINE_COMMANDS or lowered in DEADLINE_COMMANDS:
        return handle_deadlines(db, user_id, notifier)
    if DONE_RE.match(text):
        return handle_done(db, user_id, DONE_RE.sub("", text, count=1))
    if text in NOTIFY_OFF_COMMANDS or lowered in NOTIFY_OFF_COMMANDS:
        return handle_notify(db, user_id, False)
    if text in NOTIFY_ON_COMMANDS or lowered in NOTIFY_ON_COMMANDS:
        return handle_notify(db, user_id, True)
    return [HELP_TEXT]


# =========================================================
# WEBHOOK ENTRY
# =========================================================
def _text_event(event: Mapping) -> Optional[Tuple[str, str, str]]:
    if event.get("type") != "message":
        return None
    message = event.get("message") or {}
    if message.get("type") != "text":
        return None
    user_id = (event.get("source") or {}).get("userId")
    reply_token = event.get("replyToken")
    if not user_id or not reply_token:
        return None
    return user_id, reply_token, (message.get("text") or "").strip()


def handle_webhook(body: Mapping, db: Session, channel, notifier) -> Tuple[Mapping, int]:
    """
    Process every event in a LINE webhook body.

    Arguments:
        body: Parsed webhook JSON.
        db: Session for command reads/writes.
        channel: LineChannel (``reply(reply_token, text)``).
        notifier: DeadlineScheduler for the on-demand deadline check.
    """
    handled = 0
    for event in body.get("events") or []:
        parsed = _text_event(event)
        if parsed is None:
            continue
        user_id, reply_token, text = parsed
        logger.info(f"Received from {user_id}: {text}")

        try:
            replies = dispatch_command(db, user_id, text, notifier)
        except Exception as e:
            logger.error(f"[Webhook Error] {e}", exc_info=True)
            db.rollback()
            replies = [f"❗️ Something went wrong: {e}"]

        reply_body, status_code = channel.reply(reply_token, "\n".join(replies))
        if status_code != 200:
            logger.error(f"❌ Failed to reply to {user_id}: {reply_body}")
        handled += 1

    return {"status": "ok", "handled": handled}, 200
