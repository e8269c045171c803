"""
SQL-backed task store.

Functions take a Session so routes can use them with ``Depends(get_db)``;
SqlTaskStore wraps them with its own sessions for the reminder scheduler.
"""
import logging
from datetime import date, time
from typing import List, Optional

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from reminder_worker.store import MarkResult, StoreError
from reminder_worker.tasks import OVERDUE, Phase, Task
from server.enums import TaskStatus
from server.models import TaskReminder, Todo, User

logger = logging.getLogger(__name__)


class TaskNotFound(LookupError):
    pass


def _deadline_order():
    # NULL deadlines last on every backend
    return (
        Todo.deadline_date.is_(None),
        Todo.deadline_date.asc(),
        Todo.deadline_time.is_(None),
        Todo.deadline_time.asc(),
        Todo.id.asc(),
    )


def task_record(todo: Todo, notifications_enabled: Optional[bool] = True) -> dict:
    """Plain record for the internal API and the Task value type."""
    return {
        "id": todo.id,
        "user_id": todo.user_id,
        "label": todo.label,
        "deadline_date": todo.deadline_date.isoformat() if todo.deadline_date else None,
        "deadline_time": todo.deadline_time.strftime("%H:%M:%S") if todo.deadline_time else None,
        "status": todo.status.value if isinstance(todo.status, TaskStatus) else todo.status,
        "is_notified": bool(todo.is_notified),
        "notified_offsets": todo.notified_offsets,
        "notifications_enabled": True if notifications_enabled is None else bool(notifications_enabled),
        "email": todo.email,
    }


# =========================================================
# SCHEDULER-FACING OPERATIONS
# =========================================================
def fetch_open_task_records(db: Session, owner: Optional[str] = None) -> List[dict]:
    """Open todos ordered by deadline ascending, with notification history."""
    query = (
        db.query(Todo, User.notifications_enabled)
        .outerjoin(User, User.line_user_id == Todo.user_id)
        .options(selectinload(Todo.reminders))
        .filter(Todo.status == TaskStatus.open)
    )
    if owner is not None:
        query = query.filter(Todo.user_id == owner)
    rows = query.order_by(*_deadline_order()).all()
    return [task_record(todo, enabled) for todo, enabled in rows]


def fetch_open_tasks(db: Session, owner: Optional[str] = None) -> List[Task]:
    tasks = []
    for record in fetch_open_task_records(db, owner):
        task = Task.from_record(record)
        if task is not None:
            tasks.append(task)
    return tasks


def mark_phase_fired(db: Session, task_id: int, phase: Phase) -> MarkResult:
    """
    Record ``phase`` for ``task_id`` only if it is not recorded yet.

    overdue: conditional UPDATE of todos.is_notified (false -> true)
    offsets: INSERT guarded by the (task_id, offset_minutes) unique constraint

    Raises TaskNotFound for an unknown id.
    """
    try:
        if db.query(Todo.id).filter(Todo.id == task_id).first() is None:
            raise TaskNotFound(task_id)

        if phase == OVERDUE:
            updated = (
                db.query(Todo)
                .filter(Todo.id == task_id, Todo.is_notified.is_(False))
                .update({Todo.is_notified: True}, synchronize_session=False)
            )
            db.commit()
            return MarkResult.fired if updated == 1 else MarkResult.already_fired

        db.add(TaskReminder(task_id=task_id, offset_minutes=int(phase)))
        db.commit()
        return MarkResult.fired

    except IntegrityError:
        db.rollback()
        return MarkResult.already_fired
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Failed to mark phase {phase} for task {task_id}: {e}")
        return MarkResult.failed


class SqlTaskStore:
    """Store for DeadlineScheduler running inside the server process."""

    def __init__(self, session_factory) -> None:
        self.session_factory = session_factory

    def list_open_tasks(self, owner: Optional[str] = None) -> List[Task]:
        db = self.session_factory()
        try:
            return fetch_open_tasks(db, owner)
        except SQLAlchemyError as e:
            raise StoreError(f"Failed to load open tasks: {e}") from e
        finally:
            db.close()

    def mark_phase_fired(self, task_id: int, phase: Phase) -> MarkResult:
        db = self.session_factory()
        try:
            return mark_phase_fired(db, task_id, phase)
        except TaskNotFound:
            logger.warning(f"Task {task_id} no longer exists, cannot mark phase {phase}")
            return MarkResult.failed
        finally:
            db.close()


# =========================================================
# COMMAND OPERATIONS
# =========================================================
def get_user(db: Session, line_user_id: str) -> Optional[User]:
    return db.query(User).filter(User.line_user_id == line_user_id).first()


def get_user_email(db: Session, line_user_id: str) -> Optional[str]:
    user = get_user(db, line_user_id)
    return user.email if user else None


def create_todo(
    db: Session,
    line_user_id: str,
    label: str,
    deadline_date: Optional[date],
    deadline_time: Optional[time],
    email: Optional[str] = None,
) -> Todo:
    todo = Todo(
        user_id=line_user_id,
        label=label,
        deadline_date=deadline_date,
        deadline_time=deadline_time,
        status=TaskStatus.open,
        is_notified=False,
        email=email,
    )
    db.add(todo)
    db.commit()
    db.refresh(todo)
    return todo


def register_email(db: Session, line_user_id: str, email: str) -> bool:
    """Set the user's email. Returns True when the user row was created."""
    user = get_user(db, line_user_id)
    created = user is None
    if created:
        user = User(line_user_id=line_user_id, email=email)
        db.add(user)
    else:
        user.email = email
    db.commit()
    return created


def set_notifications(db: Session, line_user_id: str, enabled: bool) -> None:
    user = get_user(db, line_user_id)
    if user is None:
        user = User(line_user_id=line_user_id)
        db.add(user)
    user.notifications_enabled = enabled
    db.commit()


def list_user_todos(db: Session, line_user_id: str, email: Optional[str] = None) -> List[Todo]:
    """The user's own todos plus any shared with their registered email."""
    query = db.query(Todo)
    if email:
        query = query.filter(or_(Todo.user_id == line_user_id, Todo.email == email))
    else:
        query = query.filter(Todo.user_id == line_user_id)
    return query.order_by(*_deadline_order()).all()


def complete_todos(db: Session, line_user_id: str, label: str) -> int:
    """Mark the user's open todos with this label as done. Returns the count."""
    updated = (
        db.query(Todo)
        .filter(Todo.user_id == line_user_id, Todo.label == label, Todo.status == TaskStatus.open)
        .update({Todo.status: TaskStatus.done}, synchronize_session=False)
    )
    db.commit()
    return updated
