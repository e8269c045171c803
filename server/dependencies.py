from fastapi import Depends, Request
from server.database import SessionLocal


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_line_channel(request: Request):
    """LINE channel built once at startup (see server.main)."""
    return request.app.state.line_channel


def get_deadline_scheduler(request: Request):
    """
    DeadlineScheduler used by the on-demand webhook path. It shares the
    evaluation rules and the conditional phase write with the worker's tick.
    """
    return request.app.state.deadline_scheduler


def get_reminder_settings(notifier = Depends(get_deadline_scheduler)):
    """ReminderSettings shared with the on-demand scheduler (offsets, time zone)."""
    return notifier.settings
