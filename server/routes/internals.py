from typing import List
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from reminder_worker.store import MarkResult
from reminder_worker.tasks import OVERDUE, parse_phase, phase_key
from server.dependencies import get_db, get_reminder_settings
from server.schemas import TaskRecord, PhaseMarkResponse
from server.store import TaskNotFound, fetch_open_task_records, mark_phase_fired

router = APIRouter()

# =========================================================
# INTERNAL ENDPOINTS (No Authentication Required)
# Used by reminder_worker for backend operations
# =========================================================

@router.get("/open-tasks", response_model=List[TaskRecord])
def get_open_tasks(db: Session = Depends(get_db)):
    """
    Fetch all open tasks for the reminder scheduler, earliest deadline first.
    Includes notification history and the owner's notification preference.
    """
    try:
        return fetch_open_task_records(db)
    except SQLAlchemyError:
        raise HTTPException(status_code=503, detail="Task store unavailable")


@router.post("/tasks/{task_id}/phases/{phase}", response_model=PhaseMarkResponse)
def mark_phase(
    task_id: int,
    phase: str,
    db: Session = Depends(get_db),
    settings = Depends(get_reminder_settings),
):
    """
    Record that a notification phase fired. Conditional: the first call
    returns 'fired', every later call for the same phase 'already_fired'.
    """
    parsed = parse_phase(phase)
    if parsed is None:
        raise HTTPException(status_code=422, detail=f"Invalid phase: {phase}")
    if parsed != OVERDUE and parsed not in settings.offsets:
        raise HTTPException(status_code=422, detail=f"Offset {parsed} is not a configured reminder offset")

    try:
        result = mark_phase_fired(db, task_id, parsed)
    except TaskNotFound:
        raise HTTPException(status_code=404, detail="Task not found")

    if result == MarkResult.failed:
        raise HTTPException(status_code=503, detail="Could not record phase")

    return {"task_id": task_id, "phase": phase_key(parsed), "result": result.value}
