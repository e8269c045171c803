from typing import List, Optional
from datetime import date
from pydantic import BaseModel, validator
from server.enums import TaskStatus

# =========================================================
# PYDANTIC SCHEMAS
# =========================================================

class TaskRecord(BaseModel):
    id: int
    user_id: str
    label: str
    deadline_date: Optional[date] = None
    deadline_time: Optional[str] = None
    status: TaskStatus
    is_notified: bool = False
    notified_offsets: List[int] = []
    notifications_enabled: bool = True
    email: Optional[str] = None

    @validator('notified_offsets', pre=True, always=True)
    def sort_offsets(cls, v):
        return sorted(v or [], reverse=True)


class PhaseMarkResponse(BaseModel):
    task_id: int
    phase: str
    result: str
