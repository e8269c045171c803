"""
Task store contract for the reminder scheduler, plus the HTTP client the
worker uses. All database operations go through server/routes/internals.py.

A store provides:
    list_open_tasks() -> List[Task]           ordered by deadline, raises StoreError
    mark_phase_fired(task_id, phase) -> MarkResult   conditional write
"""
import enum
import logging
from typing import List

import requests

from .tasks import Phase, Task, phase_key

logger = logging.getLogger(__name__)


class StoreError(Exception):
    """The store could not be read or written."""


class MarkResult(str, enum.Enum):
    fired = "fired"
    already_fired = "already_fired"
    failed = "failed"


class ApiTaskStore:
    def __init__(self, base_url: str, timeout: float = 10, session=None) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.http = session or requests.Session()

    def _api_url(self, path: str) -> str:
        return f"{self.base_url}{path}"

    def list_open_tasks(self) -> List[Task]:
        """Fetch open tasks, earliest deadline first."""
        try:
            resp = self.http.get(self._api_url("/open-tasks"), timeout=self.timeout)
            resp.raise_for_status()
            records = resp.json()
        except (requests.RequestException, ValueError) as e:
            raise StoreError(f"Failed to fetch open tasks: {e}") from e

        if not isinstance(records, list):
            raise StoreError(f"Unexpected open-tasks payload: {type(records).__name__}")

        tasks = []
        for record in records:
            if not isinstance(record, dict):
                logger.warning(f"Skipping non-object task record: {record!r}")
                continue
            try:
                task = Task.from_record(record)
            except Exception as e:
                logger.error(f"Skipping unreadable task record {record.get('id')!r}: {e}", exc_info=True)
                continue
            if task is not None:
                tasks.append(task)
        return tasks

    def mark_phase_fired(self, task_id: int, phase: Phase) -> MarkResult:
        """Record that ``phase`` fired for ``task_id``. Safe to repeat."""
        url = self._api_url(f"/tasks/{task_id}/phases/{phase_key(phase)}")
        try:
            resp = self.http.post(url, timeout=self.timeout)
            if resp.status_code == 404:
                logger.warning(f"Task {task_id} vanished before phase {phase_key(phase)} could be marked")
                return MarkResult.failed
            resp.raise_for_status()
            body = resp.json()
            if not isinstance(body, dict):
                raise ValueError(f"unexpected response body {body!r}")
            return MarkResult(body.get("result"))
        except (requests.RequestException, ValueError) as e:
            logger.error(f"Failed to mark phase {phase_key(phase)} for task {task_id}: {e}")
            return MarkResult.failed
