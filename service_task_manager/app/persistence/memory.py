"""
In-process task store for local development and tests.
"""

import itertools
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from ..models import Task
from .base import TaskStore

_UPDATABLE = ("title", "description", "due_date", "priority", "completed", "attachment_url")


class InMemoryTaskStore(TaskStore):
    """Dict-backed store with the same ownership rules as the SQL store."""

    def __init__(self):
        self._tasks: Dict[int, Task] = {}
        self._ids = itertools.count(1)

    async def list_tasks(self, subject: str) -> List[Task]:
        owned = [task for task in self._tasks.values() if task.user_id == subject]
        return sorted(owned, key=lambda task: (task.created_at, task.id), reverse=True)

    async def create_task(self, subject: str, fields: Dict[str, Any]) -> Task:
        task = Task(
            id=next(self._ids),
            user_id=subject,
            title=fields["title"],
            description=fields.get("description"),
            due_date=fields.get("due_date"),
            priority=fields.get("priority"),
            completed=bool(fields.get("completed") or False),
            attachment_url=fields.get("attachment_url"),
            created_at=datetime.now(timezone.utc),
        )
        self._tasks[task.id] = task
        return task

    async def update_task(self, task_id: int, subject: str, fields: Dict[str, Any]) -> Optional[Task]:
        task = self._tasks.get(task_id)
        if task is None or task.user_id != subject:
            return None
        changes = {key: value for key, value in fields.items() if key in _UPDATABLE and value is not None}
        updated = task.model_copy(update=changes)
        self._tasks[task_id] = updated
        return updated

    async def delete_task(self, task_id: int, subject: str) -> bool:
        task = self._tasks.get(task_id)
        if task is None or task.user_id != subject:
            return False
        del self._tasks[task_id]
        return True
