"""
Task store interface.

Every operation is scoped by the owning subject: a caller can never see or
change another subject's tasks through this interface.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from ..models import Task


class TaskStore(ABC):
    """Persistence for tasks, keyed by owner."""

    async def start(self) -> None:
        """Acquire connections or other resources."""

    async def stop(self) -> None:
        """Release resources."""

    async def check_health(self) -> str:
        return "ok"

    @abstractmethod
    async def list_tasks(self, subject: str) -> List[Task]:
        """Tasks owned by ``subject``, newest first."""

    @abstractmethod
    async def create_task(self, subject: str, fields: Dict[str, Any]) -> Task:
        """Insert a task owned by ``subject``."""

    @abstractmethod
    async def update_task(self, task_id: int, subject: str, fields: Dict[str, Any]) -> Optional[Task]:
        """Apply non-null ``fields``; ``None`` if the task is missing or not owned."""

    @abstractmethod
    async def delete_task(self, task_id: int, subject: str) -> bool:
        """Delete the task; ``False`` if it is missing or not owned."""
