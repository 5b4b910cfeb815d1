"""
PostgreSQL task store.
"""

import asyncio
from typing import Any, Dict, List, Optional

import asyncpg

from shared.errors import ExternalServiceError
from shared.logging import get_logger
from ..models import Task
from .base import TaskStore

_DB_ERRORS = (asyncpg.PostgresError, asyncpg.InterfaceError, OSError, asyncio.TimeoutError)

_TASK_COLUMNS = "id, user_id, title, description, due_date, priority, completed, created_at, attachment_url"


class PostgresTaskStore(TaskStore):
    """asyncpg-backed task store. Every statement filters on ``user_id``."""

    def __init__(
        self,
        dsn: str,
        *,
        min_size: int = 1,
        max_size: int = 10,
        command_timeout: float = 30.0,
    ):
        self.dsn = dsn
        self.min_size = min_size
        self.max_size = max_size
        self.command_timeout = command_timeout
        self.logger = get_logger("task-manager.persistence.postgres")
        self.pool: Optional[asyncpg.Pool] = None

    async def start(self):
        """Open the pool and create the schema if missing."""
        try:
            self.pool = await asyncpg.create_pool(
                self.dsn,
                min_size=self.min_size,
                max_size=self.max_size,
                command_timeout=self.command_timeout,
            )
            await self._create_tables()
        except _DB_ERRORS as e:
            self.logger.error("Failed to start PostgreSQL task store", error=str(e))
            raise ExternalServiceError("postgres", "Failed to connect to task database", {"error": str(e)}) from e

        self.logger.info("PostgreSQL task store started")

    async def stop(self):
        if self.pool:
            await self.pool.close()
            self.pool = None
            self.logger.info("PostgreSQL task store stopped")

    async def check_health(self) -> str:
        if self.pool is None:
            return "error"
        try:
            async with self.pool.acquire() as conn:
                await conn.fetchval("SELECT 1")
        except _DB_ERRORS as e:
            self.logger.error("Task database health check failed", error=str(e))
            return "error"
        return "ok"

    async def _create_tables(self):
        async with self.pool.acquire() as conn:
            await conn.execute("""
                CREATE TABLE IF NOT EXISTS tasks (
                    id SERIAL PRIMARY KEY,
                    user_id VARCHAR(255) NOT NULL,
                    title VARCHAR(255) NOT NULL,
                    description TEXT,
                    due_date DATE,
                    priority VARCHAR(32),
                    completed BOOLEAN NOT NULL DEFAULT FALSE,
                    attachment_url TEXT,
                    created_at TIMESTAMP WITH TIME ZONE NOT NULL DEFAULT NOW()
                );
            """)
            await conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_tasks_user_created ON tasks(user_id, created_at DESC);
            """)

    def _require_pool(self) -> asyncpg.Pool:
        if self.pool is None:
            raise ExternalServiceError("postgres", "Task store is not started")
        return self.pool

    async def list_tasks(self, subject: str) -> List[Task]:
        try:
            async with self._require_pool().acquire() as conn:
                rows = await conn.fetch(
                    f"SELECT {_TASK_COLUMNS} FROM tasks WHERE user_id = $1 ORDER BY created_at DESC, id DESC",
                    subject,
                )
        except _DB_ERRORS as e:
            self.logger.error("Error fetching tasks", error=str(e))
            raise ExternalServiceError("postgres", "Failed to fetch tasks", {"error": str(e)}) from e
        return [Task(**dict(row)) for row in rows]

    async def create_task(self, subject: str, fields: Dict[str, Any]) -> Task:
        try:
            async with self._require_pool().acquire() as conn:
                row = await conn.fetchrow(
                    f"""
                    INSERT INTO tasks (user_id, title, description, due_date, priority, completed, attachment_url)
                    VALUES ($1, $2, $3, $4, $5, $6, $7)
                    RETURNING {_TASK_COLUMNS}
                    """,
                    subject,
                    fields["title"],
                    fields.get("description"),
                    fields.get("due_date"),
                    fields.get("priority"),
                    bool(fields.get("completed") or False),
                    fields.get("attachment_url"),
                )
        except _DB_ERRORS as e:
            self.logger.error("Error creating task", error=str(e))
            raise ExternalServiceError("postgres", "Failed to create task", {"error": str(e)}) from e
        return Task(**dict(row))

    async def update_task(self, task_id: int, subject: str, fields: Dict[str, Any]) -> Optional[Task]:
        try:
            async with self._require_pool().acquire() as conn:
                row = await conn.fetchrow(
                    f"""
                    UPDATE tasks
                    SET
                        title = COALESCE($1, title),
                        description = COALESCE($2, description),
                        due_date = COALESCE($3, due_date),
                        priority = COALESCE($4, priority),
                        completed = COALESCE($5, completed),
                        attachment_url = COALESCE($6, attachment_url)
                    WHERE id = $7 AND user_id = $8
                    RETURNING {_TASK_COLUMNS}
                    """,
                    fields.get("title"),
                    fields.get("description"),
                    fields.get("due_date"),
                    fields.get("priority"),
                    fields.get("completed"),
                    fields.get("attachment_url"),
                    task_id,
                    subject,
                )
        except _DB_ERRORS as e:
            self.logger.error("Error updating task", task_id=task_id, error=str(e))
            raise ExternalServiceError("postgres", "Failed to update task", {"error": str(e)}) from e
        return Task(**dict(row)) if row else None

    async def delete_task(self, task_id: int, subject: str) -> bool:
        try:
            async with self._require_pool().acquire() as conn:
                deleted = await conn.fetchval(
                    "DELETE FROM tasks WHERE id = $1 AND user_id = $2 RETURNING id",
                    task_id,
                    subject,
                )
        except _DB_ERRORS as e:
            self.logger.error("Error deleting task", task_id=task_id, error=str(e))
            raise ExternalServiceError("postgres", "Failed to delete task", {"error": str(e)}) from e
        return deleted is not None
