"""
Task Manager service.

Per-user task CRUD behind bearer-token authentication, with attachment
uploads through pre-signed S3 URLs.
"""

from typing import Dict, List, Optional

from fastapi import Depends, HTTPException, Response, status

from shared.base_service import BaseService
from shared.retry import RetryConfig
from .auth import JWKSKeyCache, TokenGate, TokenVerifier, VerifiedIdentity
from .config import TaskManagerConfig
from .models import (
    Task,
    TaskCreate,
    TaskResponse,
    TaskUpdate,
    UploadUrlRequest,
    UploadUrlResponse,
)
from .persistence import InMemoryTaskStore, PostgresTaskStore, TaskStore
from .storage import S3AttachmentStorage, UploadTicket

ATTACHMENT_CONTENT_TYPE = "application/octet-stream"


class TaskManagerService(BaseService):
    """Task Manager service implementation."""

    def __init__(
        self,
        config: Optional[TaskManagerConfig] = None,
        *,
        task_store: Optional[TaskStore] = None,
        key_cache: Optional[JWKSKeyCache] = None,
        storage: Optional[S3AttachmentStorage] = None,
    ):
        super().__init__("task-manager", config or TaskManagerConfig())

        self.task_store = task_store or self._build_task_store()
        self.key_cache = key_cache or self._build_key_cache()
        self.storage = storage or S3AttachmentStorage(
            self.config.s3_bucket_name,
            region=self.config.s3_region,
            expires_in=self.config.upload_url_expires,
        )
        self.verifier = TokenVerifier(
            self.key_cache,
            issuer=self.config.resolved_issuer,
            audience=self.config.audience,
            token_use=self.config.token_use,
            allowed_algorithms=self.config.allowed_algorithms,
            leeway=self.config.token_leeway,
        )
        self.gate = TokenGate(self.verifier, self.key_cache, self.metrics)

        self._setup_task_routes()

    def _build_task_store(self) -> TaskStore:
        if self.config.task_store == "memory":
            self.logger.warning("Using in-memory task store; data is lost on restart")
            return InMemoryTaskStore()
        return PostgresTaskStore(
            self.config.postgres_dsn,
            min_size=self.config.postgres_min_pool_size,
            max_size=self.config.postgres_max_pool_size,
            command_timeout=self.config.postgres_command_timeout,
        )

    def _build_key_cache(self) -> JWKSKeyCache:
        return JWKSKeyCache(
            self.config.resolved_jwks_url,
            http_timeout=self.config.jwks_http_timeout,
            retry_config=RetryConfig(
                max_attempts=self.config.jwks_fetch_attempts,
                base_delay=self.config.jwks_retry_base_delay,
                max_delay=5.0,
            ),
            refresh_interval=self.config.jwks_refresh_interval,
            min_refresh_interval=self.config.jwks_min_refresh_interval,
            metrics=self.metrics,
        )

    async def on_startup(self) -> None:
        await self.task_store.start()
        await self.key_cache.warmup()
        self.key_cache.start_background_refresh()
        self.logger.info(
            "Task manager started",
            jwks_url=self.key_cache.jwks_url,
            signing_keys=len(self.key_cache.snapshot),
        )

    async def on_shutdown(self) -> None:
        await self.key_cache.stop()
        await self.task_store.stop()

    async def _check_dependencies(self) -> Dict[str, str]:
        return {
            "jwks": await self.key_cache.check_health(),
            "task_store": await self.task_store.check_health(),
            "attachments": await self.storage.check_health(),
        }

    def _issue_attachment(self, subject: str, file_name: Optional[str]) -> Optional[UploadTicket]:
        # Signing is local and nothing is uploaded until the client uses the
        # URL, so a failed task write afterwards leaves no orphaned object.
        if not file_name:
            return None
        return self.storage.issue_upload_url(subject, file_name, ATTACHMENT_CONTENT_TYPE)

    def _setup_task_routes(self):
        """Set up API routes."""

        @self.app.get("/")
        async def root():
            """Backend check."""
            return {
                "service": self.service_name,
                "message": "Task Manager API is running",
                "version": self.version,
            }

        @self.app.get("/tasks", response_model=List[Task])
        async def list_tasks(identity: VerifiedIdentity = Depends(self.gate)):
            """Get all tasks for the authenticated user."""
            return await self.task_store.list_tasks(identity.subject)

        @self.app.post("/tasks", response_model=TaskResponse, status_code=status.HTTP_201_CREATED)
        async def create_task(
            payload: TaskCreate,
            identity: VerifiedIdentity = Depends(self.gate),
        ):
            """Create a new task for the authenticated user."""
            ticket = self._issue_attachment(identity.subject, payload.attachment_file_name)
            fields = payload.column_values()
            if ticket:
                fields["attachment_url"] = ticket.file_url

            task = await self.task_store.create_task(identity.subject, fields)
            self.logger.info("Task created", task_id=task.id, attachment=bool(ticket))

            return TaskResponse(**task.model_dump(), upload_url=ticket.upload_url if ticket else None)

        @self.app.put("/tasks/{task_id}", response_model=TaskResponse)
        async def update_task(
            task_id: int,
            payload: TaskUpdate,
            identity: VerifiedIdentity = Depends(self.gate),
        ):
            """Update a task for the authenticated user."""
            ticket = self._issue_attachment(identity.subject, payload.attachment_file_name)
            fields = payload.column_values(only_set=True)
            if ticket:
                fields["attachment_url"] = ticket.file_url

            task = await self.task_store.update_task(task_id, identity.subject, fields)
            if task is None:
                raise HTTPException(status_code=404, detail="Task not found or not owned by user")
            self.logger.info("Task updated", task_id=task_id, fields=sorted(fields))

            return TaskResponse(**task.model_dump(), upload_url=ticket.upload_url if ticket else None)

        @self.app.delete("/tasks/{task_id}", status_code=status.HTTP_204_NO_CONTENT)
        async def delete_task(
            task_id: int,
            identity: VerifiedIdentity = Depends(self.gate),
        ):
            """Delete a task for the authenticated user."""
            if not await self.task_store.delete_task(task_id, identity.subject):
                raise HTTPException(status_code=404, detail="Task not found or not owned by user")
            self.logger.info("Task deleted", task_id=task_id)
            return Response(status_code=status.HTTP_204_NO_CONTENT)

        @self.app.post("/s3-upload-url", response_model=UploadUrlResponse)
        async def create_upload_url(
            payload: UploadUrlRequest,
            identity: VerifiedIdentity = Depends(self.gate),
        ):
            """Get a pre-signed URL for a direct attachment upload."""
            ticket = self.storage.issue_upload_url(identity.subject, payload.file_name, payload.file_type)
            return UploadUrlResponse(upload_url=ticket.upload_url, file_url=ticket.file_url)


def create_app():
    """Create FastAPI application."""
    service = TaskManagerService()
    return service.app


def main():
    service = TaskManagerService()
    service.run()


if __name__ == "__main__":
    main()
