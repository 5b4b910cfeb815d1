"""
Request and response models for the Task Manager API.

Inputs accept the camelCase names used by existing clients (``dueDate``,
``attachmentFileName``) as well as snake_case.
"""

from datetime import date, datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field


class TaskFields(BaseModel):
    """Writable task fields shared by create and update payloads."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    title: Optional[str] = Field(None, min_length=1, max_length=255, description="Task title")
    description: Optional[str] = Field(None, description="Task description")
    due_date: Optional[date] = Field(None, alias="dueDate", description="Due date (YYYY-MM-DD)")
    priority: Optional[str] = Field(None, max_length=32, description="Priority level")
    completed: Optional[bool] = Field(None, description="Completion flag")
    attachment_file_name: Optional[str] = Field(
        None,
        alias="attachmentFileName",
        max_length=255,
        description="Optional file name; an upload URL is returned for it",
    )

    def column_values(self, *, only_set: bool = False) -> Dict[str, Any]:
        """Column values for the task store, without the attachment request."""
        return self.model_dump(exclude={"attachment_file_name"}, exclude_unset=only_set)


class TaskCreate(TaskFields):
    """Create payload."""

    title: str = Field(..., min_length=1, max_length=255, description="Task title")
    completed: bool = Field(False, description="Completion flag")


class TaskUpdate(TaskFields):
    """Partial update payload; omitted or null fields keep their value."""


class Task(BaseModel):
    """Stored task owned by one subject."""

    id: int
    user_id: str
    title: str
    description: Optional[str] = None
    due_date: Optional[date] = None
    priority: Optional[str] = None
    completed: bool = False
    created_at: datetime
    attachment_url: Optional[str] = None


class TaskResponse(Task):
    """Task plus the upload URL issued for a requested attachment."""

    upload_url: Optional[str] = None


class UploadUrlRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    file_name: str = Field(..., alias="fileName", min_length=1, max_length=255)
    file_type: str = Field("application/octet-stream", alias="fileType", min_length=1, max_length=255)


class UploadUrlResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    upload_url: str = Field(..., alias="uploadUrl")
    file_url: str = Field(..., alias="fileUrl")
