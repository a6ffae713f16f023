"""API request/response schemas."""

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field

from taskhook.models import Task, WebhookAuthType


# ============================================================================
# Tasks
# ============================================================================


class CreateTaskRequest(BaseModel):
    """Create task request."""

    title: str = Field(..., min_length=1, max_length=500)
    description: str = Field(default="")
    due_at: datetime = Field(..., description="When the task becomes due (UTC if naive)")
    webhook_url: Optional[str] = Field(None, description="Endpoint notified when due")
    webhook_title: Optional[str] = Field(None, max_length=255)


class UpdateTaskRequest(BaseModel):
    """Update task request. Only fields that are set are changed."""

    title: Optional[str] = Field(None, min_length=1, max_length=500)
    description: Optional[str] = None
    due_at: Optional[datetime] = None
    webhook_url: Optional[str] = None
    webhook_title: Optional[str] = Field(None, max_length=255)


class TaskResponse(BaseModel):
    """Task response."""

    id: str
    title: str
    description: str
    due_at: datetime
    completed: bool
    webhook_sent: bool
    webhook_url: Optional[str] = None
    webhook_title: Optional[str] = None
    status: str
    created_at: datetime
    updated_at: datetime
    completed_at: Optional[datetime] = None

    @classmethod
    def from_task(cls, task: Task) -> "TaskResponse":
        return cls(
            **task.model_dump(exclude={"owner_id"}),
            status=task.status.value,
        )


class ListTasksResponse(BaseModel):
    """List tasks response."""

    tasks: list[TaskResponse]


class DeleteTaskResponse(BaseModel):
    """Delete task response."""

    ok: bool


# ============================================================================
# Webhooks
# ============================================================================


class WebhookTargetSchema(BaseModel):
    url: str
    title: str


class RecentWebhooksResponse(BaseModel):
    """Distinct webhook targets used by the caller's tasks."""

    webhooks: list[WebhookTargetSchema]


class WebhookTestRequest(BaseModel):
    """Test webhook request."""

    url: str
    auth_type: WebhookAuthType = WebhookAuthType.NONE
    auth_token: Optional[str] = None
    headers: dict[str, str] = Field(default_factory=dict)


class WebhookTestResponse(BaseModel):
    """Test webhook response."""

    success: bool
    message: str


# ============================================================================
# Dispatch & sessions
# ============================================================================


class DispatchRunResponse(BaseModel):
    """Result of a triggered dispatch cycle."""

    message: str
    tasks_processed: int
    report: dict[str, Any]


class OpenSessionResponse(BaseModel):
    """Session runner started."""

    session_id: str
    interval_seconds: float


class CloseSessionResponse(BaseModel):
    ok: bool


# ============================================================================
# Health
# ============================================================================


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    version: str
    sweep_running: bool
    open_sessions: int
