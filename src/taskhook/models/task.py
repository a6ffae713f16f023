"""Task model - a user task with an optional due-date webhook."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel

from taskhook.models.enums import TaskStatus


class TaskState(BaseModel):
    """Authoritative dispatch flags for one task row."""

    id: str
    completed: bool
    webhook_sent: bool


class Task(BaseModel):
    """Core task entity."""

    id: str
    owner_id: str

    title: str
    description: str = ""
    due_at: datetime

    completed: bool = False
    webhook_sent: bool = False

    webhook_url: Optional[str] = None
    webhook_title: Optional[str] = None

    created_at: datetime
    updated_at: datetime
    completed_at: Optional[datetime] = None

    @property
    def has_webhook(self) -> bool:
        return bool(self.webhook_url)

    @property
    def status(self) -> TaskStatus:
        if self.webhook_sent:
            return TaskStatus.CLAIMED
        if self.completed:
            return TaskStatus.COMPLETED
        return TaskStatus.PENDING

    def is_due(self, now: datetime) -> bool:
        """Check if the task is uncompleted and its due time has elapsed."""
        return not self.completed and self.due_at <= now


class WebhookTarget(BaseModel):
    """A distinct webhook endpoint referenced by an owner's tasks."""

    url: str
    title: str
