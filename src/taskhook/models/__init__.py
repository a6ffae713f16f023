"""Taskhook data models."""

from taskhook.models.enums import (
    ClaimResult,
    DeliveryOutcome,
    TaskOutcome,
    TaskStatus,
    WebhookAuthType,
)
from taskhook.models.task import Task, TaskState, WebhookTarget
from taskhook.models.dispatch import CycleReport, DueTasks, WebhookDelivery

__all__ = [
    "ClaimResult",
    "CycleReport",
    "DeliveryOutcome",
    "DueTasks",
    "Task",
    "TaskOutcome",
    "TaskState",
    "TaskStatus",
    "WebhookAuthType",
    "WebhookDelivery",
    "WebhookTarget",
]
