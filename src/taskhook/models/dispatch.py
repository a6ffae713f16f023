"""Dispatch cycle models."""

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field

from taskhook.models.enums import DeliveryOutcome, TaskOutcome
from taskhook.models.task import Task


class DueTasks(BaseModel):
    """Selector output: due, uncompleted tasks split by webhook presence."""

    with_webhook: list[Task] = Field(default_factory=list)
    without_webhook: list[Task] = Field(default_factory=list)

    def __len__(self) -> int:
        return len(self.with_webhook) + len(self.without_webhook)


class WebhookDelivery(BaseModel):
    """
    One webhook POST attempt.

    Never persisted. The outcome is an observability signal only; it does
    not feed back into the completion claim.
    """

    task_id: str
    url: str
    payload: dict[str, Any]
    attempted_at: datetime
    outcome: DeliveryOutcome
    status_code: Optional[int] = None
    error: Optional[str] = None
    duration_ms: float = 0.0

    @property
    def ok(self) -> bool:
        return self.outcome == DeliveryOutcome.SUCCESS


class CycleReport(BaseModel):
    """Counts for one reconciler cycle."""

    started_at: datetime
    finished_at: Optional[datetime] = None
    candidates: int = 0
    claimed: int = 0
    auto_completed: int = 0
    already_claimed: int = 0
    not_found: int = 0
    failed: int = 0
    delivered: int = 0
    delivery_failed: int = 0
    http_errors: int = 0
    not_found_ids: list[str] = Field(default_factory=list)
    settled_ids: list[str] = Field(default_factory=list)

    def record(self, outcome: TaskOutcome, task_id: Optional[str] = None) -> None:
        if task_id is not None:
            if outcome == TaskOutcome.NOT_FOUND:
                self.not_found_ids.append(task_id)
            elif outcome != TaskOutcome.FAILED:
                self.settled_ids.append(task_id)

        if outcome == TaskOutcome.CLAIMED:
            self.claimed += 1
        elif outcome == TaskOutcome.AUTO_COMPLETED:
            self.auto_completed += 1
        elif outcome == TaskOutcome.ALREADY_CLAIMED:
            self.already_claimed += 1
        elif outcome == TaskOutcome.NOT_FOUND:
            self.not_found += 1
        elif outcome == TaskOutcome.FAILED:
            self.failed += 1

    def record_delivery(self, delivery: WebhookDelivery) -> None:
        if delivery.ok:
            self.delivered += 1
        else:
            self.delivery_failed += 1
            if delivery.outcome == DeliveryOutcome.HTTP_ERROR:
                self.http_errors += 1

    @property
    def responded(self) -> int:
        """Webhook POSTs that got any HTTP response back, 2xx or not."""
        return self.delivered + self.http_errors

    @property
    def processed(self) -> int:
        """Tasks this cycle moved to completed."""
        return self.claimed + self.auto_completed
