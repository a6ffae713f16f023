"""Dispatch reconciler - completes due tasks and fires their webhooks."""

import logging
from datetime import datetime
from typing import Awaitable, Callable, Optional

from taskhook.db.base import get_session
from taskhook.db.repositories import TaskRepository
from taskhook.engine.selector import TaskSelector
from taskhook.engine.types import Notifier, SessionScope
from taskhook.integrations.webhook_client import get_webhook_client
from taskhook.models import ClaimResult, CycleReport, Task, TaskOutcome
from taskhook.observability.metrics import metrics
from taskhook.utils.time import utc_now

logger = logging.getLogger(__name__)


class DispatchReconciler:
    """
    Runs one select-claim-notify pass over the current due tasks.

    Safe to run from several runners at once against the same store. Each
    candidate is re-read before any write, and the claim is a single-row
    compare-and-set that commits before the webhook is sent:

    - whoever commits the claim first owns the notification; the other runner
      sees webhook_sent=true (or a zero-row write) and skips
    - a failed or slow webhook never reverts the claim, so an unreachable
      endpoint is tried once and never again

    Candidates are processed one at a time. An error on one task is logged
    and the batch moves on.
    """

    def __init__(
        self,
        notifier: Optional[Notifier] = None,
        session_scope: Optional[SessionScope] = None,
        runner: str = "dispatch",
    ):
        self.notifier = notifier or get_webhook_client()
        self._session_scope = session_scope or get_session
        self.runner = runner

    async def run_cycle(
        self,
        selector: TaskSelector,
        now: Optional[datetime] = None,
    ) -> CycleReport:
        """
        Select due tasks and reconcile each one.

        Selector failures propagate (nothing has been written yet); per-task
        failures do not.
        """
        now = now or utc_now()
        report = CycleReport(started_at=utc_now())

        due = await selector.select(now)
        report.candidates = len(due)
        if report.candidates:
            logger.info(
                f"[{self.runner}] Found {len(due.with_webhook)} webhook tasks and "
                f"{len(due.without_webhook)} tasks to auto-complete"
            )

        for task in due.with_webhook:
            await self._isolated(self.dispatch_task, task, report)

        for task in due.without_webhook:
            await self._isolated(self.auto_complete_task, task, report)

        report.finished_at = utc_now()
        metrics.inc_counter("dispatch.cycle.count")
        metrics.set_gauge("dispatch.cycle.last_candidates", report.candidates)

        if report.candidates:
            logger.info(
                f"[{self.runner}] Cycle done: claimed={report.claimed} "
                f"auto_completed={report.auto_completed} delivered={report.delivered} "
                f"delivery_failed={report.delivery_failed} skipped="
                f"{report.already_claimed + report.not_found} failed={report.failed}"
            )
        return report

    async def dispatch_task(self, candidate: Task, report: CycleReport) -> TaskOutcome:
        """Re-validate, claim, then notify one task that has a webhook."""
        async with self._session_scope() as session:
            repo = TaskRepository(session)
            current = await repo.get(candidate.id)

            if current is None:
                return self._not_found(candidate)

            if current.status.is_terminal():
                logger.debug(f"[{self.runner}] Task {candidate.id} already claimed, skipping")
                return TaskOutcome.ALREADY_CLAIMED

            if not current.has_webhook:
                # Webhook removed since selection
                result = await repo.auto_complete(current.id)
            else:
                result = await repo.claim(current.id)
        # Claim is committed from here on.

        if result == ClaimResult.COMPLETED:
            logger.info(f"[{self.runner}] Auto-completed task {current.id}")
            return TaskOutcome.AUTO_COMPLETED
        if result == ClaimResult.NOT_FOUND:
            return self._not_found(candidate)
        if result == ClaimResult.ALREADY_CLAIMED:
            logger.debug(f"[{self.runner}] Task {candidate.id} claimed concurrently, skipping")
            return TaskOutcome.ALREADY_CLAIMED

        logger.info(f"[{self.runner}] Sending webhook for task {current.id}: {current.title}")
        delivery = await self.notifier.deliver(current)
        report.record_delivery(delivery)
        return TaskOutcome.CLAIMED

    async def auto_complete_task(self, candidate: Task, report: CycleReport) -> TaskOutcome:
        """Re-validate and complete one task that has no webhook."""
        async with self._session_scope() as session:
            repo = TaskRepository(session)
            state = await repo.get_state(candidate.id)
            if state is None:
                return self._not_found(candidate)
            if state.completed:
                return TaskOutcome.ALREADY_CLAIMED
            result = await repo.auto_complete(candidate.id)

        if result == ClaimResult.NOT_FOUND:
            return self._not_found(candidate)
        if result == ClaimResult.ALREADY_CLAIMED:
            return TaskOutcome.ALREADY_CLAIMED

        logger.info(f"[{self.runner}] Auto-completed task {candidate.id}")
        return TaskOutcome.AUTO_COMPLETED

    async def _isolated(
        self,
        step: Callable[[Task, CycleReport], Awaitable[TaskOutcome]],
        task: Task,
        report: CycleReport,
    ) -> None:
        try:
            outcome = await step(task, report)
        except Exception as e:
            logger.error(f"[{self.runner}] Failed to process task {task.id}: {e}", exc_info=True)
            outcome = TaskOutcome.FAILED

        report.record(outcome, task.id)
        metrics.inc_counter(f"dispatch.{outcome.value}")

    def _not_found(self, candidate: Task) -> TaskOutcome:
        logger.info(f"[{self.runner}] Task {candidate.id} no longer exists, skipping")
        return TaskOutcome.NOT_FOUND
