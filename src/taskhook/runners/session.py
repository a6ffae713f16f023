"""Foreground dispatch runners tied to client sessions.

While a client session is open its owner's tasks are kept in an in-memory
snapshot and a dispatch cycle runs over that snapshot on a short fixed
interval. The snapshot may lag the store; the reconciler re-reads every
candidate before writing, so lag only costs a wasted read.
"""

import asyncio
import logging
import time
from datetime import datetime
from typing import Optional
from uuid import uuid4

from taskhook.config import settings
from taskhook.db.base import get_session
from taskhook.db.repositories import TaskRepository
from taskhook.engine import DispatchReconciler, SessionNotFound, SnapshotSelector
from taskhook.engine.types import Notifier, SessionScope
from taskhook.models import CycleReport, Task
from taskhook.observability.metrics import metrics

logger = logging.getLogger(__name__)


class SessionRunner:
    """Periodic dispatch cycle bound to one client session."""

    def __init__(
        self,
        owner_id: str,
        session_id: Optional[str] = None,
        interval_seconds: Optional[float] = None,
        refresh_seconds: Optional[float] = None,
        notifier: Optional[Notifier] = None,
        session_scope: Optional[SessionScope] = None,
    ):
        self.owner_id = owner_id
        self.session_id = session_id or str(uuid4())
        self.interval_seconds = interval_seconds or settings.session_dispatch_interval_seconds
        self.refresh_seconds = refresh_seconds or settings.session_snapshot_refresh_seconds
        self._session_scope = session_scope or get_session

        self.snapshot: dict[str, Task] = {}
        self.known_deleted: set[str] = set()
        self.selector = SnapshotSelector(lambda: list(self.snapshot.values()), self.known_deleted)
        self.reconciler = DispatchReconciler(
            notifier=notifier,
            session_scope=self._session_scope,
            runner=f"session:{self.session_id[:8]}",
        )

        self._last_refresh: Optional[float] = None
        self._task: Optional[asyncio.Task] = None
        self._shutdown_event: Optional[asyncio.Event] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def refresh(self) -> None:
        """Reload the owner's tasks from the store."""
        async with self._session_scope() as session:
            tasks = await TaskRepository(session).list_for_owner(self.owner_id)

        fresh = {task.id: task for task in tasks}
        # Ids that are gone from the store no longer need suppressing.
        self.known_deleted.intersection_update(fresh)
        self.snapshot = {
            task_id: task for task_id, task in fresh.items() if task_id not in self.known_deleted
        }
        self._last_refresh = time.monotonic()

    def track(self, task: Task) -> None:
        """Record a task the owner created or edited during this session."""
        if task.id in self.known_deleted:
            return
        self.snapshot[task.id] = task

    def mark_deleted(self, task_id: str) -> None:
        """Record a task the owner deleted during this session."""
        self.known_deleted.add(task_id)
        self.snapshot.pop(task_id, None)

    async def tick(self, now: Optional[datetime] = None) -> CycleReport:
        """Run one cycle over the snapshot, reloading it first if it is old."""
        if self._last_refresh is None or (
            time.monotonic() - self._last_refresh >= self.refresh_seconds
        ):
            await self.refresh()

        report = await self.reconciler.run_cycle(self.selector, now)

        for task_id in report.not_found_ids:
            logger.info(f"Task {task_id} no longer exists in the store, removing from session")
            self.mark_deleted(task_id)
        for task_id in report.settled_ids:
            task = self.snapshot.get(task_id)
            if task is not None:
                self.snapshot[task_id] = task.model_copy(update={"completed": True})
        return report

    async def _loop(self) -> None:
        logger.info(
            f"Session runner {self.session_id} started for owner {self.owner_id} "
            f"(interval: {self.interval_seconds}s)"
        )
        while not self._shutdown_event.is_set():
            try:
                await self.tick()
            except Exception as e:
                logger.error(f"Session runner {self.session_id} error: {e}", exc_info=True)

            try:
                await asyncio.wait_for(
                    self._shutdown_event.wait(),
                    timeout=self.interval_seconds,
                )
            except asyncio.TimeoutError:
                pass

        logger.info(f"Session runner {self.session_id} stopped")

    async def start(self) -> None:
        """Load the snapshot and start ticking. The first cycle runs immediately."""
        await self.refresh()
        self._shutdown_event = asyncio.Event()
        self._task = asyncio.create_task(self._loop())

    async def stop(self) -> None:
        if self._shutdown_event:
            self._shutdown_event.set()

        if self._task:
            try:
                await asyncio.wait_for(self._task, timeout=10.0)
            except asyncio.TimeoutError:
                logger.warning(f"Session runner {self.session_id} did not stop gracefully, cancelling")
                self._task.cancel()
                try:
                    await self._task
                except asyncio.CancelledError:
                    pass

        self._task = None
        self._shutdown_event = None


class SessionRegistry:
    """Open session runners, keyed by session id."""

    def __init__(self) -> None:
        self._runners: dict[str, SessionRunner] = {}

    def __len__(self) -> int:
        return len(self._runners)

    async def open(self, owner_id: str, **runner_kwargs) -> SessionRunner:
        runner = SessionRunner(owner_id, **runner_kwargs)
        await runner.start()
        self._runners[runner.session_id] = runner
        metrics.set_gauge("sessions.open", len(self._runners))
        return runner

    async def close(self, session_id: str, owner_id: Optional[str] = None) -> None:
        runner = self._runners.get(session_id)
        if runner is None or (owner_id is not None and runner.owner_id != owner_id):
            raise SessionNotFound(session_id)
        del self._runners[session_id]
        await runner.stop()
        metrics.set_gauge("sessions.open", len(self._runners))

    async def close_all(self) -> None:
        for session_id in list(self._runners):
            await self.close(session_id)

    def get(self, session_id: str) -> SessionRunner:
        runner = self._runners.get(session_id)
        if runner is None:
            raise SessionNotFound(session_id)
        return runner

    def for_owner(self, owner_id: str) -> list[SessionRunner]:
        return [r for r in self._runners.values() if r.owner_id == owner_id]

    def task_saved(self, task: Task) -> None:
        for runner in self.for_owner(task.owner_id):
            runner.track(task)

    def task_deleted(self, owner_id: str, task_id: str) -> None:
        for runner in self.for_owner(owner_id):
            runner.mark_deleted(task_id)


session_registry = SessionRegistry()
