"""Due-task selection.

Selectors are read-only. What they return is a candidate list, not a
decision: the reconciler re-reads every candidate before writing anything,
so a stale source is acceptable.
"""

from datetime import datetime
from typing import Callable, Iterable, Optional, Protocol

from taskhook.config import settings
from taskhook.db.base import get_session
from taskhook.db.repositories import TaskRepository
from taskhook.engine.types import SessionScope
from taskhook.models import DueTasks, Task


class TaskSelector(Protocol):
    """Anything that can produce the due, uncompleted tasks at a point in time."""

    async def select(self, now: datetime) -> DueTasks: ...


class StoreSelector:
    """Select candidates straight from the durable store."""

    def __init__(
        self,
        session_scope: Optional[SessionScope] = None,
        batch_size: Optional[int] = None,
    ):
        self._session_scope = session_scope or get_session
        self.batch_size = batch_size or settings.dispatch_batch_size

    async def select(self, now: datetime) -> DueTasks:
        async with self._session_scope() as session:
            repo = TaskRepository(session)
            with_webhook = await repo.list_due_uncompleted(
                now, has_webhook=True, limit=self.batch_size
            )
            without_webhook = await repo.list_due_uncompleted(
                now, has_webhook=False, limit=self.batch_size
            )
        return DueTasks(with_webhook=with_webhook, without_webhook=without_webhook)


class SnapshotSelector:
    """
    Select candidates from an in-memory task snapshot.

    ``known_deleted`` is a negative cache of ids the owner deleted locally.
    Those are dropped here only; re-validation never consults it.
    """

    def __init__(
        self,
        snapshot: Callable[[], Iterable[Task]],
        known_deleted: Optional[set[str]] = None,
    ):
        self._snapshot = snapshot
        self.known_deleted = known_deleted if known_deleted is not None else set()

    async def select(self, now: datetime) -> DueTasks:
        due = DueTasks()
        for task in self._snapshot():
            if task.id in self.known_deleted or not task.is_due(now):
                continue
            if task.has_webhook:
                due.with_webhook.append(task)
            else:
                due.without_webhook.append(task)
        return due
