"""Database repositories for Taskhook entities."""

from datetime import datetime
from typing import Any
from uuid import uuid4

from sqlalchemy import delete, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from taskhook.db.tables import TaskTable
from taskhook.errors import TaskNotFound
from taskhook.models import ClaimResult, Task, TaskState, WebhookTarget
from taskhook.utils.time import ensure_utc, utc_now

# Fields a caller may change through update(); dispatch flags are owned by
# claim() and auto_complete().
_EDITABLE_FIELDS = {"title", "description", "due_at", "webhook_url", "webhook_title"}


def normalize_webhook_url(url: str | None) -> str | None:
    """Treat blank URLs as unset."""
    if url is None:
        return None
    url = url.strip()
    return url or None


class TaskRepository:
    """Repository for task operations."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(
        self,
        owner_id: str,
        title: str,
        due_at: datetime,
        description: str = "",
        webhook_url: str | None = None,
        webhook_title: str | None = None,
    ) -> Task:
        """Create a new pending task."""
        now = utc_now()
        task_row = TaskTable(
            id=str(uuid4()),
            owner_id=owner_id,
            title=title,
            description=description or "",
            due_at=ensure_utc(due_at),
            completed=False,
            webhook_sent=False,
            webhook_url=normalize_webhook_url(webhook_url),
            webhook_title=webhook_title,
            created_at=now,
            updated_at=now,
        )

        self.session.add(task_row)
        await self.session.flush()
        return self._row_to_model(task_row)

    async def get(self, task_id: str, owner_id: str | None = None) -> Task | None:
        """Get a task by ID, optionally scoped to an owner."""
        query = (
            select(TaskTable)
            .where(TaskTable.id == task_id)
            .execution_options(populate_existing=True)
        )
        if owner_id is not None:
            query = query.where(TaskTable.owner_id == owner_id)
        result = await self.session.execute(query)
        row = result.scalar_one_or_none()
        return self._row_to_model(row) if row else None

    async def get_or_raise(self, task_id: str, owner_id: str | None = None) -> Task:
        """Get a task by ID or raise TaskNotFound."""
        task = await self.get(task_id, owner_id=owner_id)
        if task is None:
            raise TaskNotFound(task_id)
        return task

    async def get_state(self, task_id: str) -> TaskState | None:
        """Read the authoritative dispatch flags for a task."""
        result = await self.session.execute(
            select(TaskTable.id, TaskTable.completed, TaskTable.webhook_sent).where(
                TaskTable.id == task_id
            )
        )
        row = result.one_or_none()
        if row is None:
            return None
        return TaskState(id=row.id, completed=row.completed, webhook_sent=row.webhook_sent)

    async def list_for_owner(
        self,
        owner_id: str,
        completed: bool | None = None,
        limit: int | None = None,
    ) -> list[Task]:
        """List an owner's tasks, newest first."""
        query = select(TaskTable).where(TaskTable.owner_id == owner_id)
        if completed is not None:
            query = query.where(TaskTable.completed == completed)
        query = query.order_by(TaskTable.created_at.desc())
        if limit:
            query = query.limit(limit)

        result = await self.session.execute(query)
        return [self._row_to_model(r) for r in result.scalars().all()]

    async def list_due_uncompleted(
        self,
        now: datetime,
        has_webhook: bool,
        limit: int | None = None,
    ) -> list[Task]:
        """
        List tasks whose due time has elapsed and that are not completed.

        Read-only. Tasks with a blank webhook URL count as having none.
        """
        query = select(TaskTable).where(
            TaskTable.completed.is_(False),
            TaskTable.due_at <= ensure_utc(now),
        )
        if has_webhook:
            query = query.where(TaskTable.webhook_url.is_not(None), TaskTable.webhook_url != "")
        else:
            query = query.where(or_(TaskTable.webhook_url.is_(None), TaskTable.webhook_url == ""))

        query = query.order_by(TaskTable.created_at)
        if limit:
            query = query.limit(limit)

        result = await self.session.execute(query)
        return [self._row_to_model(r) for r in result.scalars().all()]

    async def claim(self, task_id: str) -> ClaimResult:
        """
        Mark a task completed and notified in one conditional write.

        The WHERE clause is the compare-and-set: only a row that is still
        pending matches, so of two racing writers exactly one sees a match.
        """
        now = utc_now()
        result = await self.session.execute(
            update(TaskTable)
            .where(
                TaskTable.id == task_id,
                TaskTable.completed.is_(False),
                TaskTable.webhook_sent.is_(False),
            )
            .values(completed=True, webhook_sent=True, completed_at=now, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 1:
            return ClaimResult.CLAIMED
        return await self._classify_miss(task_id)

    async def auto_complete(self, task_id: str) -> ClaimResult:
        """Mark a task without a webhook completed. Leaves webhook_sent untouched."""
        now = utc_now()
        result = await self.session.execute(
            update(TaskTable)
            .where(TaskTable.id == task_id, TaskTable.completed.is_(False))
            .values(completed=True, completed_at=now, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 1:
            return ClaimResult.COMPLETED
        return await self._classify_miss(task_id)

    async def update(
        self,
        task_id: str,
        owner_id: str,
        changes: dict[str, Any],
    ) -> Task | None:
        """Update editable task fields."""
        values = {k: v for k, v in changes.items() if k in _EDITABLE_FIELDS}
        if "webhook_url" in values:
            values["webhook_url"] = normalize_webhook_url(values["webhook_url"])
        if values.get("due_at") is not None:
            values["due_at"] = ensure_utc(values["due_at"])
        values["updated_at"] = utc_now()

        await self.session.execute(
            update(TaskTable)
            .where(TaskTable.id == task_id, TaskTable.owner_id == owner_id)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        return await self.get(task_id, owner_id=owner_id)

    async def delete(self, task_id: str, owner_id: str) -> bool:
        """Delete a task. Returns False if there was nothing to delete."""
        result = await self.session.execute(
            delete(TaskTable)
            .where(TaskTable.id == task_id, TaskTable.owner_id == owner_id)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount > 0

    async def list_recent_webhooks(self, owner_id: str) -> list[WebhookTarget]:
        """Distinct webhook URLs used by an owner's tasks, newest title wins."""
        result = await self.session.execute(
            select(TaskTable.webhook_url, TaskTable.webhook_title)
            .where(TaskTable.owner_id == owner_id, TaskTable.webhook_url.is_not(None))
            .order_by(TaskTable.created_at)
        )
        targets: dict[str, WebhookTarget] = {}
        for url, title in result.all():
            if not url:
                continue
            targets[url] = WebhookTarget(url=url, title=title or url)
        return list(targets.values())

    async def _classify_miss(self, task_id: str) -> ClaimResult:
        state = await self.get_state(task_id)
        if state is None:
            return ClaimResult.NOT_FOUND
        return ClaimResult.ALREADY_CLAIMED

    def _row_to_model(self, row: TaskTable) -> Task:
        return Task(
            id=row.id,
            owner_id=row.owner_id,
            title=row.title,
            description=row.description or "",
            due_at=ensure_utc(row.due_at),
            completed=row.completed,
            webhook_sent=row.webhook_sent,
            webhook_url=row.webhook_url,
            webhook_title=row.webhook_title,
            created_at=ensure_utc(row.created_at),
            updated_at=ensure_utc(row.updated_at),
            completed_at=ensure_utc(row.completed_at) if row.completed_at else None,
        )
