"""Shared engine type aliases."""

from typing import AsyncContextManager, Callable, Protocol

from sqlalchemy.ext.asyncio import AsyncSession

from taskhook.models import Task, WebhookDelivery

# A zero-arg callable returning a session context that commits on clean exit.
SessionScope = Callable[[], AsyncContextManager[AsyncSession]]


class Notifier(Protocol):
    """Sends the completion notification for a claimed task."""

    async def deliver(self, task: Task) -> WebhookDelivery: ...
