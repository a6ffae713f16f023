"""
Pytest fixtures for Taskhook tests.
"""

import asyncio
import os
from datetime import timedelta
from typing import Iterable, Optional

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

# Ensure test config is set before importing taskhook modules.
os.environ.setdefault("TASKHOOK_ALLOW_INSECURE_DEV", "true")
os.environ.setdefault("TASKHOOK_ENV", "development")
os.environ.setdefault("TASKHOOK_DISPATCH_SWEEP_ENABLED", "false")
os.environ.setdefault(
    "TASKHOOK_DATABASE_URL",
    os.getenv("TASKHOOK_TEST_DATABASE_URL", "sqlite+aiosqlite:///./taskhook_test.db"),
)

from taskhook.db import base as db_base
from taskhook.db.base import Base, attach_query_metrics, engine_options
from taskhook.db.repositories import TaskRepository
import taskhook.db.tables  # noqa: F401
from taskhook.integrations.webhook_client import build_task_payload
from taskhook.models import DeliveryOutcome, Task, WebhookDelivery
from taskhook.observability.metrics import metrics
from taskhook.utils.time import utc_now


def _ensure_test_database_url(database_url: str) -> None:
    if "test" not in database_url:
        raise RuntimeError(
            "Refusing to run Taskhook tests against a non-test database. "
            "Set TASKHOOK_TEST_DATABASE_URL to a dedicated test database."
        )


class RecordingNotifier:
    """
    Notifier double for reconciler tests.

    Records every task it is asked to notify and returns a canned outcome
    instead of making an HTTP call. Tasks listed in ``fail_for`` raise.
    """

    def __init__(
        self,
        outcome: DeliveryOutcome = DeliveryOutcome.SUCCESS,
        fail_for: Iterable[str] = (),
        delay: float = 0.0,
    ) -> None:
        self.outcome = outcome
        self.fail_for = set(fail_for)
        self.delay = delay
        self.calls: list[Task] = []

    @property
    def call_ids(self) -> list[str]:
        return [task.id for task in self.calls]

    async def deliver(self, task: Task) -> WebhookDelivery:
        if self.delay:
            await asyncio.sleep(self.delay)
        self.calls.append(task)
        if task.id in self.fail_for:
            raise RuntimeError(f"notify blew up for {task.id}")

        now = utc_now()
        return WebhookDelivery(
            task_id=task.id,
            url=task.webhook_url or "",
            payload=build_task_payload(task, now),
            attempted_at=now,
            outcome=self.outcome,
            status_code=200 if self.outcome == DeliveryOutcome.SUCCESS else None,
        )


@pytest.fixture(autouse=True)
def reset_metrics():
    metrics.reset()
    yield
    metrics.reset()


@pytest.fixture
async def engine(tmp_path):
    """Create a test engine and wire it into taskhook.db.base."""
    database_url = os.getenv("TASKHOOK_TEST_DATABASE_URL") or (
        f"sqlite+aiosqlite:///{tmp_path / 'taskhook_test.db'}"
    )
    _ensure_test_database_url(database_url)

    engine = create_async_engine(database_url, **engine_options(database_url))
    attach_query_metrics(engine)

    # Override global engine/session factory so get_session() uses the test DB.
    original = (db_base.engine, db_base.async_session_factory)
    db_base.engine = engine
    db_base.async_session_factory = async_sessionmaker(
        engine, class_=AsyncSession, expire_on_commit=False
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    db_base.engine, db_base.async_session_factory = original
    await engine.dispose()


@pytest.fixture
async def session(engine):
    """Provide a database session bound to the test engine."""
    async_session = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    async with async_session() as session:
        yield session
        await session.rollback()


@pytest.fixture
def make_task(engine):
    """Insert a committed task. ``due_in`` is relative to now (negative = overdue)."""

    async def _make_task(
        title: str = "Test task",
        due_in: timedelta = timedelta(minutes=-5),
        webhook_url: Optional[str] = None,
        owner_id: str = "user-1",
        description: str = "",
        webhook_title: Optional[str] = None,
    ) -> Task:
        async with db_base.get_session() as session:
            return await TaskRepository(session).create(
                owner_id=owner_id,
                title=title,
                description=description,
                due_at=utc_now() + due_in,
                webhook_url=webhook_url,
                webhook_title=webhook_title,
            )

    return _make_task


@pytest.fixture
def fetch_task(engine):
    """Read a task's current committed state."""

    async def _fetch_task(task_id: str) -> Optional[Task]:
        async with db_base.get_session() as session:
            return await TaskRepository(session).get(task_id)

    return _fetch_task


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
async def client(engine):
    """Async test client against the app, sharing the test database."""
    from taskhook.main import app
    from taskhook.runners.session import session_registry

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    await session_registry.close_all()
