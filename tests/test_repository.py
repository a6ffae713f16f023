"""
Task repository tests: selection, the completion claim, and owner-scoped CRUD.
"""

from datetime import timedelta

import pytest

from taskhook.db.repositories import TaskRepository, normalize_webhook_url
from taskhook.errors import TaskNotFound
from taskhook.models import ClaimResult
from taskhook.utils.time import utc_now


def test_normalize_webhook_url():
    assert normalize_webhook_url(None) is None
    assert normalize_webhook_url("") is None
    assert normalize_webhook_url("   ") is None
    assert normalize_webhook_url(" https://x.example/h ") == "https://x.example/h"


@pytest.mark.asyncio
async def test_create_stores_pending_task(session):
    repo = TaskRepository(session)
    due = utc_now() + timedelta(hours=1)

    task = await repo.create(owner_id="user-1", title="Write report", due_at=due)
    await session.commit()

    fetched = await repo.get(task.id)
    assert fetched is not None
    assert fetched.title == "Write report"
    assert fetched.description == ""
    assert fetched.completed is False
    assert fetched.webhook_sent is False
    assert fetched.webhook_url is None
    assert fetched.due_at.tzinfo is not None
    assert abs((fetched.due_at - due).total_seconds()) < 1


@pytest.mark.asyncio
async def test_blank_webhook_url_stored_as_none(session):
    repo = TaskRepository(session)
    task = await repo.create(owner_id="user-1", title="t", due_at=utc_now(), webhook_url="  ")
    assert task.webhook_url is None
    assert task.has_webhook is False


@pytest.mark.asyncio
async def test_get_scoped_to_owner(make_task, session):
    task = await make_task(owner_id="alice")
    repo = TaskRepository(session)

    assert await repo.get(task.id, owner_id="alice") is not None
    assert await repo.get(task.id, owner_id="bob") is None
    with pytest.raises(TaskNotFound):
        await repo.get_or_raise(task.id, owner_id="bob")


@pytest.mark.asyncio
async def test_list_due_uncompleted_splits_by_webhook(make_task, session):
    hooked = await make_task(title="hooked", webhook_url="https://x.example/h")
    plain = await make_task(title="plain")
    await make_task(title="future", due_in=timedelta(hours=1), webhook_url="https://x.example/h")

    repo = TaskRepository(session)
    now = utc_now()
    with_webhook = await repo.list_due_uncompleted(now, has_webhook=True)
    without_webhook = await repo.list_due_uncompleted(now, has_webhook=False)

    assert [t.id for t in with_webhook] == [hooked.id]
    assert [t.id for t in without_webhook] == [plain.id]


@pytest.mark.asyncio
async def test_list_due_uncompleted_excludes_completed(make_task, session):
    task = await make_task(webhook_url="https://x.example/h")
    repo = TaskRepository(session)
    assert await repo.claim(task.id) == ClaimResult.CLAIMED
    await session.commit()

    assert await repo.list_due_uncompleted(utc_now(), has_webhook=True) == []


@pytest.mark.asyncio
async def test_list_due_uncompleted_respects_limit(make_task, session):
    for i in range(3):
        await make_task(title=f"t{i}")

    repo = TaskRepository(session)
    assert len(await repo.list_due_uncompleted(utc_now(), has_webhook=False, limit=2)) == 2


@pytest.mark.asyncio
async def test_claim_sets_both_flags_once(make_task, session):
    task = await make_task(webhook_url="https://x.example/h")
    repo = TaskRepository(session)

    assert await repo.claim(task.id) == ClaimResult.CLAIMED
    await session.commit()

    state = await repo.get_state(task.id)
    assert state.completed is True
    assert state.webhook_sent is True

    assert await repo.claim(task.id) == ClaimResult.ALREADY_CLAIMED

    claimed = await repo.get(task.id)
    assert claimed.completed_at is not None


@pytest.mark.asyncio
async def test_claim_missing_task(session):
    assert await TaskRepository(session).claim("no-such-task") == ClaimResult.NOT_FOUND


@pytest.mark.asyncio
async def test_claim_refuses_completed_task(make_task, session):
    task = await make_task(webhook_url="https://x.example/h")
    repo = TaskRepository(session)

    assert await repo.auto_complete(task.id) == ClaimResult.COMPLETED
    assert await repo.claim(task.id) == ClaimResult.ALREADY_CLAIMED

    state = await repo.get_state(task.id)
    assert state.completed is True
    assert state.webhook_sent is False


@pytest.mark.asyncio
async def test_auto_complete_leaves_webhook_sent_false(make_task, session):
    task = await make_task()
    repo = TaskRepository(session)

    assert await repo.auto_complete(task.id) == ClaimResult.COMPLETED
    assert await repo.auto_complete(task.id) == ClaimResult.ALREADY_CLAIMED

    state = await repo.get_state(task.id)
    assert state.completed is True
    assert state.webhook_sent is False


@pytest.mark.asyncio
async def test_update_ignores_dispatch_flags(make_task, session):
    task = await make_task(title="old")
    repo = TaskRepository(session)

    updated = await repo.update(
        task.id,
        "user-1",
        {"title": "new", "completed": True, "webhook_sent": True, "webhook_url": " "},
    )

    assert updated.title == "new"
    assert updated.completed is False
    assert updated.webhook_sent is False
    assert updated.webhook_url is None


@pytest.mark.asyncio
async def test_update_wrong_owner_returns_none(make_task, session):
    task = await make_task(owner_id="alice", title="mine")
    repo = TaskRepository(session)

    assert await repo.update(task.id, "bob", {"title": "stolen"}) is None
    assert (await repo.get(task.id)).title == "mine"


@pytest.mark.asyncio
async def test_delete(make_task, session):
    task = await make_task(owner_id="alice")
    repo = TaskRepository(session)

    assert await repo.delete(task.id, "bob") is False
    assert await repo.delete(task.id, "alice") is True
    assert await repo.get(task.id) is None
    assert await repo.delete(task.id, "alice") is False


@pytest.mark.asyncio
async def test_list_for_owner_filters(make_task, session):
    first = await make_task(owner_id="alice", title="first")
    second = await make_task(owner_id="alice", title="second")
    await make_task(owner_id="bob", title="other")

    repo = TaskRepository(session)
    await repo.auto_complete(first.id)
    await session.commit()

    assert {t.id for t in await repo.list_for_owner("alice")} == {first.id, second.id}
    assert [t.id for t in await repo.list_for_owner("alice", completed=False)] == [second.id]
    assert [t.id for t in await repo.list_for_owner("alice", completed=True)] == [first.id]


@pytest.mark.asyncio
async def test_list_recent_webhooks_distinct(make_task, session):
    await make_task(owner_id="alice", webhook_url="https://a.example/h", webhook_title="A")
    await make_task(owner_id="alice", webhook_url="https://a.example/h", webhook_title="A2")
    await make_task(owner_id="alice", webhook_url="https://b.example/h")
    await make_task(owner_id="alice")
    await make_task(owner_id="bob", webhook_url="https://c.example/h")

    targets = await TaskRepository(session).list_recent_webhooks("alice")

    by_url = {t.url: t.title for t in targets}
    assert set(by_url) == {"https://a.example/h", "https://b.example/h"}
    assert by_url["https://b.example/h"] == "https://b.example/h"
