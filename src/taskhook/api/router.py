"""REST API router."""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from taskhook import __version__
from taskhook.api.deps import get_db_session, get_owner_id, verify_api_key
from taskhook.api.schemas import (
    CloseSessionResponse,
    CreateTaskRequest,
    DeleteTaskResponse,
    DispatchRunResponse,
    HealthResponse,
    ListTasksResponse,
    OpenSessionResponse,
    RecentWebhooksResponse,
    TaskResponse,
    UpdateTaskRequest,
    WebhookTargetSchema,
    WebhookTestRequest,
    WebhookTestResponse,
)
from taskhook.db.repositories import TaskRepository
from taskhook.engine import SessionNotFound, TaskNotFound
from taskhook.integrations.webhook_client import build_auth_headers, get_webhook_client
from taskhook.observability.metrics import metrics
from taskhook.runners.session import session_registry
from taskhook.runners.sweep import is_sweep_running, run_dispatch_cycle

logger = logging.getLogger("taskhook.api")

router = APIRouter(prefix="/v1", dependencies=[Depends(verify_api_key)])


# ============================================================================
# Health & Metrics
# ============================================================================


@router.get("/health", response_model=HealthResponse)
async def health_check():
    """Health check endpoint."""
    return HealthResponse(
        status="healthy",
        version=__version__,
        sweep_running=is_sweep_running(),
        open_sessions=len(session_registry),
    )


@router.get("/metrics")
async def get_metrics():
    """In-process counters, gauges and histograms."""
    return metrics.snapshot()


# ============================================================================
# Tasks
# ============================================================================


@router.post("/tasks", response_model=TaskResponse, status_code=201)
async def create_task(
    request: CreateTaskRequest,
    session: AsyncSession = Depends(get_db_session),
    owner_id: str = Depends(get_owner_id),
):
    """Create a new task."""
    task = await TaskRepository(session).create(
        owner_id=owner_id,
        title=request.title,
        description=request.description,
        due_at=request.due_at,
        webhook_url=request.webhook_url,
        webhook_title=request.webhook_title,
    )
    await session.commit()

    session_registry.task_saved(task)
    return TaskResponse.from_task(task)


@router.get("/tasks", response_model=ListTasksResponse)
async def list_tasks(
    completed: Optional[bool] = Query(None),
    limit: Optional[int] = Query(None, ge=1, le=500),
    session: AsyncSession = Depends(get_db_session),
    owner_id: str = Depends(get_owner_id),
):
    """List the caller's tasks, newest first."""
    tasks = await TaskRepository(session).list_for_owner(
        owner_id, completed=completed, limit=limit
    )
    return ListTasksResponse(tasks=[TaskResponse.from_task(t) for t in tasks])


@router.get("/tasks/{task_id}", response_model=TaskResponse)
async def get_task(
    task_id: str,
    session: AsyncSession = Depends(get_db_session),
    owner_id: str = Depends(get_owner_id),
):
    """Get a task by ID."""
    try:
        task = await TaskRepository(session).get_or_raise(task_id, owner_id=owner_id)
    except TaskNotFound as e:
        raise HTTPException(status_code=404, detail=e.message)
    return TaskResponse.from_task(task)


@router.patch("/tasks/{task_id}", response_model=TaskResponse)
async def update_task(
    task_id: str,
    request: UpdateTaskRequest,
    session: AsyncSession = Depends(get_db_session),
    owner_id: str = Depends(get_owner_id),
):
    """Edit a task's details. Completion flags are not editable here."""
    changes = request.model_dump(exclude_unset=True)
    for required in ("title", "description", "due_at"):
        if changes.get(required, ...) is None:
            del changes[required]

    repo = TaskRepository(session)
    try:
        await repo.get_or_raise(task_id, owner_id=owner_id)
        task = await repo.update(task_id, owner_id, changes)
    except TaskNotFound as e:
        raise HTTPException(status_code=404, detail=e.message)
    await session.commit()

    session_registry.task_saved(task)
    return TaskResponse.from_task(task)


@router.delete("/tasks/{task_id}", response_model=DeleteTaskResponse)
async def delete_task(
    task_id: str,
    session: AsyncSession = Depends(get_db_session),
    owner_id: str = Depends(get_owner_id),
):
    """
    Delete a task.

    Once the delete is committed, open session runners for the owner stop
    considering the task right away, even before their next snapshot reload.
    """
    if not await TaskRepository(session).delete(task_id, owner_id):
        raise HTTPException(status_code=404, detail=TaskNotFound(task_id).message)
    await session.commit()

    session_registry.task_deleted(owner_id, task_id)

    logger.info(f"Task {task_id} deleted")
    return DeleteTaskResponse(ok=True)


# ============================================================================
# Webhooks
# ============================================================================


@router.get("/webhooks/recent", response_model=RecentWebhooksResponse)
async def recent_webhooks(
    session: AsyncSession = Depends(get_db_session),
    owner_id: str = Depends(get_owner_id),
):
    """Distinct webhook endpoints the caller has used, for reuse in new tasks."""
    targets = await TaskRepository(session).list_recent_webhooks(owner_id)
    return RecentWebhooksResponse(
        webhooks=[WebhookTargetSchema(url=t.url, title=t.title) for t in targets]
    )


@router.post("/webhooks/test", response_model=WebhookTestResponse)
async def test_webhook(request: WebhookTestRequest):
    """Send a single test event to a webhook endpoint."""
    headers = build_auth_headers(request.auth_type, request.auth_token, request.headers)
    success, message = await get_webhook_client().send_test(request.url, headers=headers)
    return WebhookTestResponse(success=success, message=message)


# ============================================================================
# Dispatch & sessions
# ============================================================================


@router.post("/dispatch/run", response_model=DispatchRunResponse)
async def run_dispatch():
    """Run one dispatch cycle against the store now."""
    try:
        report = await run_dispatch_cycle(runner="api")
    except Exception as e:
        logger.error(f"Failed to process webhooks: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=str(e))

    return DispatchRunResponse(
        message=f"Processed {report.responded} webhooks",
        tasks_processed=report.responded,
        report=report.model_dump(mode="json"),
    )


@router.post("/sessions", response_model=OpenSessionResponse, status_code=201)
async def open_session(owner_id: str = Depends(get_owner_id)):
    """Start a foreground dispatch runner for the caller's session."""
    runner = await session_registry.open(owner_id)
    return OpenSessionResponse(
        session_id=runner.session_id,
        interval_seconds=runner.interval_seconds,
    )


@router.delete("/sessions/{session_id}", response_model=CloseSessionResponse)
async def close_session(session_id: str, owner_id: str = Depends(get_owner_id)):
    """Stop the caller's session runner."""
    try:
        await session_registry.close(session_id, owner_id=owner_id)
    except SessionNotFound as e:
        raise HTTPException(status_code=404, detail=e.message)
    return CloseSessionResponse(ok=True)
