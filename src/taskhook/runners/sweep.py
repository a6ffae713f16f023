"""Due-task dispatch sweep background task."""

import asyncio
import logging
import random
from typing import Optional

from taskhook.config import settings
from taskhook.engine import DispatchReconciler, StoreSelector
from taskhook.engine.types import Notifier
from taskhook.models import CycleReport

logger = logging.getLogger("taskhook.sweep")

_sweep_task: Optional[asyncio.Task] = None
_shutdown_event: Optional[asyncio.Event] = None


async def run_dispatch_cycle(
    runner: str = "sweep",
    notifier: Optional[Notifier] = None,
) -> CycleReport:
    """Run one cycle against the durable store."""
    reconciler = DispatchReconciler(notifier=notifier, runner=runner)
    return await reconciler.run_cycle(StoreSelector())


async def dispatch_sweep_loop():
    """
    Background loop that completes due tasks and fires their webhooks.

    Runs whether or not any client session is open. Other runners (session
    runners, the CLI) may be working on the same rows at the same time; the
    reconciler's claim makes that safe.

    The interval is jittered by ±20% so several server instances do not
    sweep in lockstep.
    """
    base_interval = settings.dispatch_interval_seconds
    logger.info(f"Dispatch sweep loop started (base interval: {base_interval}s with ±20% jitter)")

    while not _shutdown_event.is_set():
        try:
            report = await run_dispatch_cycle()
            if report.processed > 0:
                logger.info(
                    f"Completed {report.processed} due tasks, "
                    f"sent {report.delivered} webhooks"
                )
        except Exception as e:
            logger.error(f"Dispatch sweep error: {e}", exc_info=True)

        jittered_interval = base_interval * random.uniform(0.8, 1.2)

        # Wait for next sweep interval or shutdown
        try:
            await asyncio.wait_for(
                _shutdown_event.wait(),
                timeout=jittered_interval,
            )
        except asyncio.TimeoutError:
            pass  # Continue loop

    logger.info("Dispatch sweep loop stopped")


async def start_dispatch_sweep():
    """Start the dispatch sweep background task."""
    global _sweep_task, _shutdown_event

    _shutdown_event = asyncio.Event()
    _sweep_task = asyncio.create_task(dispatch_sweep_loop())


async def stop_dispatch_sweep():
    """Stop the dispatch sweep background task."""
    global _sweep_task, _shutdown_event

    if _shutdown_event:
        _shutdown_event.set()

    if _sweep_task:
        try:
            await asyncio.wait_for(_sweep_task, timeout=10.0)
        except asyncio.TimeoutError:
            logger.warning("Dispatch sweep task did not stop gracefully, cancelling")
            _sweep_task.cancel()
            try:
                await _sweep_task
            except asyncio.CancelledError:
                pass

    _sweep_task = None
    _shutdown_event = None


def is_sweep_running() -> bool:
    return _sweep_task is not None and not _sweep_task.done()
