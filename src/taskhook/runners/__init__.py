"""Dispatch runners: background sweep, per-session timers, one-shot CLI."""

from taskhook.runners.session import SessionRegistry, SessionRunner, session_registry
from taskhook.runners.sweep import (
    run_dispatch_cycle,
    start_dispatch_sweep,
    stop_dispatch_sweep,
)

__all__ = [
    "SessionRegistry",
    "SessionRunner",
    "run_dispatch_cycle",
    "session_registry",
    "start_dispatch_sweep",
    "stop_dispatch_sweep",
]
