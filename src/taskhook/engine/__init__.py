"""Taskhook engine - due-task selection and dispatch reconciliation."""

from taskhook.errors import SessionNotFound, TaskhookError, TaskNotFound
from taskhook.engine.reconciler import DispatchReconciler
from taskhook.engine.selector import SnapshotSelector, StoreSelector, TaskSelector

__all__ = [
    "DispatchReconciler",
    "SessionNotFound",
    "SnapshotSelector",
    "StoreSelector",
    "TaskSelector",
    "TaskhookError",
    "TaskNotFound",
]
