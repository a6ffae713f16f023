"""Taskhook database layer."""

from taskhook.db.base import Base, get_session, init_db
from taskhook.db.repositories import TaskRepository
from taskhook.db.tables import TaskTable

__all__ = [
    "Base",
    "get_session",
    "init_db",
    "TaskRepository",
    "TaskTable",
]
