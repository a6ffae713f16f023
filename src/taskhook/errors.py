"""Taskhook errors."""


class TaskhookError(Exception):
    """Base error for Taskhook operations."""

    def __init__(self, message: str, code: str = "TASKHOOK_ERROR"):
        self.message = message
        self.code = code
        super().__init__(message)


class TaskNotFound(TaskhookError):
    """Task does not exist."""

    def __init__(self, task_id: str):
        super().__init__(f"Task not found: {task_id}", "TASK_NOT_FOUND")
        self.task_id = task_id


class SessionNotFound(TaskhookError):
    """No session runner is registered under this id."""

    def __init__(self, session_id: str):
        super().__init__(f"Session not found: {session_id}", "SESSION_NOT_FOUND")
        self.session_id = session_id
