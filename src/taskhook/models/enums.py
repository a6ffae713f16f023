"""Taskhook enumerations."""

from enum import Enum


class TaskStatus(str, Enum):
    """Task lifecycle status as derived from the persisted flags."""

    PENDING = "pending"
    COMPLETED = "completed"
    CLAIMED = "claimed"

    def is_terminal(self) -> bool:
        """Completed and claimed tasks accept no further dispatch transitions."""
        return self is not TaskStatus.PENDING


class ClaimResult(str, Enum):
    """Result of a single-row completion write."""

    CLAIMED = "claimed"
    COMPLETED = "completed"
    NOT_FOUND = "not_found"
    ALREADY_CLAIMED = "already_claimed"


class DeliveryOutcome(str, Enum):
    """Observed outcome of a webhook POST."""

    SUCCESS = "success"
    NETWORK_FAILURE = "network_failure"
    HTTP_ERROR = "http_error"


class TaskOutcome(str, Enum):
    """What one reconciler step did with one candidate."""

    CLAIMED = "claimed"
    AUTO_COMPLETED = "auto_completed"
    ALREADY_CLAIMED = "already_claimed"
    NOT_FOUND = "not_found"
    FAILED = "failed"


class WebhookAuthType(str, Enum):
    """Auth header styles a caller can merge into a webhook request."""

    NONE = "none"
    BASIC = "basic"
    BEARER = "bearer"
    CUSTOM = "custom"
