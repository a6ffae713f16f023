"""External service integrations."""

from taskhook.integrations.webhook_client import (
    WebhookClient,
    build_auth_headers,
    build_task_payload,
    get_webhook_client,
)

__all__ = [
    "WebhookClient",
    "build_auth_headers",
    "build_task_payload",
    "get_webhook_client",
]
