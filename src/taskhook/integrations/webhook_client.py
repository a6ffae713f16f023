"""Outbound webhook client.

One POST per call with a bounded timeout. There is no retry and no backoff:
failures are reported back as a ``WebhookDelivery`` outcome and logged, never
raised.
"""

import base64
import json
import logging
import time
from datetime import datetime
from typing import Any, Optional

import httpx

from taskhook.config import settings
from taskhook.models import DeliveryOutcome, Task, WebhookAuthType, WebhookDelivery
from taskhook.observability.metrics import metrics
from taskhook.utils.time import epoch_ms, to_iso_z, utc_now

logger = logging.getLogger(__name__)

TASK_COMPLETED_EVENT = "task_completed"
TEST_EVENT = "test"


def build_task_payload(task: Task, sent_at: datetime) -> dict[str, Any]:
    """Render the ``task_completed`` notification body for a task."""
    return {
        "event": TASK_COMPLETED_EVENT,
        "task": {
            "id": task.id,
            "title": task.title,
            "description": task.description,
            "due_date": to_iso_z(task.due_at),
        },
        "meta": {
            "sent_at": to_iso_z(sent_at),
            "webhook_id": f"{task.id}_{epoch_ms(sent_at)}",
        },
    }


def encode_payload(payload: dict[str, Any]) -> bytes:
    """Compact JSON, non-ASCII left as-is."""
    return json.dumps(payload, separators=(",", ":"), ensure_ascii=False).encode("utf-8")


def build_auth_headers(
    auth_type: WebhookAuthType = WebhookAuthType.NONE,
    auth_token: Optional[str] = None,
    extra_headers: Optional[dict[str, str]] = None,
) -> dict[str, str]:
    """Headers a caller merges into a webhook request for a configured endpoint."""
    headers = dict(extra_headers or {})
    if auth_token and auth_type == WebhookAuthType.BEARER:
        headers["Authorization"] = f"Bearer {auth_token}"
    elif auth_token and auth_type == WebhookAuthType.BASIC:
        encoded = base64.b64encode(auth_token.encode("utf-8")).decode("ascii")
        headers["Authorization"] = f"Basic {encoded}"
    return headers


class WebhookClient:
    """
    Client for task webhook delivery.

    Usage:
        client = WebhookClient()
        delivery = await client.deliver(task)
    """

    def __init__(
        self,
        timeout_seconds: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.timeout_seconds = timeout_seconds or settings.webhook_timeout_seconds
        self._transport = transport

    async def deliver(
        self,
        task: Task,
        headers: Optional[dict[str, str]] = None,
        sent_at: Optional[datetime] = None,
    ) -> WebhookDelivery:
        """POST the ``task_completed`` notification for a claimed task."""
        sent_at = sent_at or utc_now()
        payload = build_task_payload(task, sent_at)
        delivery = await self.post(
            task.webhook_url or "",
            payload,
            task_id=task.id,
            headers=headers,
            attempted_at=sent_at,
        )

        if delivery.ok:
            metrics.inc_counter("webhook.delivered")
            logger.info(f"Sent webhook for task {task.id} to {delivery.url}")
        else:
            metrics.inc_counter(f"webhook.failed.{delivery.outcome.value}")
            logger.warning(
                f"Failed to send webhook for task {task.id}: {delivery.error}",
                extra={"task_id": task.id, "outcome": delivery.outcome.value},
            )
        metrics.observe("webhook.duration_ms", delivery.duration_ms)
        return delivery

    async def post(
        self,
        url: str,
        payload: dict[str, Any],
        task_id: str = "",
        headers: Optional[dict[str, str]] = None,
        attempted_at: Optional[datetime] = None,
    ) -> WebhookDelivery:
        """Perform exactly one POST and classify the result."""
        attempted_at = attempted_at or utc_now()
        request_headers = {**(headers or {}), "Content-Type": "application/json"}
        status_code: Optional[int] = None
        error: Optional[str] = None

        start = time.perf_counter()
        try:
            async with httpx.AsyncClient(
                timeout=self.timeout_seconds,
                transport=self._transport,
            ) as client:
                response = await client.post(
                    url,
                    content=encode_payload(payload),
                    headers=request_headers,
                )
            status_code = response.status_code
            if response.is_success:
                outcome = DeliveryOutcome.SUCCESS
            else:
                outcome = DeliveryOutcome.HTTP_ERROR
                error = f"HTTP error! status: {status_code}"
        except (httpx.HTTPError, httpx.InvalidURL, ValueError, TypeError) as e:
            # ValueError/TypeError: request could not be built (e.g. non-ASCII header value)
            outcome = DeliveryOutcome.NETWORK_FAILURE
            error = f"{type(e).__name__}: {e}"
        duration_ms = (time.perf_counter() - start) * 1000.0

        return WebhookDelivery(
            task_id=task_id,
            url=url,
            payload=payload,
            attempted_at=attempted_at,
            outcome=outcome,
            status_code=status_code,
            error=error,
            duration_ms=duration_ms,
        )

    async def send_test(
        self,
        url: str,
        headers: Optional[dict[str, str]] = None,
    ) -> tuple[bool, str]:
        """Send a test event to check a webhook configuration."""
        payload = {
            "event": TEST_EVENT,
            "message": "Testing webhook configuration",
            "timestamp": to_iso_z(utc_now()),
        }
        delivery = await self.post(url, payload, headers=headers)
        if delivery.ok:
            return True, "Webhook test successful"
        return False, delivery.error or "Unknown error occurred"


# Singleton instance
_webhook_client: Optional[WebhookClient] = None


def get_webhook_client() -> WebhookClient:
    """Get or create WebhookClient singleton."""
    global _webhook_client
    if _webhook_client is None:
        _webhook_client = WebhookClient()
    return _webhook_client
