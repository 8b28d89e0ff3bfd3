"""Hand-off of notification dispatch to an external durable HTTP queue.

The queue stores the snapshot and later POSTs it back to
``/api/spin/email``, which gives at-least-once delivery across restarts.
"""

from __future__ import annotations

import logging
from typing import Optional

import httpx

from .config import Settings
from .schemas import ActivitySnapshot

logger = logging.getLogger(__name__)


class QueuePublisher:
    def __init__(
        self,
        publish_url: str,
        callback_url: str,
        token: Optional[str] = None,
        timeout: float = 10,
        client: Optional[httpx.Client] = None,
    ):
        self.publish_url = publish_url.rstrip("/")
        self.callback_url = callback_url
        self.token = token
        self.timeout = timeout
        self._client = client

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    def publish(self, snapshot: ActivitySnapshot) -> bool:
        """Enqueue ``snapshot``; failures are logged and reported as False."""
        url = f"{self.publish_url}/{self.callback_url}"
        body = snapshot.model_dump_json(by_alias=True)
        try:
            if self._client is not None:
                response = self._client.post(url, content=body, headers=self._headers(), timeout=self.timeout)
            else:
                with httpx.Client(timeout=self.timeout) as client:
                    response = client.post(url, content=body, headers=self._headers())
            response.raise_for_status()
        except httpx.HTTPError as exc:
            logger.error("Queueing emails for activity %s failed: %s", snapshot.id, exc)
            return False
        logger.info("Queued emails for activity %s", snapshot.id)
        return True


def build_publisher(settings: Settings) -> Optional[QueuePublisher]:
    if settings.dispatch_mode != "queue":
        return None
    if not (settings.queue_publish_url and settings.queue_callback_url):
        logger.warning("DISPATCH_MODE=queue but QUEUE_PUBLISH_URL/QUEUE_CALLBACK_URL missing; sending in-process")
        return None
    return QueuePublisher(
        settings.queue_publish_url,
        settings.queue_callback_url,
        token=settings.queue_token,
        timeout=settings.queue_timeout_seconds,
    )
