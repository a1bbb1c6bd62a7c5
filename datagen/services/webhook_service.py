# services/webhook_service.py

"""
Webhook service - registration and signed delivery of job events
"""

import asyncio
import hashlib
import hmac
import json
import logging
import secrets
import threading
import uuid
from datetime import datetime, timezone
from typing import Dict, List, Optional
from urllib.parse import urlparse

import httpx

from datagen.core.errors import WebhookNotFound, WebhookValidationError
from datagen.models.job import JobStatus
from datagen.models.webhook import WebhookConfig, WebhookEvent, WebhookPayload, WebhookRegistration

logger = logging.getLogger(__name__)

SIGNATURE_HEADER = "X-Webhook-Signature"
EVENT_HEADER = "X-Webhook-Event"
VALID_EVENTS = frozenset(e.value for e in WebhookEvent)


def generate_signature(body: bytes, secret: str) -> str:
    """Hex HMAC-SHA256 of a payload body"""
    return hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()


def verify_signature(body: bytes, signature: str, secret: str) -> bool:
    expected = generate_signature(body, secret)
    return hmac.compare_digest(expected, signature)


class WebhookService:
    def __init__(self, client: Optional[httpx.AsyncClient] = None, timeout: float = 10.0):
        self._webhooks: Dict[str, WebhookConfig] = {}
        self._lock = threading.Lock()
        self._client = client
        self._owns_client = client is None
        self._timeout = timeout

    def register(self, registration: WebhookRegistration) -> WebhookConfig:
        """Validate and store a webhook subscription"""
        parsed = urlparse(registration.url or "")
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise WebhookValidationError("Webhook URL must be an absolute http(s) URL")

        if not registration.events:
            raise WebhookValidationError("At least one event type must be specified")

        invalid = [e for e in registration.events if e not in VALID_EVENTS]
        if invalid:
            raise WebhookValidationError(f"Invalid event types: {', '.join(invalid)}")

        webhook = WebhookConfig(
            id=str(uuid.uuid4()),
            url=registration.url,
            events=[WebhookEvent(e) for e in dict.fromkeys(registration.events)],
            secret=registration.secret or secrets.token_hex(32),
            headers=dict(registration.headers),
            project_id=registration.project_id,
            description=registration.description,
            created_at=datetime.now(timezone.utc)
        )

        with self._lock:
            self._webhooks[webhook.id] = webhook

        logger.info(f"Registered webhook {webhook.id} for {[e.value for e in webhook.events]}")
        return webhook.model_copy(deep=True)

    def get(self, webhook_id: str) -> WebhookConfig:
        with self._lock:
            webhook = self._webhooks.get(webhook_id)
        if webhook is None:
            raise WebhookNotFound(webhook_id)
        return webhook.model_copy(deep=True)

    def list(self, event: Optional[str] = None, project_id: Optional[str] = None) -> List[WebhookConfig]:
        with self._lock:
            webhooks = list(self._webhooks.values())

        return [
            w.model_copy(deep=True) for w in webhooks
            if (event is None or event in [e.value for e in w.events])
            and (project_id is None or w.project_id == project_id)
        ]

    def delete(self, webhook_id: str) -> bool:
        with self._lock:
            removed = self._webhooks.pop(webhook_id, None)
        if removed:
            logger.info(f"Deleted webhook {webhook_id}")
        return removed is not None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._timeout)
        return self._client

    async def trigger(self, event: WebhookEvent, job: JobStatus) -> int:
        """Deliver an event to every matching webhook.

        Delivery failures are logged and do not propagate. Returns the
        number of webhooks that accepted the payload.
        """
        event = WebhookEvent(event)
        project_id = job.configuration.project_id if job.configuration else None
        targets = [
            w for w in self.list(event=event.value)
            if w.project_id is None or w.project_id == project_id
        ]
        if not targets:
            return 0

        payload = WebhookPayload(
            event=event,
            job_id=job.job_id,
            timestamp=datetime.now(timezone.utc),
            project_id=project_id,
            data={"job": job.model_dump(mode="json", by_alias=True)}
        )
        body = json.dumps(payload.model_dump(mode="json", by_alias=True), separators=(",", ":")).encode("utf-8")

        # deliveries run concurrently
        results = await asyncio.gather(*(self._deliver(webhook, event, job.job_id, body) for webhook in targets))
        return sum(results)

    async def _deliver(self, webhook: WebhookConfig, event: WebhookEvent, job_id: str, body: bytes) -> bool:
        headers = {
            **webhook.headers,
            "Content-Type": "application/json",
            SIGNATURE_HEADER: generate_signature(body, webhook.secret),
            EVENT_HEADER: event.value,
        }
        try:
            response = await self._get_client().post(webhook.url, content=body, headers=headers)
            response.raise_for_status()
        except httpx.HTTPError as e:
            logger.error(f"Webhook delivery to {webhook.url} failed for {event.value}: {e}")
            return False
        logger.debug(f"Delivered {event.value} for job {job_id} to {webhook.url}")
        return True

    async def aclose(self):
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None
