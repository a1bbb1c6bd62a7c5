# routers/webhook_router.py

"""
Webhook API Routes
"""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Query

from datagen.core.errors import PipelineError, WebhookNotFound
from datagen.models.webhook import WebhookConfig, WebhookRegistration
from datagen.routers.deps import get_webhook_service, to_http_exception
from datagen.services.webhook_service import WebhookService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhooks", tags=["Webhooks"])


@router.post("", response_model=WebhookConfig, status_code=201)
async def register_webhook(
        registration: WebhookRegistration,
        webhooks: WebhookService = Depends(get_webhook_service)
):
    """Subscribe a URL to job events"""
    logger.info(f"POST /webhooks - url='{registration.url}', events={registration.events}")
    try:
        return webhooks.register(registration)
    except PipelineError as e:
        raise to_http_exception(e)


@router.get("", response_model=List[WebhookConfig])
async def list_webhooks(
        event: Optional[str] = Query(None, description="Only webhooks subscribed to this event"),
        project_id: Optional[str] = Query(None, alias="projectId"),
        webhooks: WebhookService = Depends(get_webhook_service)
):
    return webhooks.list(event=event, project_id=project_id)


@router.get("/{webhook_id}", response_model=WebhookConfig)
async def get_webhook(
        webhook_id: str,
        webhooks: WebhookService = Depends(get_webhook_service)
):
    try:
        return webhooks.get(webhook_id)
    except PipelineError as e:
        raise to_http_exception(e)


@router.delete("/{webhook_id}")
async def delete_webhook(
        webhook_id: str,
        webhooks: WebhookService = Depends(get_webhook_service)
):
    """Remove a webhook subscription"""
    if not webhooks.delete(webhook_id):
        raise to_http_exception(WebhookNotFound(webhook_id))
    return {"message": f"Deleted webhook {webhook_id}"}
