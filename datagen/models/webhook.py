# models/webhook.py

"""
Webhook-related data models
"""

from pydantic import Field
from typing import Optional, List, Dict, Any
from datetime import datetime
from enum import Enum

from datagen.models.job import CamelModel


class WebhookEvent(str, Enum):
    JOB_CREATED = "job.created"
    JOB_STARTED = "job.started"
    JOB_COMPLETED = "job.completed"
    JOB_FAILED = "job.failed"
    JOB_CANCELLED = "job.cancelled"
    JOB_RESUMED = "job.resumed"


class WebhookRegistration(CamelModel):
    url: str = Field(..., description="Endpoint receiving POSTed event payloads")
    events: List[str] = Field(..., description="Event names to subscribe to")
    secret: Optional[str] = Field(None, description="HMAC secret; generated when omitted")
    headers: Dict[str, str] = Field(default_factory=dict)
    project_id: Optional[str] = None
    description: Optional[str] = None


class WebhookConfig(CamelModel):
    id: str
    url: str
    events: List[WebhookEvent]
    secret: str
    headers: Dict[str, str] = Field(default_factory=dict)
    project_id: Optional[str] = None
    description: Optional[str] = None
    created_at: datetime


class WebhookPayload(CamelModel):
    event: WebhookEvent
    job_id: str
    timestamp: datetime
    project_id: Optional[str] = None
    data: Dict[str, Any]
