# models/__init__.py

from .job import (
    DataFormat,
    JobState,
    JobEvent,
    TERMINAL_STATES,
    JobConfiguration,
    JobError,
    JobStage,
    JobStatus,
    JobCreationResponse,
    JobSubmissionRequest,
    JobListResponse
)
from .health import HealthState, HealthMetrics, PipelineHealth
from .webhook import WebhookEvent, WebhookRegistration, WebhookConfig, WebhookPayload

__all__ = [
    'DataFormat',
    'JobState',
    'JobEvent',
    'TERMINAL_STATES',
    'JobConfiguration',
    'JobError',
    'JobStage',
    'JobStatus',
    'JobCreationResponse',
    'JobSubmissionRequest',
    'JobListResponse',
    'HealthState',
    'HealthMetrics',
    'PipelineHealth',
    'WebhookEvent',
    'WebhookRegistration',
    'WebhookConfig',
    'WebhookPayload'
]
