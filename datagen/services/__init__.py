# services/__init__.py

from typing import Optional

from datagen.core.config import Settings
from .job_tracker import JobTracker
from .pipeline_service import BasePipelineService, SimulatedPipelineService
from .remote_pipeline_service import RemotePipelineService
from .validator import ValidationResult, validate_configuration
from .webhook_service import WebhookService


def build_pipeline_service(
        settings: Settings,
        tracker: Optional[JobTracker] = None,
        webhooks: Optional[WebhookService] = None
) -> BasePipelineService:
    """Pick the pipeline implementation named by settings.pipeline_mode"""
    tracker = tracker or JobTracker(
        snapshot_dir=settings.jobs_dir,
        default_timeout=settings.default_job_timeout_seconds,
        default_resume_window=settings.default_resume_window_seconds
    )
    health_options = dict(
        health_window_seconds=settings.health_window_seconds,
        health_failure_threshold=settings.health_failure_threshold,
        health_min_samples=settings.health_min_samples
    )

    mode = settings.pipeline_mode.lower()
    if mode == "remote":
        return RemotePipelineService(
            tracker,
            api_url=settings.pipeline_api_url,
            api_key=settings.pipeline_api_key,
            webhooks=webhooks,
            timeout_seconds=settings.request_timeout_seconds,
            read_retry_attempts=settings.read_retry_attempts,
            retry_initial_wait_seconds=settings.retry_initial_wait_seconds,
            retry_max_wait_seconds=settings.retry_max_wait_seconds,
            **health_options
        )
    if mode == "simulated":
        return SimulatedPipelineService(
            tracker,
            webhooks=webhooks,
            step=settings.simulation_step,
            interval_seconds=settings.simulation_interval_seconds,
            **health_options
        )
    raise ValueError(f"Unknown pipeline mode: {settings.pipeline_mode!r}")


__all__ = [
    'JobTracker',
    'BasePipelineService',
    'SimulatedPipelineService',
    'RemotePipelineService',
    'ValidationResult',
    'validate_configuration',
    'WebhookService',
    'build_pipeline_service'
]
