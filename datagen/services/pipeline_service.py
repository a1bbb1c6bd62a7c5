# services/pipeline_service.py

"""
Pipeline service - job submission, control and health.

BasePipelineService fixes the operation surface shared by every pipeline
implementation. SimulatedPipelineService runs jobs through their lifecycle
entirely in memory; the remote adapter lives in remote_pipeline_service.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from datetime import datetime, timedelta
from typing import List, Optional, Tuple

from datagen.core.errors import InvalidConfiguration, InvalidTransition, JobNotFound
from datagen.models.health import HealthMetrics, HealthState, PipelineHealth
from datagen.models.job import (
    JobConfiguration,
    JobCreationResponse,
    JobError,
    JobEvent,
    JobState,
    JobStatus,
)
from datagen.models.webhook import WebhookEvent
from datagen.services.job_tracker import JobTracker
from datagen.services.validator import validate_configuration
from datagen.services.webhook_service import WebhookService

logger = logging.getLogger(__name__)


def summarize_health(
        tracker: JobTracker,
        window_seconds: int = 3600,
        failure_threshold: float = 0.25,
        min_samples: int = 4,
        now: Optional[datetime] = None
) -> PipelineHealth:
    """Aggregate tracker contents into a health report.

    The failure rate only looks at jobs that finished (completed or failed)
    inside the trailing window, and the service is reported degraded only
    once enough of them have finished to make the rate meaningful.
    """
    now = now or tracker.now()
    jobs = tracker.all()
    counts = {state: 0 for state in JobState}
    durations = []
    finished = failed = 0
    window_start = now - timedelta(seconds=window_seconds)

    for job in jobs:
        counts[job.status] += 1
        if job.status == JobState.COMPLETED and job.started_at and job.completed_at:
            durations.append((job.completed_at - job.started_at).total_seconds() * 1000)
        if job.status in (JobState.COMPLETED, JobState.FAILED) and job.updated_at >= window_start:
            finished += 1
            if job.status == JobState.FAILED:
                failed += 1

    failure_rate = failed / finished if finished else 0.0
    metrics = HealthMetrics(
        active_jobs=counts[JobState.RUNNING],
        queued_jobs=counts[JobState.QUEUED],
        completed_jobs=counts[JobState.COMPLETED],
        failed_jobs=counts[JobState.FAILED],
        cancelled_jobs=counts[JobState.CANCELLED],
        average_processing_time_ms=sum(durations) / len(durations) if durations else 0.0,
        failure_rate=failure_rate
    )

    if finished >= min_samples and failure_rate > failure_threshold:
        return PipelineHealth(
            status=HealthState.DEGRADED,
            message=(
                f"Failure rate {failure_rate:.0%} over the last {window_seconds}s "
                f"exceeds {failure_threshold:.0%}"
            ),
            metrics=metrics,
            timestamp=now
        )

    return PipelineHealth(
        status=HealthState.HEALTHY,
        message="Pipeline is operational",
        metrics=metrics,
        timestamp=now
    )


class BasePipelineService(ABC):
    """Operation surface shared by all pipeline implementations"""

    def __init__(
            self,
            tracker: JobTracker,
            webhooks: Optional[WebhookService] = None,
            health_window_seconds: int = 3600,
            health_failure_threshold: float = 0.25,
            health_min_samples: int = 4
    ):
        self.tracker = tracker
        self.webhooks = webhooks
        self.health_window_seconds = health_window_seconds
        self.health_failure_threshold = health_failure_threshold
        self.health_min_samples = health_min_samples

    @abstractmethod
    async def submit_job(self, job_id: str, config: JobConfiguration) -> JobCreationResponse:
        """Submit a job to the pipeline"""

    @abstractmethod
    async def cancel_job(self, job_id: str) -> bool:
        """Cancel a queued or running job"""

    @abstractmethod
    async def resume_job(self, job_id: str) -> bool:
        """Resume a cancelled job inside its resume window"""

    @abstractmethod
    async def get_job_status(self, job_id: str) -> JobStatus:
        """Get the status of a job"""

    @abstractmethod
    async def check_health(self) -> PipelineHealth:
        """Check the health of the pipeline"""

    def list_jobs(
            self,
            status: Optional[JobState] = None,
            limit: int = 50,
            offset: int = 0
    ) -> Tuple[List[JobStatus], int]:
        return self.tracker.list(status=status, limit=limit, offset=offset)

    def _validate(self, config: JobConfiguration):
        result = validate_configuration(config)
        if not result.is_valid:
            logger.warning(f"Rejected job configuration: {result.errors}")
            raise InvalidConfiguration(result.errors)

    def _local_health(self) -> PipelineHealth:
        return summarize_health(
            self.tracker,
            window_seconds=self.health_window_seconds,
            failure_threshold=self.health_failure_threshold,
            min_samples=self.health_min_samples
        )

    async def _notify(self, event: WebhookEvent, job: JobStatus):
        if self.webhooks is not None:
            await self.webhooks.trigger(event, job)

    async def _expire_overdue(self):
        for job_id in self.tracker.expire_overdue():
            await self._notify(WebhookEvent.JOB_FAILED, self.tracker.get(job_id))

    async def aclose(self):
        if self.webhooks is not None:
            await self.webhooks.aclose()


class SimulatedPipelineService(BasePipelineService):
    """Deterministic in-memory pipeline.

    Jobs only move when the service is told to move them: either explicitly
    (start_job, advance_job, complete_job, fail_job), one step at a time via
    tick(), or on a timer via run_simulation().
    """

    def __init__(
            self,
            tracker: JobTracker,
            webhooks: Optional[WebhookService] = None,
            step: int = 10,
            interval_seconds: float = 2.0,
            **health_options
    ):
        super().__init__(tracker, webhooks, **health_options)
        self.step = step
        self.interval_seconds = interval_seconds

    async def submit_job(self, job_id: str, config: JobConfiguration) -> JobCreationResponse:
        logger.info(f"Submitting job {job_id} (dataType={config.data_type}, records={config.record_count})")

        self._validate(config)
        status = self.tracker.create(job_id, config)
        await self._notify(WebhookEvent.JOB_CREATED, status)

        return JobCreationResponse(
            job_id=job_id,
            status="accepted",
            message="Job submitted successfully",
            timestamp=status.created_at
        )

    async def cancel_job(self, job_id: str) -> bool:
        logger.info(f"Cancelling job {job_id}")
        try:
            status = self.tracker.transition(job_id, JobEvent.CANCEL)
        except (JobNotFound, InvalidTransition) as e:
            logger.info(f"Cancel of job {job_id} not applied: {e}")
            return False

        await self._notify(WebhookEvent.JOB_CANCELLED, status)
        return True

    async def resume_job(self, job_id: str) -> bool:
        logger.info(f"Resuming job {job_id}")
        try:
            status = self.tracker.transition(job_id, JobEvent.RESUME)
        except (JobNotFound, InvalidTransition) as e:
            logger.info(f"Resume of job {job_id} not applied: {e}")
            return False

        await self._notify(WebhookEvent.JOB_RESUMED, status)
        return True

    async def get_job_status(self, job_id: str) -> JobStatus:
        await self._expire_overdue()
        return self.tracker.get(job_id)

    async def check_health(self) -> PipelineHealth:
        await self._expire_overdue()
        return self._local_health()

    # ---------- progress advancement ----------

    async def start_job(self, job_id: str) -> JobStatus:
        status = self.tracker.transition(job_id, JobEvent.START)
        await self._notify(WebhookEvent.JOB_STARTED, status)
        return status

    async def advance_job(self, job_id: str, progress: int) -> JobStatus:
        return self.tracker.transition(job_id, JobEvent.PROGRESS, progress=progress)

    async def complete_job(self, job_id: str) -> JobStatus:
        status = self.tracker.transition(job_id, JobEvent.SUCCEED)
        logger.info(f"Job {job_id} completed")
        await self._notify(WebhookEvent.JOB_COMPLETED, status)
        return status

    async def fail_job(
            self,
            job_id: str,
            message: str,
            code: str = "PIPELINE_ERROR",
            details: Optional[dict] = None
    ) -> JobStatus:
        status = self.tracker.transition(
            job_id,
            JobEvent.FAIL,
            error=JobError(code=code, message=message, details=details)
        )
        logger.info(f"Job {job_id} failed: {message}")
        await self._notify(WebhookEvent.JOB_FAILED, status)
        return status

    async def _step(self, job_id: str, step: int) -> JobStatus:
        status = self.tracker.get(job_id)
        try:
            if status.status == JobState.QUEUED:
                return await self.start_job(job_id)
            if status.status == JobState.RUNNING:
                progress = min(100, status.progress + step)
                if progress >= 100:
                    return await self.complete_job(job_id)
                return await self.advance_job(job_id, progress)
        except InvalidTransition:
            # cancelled or finished while we were stepping
            return self.tracker.get(job_id)
        return status

    async def tick(self, step: Optional[int] = None) -> List[JobStatus]:
        """Move every queued or running job forward by one step"""
        step = self.step if step is None else step
        await self._expire_overdue()

        updated = []
        for job in self.tracker.all():
            if job.status in (JobState.QUEUED, JobState.RUNNING):
                updated.append(await self._step(job.job_id, step))
        return updated

    async def run_simulation(self, job_id: str):
        """Step a single job on a timer until it stops running"""
        logger.info(f"Simulation started for job {job_id}")
        try:
            while True:
                await asyncio.sleep(self.interval_seconds)
                await self._expire_overdue()
                status = await self._step(job_id, self.step)
                if status.status not in (JobState.QUEUED, JobState.RUNNING):
                    break
        except JobNotFound:
            logger.warning(f"Simulation stopped: job {job_id} disappeared")
            return
        logger.info(f"Simulation finished for job {job_id} ({status.status.value})")
