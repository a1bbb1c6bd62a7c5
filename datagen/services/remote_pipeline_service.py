# services/remote_pipeline_service.py

"""
Remote pipeline service - adapter over the DataGen pipeline API v2.

Every successful backend answer is mirrored into the local tracker, so the
tracker's ordering rules also apply to statuses fetched from the backend.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional
from urllib.parse import quote

import httpx
from pydantic import ValidationError
from tenacity import (
    AsyncRetrying,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from datagen.core.errors import DuplicateJob, JobNotFound, RemoteAdapterError
from datagen.models.health import HealthMetrics, HealthState, PipelineHealth
from datagen.models.job import (
    JobConfiguration,
    JobCreationResponse,
    JobEvent,
    JobStage,
    JobState,
    JobStatus,
    default_stages,
)
from datagen.models.webhook import WebhookEvent
from datagen.services.job_tracker import JobTracker, derive_stages
from datagen.services.pipeline_service import BasePipelineService
from datagen.services.webhook_service import WebhookService

logger = logging.getLogger(__name__)

REMOTE_STATUS_MAP = {
    "pending": JobState.QUEUED,
    "queued": JobState.QUEUED,
    "initialized": JobState.QUEUED,
    "running": JobState.RUNNING,
    "paused": JobState.RUNNING,
    "completed": JobState.COMPLETED,
    "failed": JobState.FAILED,
    "cancelled": JobState.CANCELLED,
}

REMOTE_HEALTH_MAP = {
    "healthy": HealthState.HEALTHY,
    "degraded": HealthState.DEGRADED,
    "unhealthy": HealthState.DOWN,
    "down": HealthState.DOWN,
}

STATE_EVENTS = {
    JobState.COMPLETED: WebhookEvent.JOB_COMPLETED,
    JobState.FAILED: WebhookEvent.JOB_FAILED,
    JobState.CANCELLED: WebhookEvent.JOB_CANCELLED,
}


def map_remote_status(value: Optional[str]) -> JobState:
    state = REMOTE_STATUS_MAP.get((value or "").lower())
    if state is None:
        logger.warning(f"Unknown status received from pipeline: {value!r}")
        return JobState.FAILED
    return state


def config_to_payload(job_id: str, config: JobConfiguration) -> Dict[str, Any]:
    """Serialize a configuration the way the backend expects it"""
    return {
        "job_id": job_id,
        "data_type": config.data_type,
        "data_size": config.record_count,
        "input_format": config.input_format,
        "output_format": config.output_format,
        "input_bucket": config.input_bucket,
        "output_bucket": config.output_bucket,
        "input_path": config.input_path,
        "output_path": config.output_path,
        "is_async": config.is_async,
        "timeout": config.timeout,
        "resume_window": config.resume_window,
        "parameters": dict(config.parameters),
        "project_id": config.project_id,
    }


def status_from_payload(job_id: str, payload: Dict[str, Any], now: datetime) -> JobStatus:
    """Build a JobStatus from a backend job status payload"""
    state = map_remote_status(payload.get("status"))
    progress = max(0, min(100, int(payload.get("progress") or 0)))
    if state == JobState.COMPLETED:
        progress = 100

    started_at = payload.get("start_time")
    updated_at = payload.get("last_updated") or now

    if payload.get("stages"):
        stages = [
            JobStage(
                name=stage["name"],
                status=map_remote_status(stage.get("status")),
                progress=max(0, min(100, int(stage.get("progress") or 0)))
            )
            for stage in payload["stages"]
        ]
    elif state == JobState.QUEUED:
        stages = default_stages()
    else:
        stages = derive_stages(progress, default_stages(), now)

    error = payload.get("error")
    status = JobStatus.model_validate({
        "job_id": payload.get("job_id") or job_id,
        "status": state,
        "progress": progress,
        "stages": stages,
        "created_at": payload.get("created_at") or started_at or updated_at,
        "updated_at": updated_at,
        "started_at": started_at,
        "completed_at": payload.get("end_time") if state == JobState.COMPLETED else None,
        "error": {
            "code": error.get("code") or "PIPELINE_ERROR",
            "message": error.get("message") or "Job failed",
            "details": error.get("details"),
        } if error and state == JobState.FAILED else None,
    })
    # the backend may send naive timestamps; they are UTC
    for name in ("created_at", "updated_at", "started_at", "completed_at"):
        value = getattr(status, name)
        if value is not None and value.tzinfo is None:
            setattr(status, name, value.replace(tzinfo=timezone.utc))
    return status


MALFORMED_PAYLOAD_ERRORS = (AttributeError, KeyError, TypeError, ValueError, ValidationError)


def health_from_payload(body: Dict[str, Any], local_metrics: Optional[HealthMetrics], now: datetime) -> PipelineHealth:
    """Build PipelineHealth from a backend health payload"""
    state = REMOTE_HEALTH_MAP.get(str(body.get("status", "")).lower(), HealthState.DEGRADED)
    metrics = body.get("metrics")
    return PipelineHealth(
        status=state,
        message=body.get("message") or f"Pipeline reports {state.value}",
        metrics=HealthMetrics.model_validate(metrics) if metrics else local_metrics,
        timestamp=body.get("timestamp") or now
    )


def _is_retryable(exc: BaseException) -> bool:
    return isinstance(exc, RemoteAdapterError) and (exc.status_code is None or exc.status_code >= 500)


class RemotePipelineService(BasePipelineService):
    def __init__(
            self,
            tracker: JobTracker,
            api_url: str,
            api_key: str,
            webhooks: Optional[WebhookService] = None,
            client: Optional[httpx.AsyncClient] = None,
            timeout_seconds: float = 30.0,
            read_retry_attempts: int = 3,
            retry_initial_wait_seconds: float = 0.5,
            retry_max_wait_seconds: float = 5.0,
            **health_options
    ):
        super().__init__(tracker, webhooks, **health_options)
        if not api_url:
            raise ValueError("Pipeline API base URL is required")
        self.api_url = api_url.rstrip("/")
        self._api_key = api_key
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(base_url=self.api_url, timeout=timeout_seconds)
        self.read_retry_attempts = read_retry_attempts
        self.retry_initial_wait_seconds = retry_initial_wait_seconds
        self.retry_max_wait_seconds = retry_max_wait_seconds

    # ---------- transport ----------

    def _headers(self, extra: Optional[Dict[str, str]] = None) -> Dict[str, str]:
        headers = {"Accept": "application/json"}
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"
        if extra:
            headers.update(extra)
        return headers

    async def _send(
            self,
            method: str,
            path: str,
            json: Optional[Dict[str, Any]] = None,
            headers: Optional[Dict[str, str]] = None
    ) -> httpx.Response:
        url = f"{self.api_url}{path}"
        try:
            response = await self._client.request(method, url, json=json, headers=self._headers(headers))
        except httpx.HTTPError as e:
            logger.error(f"{method} {url} failed: {e}")
            raise RemoteAdapterError(f"Pipeline request {method} {path} failed: {e}") from e

        if response.status_code >= 500:
            logger.error(f"{method} {url} returned {response.status_code}")
            raise RemoteAdapterError(
                f"Pipeline API error ({response.status_code}): {response.text}",
                status_code=response.status_code
            )
        return response

    async def _send_with_retry(self, method: str, path: str) -> httpx.Response:
        """Send an idempotent request, retrying transport failures and 5xx answers"""
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.read_retry_attempts),
            wait=wait_exponential(multiplier=self.retry_initial_wait_seconds, max=self.retry_max_wait_seconds),
            retry=retry_if_exception(_is_retryable),
            before_sleep=lambda retry_state: logger.warning(
                f"Retrying {method} {path} ({retry_state.attempt_number}/{self.read_retry_attempts})"
            ),
            reraise=True,
        )
        async for attempt in retrying:
            with attempt:
                return await self._send(method, path)

    @staticmethod
    def _job_path(job_id: str, action: str = "") -> str:
        path = f"/api/v2/jobs/{quote(job_id, safe='')}"
        return f"{path}/{action}" if action else path

    @staticmethod
    def _json(response: httpx.Response) -> Dict[str, Any]:
        try:
            return response.json()
        except ValueError as e:
            raise RemoteAdapterError(
                f"Pipeline returned a non-JSON body ({response.status_code})",
                status_code=response.status_code
            ) from e

    # ---------- operations ----------

    async def submit_job(self, job_id: str, config: JobConfiguration) -> JobCreationResponse:
        logger.info(f"Submitting job {job_id} to {self.api_url}")

        self._validate(config)
        if self.tracker.exists(job_id):
            raise DuplicateJob(job_id)
        config = self.tracker.with_defaults(config)

        # Submission is never retried; the idempotency key lets the backend
        # drop a duplicate if the caller chooses to retry.
        response = await self._send(
            "POST",
            "/api/v2/jobs",
            json=config_to_payload(job_id, config),
            headers={"Idempotency-Key": job_id}
        )
        if response.status_code == 409:
            raise DuplicateJob(job_id)
        if response.status_code != 202:
            raise RemoteAdapterError(
                f"Pipeline API error ({response.status_code}) on submit: {response.text}",
                status_code=response.status_code
            )

        body = self._json(response)
        if body.get("status") != "accepted":
            raise RemoteAdapterError(f"Pipeline rejected job {job_id}: {body.get('message', '')}")

        status = self.tracker.create(job_id, config)
        await self._notify(WebhookEvent.JOB_CREATED, status)

        return JobCreationResponse(
            job_id=job_id,
            status="accepted",
            message=body.get("message") or "Job submitted to pipeline",
            timestamp=status.created_at
        )

    async def _control(self, job_id: str, action: str, event: JobEvent, webhook_event: WebhookEvent) -> bool:
        response = await self._send("POST", self._job_path(job_id, action))
        if response.status_code in (404, 409):
            logger.info(f"Pipeline declined to {action} job {job_id} ({response.status_code})")
            return False
        if response.status_code != 200:
            raise RemoteAdapterError(
                f"Pipeline API error ({response.status_code}) on {action}: {response.text}",
                status_code=response.status_code
            )

        success = bool(self._json(response).get("success"))
        if success and self.tracker.exists(job_id) and self.tracker.can_transition(job_id, event):
            status = self.tracker.transition(job_id, event)
            await self._notify(webhook_event, status)
        return success

    async def cancel_job(self, job_id: str) -> bool:
        logger.info(f"Cancelling job {job_id} on {self.api_url}")
        return await self._control(job_id, "cancel", JobEvent.CANCEL, WebhookEvent.JOB_CANCELLED)

    async def resume_job(self, job_id: str) -> bool:
        logger.info(f"Resuming job {job_id} on {self.api_url}")
        return await self._control(job_id, "resume", JobEvent.RESUME, WebhookEvent.JOB_RESUMED)

    async def get_job_status(self, job_id: str) -> JobStatus:
        logger.debug(f"Getting status for job {job_id} from {self.api_url}")

        response = await self._send_with_retry("GET", self._job_path(job_id))
        if response.status_code == 404:
            raise JobNotFound(job_id)
        if response.status_code != 200:
            raise RemoteAdapterError(
                f"Pipeline API error ({response.status_code}) checking status: {response.text}",
                status_code=response.status_code
            )

        body = self._json(response)
        try:
            incoming = status_from_payload(job_id, body, self.tracker.now())
        except MALFORMED_PAYLOAD_ERRORS as e:
            logger.error(f"Malformed status payload for job {job_id}: {e}")
            raise RemoteAdapterError(
                f"Pipeline returned a malformed status for job {job_id}: {e}",
                status_code=response.status_code
            ) from e
        previous = self.tracker.get(job_id).status if self.tracker.exists(job_id) else None
        status = self.tracker.set(job_id, incoming)

        if status.status != previous:
            if status.status == JobState.RUNNING:
                resumed = previous == JobState.CANCELLED
                await self._notify(WebhookEvent.JOB_RESUMED if resumed else WebhookEvent.JOB_STARTED, status)
            elif status.status in STATE_EVENTS:
                await self._notify(STATE_EVENTS[status.status], status)
        return status

    async def check_health(self) -> PipelineHealth:
        logger.debug(f"Checking health of pipeline at {self.api_url}")
        now = self.tracker.now()

        try:
            response = await self._send_with_retry("GET", "/api/v2/health")
            if response.status_code != 200:
                raise RemoteAdapterError(
                    f"Pipeline API error ({response.status_code}) on health check",
                    status_code=response.status_code
                )
            body = self._json(response)
            try:
                health = health_from_payload(body, self._local_health().metrics, now)
            except MALFORMED_PAYLOAD_ERRORS as e:
                raise RemoteAdapterError(
                    f"Pipeline returned a malformed health payload: {e}",
                    status_code=response.status_code
                ) from e
        except RemoteAdapterError as e:
            logger.error(f"Pipeline health check failed: {e}")
            return PipelineHealth(
                status=HealthState.DOWN,
                message=f"Pipeline health check failed: {e.message}",
                metrics=self._local_health().metrics,
                timestamp=now
            )

        return health

    async def aclose(self):
        if self._owns_client:
            await self._client.aclose()
        await super().aclose()
