import json

import httpx
import pytest

from datagen.core.errors import DuplicateJob, InvalidConfiguration, JobNotFound, RemoteAdapterError
from datagen.models.health import HealthState
from datagen.models.job import JobConfiguration, JobState
from datagen.services.remote_pipeline_service import (
    RemotePipelineService,
    config_to_payload,
    map_remote_status,
)

API_URL = "http://pipeline.test"


class FakeBackend:
    """Records requests and replays queued responses per (method, path)"""

    def __init__(self):
        self.requests = []
        self.responses = {}

    def queue(self, method, path, *responses):
        self.responses.setdefault((method, path), []).extend(responses)

    def __call__(self, request: httpx.Request):
        self.requests.append(request)
        queued = self.responses.get((request.method, request.url.path))
        if not queued:
            return httpx.Response(404, json={"message": "not found"})
        response = queued.pop(0) if len(queued) > 1 else queued[0]
        if isinstance(response, Exception):
            raise response
        return response


@pytest.fixture
def backend():
    return FakeBackend()


@pytest.fixture
def remote(tracker, backend):
    client = httpx.AsyncClient(transport=httpx.MockTransport(backend))
    return RemotePipelineService(
        tracker,
        api_url=API_URL,
        api_key="secret-key",
        client=client,
        read_retry_attempts=3,
        retry_initial_wait_seconds=0,
        retry_max_wait_seconds=0
    )


def accepted(job_id="job-1"):
    return httpx.Response(202, json={"job_id": job_id, "status": "accepted", "message": "queued"})


async def test_submit_sends_payload_and_mirrors_job(remote, backend, config):
    backend.queue("POST", "/api/v2/jobs", accepted())

    response = await remote.submit_job("job-1", config)

    assert response.status == "accepted"
    request = backend.requests[0]
    assert request.headers["Authorization"] == "Bearer secret-key"
    assert request.headers["Idempotency-Key"] == "job-1"
    body = json.loads(request.content)
    assert body["data_type"] == "csv"
    assert body["data_size"] == 100
    assert body["resume_window"] == 300
    assert remote.tracker.get("job-1").status == JobState.QUEUED


async def test_submit_validates_before_calling_backend(remote, backend):
    with pytest.raises(InvalidConfiguration):
        await remote.submit_job("job-1", JobConfiguration(data_type="csv"))

    assert backend.requests == []


async def test_submit_duplicate_is_local(remote, backend, config):
    backend.queue("POST", "/api/v2/jobs", accepted())
    await remote.submit_job("job-1", config)

    with pytest.raises(DuplicateJob):
        await remote.submit_job("job-1", config)
    assert len(backend.requests) == 1


async def test_submit_is_not_retried(remote, backend, config):
    backend.queue("POST", "/api/v2/jobs", httpx.Response(503, text="busy"), accepted())

    with pytest.raises(RemoteAdapterError) as exc_info:
        await remote.submit_job("job-1", config)

    assert exc_info.value.status_code == 503
    assert len(backend.requests) == 1
    assert not remote.tracker.exists("job-1")


async def test_submit_rejected(remote, backend, config):
    backend.queue("POST", "/api/v2/jobs",
                  httpx.Response(202, json={"status": "rejected", "message": "quota exceeded"}))

    with pytest.raises(RemoteAdapterError, match="quota exceeded"):
        await remote.submit_job("job-1", config)


async def test_get_status_retries_then_maps_payload(remote, backend):
    backend.queue(
        "GET", "/api/v2/jobs/job-1",
        httpx.ConnectError("connection refused"),
        httpx.Response(502, text="bad gateway"),
        httpx.Response(200, json={
            "job_id": "job-1",
            "status": "running",
            "progress": 45,
            "last_updated": "2026-01-01T12:00:05Z",
            "stages": [
                {"name": "preparation", "status": "completed"},
                {"name": "processing", "status": "running"},
            ],
        }),
    )

    status = await remote.get_job_status("job-1")

    assert len(backend.requests) == 3
    assert status.status == JobState.RUNNING
    assert status.progress == 45
    assert [s.status for s in status.stages] == [JobState.COMPLETED, JobState.RUNNING]


async def test_get_status_gives_up_after_retries(remote, backend):
    backend.queue("GET", "/api/v2/jobs/job-1", httpx.Response(500, text="boom"))

    with pytest.raises(RemoteAdapterError):
        await remote.get_job_status("job-1")
    assert len(backend.requests) == 3


async def test_get_status_not_found(remote):
    with pytest.raises(JobNotFound):
        await remote.get_job_status("missing")


async def test_out_of_order_status_is_ignored(remote, backend, config):
    backend.queue("POST", "/api/v2/jobs", accepted())
    await remote.submit_job("job-1", config)
    backend.queue(
        "GET", "/api/v2/jobs/job-1",
        httpx.Response(200, json={"job_id": "job-1", "status": "running", "progress": 80}),
        httpx.Response(200, json={"job_id": "job-1", "status": "running", "progress": 60}),
    )

    first = await remote.get_job_status("job-1")
    second = await remote.get_job_status("job-1")

    assert first.progress == 80
    assert second.progress == 80
    assert second.configuration == config


async def test_failed_status_carries_error(remote, backend):
    backend.queue("GET", "/api/v2/jobs/job-1", httpx.Response(200, json={
        "job_id": "job-1",
        "status": "failed",
        "progress": 30,
        "error": {"code": "GENERATOR_ERROR", "message": "schema mismatch"},
    }))

    status = await remote.get_job_status("job-1")

    assert status.status == JobState.FAILED
    assert status.error.code == "GENERATOR_ERROR"


async def test_cancel_mirrors_locally(remote, backend, config):
    backend.queue("POST", "/api/v2/jobs", accepted())
    await remote.submit_job("job-1", config)
    backend.queue("POST", "/api/v2/jobs/job-1/cancel", httpx.Response(200, json={"success": True}))

    assert await remote.cancel_job("job-1") is True
    assert remote.tracker.get("job-1").status == JobState.CANCELLED


async def test_cancel_conflict_returns_false(remote, backend):
    backend.queue("POST", "/api/v2/jobs/job-1/cancel",
                  httpx.Response(409, json={"success": False, "message": "already completed"}))

    assert await remote.cancel_job("job-1") is False
    assert await remote.cancel_job("unknown") is False


async def test_resume_mirrors_locally(remote, backend, config):
    backend.queue("POST", "/api/v2/jobs", accepted())
    await remote.submit_job("job-1", config)
    backend.queue("POST", "/api/v2/jobs/job-1/cancel", httpx.Response(200, json={"success": True}))
    backend.queue("POST", "/api/v2/jobs/job-1/resume", httpx.Response(200, json={"success": True}))
    await remote.cancel_job("job-1")

    assert await remote.resume_job("job-1") is True
    assert remote.tracker.get("job-1").status == JobState.RUNNING


async def test_health_from_backend(remote, backend):
    backend.queue("GET", "/api/v2/health", httpx.Response(200, json={
        "status": "degraded",
        "message": "high queue depth",
        "timestamp": "2026-01-01T12:00:00Z",
        "metrics": {"activeJobs": 5, "queuedJobs": 30, "completedJobs": 120,
                    "failedJobs": 2, "averageProcessingTimeMs": 8500},
    }))

    health = await remote.check_health()

    assert health.status == HealthState.DEGRADED
    assert health.metrics.queued_jobs == 30
    assert health.metrics.average_processing_time_ms == 8500


async def test_health_down_when_unreachable(remote, backend):
    backend.queue("GET", "/api/v2/health", httpx.ConnectError("no route to host"))

    health = await remote.check_health()

    assert health.status == HealthState.DOWN
    assert len(backend.requests) == 3


def test_status_mapping():
    assert map_remote_status("initialized") == JobState.QUEUED
    assert map_remote_status("paused") == JobState.RUNNING
    assert map_remote_status("exploded") == JobState.FAILED


def test_payload_uses_row_count_when_size_missing():
    config = JobConfiguration(data_type="json", parameters={"rowCount": 7})

    assert config_to_payload("job-9", config)["data_size"] == 7


def test_api_url_required(tracker):
    with pytest.raises(ValueError):
        RemotePipelineService(tracker, api_url="", api_key="")


@pytest.mark.parametrize("payload", [
    {"job_id": "job-1", "status": "running", "progress": "half"},
    {"job_id": "job-1", "status": "running", "progress": 10, "stages": [{"status": "running"}]},
    {"job_id": "job-1", "status": "running", "progress": 10, "start_time": "yesterday"},
    {"job_id": "job-1", "status": "failed", "error": "schema mismatch"},
    ["not", "an", "object"],
])
async def test_malformed_status_raises_adapter_error(remote, backend, payload):
    backend.queue("GET", "/api/v2/jobs/job-1", httpx.Response(200, json=payload))

    with pytest.raises(RemoteAdapterError) as exc_info:
        await remote.get_job_status("job-1")

    assert exc_info.value.status_code == 200
    assert len(backend.requests) == 1
    assert not remote.tracker.exists("job-1")


async def test_malformed_health_reports_down(remote, backend):
    backend.queue("GET", "/api/v2/health", httpx.Response(200, json={
        "status": "healthy",
        "metrics": {"activeJobs": "several"},
    }))

    health = await remote.check_health()

    assert health.status == HealthState.DOWN
    assert "malformed" in health.message


async def test_remote_completion_sets_completed_at(remote, backend, config, clock):
    backend.queue("POST", "/api/v2/jobs", accepted())
    await remote.submit_job("job-1", config)
    backend.queue(
        "GET", "/api/v2/jobs/job-1",
        httpx.Response(200, json={"job_id": "job-1", "status": "running", "progress": 40,
                                  "start_time": "2026-01-01T12:00:00Z"}),
        httpx.Response(200, json={"job_id": "job-1", "status": "completed", "progress": 100}),
    )
    await remote.get_job_status("job-1")
    clock.advance(30)

    status = await remote.get_job_status("job-1")

    assert status.status == JobState.COMPLETED
    assert status.completed_at == clock()
    assert status.started_at is not None
