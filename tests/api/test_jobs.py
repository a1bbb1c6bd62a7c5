from unittest.mock import AsyncMock

from fastapi.testclient import TestClient

from datagen.core.errors import RemoteAdapterError
from datagen.main import create_app

PREFIX = "/api/data-generation"

CONFIG = {
    "dataType": "csv",
    "dataSize": 100,
    "outputFormat": "csv",
    "inputBucket": "input-bucket",
    "outputBucket": "output-bucket",
    "inputPath": "input/path",
    "outputPath": "output/path",
    "isAsync": True,
    "timeout": 3600,
    "resumeWindow": 300,
    "parameters": {"rowCount": 100},
}


def submit(client, job_id="job-1", config=None):
    return client.post(f"{PREFIX}/jobs", json={"jobId": job_id, "configuration": config or CONFIG})


def test_submit_and_get_status(client):
    response = submit(client)

    assert response.status_code == 202
    data = response.json()
    assert data["jobId"] == "job-1"
    assert data["status"] == "accepted"

    status = client.get(f"{PREFIX}/jobs/job-1").json()
    assert status["status"] == "queued"
    assert status["progress"] == 0
    assert status["configuration"]["outputBucket"] == "output-bucket"
    assert status["configuration"]["parameters"] == {"rowCount": 100}


def test_submit_generates_job_id(client):
    response = client.post(f"{PREFIX}/jobs", json={"configuration": CONFIG})

    assert response.status_code == 202
    assert response.json()["jobId"]


def test_submit_invalid_configuration(client):
    response = submit(client, config={**CONFIG, "dataType": "xml", "dataSize": 0})

    assert response.status_code == 400
    detail = response.json()["detail"]
    assert detail["code"] == "INVALID_CONFIGURATION"
    assert "dataSize: must be greater than 0" in detail["errors"]


def test_submit_duplicate(client):
    submit(client)

    response = submit(client)

    assert response.status_code == 409
    assert response.json()["detail"]["code"] == "DUPLICATE_JOB"


def test_get_unknown_job(client):
    response = client.get(f"{PREFIX}/jobs/nonexistent")

    assert response.status_code == 404
    assert "not found" in response.json()["detail"]["message"].lower()


def test_cancel_twice(client):
    submit(client)

    first = client.post(f"{PREFIX}/jobs/job-1/cancel")
    second = client.post(f"{PREFIX}/jobs/job-1/cancel")

    assert first.json() == {"jobId": "job-1", "cancelled": True}
    assert second.json() == {"jobId": "job-1", "cancelled": False}
    assert client.get(f"{PREFIX}/jobs/job-1").json()["status"] == "cancelled"


def test_resume_after_window(client, clock):
    submit(client, job_id="job-2")
    client.post(f"{PREFIX}/jobs/job-2/cancel")
    clock.advance(CONFIG["resumeWindow"] + 1)

    response = client.post(f"{PREFIX}/jobs/job-2/resume")

    assert response.json() == {"jobId": "job-2", "resumed": False}


def test_resume_within_window(client, clock):
    submit(client)
    client.post(f"{PREFIX}/jobs/job-1/cancel")
    clock.advance(5)

    assert client.post(f"{PREFIX}/jobs/job-1/resume").json()["resumed"] is True
    assert client.get(f"{PREFIX}/jobs/job-1").json()["status"] == "running"


def test_completed_job_reported(client, tracker):
    submit(client)
    tracker.transition("job-1", "start")
    tracker.transition("job-1", "progress", progress=50)
    tracker.transition("job-1", "succeed")

    status = client.get(f"{PREFIX}/jobs/job-1").json()
    assert status["status"] == "completed"
    assert status["progress"] == 100
    assert status["completedAt"] is not None
    assert client.post(f"{PREFIX}/jobs/job-1/cancel").json()["cancelled"] is False


def test_list_jobs(client):
    for job_id in ("a", "b", "c"):
        submit(client, job_id=job_id)
    client.post(f"{PREFIX}/jobs/b/cancel")

    everything = client.get(f"{PREFIX}/jobs").json()
    cancelled = client.get(f"{PREFIX}/jobs", params={"status": "cancelled"}).json()

    assert everything["total"] == 3
    assert [j["jobId"] for j in cancelled["jobs"]] == ["b"]
    assert client.get(f"{PREFIX}/jobs", params={"status": "paused"}).status_code == 422


def test_pipeline_health(client):
    submit(client)

    health = client.get(f"{PREFIX}/health").json()

    assert health["status"] == "healthy"
    assert health["metrics"]["queuedJobs"] == 1


def test_root_and_liveness(client):
    assert client.get("/health").json()["status"] == "healthy"
    assert client.get("/").json()["endpoints"]["job_status"] == f"{PREFIX}/jobs/{{job_id}}"


def test_remote_failure_maps_to_bad_gateway(settings):
    service = AsyncMock()
    service.get_job_status.side_effect = RemoteAdapterError("backend down", status_code=503)
    app = create_app(settings, pipeline_service=service)

    with TestClient(app) as client:
        response = client.get(f"{PREFIX}/jobs/job-1")

    assert response.status_code == 502
    assert response.json()["detail"]["code"] == "REMOTE_ADAPTER_ERROR"
    service.get_job_status.assert_called_once_with("job-1")
