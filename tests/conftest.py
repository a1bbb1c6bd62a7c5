"""
Shared test fixtures: deterministic clock, tracker, simulator and API app.
"""

from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient

from datagen.core.config import Settings
from datagen.main import create_app
from datagen.models.job import JobConfiguration
from datagen.services.job_tracker import JobTracker
from datagen.services.pipeline_service import SimulatedPipelineService
from datagen.services.webhook_service import WebhookService


class FakeClock:
    """Clock that only moves when told to"""

    def __init__(self, start=None):
        self.current = start or datetime(2026, 1, 1, 12, 0, 0, tzinfo=timezone.utc)

    def __call__(self):
        return self.current

    def advance(self, seconds):
        self.current += timedelta(seconds=seconds)


def make_config(**overrides) -> JobConfiguration:
    values = dict(
        data_type="csv",
        data_size=100,
        input_format="json",
        output_format="csv",
        input_bucket="input-bucket",
        output_bucket="output-bucket",
        input_path="input/path",
        output_path="output/path",
        is_async=True,
        timeout=3600,
        resume_window=300,
        parameters={"rowCount": 100},
    )
    values.update(overrides)
    return JobConfiguration(**values)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def config():
    return make_config()


@pytest.fixture
def config_factory():
    return make_config


@pytest.fixture
def tracker(clock):
    return JobTracker(clock=clock)


@pytest.fixture
def webhooks():
    return WebhookService()


@pytest.fixture
def simulator(tracker, webhooks):
    return SimulatedPipelineService(tracker, webhooks=webhooks, step=10, interval_seconds=0)


@pytest.fixture
def settings():
    return Settings(pipeline_mode="simulated", simulate_progress=False, jobs_dir=None)


@pytest.fixture
def client(settings, simulator, webhooks):
    app = create_app(settings, pipeline_service=simulator, webhook_service=webhooks)
    with TestClient(app) as test_client:
        yield test_client
