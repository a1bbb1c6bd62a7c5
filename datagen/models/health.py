# models/health.py

"""
Pipeline health models
"""

from pydantic import Field
from typing import Optional
from datetime import datetime
from enum import Enum

from datagen.models.job import CamelModel


class HealthState(str, Enum):
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    DOWN = "down"


class HealthMetrics(CamelModel):
    active_jobs: int = 0
    queued_jobs: int = 0
    completed_jobs: int = 0
    failed_jobs: int = 0
    cancelled_jobs: int = 0
    average_processing_time_ms: float = 0.0
    failure_rate: float = 0.0


class PipelineHealth(CamelModel):
    status: HealthState
    message: str
    metrics: Optional[HealthMetrics] = Field(default=None)
    timestamp: datetime
