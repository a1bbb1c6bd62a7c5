# models/job.py

"""
Job-related data models
"""

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from typing import Optional, List, Dict, Any
from datetime import datetime
from enum import Enum


class CamelModel(BaseModel):
    """Base model serialized with camelCase field names"""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class DataFormat(str, Enum):
    CSV = "csv"
    JSON = "json"
    NDJSON = "ndjson"
    SQL = "sql"
    PARQUET = "parquet"


class JobState(str, Enum):
    QUEUED = "queued"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


TERMINAL_STATES = frozenset({JobState.COMPLETED, JobState.FAILED, JobState.CANCELLED})


class JobEvent(str, Enum):
    START = "start"
    PROGRESS = "progress"
    SUCCEED = "succeed"
    FAIL = "fail"
    CANCEL = "cancel"
    RESUME = "resume"


DEFAULT_STAGE_NAMES = ("preparation", "processing", "finalization")


class JobConfiguration(CamelModel):
    """What to generate and where; frozen once submitted.

    Format and size fields are kept loose here so that the validator can
    report every problem as a field-level message instead of failing on the
    first one. An unset timeout or resume window takes the service default
    when the job is registered.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    data_type: Optional[str] = None
    data_size: Optional[int] = None
    input_format: Optional[str] = None
    output_format: Optional[str] = None

    input_bucket: Optional[str] = None
    output_bucket: Optional[str] = None
    input_path: Optional[str] = None
    output_path: Optional[str] = None

    is_async: bool = True
    timeout: Optional[int] = None
    resume_window: Optional[int] = None

    project_id: Optional[str] = None
    name: Optional[str] = None
    description: Optional[str] = None
    parameters: Dict[str, Any] = Field(default_factory=dict)

    @property
    def record_count(self) -> Optional[int]:
        if self.data_size is not None:
            return self.data_size
        return self.parameters.get("rowCount")


class JobError(CamelModel):
    code: str
    message: str
    details: Optional[Any] = None


class JobStage(CamelModel):
    name: str
    status: JobState = JobState.QUEUED
    progress: int = Field(0, ge=0, le=100)
    started_at: Optional[datetime] = None
    ended_at: Optional[datetime] = None
    error: Optional[JobError] = None


def default_stages() -> List[JobStage]:
    return [JobStage(name=name) for name in DEFAULT_STAGE_NAMES]


class JobStatus(CamelModel):
    job_id: str
    status: JobState = JobState.QUEUED
    progress: int = Field(0, ge=0, le=100)
    stages: List[JobStage] = Field(default_factory=default_stages)
    created_at: datetime
    updated_at: datetime
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    resumed_at: Optional[datetime] = None
    error: Optional[JobError] = None
    configuration: Optional[JobConfiguration] = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATES


class JobCreationResponse(CamelModel):
    job_id: str
    status: str
    message: str
    timestamp: datetime


class JobSubmissionRequest(CamelModel):
    job_id: Optional[str] = Field(None, description="Client-chosen job id; generated when omitted")
    configuration: JobConfiguration


class JobListResponse(CamelModel):
    jobs: List[JobStatus]
    total: int
    limit: int
    offset: int
