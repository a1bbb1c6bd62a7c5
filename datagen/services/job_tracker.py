# services/job_tracker.py

"""
Job status tracker - authoritative job id -> status mapping
"""

import logging
import threading
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Callable, Dict, Iterator, List, Optional, Tuple

from datagen.core.errors import DuplicateJob, InvalidTransition, JobNotFound, JobTimeout
from datagen.models.job import (
    JobConfiguration,
    JobError,
    JobEvent,
    JobStage,
    JobState,
    JobStatus,
)
from datagen.utils.file_handler import load_job_snapshots, save_job_snapshot

logger = logging.getLogger(__name__)

# (current state, event) -> next state
TRANSITIONS: Dict[Tuple[JobState, JobEvent], JobState] = {
    (JobState.QUEUED, JobEvent.START): JobState.RUNNING,
    (JobState.RUNNING, JobEvent.PROGRESS): JobState.RUNNING,
    (JobState.RUNNING, JobEvent.SUCCEED): JobState.COMPLETED,
    (JobState.RUNNING, JobEvent.FAIL): JobState.FAILED,
    (JobState.RUNNING, JobEvent.CANCEL): JobState.CANCELLED,
    (JobState.QUEUED, JobEvent.CANCEL): JobState.CANCELLED,
    (JobState.CANCELLED, JobEvent.RESUME): JobState.RUNNING,
}

# Overall progress at which each default stage ends
DEFAULT_STAGE_BOUNDS = (0, 30, 60, 100)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _stage_bounds(count: int) -> List[int]:
    if count == len(DEFAULT_STAGE_BOUNDS) - 1:
        return list(DEFAULT_STAGE_BOUNDS)
    return [round(i * 100 / count) for i in range(count + 1)]


def derive_stages(progress: int, stages: List[JobStage], now: datetime) -> List[JobStage]:
    """Recompute per-stage status from overall progress.

    Overall progress is authoritative; stages are a view of it.
    """
    if not stages:
        return []

    bounds = _stage_bounds(len(stages))
    derived = []
    for index, stage in enumerate(stages):
        low, high = bounds[index], bounds[index + 1]
        stage = stage.model_copy(deep=True)
        if progress >= high:
            stage.status = JobState.COMPLETED
            stage.progress = 100
            stage.started_at = stage.started_at or now
            stage.ended_at = stage.ended_at or now
        elif progress >= low:
            stage.status = JobState.RUNNING
            stage.progress = int((progress - low) * 100 / (high - low))
            stage.started_at = stage.started_at or now
            stage.ended_at = None
        else:
            stage.status = JobState.QUEUED
            stage.progress = 0
        stage.error = None
        derived.append(stage)
    return derived


class JobTracker:
    """Owns every JobStatus; callers only ever see copies.

    Writes to the same job id are serialized through a per-job lock, writes
    to different ids proceed independently.
    """

    def __init__(
            self,
            clock: Optional[Callable[[], datetime]] = None,
            snapshot_dir: Optional[str] = None,
            default_timeout: int = 3600,
            default_resume_window: int = 300
    ):
        self._clock = clock or utcnow
        self._jobs: Dict[str, JobStatus] = {}
        self._locks: Dict[str, threading.Lock] = {}
        self._map_lock = threading.Lock()
        self._snapshot_dir = snapshot_dir
        self.default_timeout = default_timeout
        self.default_resume_window = default_resume_window

        if snapshot_dir:
            self._load()

    def now(self) -> datetime:
        return self._clock()

    # ---------- internal helpers ----------

    def _load(self):
        for record in load_job_snapshots(self._snapshot_dir):
            status = JobStatus.model_validate(record)
            self._jobs[status.job_id] = status
            self._locks[status.job_id] = threading.Lock()
        logger.info(f"Loaded {len(self._jobs)} job snapshots from {self._snapshot_dir}")

    def _persist(self, status: JobStatus):
        if self._snapshot_dir:
            save_job_snapshot(status.model_dump(mode="json", by_alias=True), self._snapshot_dir)

    @contextmanager
    def _locked(self, job_id: str) -> Iterator[JobStatus]:
        with self._map_lock:
            if job_id not in self._jobs:
                raise JobNotFound(job_id)
            lock = self._locks[job_id]
        with lock:
            yield self._jobs[job_id]

    def _store(self, status: JobStatus) -> JobStatus:
        self._jobs[status.job_id] = status
        self._persist(status)
        return status.model_copy(deep=True)

    def _resume_window(self, status: JobStatus) -> int:
        config = status.configuration
        if config is not None and config.resume_window is not None:
            return config.resume_window
        return self.default_resume_window

    def _timeout(self, status: JobStatus) -> int:
        config = status.configuration
        if config is not None and config.timeout is not None:
            return config.timeout
        return self.default_timeout

    def _within_resume_window(self, status: JobStatus, now: datetime) -> bool:
        if status.cancelled_at is None:
            return False
        elapsed = (now - status.cancelled_at).total_seconds()
        return elapsed <= self._resume_window(status)

    def _is_allowed(self, status: JobStatus, event: JobEvent, now: datetime) -> bool:
        if (status.status, event) not in TRANSITIONS:
            return False
        if event == JobEvent.RESUME:
            return self._within_resume_window(status, now)
        return True

    # ---------- public operations ----------

    def with_defaults(self, config: JobConfiguration) -> JobConfiguration:
        """Fill an unset timeout or resume window from the tracker defaults"""
        update = {}
        if config.timeout is None:
            update["timeout"] = self.default_timeout
        if config.resume_window is None:
            update["resume_window"] = self.default_resume_window
        return config.model_copy(update=update, deep=True)

    def create(self, job_id: str, config: JobConfiguration) -> JobStatus:
        """Register a new queued job"""
        now = self.now()
        with self._map_lock:
            if job_id in self._jobs:
                raise DuplicateJob(job_id)
            status = JobStatus(
                job_id=job_id,
                created_at=now,
                updated_at=now,
                configuration=self.with_defaults(config)
            )
            self._locks[job_id] = threading.Lock()
            snapshot = self._store(status)

        logger.info(f"Registered job {job_id} (queued)")
        return snapshot

    def exists(self, job_id: str) -> bool:
        with self._map_lock:
            return job_id in self._jobs

    def get(self, job_id: str) -> JobStatus:
        """Get a snapshot of a job"""
        with self._locked(job_id) as status:
            return status.model_copy(deep=True)

    def set(self, job_id: str, incoming: JobStatus) -> JobStatus:
        """Replace a job's status with one produced elsewhere.

        Updates that would move a running job's progress backwards, reopen a
        completed or failed job, or re-apply a transition out of cancelled
        other than a resume are ignored; the current status is returned.
        """
        incoming = incoming.model_copy(deep=True, update={"job_id": job_id})
        if incoming.status != JobState.FAILED:
            incoming.error = None
        elif incoming.error is None:
            incoming.error = JobError(code="PIPELINE_ERROR", message="Job failed")
        if incoming.status == JobState.COMPLETED and incoming.completed_at is None:
            incoming.completed_at = self.now()

        with self._map_lock:
            if job_id not in self._jobs:
                self._locks[job_id] = threading.Lock()
                snapshot = self._store(incoming)
                logger.info(f"Ingested job {job_id} ({incoming.status.value})")
                return snapshot
            lock = self._locks[job_id]

        with lock:
            current = self._jobs[job_id]
            reason = self._ignore_reason(current, incoming)
            if reason:
                logger.warning(f"Ignoring status update for job {job_id}: {reason}")
                return current.model_copy(deep=True)

            if incoming.configuration is None:
                incoming.configuration = current.configuration
            incoming.created_at = current.created_at
            incoming.started_at = incoming.started_at or current.started_at
            if incoming.status == JobState.CANCELLED and incoming.cancelled_at is None:
                incoming.cancelled_at = current.cancelled_at or self.now()
            if incoming.status == JobState.RUNNING and current.status == JobState.CANCELLED:
                incoming.cancelled_at = None
                incoming.resumed_at = incoming.resumed_at or self.now()
            return self._store(incoming)

    @staticmethod
    def _ignore_reason(current: JobStatus, incoming: JobStatus) -> Optional[str]:
        if current.status in (JobState.COMPLETED, JobState.FAILED):
            return f"job already {current.status.value}"
        if current.status == JobState.CANCELLED and incoming.status != JobState.RUNNING:
            return "job already cancelled"
        if current.status == JobState.RUNNING and incoming.status == JobState.QUEUED:
            return "running job cannot return to queued"
        if current.status == JobState.RUNNING and incoming.status == JobState.RUNNING \
                and incoming.progress < current.progress:
            return f"progress {incoming.progress} is behind {current.progress}"
        return None

    def can_transition(self, job_id: str, event: JobEvent) -> bool:
        with self._locked(job_id) as status:
            return self._is_allowed(status, JobEvent(event), self.now())

    def transition(
            self,
            job_id: str,
            event: JobEvent,
            progress: Optional[int] = None,
            stages: Optional[List[JobStage]] = None,
            error: Optional[JobError] = None
    ) -> JobStatus:
        """Apply one state-machine event to a job"""
        event = JobEvent(event)
        if event == JobEvent.PROGRESS:
            if progress is None:
                raise ValueError("progress event requires a progress value")
            if not 0 <= progress <= 100:
                raise ValueError(f"progress must be between 0 and 100, got {progress}")

        with self._locked(job_id) as current:
            now = self.now()
            if not self._is_allowed(current, event, now):
                raise InvalidTransition(job_id, current.status.value, event.value)

            if event == JobEvent.PROGRESS and progress < current.progress:
                logger.warning(
                    f"Ignoring progress {progress} for job {job_id}: already at {current.progress}"
                )
                return current.model_copy(deep=True)

            updated = current.model_copy(deep=True)
            updated.status = TRANSITIONS[(current.status, event)]
            updated.updated_at = now

            if event == JobEvent.START:
                updated.started_at = now
                updated.stages = derive_stages(0, updated.stages, now)
            elif event == JobEvent.PROGRESS:
                updated.progress = progress
                updated.stages = stages if stages is not None else derive_stages(progress, updated.stages, now)
            elif event == JobEvent.SUCCEED:
                updated.progress = 100
                updated.stages = derive_stages(100, updated.stages, now)
                updated.completed_at = now
            elif event == JobEvent.FAIL:
                updated.error = error or JobError(code="PIPELINE_ERROR", message="Job failed")
                for stage in updated.stages:
                    if stage.status == JobState.RUNNING:
                        stage.status = JobState.FAILED
                        stage.ended_at = now
                        stage.error = JobError(code="STAGE_ERROR", message=updated.error.message)
            elif event == JobEvent.CANCEL:
                updated.cancelled_at = now
                for stage in updated.stages:
                    if stage.status == JobState.RUNNING:
                        stage.status = JobState.CANCELLED
            elif event == JobEvent.RESUME:
                updated.cancelled_at = None
                updated.resumed_at = now
                updated.started_at = updated.started_at or now
                updated.stages = derive_stages(updated.progress, updated.stages, now)

            snapshot = self._store(updated)

        logger.info(f"Job {job_id}: {current.status.value} --{event.value}--> {snapshot.status.value}")
        return snapshot

    def expire_overdue(self) -> List[str]:
        """Fail running jobs that have outlived their timeout"""
        expired = []
        for status in self.all():
            if status.status != JobState.RUNNING:
                continue
            timeout = self._timeout(status)
            since = status.resumed_at or status.started_at
            if since is None or (self.now() - since).total_seconds() <= timeout:
                continue
            failure = JobTimeout(status.job_id, timeout)
            try:
                self.transition(
                    status.job_id,
                    JobEvent.FAIL,
                    error=JobError(code=failure.code, message=failure.message)
                )
            except InvalidTransition:
                # finished between the scan and the transition
                continue
            logger.warning(failure.message)
            expired.append(status.job_id)
        return expired

    def all(self) -> List[JobStatus]:
        with self._map_lock:
            return [status.model_copy(deep=True) for status in self._jobs.values()]

    def list(
            self,
            status: Optional[JobState] = None,
            limit: int = 50,
            offset: int = 0
    ) -> Tuple[List[JobStatus], int]:
        """List jobs oldest first, optionally filtered by state"""
        jobs = [j for j in self.all() if status is None or j.status == status]
        jobs.sort(key=lambda j: (j.created_at, j.job_id))
        return jobs[offset:offset + limit], len(jobs)

    def counts(self) -> Dict[JobState, int]:
        counts = {state: 0 for state in JobState}
        for status in self.all():
            counts[status.status] += 1
        return counts

    def __len__(self) -> int:
        with self._map_lock:
            return len(self._jobs)
