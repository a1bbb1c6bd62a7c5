# routers/job_router.py

"""
Job Management API Routes
"""

import logging
import uuid
from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Query

from datagen.core.config import Settings
from datagen.core.errors import PipelineError
from datagen.models.health import PipelineHealth
from datagen.models.job import (
    JobCreationResponse,
    JobListResponse,
    JobState,
    JobStatus,
    JobSubmissionRequest,
)
from datagen.routers.deps import get_pipeline_service, get_settings, to_http_exception
from datagen.services.pipeline_service import BasePipelineService, SimulatedPipelineService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Jobs"])


def _schedule_simulation(
        service: BasePipelineService,
        settings: Settings,
        background_tasks: BackgroundTasks,
        job_id: str
):
    if settings.simulate_progress and isinstance(service, SimulatedPipelineService):
        background_tasks.add_task(service.run_simulation, job_id)


@router.post("/jobs", response_model=JobCreationResponse, status_code=202)
async def submit_job(
        request: JobSubmissionRequest,
        background_tasks: BackgroundTasks,
        service: BasePipelineService = Depends(get_pipeline_service),
        settings: Settings = Depends(get_settings)
):
    """Submit a data generation job"""
    job_id = request.job_id or str(uuid.uuid4())
    logger.info(f"POST /jobs - job_id='{job_id}', dataType='{request.configuration.data_type}'")

    try:
        response = await service.submit_job(job_id, request.configuration)
    except PipelineError as e:
        logger.warning(f"Job submission {job_id} failed: {e}")
        raise to_http_exception(e)

    _schedule_simulation(service, settings, background_tasks, job_id)
    return response


@router.get("/jobs", response_model=JobListResponse)
async def list_jobs(
        status: Optional[JobState] = Query(None, description="Only jobs in this state"),
        limit: int = Query(50, ge=1, le=500),
        offset: int = Query(0, ge=0),
        service: BasePipelineService = Depends(get_pipeline_service)
):
    """List tracked jobs, oldest first"""
    jobs, total = service.list_jobs(status=status, limit=limit, offset=offset)
    return JobListResponse(jobs=jobs, total=total, limit=limit, offset=offset)


@router.get("/jobs/{job_id}", response_model=JobStatus)
async def get_job_status(
        job_id: str,
        service: BasePipelineService = Depends(get_pipeline_service)
):
    """Get status of a job"""
    try:
        return await service.get_job_status(job_id)
    except PipelineError as e:
        raise to_http_exception(e)


@router.post("/jobs/{job_id}/cancel")
async def cancel_job(
        job_id: str,
        service: BasePipelineService = Depends(get_pipeline_service)
):
    """Cancel a queued or running job"""
    try:
        cancelled = await service.cancel_job(job_id)
    except PipelineError as e:
        raise to_http_exception(e)

    return {"jobId": job_id, "cancelled": cancelled}


@router.post("/jobs/{job_id}/resume")
async def resume_job(
        job_id: str,
        background_tasks: BackgroundTasks,
        service: BasePipelineService = Depends(get_pipeline_service),
        settings: Settings = Depends(get_settings)
):
    """Resume a cancelled job within its resume window"""
    try:
        resumed = await service.resume_job(job_id)
    except PipelineError as e:
        raise to_http_exception(e)

    if resumed:
        _schedule_simulation(service, settings, background_tasks, job_id)
    return {"jobId": job_id, "resumed": resumed}


@router.get("/health", response_model=PipelineHealth)
async def pipeline_health(service: BasePipelineService = Depends(get_pipeline_service)):
    """Aggregate pipeline health"""
    return await service.check_health()
