# ============================================================================
# API ROUTES
# ============================================================================
# STATUS: Core - FastAPI route definitions
# PURPOSE: HTTP endpoints for job submission, stop, validation and status
# CREATED: 19 OCT 2026
# ============================================================================
"""
API Routes

FastAPI routes for the phylogeography pipeline.
"""

import logging

from fastapi import APIRouter, HTTPException

from core.exceptions import JobNotFoundError, ValidationError
from .schemas import (
    ErrorResponse,
    JobCreate,
    JobListResponse,
    JobResponse,
    JobSubmitted,
    ValidationResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter()


# ============================================================================
# DEPENDENCY INJECTION
# ============================================================================
# Set by the main app at startup

_job_service = None


def set_services(job_service):
    """Set service instances for dependency injection."""
    global _job_service
    _job_service = job_service


def get_job_service():
    if _job_service is None:
        raise HTTPException(500, "Services not initialized")
    return _job_service


# ============================================================================
# JOBS
# ============================================================================

@router.post(
    "/jobs",
    response_model=JobSubmitted,
    status_code=202,
    tags=["Jobs"],
    responses={
        202: {"description": "Job accepted and started"},
        400: {"model": ErrorResponse, "description": "Invalid submission"},
    },
)
async def submit_job(request: JobCreate):
    """
    Submit a job.

    Returns immediately with the job id; the pipeline runs in the
    background. Poll GET /jobs/{job_id} to monitor progress.
    """
    service = get_job_service()
    job, ancestors = request.to_job()

    try:
        job_id = await service.submit(job, ancestors=ancestors)
    except ValidationError as e:
        raise HTTPException(400, e.user_message)

    logger.info(f"Accepted job {job_id} ({len(job.records)} records)")
    return JobSubmitted(job_id=job_id)


@router.post("/jobs/validate", response_model=ValidationResponse, tags=["Jobs"])
async def validate_job(request: JobCreate):
    """
    Dry-run a submission.

    Runs alignment and location resolution only and reports the records
    that would be used and the number of distinct locations.
    """
    service = get_job_service()
    job, ancestors = request.to_job()
    outcome = await service.validate(job, ancestors=ancestors)
    return ValidationResponse(
        valid=outcome.valid,
        error=outcome.error,
        record_ids=outcome.record_ids,
        distinct_locations=outcome.distinct_locations,
    )


@router.post(
    "/jobs/{job_id}/stop",
    tags=["Jobs"],
    responses={404: {"model": ErrorResponse}},
)
async def stop_job(job_id: str):
    """
    Stop a running job.

    The job ends KILLED once its running tool exits.
    """
    service = get_job_service()
    try:
        service.stop(job_id)
    except JobNotFoundError as e:
        raise HTTPException(404, e.user_message)
    return {"job_id": job_id, "stopped": True}


@router.get("/jobs", response_model=JobListResponse, tags=["Jobs"])
async def list_jobs():
    """List jobs that have not reached a terminal state."""
    service = get_job_service()
    jobs = service.list_active()
    return JobListResponse(
        jobs=[JobResponse.model_validate(job, from_attributes=True) for job in jobs],
        total=len(jobs),
    )


@router.get(
    "/jobs/{job_id}",
    response_model=JobResponse,
    tags=["Jobs"],
    responses={404: {"model": ErrorResponse}},
)
async def get_job(job_id: str):
    """Job status summary."""
    service = get_job_service()
    try:
        job = service.get(job_id)
    except JobNotFoundError as e:
        raise HTTPException(404, e.user_message)
    return JobResponse.model_validate(job, from_attributes=True)
