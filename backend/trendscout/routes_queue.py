"""
Queue management endpoints.

Guarded by a bearer SERVICE_TOKEN when one is configured.
"""
from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from .deps import PipelineDep, require_service_token
from .models import JobStatus
from .schemas import EnqueueRequest, JobOut
from .services.pipeline import Pipeline

router = APIRouter(prefix="/queue", tags=["queue"], dependencies=[Depends(require_service_token)])


@router.post("/tick")
async def tick(pipeline: Pipeline = PipelineDep):
    """Advance exactly one pending job."""
    outcome = await pipeline.coordinator.process_next()
    if outcome is None:
        return {"message": "No pending jobs"}
    return outcome.as_dict()


@router.post("/reap")
async def reap(dry_run: bool = Query(default=False, alias="dryRun"), pipeline: Pipeline = PipelineDep):
    return await pipeline.reaper.sweep(dry_run=dry_run)


@router.get("/jobs", response_model=list[JobOut])
async def list_jobs(
    status: JobStatus | None = None,
    limit: int = Query(default=50, ge=1, le=500),
    pipeline: Pipeline = PipelineDep,
):
    jobs = await pipeline.coordinator.list_jobs(status, limit)
    return [JobOut.model_validate(j) for j in jobs]


@router.post("/jobs", response_model=JobOut)
async def enqueue(payload: EnqueueRequest, pipeline: Pipeline = PipelineDep):
    job = await pipeline.coordinator.enqueue(
        payload.candidate_id,
        payload.job_type,
        platform=payload.platform.value,
        target_lang=payload.target_lang,
        priority=payload.priority,
        max_attempts=payload.max_attempts,
    )
    return JobOut.model_validate(job)


@router.post("/jobs/{job_id}/retry", response_model=JobOut)
async def retry(job_id: int, pipeline: Pipeline = PipelineDep):
    job = await pipeline.coordinator.retry(job_id)
    return JobOut.model_validate(job)
