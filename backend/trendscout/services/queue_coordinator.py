"""
Queue coordinator — advances exactly one pipeline job per tick.

Job lifecycle:
  pending --claim--> processing --ok--> completed
                               --fail, attempts < max--> pending
                               --fail, attempts == max--> failed (terminal)

Claiming is atomic: the candidate row is selected with FOR UPDATE SKIP LOCKED
(where the dialect supports it) and then moved with a conditional
UPDATE ... WHERE status = 'pending'. A lost race re-selects a bounded number
of times. The closing transition is conditional on status = 'processing', so a
job the reaper failed mid-run stays failed.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

import sqlalchemy as sa
from sqlalchemy.ext.asyncio import AsyncSession

from trendscout.errors import NotFound, PipelineError, ValidationError
from trendscout.models import JobStatus, JobType, Platform, PipelineJob, utcnow
from trendscout.services.notify import Notifier

logger = logging.getLogger(__name__)

CLAIM_RETRIES = 5

JobHandler = Callable[[PipelineJob], Awaitable[Any]]


@dataclass
class JobOutcome:
    job_id: int
    video_id: str
    job_type: str
    success: bool
    status: str
    attempts: int
    error: str | None = None

    def as_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "success": self.success,
            "jobId": self.job_id,
            "videoId": self.video_id,
            "jobType": self.job_type,
            "status": self.status,
            "attempts": self.attempts,
        }
        if self.error:
            data["error"] = self.error
        return data


async def enqueue_job(
    session: AsyncSession,
    *,
    video_id: str,
    job_type: JobType,
    platform: str = Platform.tiktok.value,
    target_lang: str | None = None,
    priority: int = 0,
    max_attempts: int = 3,
) -> PipelineJob:
    """Insert a pending job unless an identical one is already pending or processing."""
    existing = await session.scalar(
        sa.select(PipelineJob).where(
            PipelineJob.video_id == video_id,
            PipelineJob.platform == platform,
            PipelineJob.job_type == job_type.value,
            PipelineJob.target_lang.is_(None) if target_lang is None else PipelineJob.target_lang == target_lang,
            PipelineJob.status.in_([JobStatus.pending.value, JobStatus.processing.value]),
        ).limit(1)
    )
    if existing is not None:
        logger.info(
            "[queue] %s job for %s/%s already %s (job %s)",
            job_type.value, platform, video_id, existing.status, existing.id,
        )
        return existing

    job = PipelineJob(
        video_id=video_id,
        platform=platform,
        job_type=job_type.value,
        target_lang=target_lang,
        status=JobStatus.pending.value,
        priority=priority,
        attempts=0,
        max_attempts=max_attempts,
    )
    session.add(job)
    await session.commit()
    logger.info("[queue] enqueued %s job %s for %s/%s", job_type.value, job.id, platform, video_id)
    return job


class QueueCoordinator:
    def __init__(
        self,
        session: AsyncSession,
        handlers: dict[JobType, JobHandler],
        *,
        notifier: Notifier | None = None,
        default_max_attempts: int = 3,
    ):
        self.session = session
        self.handlers = handlers
        self.notifier = notifier
        self.default_max_attempts = default_max_attempts

    async def enqueue(
        self,
        video_id: str,
        job_type: JobType,
        *,
        platform: str = Platform.tiktok.value,
        target_lang: str | None = None,
        priority: int = 0,
        max_attempts: int | None = None,
    ) -> PipelineJob:
        return await enqueue_job(
            self.session,
            video_id=video_id,
            job_type=job_type,
            platform=platform,
            target_lang=target_lang,
            priority=priority,
            max_attempts=max_attempts or self.default_max_attempts,
        )

    async def _next_pending_id(self) -> int | None:
        return await self.session.scalar(
            sa.select(PipelineJob.id)
            .where(PipelineJob.status == JobStatus.pending.value)
            .order_by(PipelineJob.priority.desc(), PipelineJob.created_at.asc(), PipelineJob.id.asc())
            .limit(1)
            .with_for_update(skip_locked=True)
        )

    async def claim_next(self) -> PipelineJob | None:
        """Atomically move the next pending job to processing; None when the queue is empty."""
        for _ in range(CLAIM_RETRIES):
            job_id = await self._next_pending_id()
            if job_id is None:
                await self.session.rollback()
                return None

            now = utcnow()
            result = await self.session.execute(
                sa.update(PipelineJob)
                .where(PipelineJob.id == job_id, PipelineJob.status == JobStatus.pending.value)
                .values(
                    status=JobStatus.processing.value,
                    attempts=PipelineJob.attempts + 1,
                    started_at=now,
                    updated_at=now,
                    error_message=None,
                )
                .execution_options(synchronize_session=False)
            )
            await self.session.commit()
            if result.rowcount == 1:
                return await self.session.get(PipelineJob, job_id, populate_existing=True)
            logger.info("[queue] lost claim race for job %s, re-selecting", job_id)
        return None

    async def _dispatch(self, job: PipelineJob) -> Any:
        try:
            job_type = JobType(job.job_type)
        except ValueError:
            raise ValidationError(f"Unknown job type: {job.job_type}")
        handler = self.handlers.get(job_type)
        if handler is None:
            raise ValidationError(f"No handler registered for job type: {job.job_type}")
        return await handler(job)

    async def process_next(self) -> JobOutcome | None:
        job = await self.claim_next()
        if job is None:
            return None

        job_id = job.id
        logger.info(
            "[queue] processing %s job %s for %s (attempt %d/%d)",
            job.job_type, job_id, job.video_id, job.attempts, job.max_attempts,
        )

        error: str | None = None
        try:
            await self._dispatch(job)
        except PipelineError as exc:
            error = exc.message
        except Exception as exc:
            logger.exception("[queue] job %s crashed", job_id)
            error = str(exc) or exc.__class__.__name__

        if error is not None:
            await self.session.rollback()
        job = await self.session.get(PipelineJob, job_id, populate_existing=True)

        now = utcnow()
        if error is None:
            values = {"status": JobStatus.completed.value, "completed_at": now, "error_message": None}
        elif job.attempts >= job.max_attempts:
            values = {"status": JobStatus.failed.value, "error_message": error}
        else:
            values = {"status": JobStatus.pending.value, "error_message": error}
        result = await self.session.execute(
            sa.update(PipelineJob)
            .where(PipelineJob.id == job_id, PipelineJob.status == JobStatus.processing.value)
            .values(updated_at=now, **values)
            .execution_options(synchronize_session=False)
        )
        await self.session.commit()
        job = await self.session.get(PipelineJob, job_id, populate_existing=True)

        if result.rowcount != 1:
            # reaped (or reset) while the handler ran; that transition stands
            logger.warning(
                "[queue] job %s left processing while running (now %s), outcome discarded", job_id, job.status
            )
            return JobOutcome(
                job_id=job_id,
                video_id=job.video_id,
                job_type=job.job_type,
                success=False,
                status=job.status,
                attempts=job.attempts,
                error=job.error_message or error,
            )

        if error is None:
            logger.info("[queue] job %s completed", job_id)
        elif job.status == JobStatus.failed.value:
            logger.warning("[queue] job %s failed permanently after %d attempts: %s", job_id, job.attempts, error)
        else:
            logger.info("[queue] job %s failed (attempt %d/%d), requeued: %s", job_id, job.attempts, job.max_attempts, error)

        outcome = JobOutcome(
            job_id=job_id,
            video_id=job.video_id,
            job_type=job.job_type,
            success=error is None,
            status=job.status,
            attempts=job.attempts,
            error=error,
        )
        if job.status == JobStatus.failed.value and self.notifier is not None:
            await self.notifier.error(
                f"Pipeline {job.job_type} job failed",
                {"job_id": job_id, "video_id": job.video_id, "attempts": job.attempts, "error": error},
            )
        return outcome

    async def list_jobs(self, status: JobStatus | None = None, limit: int = 50) -> list[PipelineJob]:
        q = sa.select(PipelineJob)
        if status is not None:
            q = q.where(PipelineJob.status == status.value)
        q = q.order_by(PipelineJob.created_at.desc(), PipelineJob.id.desc()).limit(limit)
        return list((await self.session.execute(q)).scalars().all())

    async def retry(self, job_id: int) -> PipelineJob:
        """Operator reset of a terminally failed job."""
        job = await self.session.get(PipelineJob, job_id)
        if job is None:
            raise NotFound(f"Job {job_id} not found")
        if job.status != JobStatus.failed.value:
            raise ValidationError(f"Job {job_id} is {job.status}, only failed jobs can be retried")
        job.status = JobStatus.pending.value
        job.attempts = 0
        job.error_message = None
        job.started_at = None
        job.completed_at = None
        await self.session.commit()
        logger.info("[queue] job %s reset to pending by operator", job_id)
        return job
