"""
Stale-job reaper — fails jobs abandoned in processing by a crashed worker.

Stale criteria:
- status == "processing" and created_at < now - STALE_JOB_TIMEOUT_MINUTES
"""
from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Callable

from sqlalchemy import and_, select
from sqlalchemy.ext.asyncio import AsyncSession

from trendscout.models import JobStatus, PipelineJob, utcnow
from trendscout.services.notify import Notifier

logger = logging.getLogger(__name__)


def _aware(dt: datetime) -> datetime:
    # SQLite hands back naive datetimes
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt


class StaleJobReaper:
    def __init__(
        self,
        session: AsyncSession,
        *,
        timeout_minutes: int = 10,
        notifier: Notifier | None = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.session = session
        self.timeout_minutes = timeout_minutes
        self.notifier = notifier
        self.clock = clock

    async def sweep(self, *, dry_run: bool = False) -> dict[str, Any]:
        """Mark stale processing jobs as failed.

        Returns a report dict: {success, message, cleaned, videos, dry_run}.
        """
        now = self.clock()
        cutoff = now - timedelta(minutes=self.timeout_minutes)

        result = await self.session.execute(
            select(PipelineJob).where(and_(
                PipelineJob.status == JobStatus.processing.value,
                PipelineJob.created_at < cutoff,
            )).order_by(PipelineJob.created_at.asc())
        )
        stale = list(result.scalars().all())

        error_msg = f"Processing timed out (stuck for more than {self.timeout_minutes} minutes)"
        videos: list[dict[str, Any]] = []
        for job in stale:
            age_minutes = (now - _aware(job.created_at)).total_seconds() / 60
            videos.append({
                "id": job.id,
                "videoId": job.video_id,
                "jobType": job.job_type,
                "ageMinutes": round(age_minutes),
            })
            if not dry_run:
                job.status = JobStatus.failed.value
                job.error_message = error_msg
                job.completed_at = now

        if stale and not dry_run:
            await self.session.commit()

        if stale:
            logger.warning(
                "[reaper] %s %d stale job(s): %s",
                "would fail" if dry_run else "failed",
                len(stale),
                [v["id"] for v in videos],
            )
            if not dry_run and self.notifier is not None:
                await self.notifier.warn(f"Reaper: {len(stale)} stale job(s) failed", videos)

        return {
            "success": True,
            "message": f"Cleaned up {len(stale)} stuck job(s)" if not dry_run else f"Found {len(stale)} stuck job(s)",
            "cleaned": 0 if dry_run else len(stale),
            "videos": videos,
            "dry_run": dry_run,
        }
