"""
Scheduler Service

Runs the pipeline's periodic work inside the API process:
- queue_tick: advance one pending job (every QUEUE_TICK_INTERVAL_SEC)
- reap_stale_jobs: fail abandoned processing jobs (every REAPER_INTERVAL_MINUTES)
- discovery: pull the trending feed (only when DISCOVERY_INTERVAL_MINUTES is set)

With CELERY_ENABLED=true the jobs only hand the work to the Celery worker.
Controlled by SCHEDULER_ENABLED (default: true).
"""
from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from trendscout.db import get_session_factory
from trendscout.services.pipeline import run_discovery, run_queue_tick, run_reaper
from trendscout.settings import Settings, get_settings

logger = logging.getLogger("scheduler")

JOB_QUEUE_TICK = "queue_tick"
JOB_REAPER = "reap_stale_jobs"
JOB_DISCOVERY = "discovery"


class SchedulerService:
    _instance: "SchedulerService | None" = None

    def __init__(self):
        self.scheduler = AsyncIOScheduler()
        self._settings: Settings | None = None
        self._session_factory: async_sessionmaker[AsyncSession] | None = None
        self._running = False

    @classmethod
    def get_instance(cls) -> "SchedulerService":
        """Get singleton instance."""
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    def configure(self, settings: Settings, session_factory: async_sessionmaker[AsyncSession] | None = None):
        self._settings = settings
        self._session_factory = session_factory

    @property
    def settings(self) -> Settings:
        if self._settings is None:
            self._settings = get_settings()
        return self._settings

    @property
    def session_factory(self) -> async_sessionmaker[AsyncSession]:
        if self._session_factory is None:
            self._session_factory = get_session_factory()
        return self._session_factory

    def _send_celery(self, task_name: str, **kwargs: Any) -> dict:
        from trendscout.worker.celery_app import celery_app

        result = celery_app.send_task(task_name, kwargs=kwargs)
        logger.info("[%s] dispatched to celery (id=%s)", task_name, result.id)
        return {"dispatched": task_name, "celery_id": result.id}

    async def _run_queue_tick(self):
        if self.settings.celery_enabled:
            return self._send_celery("pipeline.process_next_job")
        result = await run_queue_tick(self.settings, self.session_factory)
        if "jobId" in result:
            logger.info("[queue_tick] job %s -> %s", result["jobId"], result.get("status"))
        return result

    async def _run_reaper(self):
        if self.settings.celery_enabled:
            return self._send_celery("pipeline.reap_stale_jobs")
        result = await run_reaper(self.settings, self.session_factory)
        if result["cleaned"]:
            logger.info("[reaper] cleaned %d job(s)", result["cleaned"])
        return result

    async def _run_discovery(self):
        if self.settings.celery_enabled:
            return self._send_celery("pipeline.discover")
        result = await run_discovery(self.settings, self.session_factory)
        logger.info("[discovery] queued=%d skipped=%d", result["queued"], result["skipped"])
        return result

    def _add(self, func: Callable[[], Awaitable[Any]], trigger: IntervalTrigger, job_id: str, name: str):
        self.scheduler.add_job(
            func,
            trigger,
            id=job_id,
            name=name,
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )

    def start(self):
        """Start the scheduler (respects SCHEDULER_ENABLED)."""
        settings = self.settings
        if not settings.scheduler_enabled:
            logger.info("Scheduler DISABLED by SCHEDULER_ENABLED=false, skipping start")
            return
        if self._running:
            return

        self._add(
            self._run_queue_tick,
            IntervalTrigger(seconds=settings.queue_tick_interval_sec),
            JOB_QUEUE_TICK,
            "Advance one pipeline job",
        )
        self._add(
            self._run_reaper,
            IntervalTrigger(minutes=settings.reaper_interval_minutes),
            JOB_REAPER,
            "Fail stale processing jobs",
        )
        if settings.discovery_interval_minutes:
            self._add(
                self._run_discovery,
                IntervalTrigger(minutes=settings.discovery_interval_minutes),
                JOB_DISCOVERY,
                "Discover trending posts",
            )

        self.scheduler.start()
        self._running = True
        logger.info("Scheduler started (%d jobs, celery=%s)", len(self.scheduler.get_jobs()), settings.celery_enabled)

    def stop(self):
        """Stop the scheduler."""
        if not self._running:
            return
        self.scheduler.shutdown(wait=False)
        self._running = False
        logger.info("Scheduler stopped")

    def is_running(self) -> bool:
        return self._running

    def get_jobs(self) -> list[dict]:
        """Get list of all scheduled jobs."""
        jobs = []
        for job in self.scheduler.get_jobs():
            next_run = job.next_run_time
            jobs.append({
                "id": job.id,
                "name": job.name,
                "next_run": next_run.isoformat() if next_run else None,
                "trigger": str(job.trigger),
            })
        return jobs


# Global instance
scheduler_service = SchedulerService.get_instance()
