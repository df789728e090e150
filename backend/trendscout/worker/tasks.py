"""
Celery tasks for the pipeline.

Each task runs one periodic pipeline operation in a fresh event loop with its
own engine, disposed afterwards.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from trendscout.services.pipeline import run_discovery, run_queue_tick, run_reaper
from trendscout.settings import Settings, get_settings
from trendscout.worker.celery_app import celery_app

logger = logging.getLogger(__name__)


async def _with_session_factory(
    fn: Callable[[Settings, async_sessionmaker[AsyncSession]], Awaitable[dict[str, Any]]],
) -> dict[str, Any]:
    settings = get_settings()
    engine = create_async_engine(settings.async_database_url, echo=False)
    session_factory = async_sessionmaker(engine, expire_on_commit=False)
    try:
        return await fn(settings, session_factory)
    finally:
        await engine.dispose()


@celery_app.task(name="pipeline.process_next_job", queue="pipeline")
def process_next_job() -> dict:
    """Advance one pending job."""
    result = asyncio.run(_with_session_factory(run_queue_tick))
    logger.info(f"[worker] queue tick: {result.get('jobId', result.get('message'))}")
    return result


@celery_app.task(name="pipeline.reap_stale_jobs", queue="pipeline")
def reap_stale_jobs(dry_run: bool = False) -> dict:
    result = asyncio.run(_with_session_factory(lambda s, f: run_reaper(s, f, dry_run=dry_run)))
    logger.info(f"[worker] reaper cleaned {result['cleaned']} job(s)")
    return result


@celery_app.task(
    bind=True,
    name="pipeline.discover",
    autoretry_for=(Exception,),
    retry_backoff=True,
    retry_kwargs={"max_retries": 3},
    queue="pipeline",
)
def discover(self, limit: int | None = None, platform: str = "tiktok") -> dict:
    """Pull the trending feed; retried with backoff on failure."""
    logger.info(f"[worker] discovery {platform} (attempt={self.request.retries + 1})")
    return asyncio.run(
        _with_session_factory(lambda s, f: run_discovery(s, f, limit=limit, platform=platform))
    )
