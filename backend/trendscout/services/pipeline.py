"""
Wiring for the pipeline stages.

build_pipeline() assembles every stage around one session and one HTTP client;
the run_* helpers are the periodic entry points shared by the in-process
scheduler and the Celery worker.
"""
from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime
from typing import Any, AsyncIterator, Callable

import httpx
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from trendscout.integrations.apify_client import ApifyClient, InstagramClient
from trendscout.integrations.gemini_client import GeminiClient
from trendscout.integrations.media_storage import MediaStorage, build_media_storage
from trendscout.integrations.tiktok_api import TikTokTrendingClient
from trendscout.integrations.tikwm import TikwmResolver
from trendscout.integrations.translate_client import GoogleTranslateClient
from trendscout.models import JobType, Platform, PipelineJob, utcnow
from trendscout.services.analysis_worker import AnalysisWorker
from trendscout.services.discovery import DiscoveryService
from trendscout.services.fetch_worker import FetchWorker
from trendscout.services.notify import Notifier
from trendscout.services.queue_coordinator import QueueCoordinator
from trendscout.services.reaper import StaleJobReaper
from trendscout.services.translation_worker import TranslationWorker
from trendscout.settings import Settings

logger = logging.getLogger(__name__)


def build_http_client(settings: Settings) -> httpx.AsyncClient:
    return httpx.AsyncClient(timeout=settings.http_timeout_sec, follow_redirects=True)


@dataclass
class Pipeline:
    discovery: DiscoveryService
    fetcher: FetchWorker
    analyzer: AnalysisWorker
    translator: TranslationWorker
    coordinator: QueueCoordinator
    reaper: StaleJobReaper


def build_pipeline(
    session: AsyncSession,
    settings: Settings,
    http: httpx.AsyncClient,
    *,
    storage: MediaStorage | None = None,
    notifier: Notifier | None = None,
    clock: Callable[[], datetime] = utcnow,
) -> Pipeline:
    storage = storage or build_media_storage(settings)
    notifier = notifier or Notifier(settings, http=http)

    tiktok = TikTokTrendingClient(http, api_key=settings.rapidapi_key, host=settings.rapidapi_tiktok_host)
    instagram = InstagramClient(ApifyClient(http, token=settings.apify_token))
    gemini = GeminiClient(
        http,
        api_key=settings.gemini_api_key,
        model=settings.gemini_model,
        poll_interval_sec=settings.gemini_poll_interval_sec,
        poll_max_attempts=settings.gemini_poll_max_attempts,
    )

    discovery = DiscoveryService(session, settings, tiktok=tiktok, instagram=instagram)
    fetcher = FetchWorker(
        session,
        settings,
        http=http,
        storage=storage,
        resolvers={
            Platform.tiktok: TikwmResolver(http, api_url=settings.tikwm_api_url),
            Platform.instagram: instagram,
        },
        tiktok=tiktok,
        clock=clock,
    )
    analyzer = AnalysisWorker(session, settings, http=http, gemini=gemini)
    translator = TranslationWorker(
        session, settings, translator=GoogleTranslateClient(http, api_key=settings.google_translate_api_key)
    )

    async def _fetch(job: PipelineJob) -> Any:
        return await fetcher.fetch(job.video_id, job.platform)

    async def _analyze(job: PipelineJob) -> Any:
        return await analyzer.analyze(job.video_id, job.platform)

    async def _translate(job: PipelineJob) -> Any:
        return await translator.translate(job.video_id, job.target_lang or "en", platform=job.platform)

    coordinator = QueueCoordinator(
        session,
        {JobType.fetch: _fetch, JobType.analyze: _analyze, JobType.translate: _translate},
        notifier=notifier,
        default_max_attempts=settings.job_max_attempts,
    )
    reaper = StaleJobReaper(session, timeout_minutes=settings.stale_job_timeout_minutes, notifier=notifier)

    return Pipeline(
        discovery=discovery,
        fetcher=fetcher,
        analyzer=analyzer,
        translator=translator,
        coordinator=coordinator,
        reaper=reaper,
    )


@asynccontextmanager
async def pipeline_scope(
    settings: Settings, session_factory: async_sessionmaker[AsyncSession]
) -> AsyncIterator[Pipeline]:
    async with build_http_client(settings) as http, session_factory() as session:
        yield build_pipeline(session, settings, http)


async def run_queue_tick(settings: Settings, session_factory: async_sessionmaker[AsyncSession]) -> dict[str, Any]:
    async with pipeline_scope(settings, session_factory) as pipeline:
        outcome = await pipeline.coordinator.process_next()
    if outcome is None:
        return {"message": "No pending jobs"}
    return outcome.as_dict()


async def run_reaper(
    settings: Settings, session_factory: async_sessionmaker[AsyncSession], *, dry_run: bool = False
) -> dict[str, Any]:
    async with pipeline_scope(settings, session_factory) as pipeline:
        return await pipeline.reaper.sweep(dry_run=dry_run)


async def run_discovery(
    settings: Settings,
    session_factory: async_sessionmaker[AsyncSession],
    *,
    limit: int | None = None,
    platform: str = Platform.tiktok.value,
) -> dict[str, Any]:
    async with pipeline_scope(settings, session_factory) as pipeline:
        report = await pipeline.discovery.discover(limit, platform)
    return report.as_dict()
