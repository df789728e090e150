"""
Fetch-and-store worker.

Resolves direct media URLs for a candidate, re-hosts them in object storage and
marks the candidate completed. Photo-set slides, thumbnail and avatar are
best-effort; the candidate only fails when no primary media could be stored.
On success an analyze job is queued.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Protocol

import httpx
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from trendscout.errors import NotFound, PersistError, PipelineError, UpstreamFetchError
from trendscout.integrations.manifest import MediaManifest
from trendscout.integrations.media_storage import MediaStorage, download_media
from trendscout.integrations.tiktok_api import TikTokTrendingClient
from trendscout.models import Candidate, JobType, Platform, ProcessingStatus, utcnow
from trendscout.services.queue_coordinator import enqueue_job
from trendscout.settings import Settings

logger = logging.getLogger(__name__)

NO_CONTENT_ERROR = "Failed to download content"


class ManifestResolver(Protocol):
    async def resolve(self, source_url: str) -> MediaManifest: ...


@dataclass
class FetchResult:
    external_id: str
    platform: str
    processing_status: str
    is_photo_post: bool
    video_url: str | None = None
    image_urls: list[str] = field(default_factory=list)
    thumbnail_url: str | None = None
    avatar_url: str | None = None

    def as_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "success": self.processing_status == ProcessingStatus.completed.value,
            "candidateId": self.external_id,
            "platform": self.platform,
            "processingStatus": self.processing_status,
            "isPhotoPost": self.is_photo_post,
            "thumbnailStorageUrl": self.thumbnail_url,
            "avatarStorageUrl": self.avatar_url,
        }
        if self.is_photo_post:
            data["imageUrls"] = self.image_urls
        else:
            data["videoStorageUrl"] = self.video_url
        return data


def storage_key(platform: str, external_id: str, purpose: str, timestamp: int, ext: str) -> str:
    return f"{platform}-{external_id}-{purpose}-{timestamp}.{ext}"


def _extension(content_type: str | None, default: str) -> str:
    if not content_type or "/" not in content_type:
        return default
    subtype = content_type.split("/", 1)[1].split("+", 1)[0].strip()
    return subtype or default


async def load_candidate(session: AsyncSession, external_id: str, platform: str | None = None) -> Candidate:
    q = select(Candidate).where(Candidate.external_id == external_id)
    if platform:
        q = q.where(Candidate.platform == platform)
    candidate = await session.scalar(q.order_by(Candidate.id.asc()).limit(1))
    if candidate is None:
        raise NotFound(f"Candidate {external_id} not found")
    return candidate


class FetchWorker:
    def __init__(
        self,
        session: AsyncSession,
        settings: Settings,
        *,
        http: httpx.AsyncClient,
        storage: MediaStorage,
        resolvers: dict[Platform, ManifestResolver],
        tiktok: TikTokTrendingClient | None = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.session = session
        self.settings = settings
        self.http = http
        self.storage = storage
        self.resolvers = resolvers
        self.tiktok = tiktok
        self.clock = clock

    def _key(self, candidate: Candidate, purpose: str, ext: str) -> str:
        timestamp = int(self.clock().timestamp() * 1_000_000)
        return storage_key(candidate.platform, candidate.external_id, purpose, timestamp, ext)

    async def _mark_failed(self, candidate_id: int, error: str) -> None:
        """Discard in-flight changes and leave the candidate failed with no media."""
        await self.session.rollback()
        candidate = await self.session.get(Candidate, candidate_id, populate_existing=True)
        if candidate is None:
            return
        candidate.processing_status = ProcessingStatus.failed.value
        candidate.processing_error = error
        candidate.video_url = None
        candidate.image_urls = None
        candidate.thumbnail_storage_url = None
        candidate.creator_avatar_storage_url = None
        try:
            await self.session.commit()
        except SQLAlchemyError as exc:
            await self.session.rollback()
            logger.error("[fetch] could not mark candidate %s failed: %s", candidate_id, exc)
            return
        logger.warning("[fetch] %s/%s failed: %s", candidate.platform, candidate.external_id, error)

    async def _rehost_video(self, candidate: Candidate, url: str) -> str:
        data, _content_type = await download_media(self.http, url)
        key = self._key(candidate, "video", "mp4")
        return await self.storage.upload(key, data, "video/mp4")

    async def _rehost_image(self, candidate: Candidate, url: str | None, purpose: str) -> str | None:
        """Best-effort image re-host; returns None on any failure."""
        if not url:
            return None
        try:
            data, content_type = await download_media(self.http, url)
            key = self._key(candidate, purpose, _extension(content_type, "jpg"))
            return await self.storage.upload(key, data, content_type or "image/jpeg")
        except PipelineError as exc:
            logger.warning("[fetch] %s for %s skipped: %s", purpose, candidate.external_id, exc.message)
            return None

    async def _refresh_author(self, candidate: Candidate) -> str | None:
        """Fresh follower count and avatar from the post detail endpoint; best-effort."""
        if self.tiktok is None or candidate.platform != Platform.tiktok.value:
            return None
        try:
            item = await self.tiktok.fetch_post_detail(candidate.external_id)
        except PipelineError as exc:
            logger.info("[fetch] post detail for %s unavailable: %s", candidate.external_id, exc.message)
            return None
        if not isinstance(item, dict):
            return None
        followers = (item.get("authorStats") or {}).get("followerCount")
        if followers is not None:
            try:
                candidate.follower_count = int(followers)
            except (TypeError, ValueError):
                pass
        return (item.get("author") or {}).get("avatarThumb")

    async def fetch(self, external_id: str, platform: str | None = None) -> FetchResult:
        candidate = await load_candidate(self.session, external_id, platform)
        try:
            resolver = self.resolvers[Platform(candidate.platform)]
        except (KeyError, ValueError):
            raise UpstreamFetchError(f"No media resolver for platform {candidate.platform}")

        candidate.processing_status = ProcessingStatus.processing.value
        candidate.processing_error = None
        await self.session.commit()
        logger.info("[fetch] %s/%s processing", candidate.platform, candidate.external_id)

        candidate_id = candidate.id
        try:
            result = await self._store_media(candidate, resolver)
        except PipelineError as exc:
            await self._mark_failed(candidate_id, exc.message)
            raise
        except Exception as exc:
            logger.exception("[fetch] %s crashed", external_id)
            await self._mark_failed(candidate_id, str(exc) or exc.__class__.__name__)
            raise

        await enqueue_job(
            self.session,
            video_id=result.external_id,
            platform=result.platform,
            job_type=JobType.analyze,
            max_attempts=self.settings.job_max_attempts,
        )
        return result

    async def _store_media(self, candidate: Candidate, resolver: ManifestResolver) -> FetchResult:
        fresh_avatar = await self._refresh_author(candidate)
        manifest = await resolver.resolve(candidate.source_url)

        video_url: str | None = None
        image_urls: list[str] = []
        if manifest.is_photo_post:
            for i, url in enumerate(manifest.image_urls):
                stored = await self._rehost_image(candidate, url, f"slide-{i}")
                if stored:
                    image_urls.append(stored)
            logger.info(
                "[fetch] %s: stored %d/%d slide(s)",
                candidate.external_id, len(image_urls), len(manifest.image_urls),
            )
        else:
            video_url = await self._rehost_video(candidate, manifest.video_url)

        if not video_url and not image_urls:
            raise UpstreamFetchError(NO_CONTENT_ERROR)

        thumbnail_url = await self._rehost_image(
            candidate, candidate.thumbnail_url or manifest.thumbnail_url, "thumbnail"
        )
        avatar_url = await self._rehost_image(
            candidate, fresh_avatar or candidate.creator_avatar_url or manifest.avatar_url, "avatar"
        )

        candidate.is_photo_post = manifest.is_photo_post
        candidate.video_url = video_url
        candidate.image_urls = image_urls if manifest.is_photo_post else None
        candidate.thumbnail_storage_url = thumbnail_url
        candidate.creator_avatar_storage_url = avatar_url
        if fresh_avatar:
            candidate.creator_avatar_url = fresh_avatar
        candidate.processing_status = ProcessingStatus.completed.value
        candidate.processing_error = None
        try:
            await self.session.commit()
        except SQLAlchemyError as exc:
            raise PersistError(f"Failed to save media for {candidate.external_id}: {exc}") from exc
        logger.info("[fetch] %s/%s completed", candidate.platform, candidate.external_id)

        return FetchResult(
            external_id=candidate.external_id,
            platform=candidate.platform,
            processing_status=candidate.processing_status,
            is_photo_post=candidate.is_photo_post,
            video_url=video_url,
            image_urls=image_urls,
            thumbnail_url=thumbnail_url,
            avatar_url=avatar_url,
        )
