"""
Discovery — pulls the trending feed once and queues unseen posts.

Each new (platform, external_id) becomes a pending Candidate plus a fetch job.
Already-known posts are skipped, never updated.
"""
from __future__ import annotations

import logging
import re
from dataclasses import asdict, dataclass, field
from typing import Any

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from trendscout.errors import ValidationError
from trendscout.integrations.apify_client import InstagramClient
from trendscout.integrations.tiktok_api import TikTokTrendingClient
from trendscout.models import Candidate, JobType, Platform, ProcessingStatus
from trendscout.services.queue_coordinator import enqueue_job
from trendscout.settings import Settings

logger = logging.getLogger(__name__)

HASHTAG_RE = re.compile(r"#(\w+)")

TIKTOK_RECOMMENDATION_SOURCE = "tiktok_trending_api"
INSTAGRAM_RECOMMENDATION_SOURCE = "instagram_hashtag_apify"


def _parse_int(val: Any) -> int | None:
    try:
        return int(val)
    except (TypeError, ValueError):
        return None


def extract_hashtags(text: str | None) -> list[str]:
    if not text:
        return []
    return HASHTAG_RE.findall(text)


@dataclass
class CandidateDraft:
    platform: str
    external_id: str
    source_url: str
    title: str | None = None
    recommendation_source: str | None = None
    views: int | None = None
    likes: int | None = None
    comments: int | None = None
    shares: int | None = None
    collect_count: int | None = None
    duration_seconds: int | None = None
    account_name: str | None = None
    account_username: str | None = None
    follower_count: int | None = None
    creator_avatar_url: str | None = None
    music_title: str | None = None
    music_author: str | None = None
    is_original_sound: bool | None = None
    hashtags: list[str] = field(default_factory=list)
    thumbnail_url: str | None = None
    raw: dict[str, Any] | None = None

    def as_candidate(self) -> Candidate:
        return Candidate(**asdict(self), processing_status=ProcessingStatus.pending.value)

    def summary(self) -> dict[str, Any]:
        return {
            "platform": self.platform,
            "externalId": self.external_id,
            "sourceUrl": self.source_url,
            "title": self.title,
            "views": self.views,
            "likes": self.likes,
            "accountUsername": self.account_username,
        }


@dataclass
class DiscoveryReport:
    platform: str
    queued: int = 0
    skipped: int = 0
    failed: int = 0
    candidates: list[CandidateDraft] = field(default_factory=list)

    def as_dict(self) -> dict[str, Any]:
        return {
            "platform": self.platform,
            "queued": self.queued,
            "skipped": self.skipped,
            "failed": self.failed,
            "candidates": [c.summary() for c in self.candidates],
        }


def draft_from_tiktok_item(item: dict[str, Any]) -> CandidateDraft | None:
    video_id = item.get("id")
    author = item.get("author") or {}
    if not video_id or not author.get("uniqueId"):
        return None
    stats = item.get("stats") or {}
    video = item.get("video") or {}
    music = item.get("music") or {}
    author_stats = item.get("authorStats") or {}
    desc = item.get("desc") or ""
    return CandidateDraft(
        platform=Platform.tiktok.value,
        external_id=str(video_id),
        source_url=f"https://www.tiktok.com/@{author['uniqueId']}/video/{video_id}",
        title=desc or "Trending Post",
        recommendation_source=TIKTOK_RECOMMENDATION_SOURCE,
        views=_parse_int(stats.get("playCount")),
        likes=_parse_int(stats.get("diggCount")),
        comments=_parse_int(stats.get("commentCount")),
        shares=_parse_int(stats.get("shareCount")),
        collect_count=_parse_int(stats.get("collectCount")),
        duration_seconds=_parse_int(video.get("duration")),
        account_name=author.get("nickname"),
        account_username=author.get("uniqueId"),
        follower_count=_parse_int(author_stats.get("followerCount")),
        creator_avatar_url=author.get("avatarThumb"),
        music_title=music.get("title"),
        music_author=music.get("authorName"),
        is_original_sound=music.get("original"),
        hashtags=extract_hashtags(desc),
        thumbnail_url=video.get("cover"),
        raw=item,
    )


def draft_from_instagram_item(item: dict[str, Any]) -> CandidateDraft | None:
    shortcode = item.get("shortCode") or item.get("shortcode") or item.get("code")
    post_id = item.get("id") or shortcode
    if not post_id:
        return None
    source_url = item.get("url") or (shortcode and f"https://www.instagram.com/p/{shortcode}/")
    if not source_url:
        return None
    caption = item.get("caption") or ""
    music = item.get("musicInfo") or {}
    hashtags = item.get("hashtags") or extract_hashtags(caption)
    return CandidateDraft(
        platform=Platform.instagram.value,
        external_id=str(post_id),
        source_url=source_url,
        title=caption or "Trending Post",
        recommendation_source=INSTAGRAM_RECOMMENDATION_SOURCE,
        views=_parse_int(item.get("videoPlayCount") or item.get("videoViewCount")),
        likes=_parse_int(item.get("likesCount")),
        comments=_parse_int(item.get("commentsCount")),
        duration_seconds=_parse_int(item.get("videoDuration")),
        account_name=item.get("ownerFullName"),
        account_username=item.get("ownerUsername"),
        creator_avatar_url=item.get("ownerProfilePicUrl"),
        music_title=music.get("song_name"),
        music_author=music.get("artist_name"),
        is_original_sound=music.get("uses_original_audio"),
        hashtags=list(hashtags),
        thumbnail_url=item.get("displayUrl"),
        raw=item,
    )


class DiscoveryService:
    def __init__(
        self,
        session: AsyncSession,
        settings: Settings,
        *,
        tiktok: TikTokTrendingClient,
        instagram: InstagramClient | None = None,
    ):
        self.session = session
        self.settings = settings
        self.tiktok = tiktok
        self.instagram = instagram

    async def _fetch_drafts(self, platform: Platform, limit: int) -> list[CandidateDraft | None]:
        if platform == Platform.tiktok:
            items = await self.tiktok.fetch_trending(limit)
            return [draft_from_tiktok_item(item) for item in items]
        if self.instagram is None:
            raise ValidationError("Instagram discovery is not configured")
        items = await self.instagram.fetch_hashtag_posts(self.settings.instagram_discovery_hashtags, limit)
        return [draft_from_instagram_item(item) for item in items]

    async def discover(self, limit: int | None = None, platform: Platform | str = Platform.tiktok) -> DiscoveryReport:
        try:
            platform = Platform(platform)
        except ValueError:
            raise ValidationError(f"Unsupported platform: {platform}")
        limit = self.settings.discovery_max_count if limit is None else limit
        if limit < 1:
            raise ValidationError("limit must be a positive integer")
        limit = min(limit, self.settings.discovery_max_count)

        drafts = await self._fetch_drafts(platform, limit)
        logger.info("[discovery] %s feed returned %d item(s)", platform.value, len(drafts))

        report = DiscoveryReport(platform=platform.value)
        for draft in drafts:
            if draft is None:
                report.failed += 1
                continue

            existing_id = await self.session.scalar(
                select(Candidate.id).where(
                    Candidate.platform == draft.platform,
                    Candidate.external_id == draft.external_id,
                )
            )
            if existing_id is not None:
                report.skipped += 1
                logger.debug("[discovery] skip %s/%s, already known", draft.platform, draft.external_id)
                continue

            self.session.add(draft.as_candidate())
            try:
                await self.session.commit()
            except IntegrityError:
                await self.session.rollback()
                report.skipped += 1
                logger.info("[discovery] %s/%s inserted concurrently, skipped", draft.platform, draft.external_id)
                continue
            except SQLAlchemyError as exc:
                await self.session.rollback()
                report.failed += 1
                logger.error("[discovery] failed to save %s/%s: %s", draft.platform, draft.external_id, exc)
                continue

            try:
                await enqueue_job(
                    self.session,
                    video_id=draft.external_id,
                    platform=draft.platform,
                    job_type=JobType.fetch,
                    max_attempts=self.settings.job_max_attempts,
                )
            except SQLAlchemyError as exc:
                await self.session.rollback()
                report.failed += 1
                logger.error("[discovery] saved %s but could not queue fetch: %s", draft.external_id, exc)
                continue

            report.queued += 1
            report.candidates.append(draft)

        logger.info(
            "[discovery] %s: queued=%d skipped=%d failed=%d",
            platform.value, report.queued, report.skipped, report.failed,
        )
        return report
