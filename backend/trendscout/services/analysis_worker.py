"""
Analysis worker — scores a fetched candidate with Gemini.

Flow:
1. Download the re-hosted media and upload it to the Gemini file API.
2. Poll each upload until ACTIVE (bounded).
3. One generateContent call with the prompt plus every file reference.
4. Parse the JSON answer (lossy fallback keeps the raw text).
5. Persist analysis, score and is_adaptable, then queue the English translation.
Uploaded files are deleted on every exit path.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

import httpx
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from trendscout.errors import MediaNotReady, PersistFailed, PipelineError, ProcessingTimeout
from trendscout.integrations.gemini_client import STATE_ACTIVE, STATE_FAILED, GeminiClient, GeminiFile
from trendscout.integrations.media_storage import download_media
from trendscout.models import AnalysisVariant, Candidate, JobType, ProcessingStatus, utcnow
from trendscout.services.analysis_parsing import extract_score, is_adaptable, parse_analysis_text
from trendscout.services.fetch_worker import load_candidate
from trendscout.services.queue_coordinator import enqueue_job
from trendscout.settings import Settings

logger = logging.getLogger(__name__)

GENERATION_CONFIG = {
    "temperature": 0.7,
    "topK": 40,
    "topP": 0.95,
    "maxOutputTokens": 3072,
}

ANALYSIS_PROMPT = """Analyze this TRENDING short-form {media_kind} and explain how its MECHANIC can be reused for unrelated promotional content (for example a musician promoting a new song).

This is not a promo video. Your job is to isolate the concept that made it work and describe how someone else could flip it.

Before scoring, check:
1. Is it a sports event, award show, breaking news or a one-off historical moment? -> score 1
2. Does it depend on specific people in situations nobody can reproduce? -> score 1-2
Only if neither applies, rate the universal mechanic.

Context:
- Caption: {title}
- Creator: @{username}
- Hashtags: {hashtags}
- Sound: {music}

Answer in {language}. Return ONLY JSON in this shape:

{{
  "adaptation_score": 0,
  "original_concept": "2-3 sentences describing the original concept/mechanic",
  "why_it_went_viral": "2-3 sentences on why it performs so well",
  "adaptation": {{
    "core_mechanic": "the transferable core mechanic",
    "how_to_flip": "step-by-step explanation of how to adapt the mechanic",
    "example_scenarios": ["3-5 concrete example adaptations"]
  }},
  "target_topics": ["topics or genres this mechanic suits best"],
  "production_requirements": ["equipment, skills, locations needed"],
  "engagement_factors": ["engagement factors from the original worth keeping"],
  "shotlist_template": ["scene-by-scene template for a new version"]
}}

ADAPTATION SCORE (0-10), be critical:
- 0-1: not adaptable (one-off events, highly specific content)
- 2-3: very hard to adapt (narrow contexts, expensive production)
- 4-6: medium potential (transferable with creative effort)
- 7-8: good potential (clearly transferable, easy to produce)
- 9-10: excellent potential (universal, cheap, proven format)
"""


def build_prompt(candidate: Candidate, language: str) -> str:
    music = candidate.music_title or "unknown"
    if candidate.music_author:
        music = f"{music} by {candidate.music_author}"
    return ANALYSIS_PROMPT.format(
        media_kind="photo slideshow" if candidate.is_photo_post else "video",
        title=candidate.title or "",
        username=candidate.account_username or "unknown",
        hashtags=", ".join(candidate.hashtags or []) or "none",
        music=music,
        language=language,
    )


@dataclass
class AnalysisResult:
    external_id: str
    platform: str
    analysis: dict[str, Any]
    adaptation_score: float | None
    is_adaptable: bool | None
    variant: str = AnalysisVariant.trending.value

    def as_dict(self) -> dict[str, Any]:
        return {
            "success": True,
            "candidateId": self.external_id,
            "platform": self.platform,
            "analysis": self.analysis,
            "adaptationScore": self.adaptation_score,
            "isAdaptable": self.is_adaptable,
            "variant": self.variant,
        }


class AnalysisWorker:
    def __init__(
        self,
        session: AsyncSession,
        settings: Settings,
        *,
        http: httpx.AsyncClient,
        gemini: GeminiClient,
    ):
        self.session = session
        self.settings = settings
        self.http = http
        self.gemini = gemini

    def _media(self, candidate: Candidate) -> list[tuple[str, str]]:
        if candidate.processing_status != ProcessingStatus.completed.value or not candidate.has_media:
            raise MediaNotReady(
                f"Candidate {candidate.external_id} has no usable media (status={candidate.processing_status})"
            )
        if candidate.is_photo_post:
            return [(url, "image/jpeg") for url in candidate.image_urls or []]
        return [(candidate.video_url, "video/mp4")]

    async def _upload_all(self, candidate: Candidate, media: list[tuple[str, str]], uploaded: list[GeminiFile]) -> None:
        for i, (url, default_mime) in enumerate(media):
            data, content_type = await download_media(self.http, url)
            mime = content_type if content_type and content_type.split("/")[0] in ("image", "video") else default_mime
            display_name = f"{candidate.platform}-{candidate.external_id}-{i}"
            uploaded.append(await self.gemini.upload_file(data, mime, display_name))

    async def _wait_active(self, candidate: Candidate, files: list[GeminiFile]) -> None:
        lenient = candidate.is_photo_post and self.settings.analysis_photo_timeout_lenient
        for f in files:
            state = await self.gemini.wait_until_active(f)
            if state == STATE_ACTIVE:
                continue
            if state == STATE_FAILED:
                raise ProcessingTimeout(f"File processing failed. State: {state}")
            if lenient:
                logger.warning("[analysis] %s still %s after polling, continuing", f.name, state)
                continue
            raise ProcessingTimeout(f"File processing failed or timed out. State: {state}")

    async def _cleanup(self, files: list[GeminiFile]) -> None:
        for f in files:
            try:
                await self.gemini.delete_file(f.name)
            except (PipelineError, httpx.HTTPError) as exc:
                logger.warning("[analysis] failed to delete %s: %s", f.name, exc)

    async def analyze(self, external_id: str, platform: str | None = None) -> AnalysisResult:
        candidate = await load_candidate(self.session, external_id, platform)
        media = self._media(candidate)
        logger.info(
            "[analysis] %s/%s: %d %s file(s)",
            candidate.platform, external_id, len(media), "image" if candidate.is_photo_post else "video",
        )

        uploaded: list[GeminiFile] = []
        try:
            await self._upload_all(candidate, media, uploaded)
            await self._wait_active(candidate, uploaded)
            text = await self.gemini.generate_content(
                build_prompt(candidate, self.settings.analysis_language),
                uploaded,
                GENERATION_CONFIG,
            )
        finally:
            await self._cleanup(uploaded)

        analysis = parse_analysis_text(text)
        if "raw_analysis" in analysis:
            logger.warning("[analysis] %s: could not parse model output as JSON, storing raw text", external_id)
        score = extract_score(analysis)
        adaptable = is_adaptable(score, self.settings.adaptable_score_threshold)

        candidate.gemini_analysis = analysis
        candidate.analysis_variant = AnalysisVariant.trending.value
        candidate.gemini_analyzed_at = utcnow()
        candidate.adaptation_score = score
        candidate.is_adaptable = adaptable
        try:
            await self.session.commit()
        except SQLAlchemyError as exc:
            await self.session.rollback()
            raise PersistFailed(f"Failed to save analysis for {external_id}: {exc}") from exc
        logger.info("[analysis] %s scored %s (adaptable=%s)", external_id, score, adaptable)

        await enqueue_job(
            self.session,
            video_id=candidate.external_id,
            platform=candidate.platform,
            job_type=JobType.translate,
            target_lang="en",
            max_attempts=self.settings.job_max_attempts,
        )

        return AnalysisResult(
            external_id=candidate.external_id,
            platform=candidate.platform,
            analysis=analysis,
            adaptation_score=score,
            is_adaptable=adaptable,
        )
