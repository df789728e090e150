from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from .models import JobType, Platform


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


class IngestRequest(CamelModel):
    limit: int | None = Field(default=None, ge=1)
    platform: Platform = Platform.tiktok


class FetchRequest(CamelModel):
    candidate_id: str = Field(min_length=1)
    platform: Platform | None = None


class AnalyzeRequest(CamelModel):
    candidate_id: str = Field(min_length=1)
    platform: Platform | None = None


class TranslateRequest(CamelModel):
    candidate_id: str = Field(min_length=1)
    target_lang: str = "en"
    is_trending: bool = True
    platform: Platform | None = None


class EnqueueRequest(CamelModel):
    candidate_id: str = Field(min_length=1)
    job_type: JobType
    platform: Platform = Platform.tiktok
    target_lang: str | None = None
    priority: int = 0
    max_attempts: int | None = Field(default=None, ge=1)


class JobOut(CamelModel):
    id: int
    video_id: str
    platform: str
    job_type: str
    target_lang: str | None = None
    status: str
    priority: int
    attempts: int
    max_attempts: int
    error_message: str | None = None
    created_at: datetime
    started_at: datetime | None = None
    completed_at: datetime | None = None


class CandidateOut(CamelModel):
    id: int
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
    music_title: str | None = None
    music_author: str | None = None
    is_original_sound: bool | None = None
    hashtags: list[str] | None = None
    is_photo_post: bool
    video_url: str | None = None
    image_urls: list[str] | None = None
    thumbnail_storage_url: str | None = None
    creator_avatar_storage_url: str | None = None
    processing_status: str
    processing_error: str | None = None
    gemini_analysis: dict[str, Any] | None = None
    analysis_variant: str | None = None
    gemini_analyzed_at: datetime | None = None
    analysis_en: dict[str, Any] | None = None
    analysis_de: dict[str, Any] | None = None
    adaptation_score: float | None = None
    is_adaptable: bool | None = None
    created_at: datetime
    updated_at: datetime
