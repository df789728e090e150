from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum

import sqlalchemy as sa
from sqlalchemy.orm import Mapped, mapped_column

from .db import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Platform(str, Enum):
    tiktok = "tiktok"
    instagram = "instagram"


class ProcessingStatus(str, Enum):
    pending = "pending"
    processing = "processing"
    completed = "completed"
    failed = "failed"


class JobStatus(str, Enum):
    pending = "pending"
    processing = "processing"
    completed = "completed"
    failed = "failed"


class JobType(str, Enum):
    fetch = "fetch"
    analyze = "analyze"
    translate = "translate"


class AnalysisVariant(str, Enum):
    """Shape of the stored analysis payload."""

    trending = "trending"
    library = "library"


class Candidate(Base):
    """Discovered trending post, its re-hosted media and its analysis."""
    __tablename__ = "candidates"
    __table_args__ = (
        sa.UniqueConstraint("platform", "external_id", name="uq_candidate_platform_external_id"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)

    # Source identification
    platform: Mapped[str] = mapped_column(sa.String(32), nullable=False)
    external_id: Mapped[str] = mapped_column(sa.String(255), nullable=False, index=True)
    source_url: Mapped[str] = mapped_column(sa.Text(), nullable=False)
    title: Mapped[str | None] = mapped_column(sa.Text(), nullable=True)
    recommendation_source: Mapped[str | None] = mapped_column(sa.String(64), nullable=True)

    # Metrics
    views: Mapped[int | None] = mapped_column(sa.BigInteger(), nullable=True)
    likes: Mapped[int | None] = mapped_column(sa.BigInteger(), nullable=True)
    comments: Mapped[int | None] = mapped_column(sa.BigInteger(), nullable=True)
    shares: Mapped[int | None] = mapped_column(sa.BigInteger(), nullable=True)
    collect_count: Mapped[int | None] = mapped_column(sa.BigInteger(), nullable=True)
    duration_seconds: Mapped[int | None] = mapped_column(sa.Integer(), nullable=True)

    # Creator / audio
    account_name: Mapped[str | None] = mapped_column(sa.String(255), nullable=True)
    account_username: Mapped[str | None] = mapped_column(sa.String(255), nullable=True)
    follower_count: Mapped[int | None] = mapped_column(sa.BigInteger(), nullable=True)
    creator_avatar_url: Mapped[str | None] = mapped_column(sa.Text(), nullable=True)
    music_title: Mapped[str | None] = mapped_column(sa.Text(), nullable=True)
    music_author: Mapped[str | None] = mapped_column(sa.String(255), nullable=True)
    is_original_sound: Mapped[bool | None] = mapped_column(sa.Boolean(), nullable=True)
    hashtags: Mapped[list | None] = mapped_column(sa.JSON(), nullable=True)
    thumbnail_url: Mapped[str | None] = mapped_column(sa.Text(), nullable=True)
    raw: Mapped[dict | None] = mapped_column(sa.JSON(), nullable=True)

    # Re-hosted media, only set once processing_status == completed
    is_photo_post: Mapped[bool] = mapped_column(sa.Boolean(), nullable=False, default=False, server_default=sa.false())
    video_url: Mapped[str | None] = mapped_column(sa.Text(), nullable=True)
    image_urls: Mapped[list | None] = mapped_column(sa.JSON(), nullable=True)
    thumbnail_storage_url: Mapped[str | None] = mapped_column(sa.Text(), nullable=True)
    creator_avatar_storage_url: Mapped[str | None] = mapped_column(sa.Text(), nullable=True)

    processing_status: Mapped[str] = mapped_column(
        sa.String(16), nullable=False, default=ProcessingStatus.pending.value, server_default="pending", index=True
    )
    processing_error: Mapped[str | None] = mapped_column(sa.Text(), nullable=True)

    # Analysis
    gemini_analysis: Mapped[dict | None] = mapped_column(sa.JSON(), nullable=True)
    analysis_variant: Mapped[str | None] = mapped_column(sa.String(16), nullable=True)
    gemini_analyzed_at: Mapped[datetime | None] = mapped_column(sa.DateTime(timezone=True), nullable=True)
    analysis_en: Mapped[dict | None] = mapped_column(sa.JSON(), nullable=True)
    analysis_de: Mapped[dict | None] = mapped_column(sa.JSON(), nullable=True)
    adaptation_score: Mapped[float | None] = mapped_column(sa.Float(), nullable=True, index=True)
    is_adaptable: Mapped[bool | None] = mapped_column(sa.Boolean(), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=utcnow, server_default=sa.func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=utcnow, server_default=sa.func.now(), onupdate=utcnow, nullable=False
    )

    @property
    def has_media(self) -> bool:
        if self.is_photo_post:
            return bool(self.image_urls)
        return bool(self.video_url)


class PipelineJob(Base):
    """Queued unit of pipeline work with its own retry bookkeeping."""
    __tablename__ = "pipeline_jobs"
    __table_args__ = (
        sa.Index("ix_pipeline_jobs_status_priority_created", "status", "priority", "created_at"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    video_id: Mapped[str] = mapped_column(sa.String(255), nullable=False, index=True)
    platform: Mapped[str] = mapped_column(sa.String(32), nullable=False, default=Platform.tiktok.value, server_default="tiktok")
    job_type: Mapped[str] = mapped_column(sa.String(16), nullable=False)
    target_lang: Mapped[str | None] = mapped_column(sa.String(8), nullable=True)
    status: Mapped[str] = mapped_column(sa.String(16), nullable=False, default=JobStatus.pending.value, server_default="pending")
    priority: Mapped[int] = mapped_column(sa.Integer(), nullable=False, default=0, server_default="0")
    attempts: Mapped[int] = mapped_column(sa.Integer(), nullable=False, default=0, server_default="0")
    max_attempts: Mapped[int] = mapped_column(sa.Integer(), nullable=False, default=3, server_default="3")
    error_message: Mapped[str | None] = mapped_column(sa.Text(), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=utcnow, server_default=sa.func.now(), nullable=False
    )
    started_at: Mapped[datetime | None] = mapped_column(sa.DateTime(timezone=True), nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(sa.DateTime(timezone=True), nullable=True)
    updated_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True), default=utcnow, server_default=sa.func.now(), onupdate=utcnow, nullable=False
    )
