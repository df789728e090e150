"""create candidates table

Revision ID: 0001_create_candidates
Revises:
Create Date: 2026-10-19 09:00:00.000000
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


revision: str = "0001_create_candidates"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "candidates",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("platform", sa.String(32), nullable=False),
        sa.Column("external_id", sa.String(255), nullable=False),
        sa.Column("source_url", sa.Text(), nullable=False),
        sa.Column("title", sa.Text(), nullable=True),
        sa.Column("recommendation_source", sa.String(64), nullable=True),
        # Metrics
        sa.Column("views", sa.BigInteger(), nullable=True),
        sa.Column("likes", sa.BigInteger(), nullable=True),
        sa.Column("comments", sa.BigInteger(), nullable=True),
        sa.Column("shares", sa.BigInteger(), nullable=True),
        sa.Column("collect_count", sa.BigInteger(), nullable=True),
        sa.Column("duration_seconds", sa.Integer(), nullable=True),
        # Creator / audio
        sa.Column("account_name", sa.String(255), nullable=True),
        sa.Column("account_username", sa.String(255), nullable=True),
        sa.Column("follower_count", sa.BigInteger(), nullable=True),
        sa.Column("creator_avatar_url", sa.Text(), nullable=True),
        sa.Column("music_title", sa.Text(), nullable=True),
        sa.Column("music_author", sa.String(255), nullable=True),
        sa.Column("is_original_sound", sa.Boolean(), nullable=True),
        sa.Column("hashtags", sa.JSON(), nullable=True),
        sa.Column("thumbnail_url", sa.Text(), nullable=True),
        sa.Column("raw", sa.JSON(), nullable=True),
        # Re-hosted media
        sa.Column("is_photo_post", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("video_url", sa.Text(), nullable=True),
        sa.Column("image_urls", sa.JSON(), nullable=True),
        sa.Column("thumbnail_storage_url", sa.Text(), nullable=True),
        sa.Column("creator_avatar_storage_url", sa.Text(), nullable=True),
        # Status
        sa.Column("processing_status", sa.String(16), nullable=False, server_default="pending"),
        sa.Column("processing_error", sa.Text(), nullable=True),
        # Analysis
        sa.Column("gemini_analysis", sa.JSON(), nullable=True),
        sa.Column("analysis_variant", sa.String(16), nullable=True),
        sa.Column("gemini_analyzed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("analysis_en", sa.JSON(), nullable=True),
        sa.Column("analysis_de", sa.JSON(), nullable=True),
        sa.Column("adaptation_score", sa.Float(), nullable=True),
        sa.Column("is_adaptable", sa.Boolean(), nullable=True),
        # Timestamps
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        # Constraints
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("platform", "external_id", name="uq_candidate_platform_external_id"),
    )
    op.create_index("ix_candidates_external_id", "candidates", ["external_id"])
    op.create_index("ix_candidates_processing_status", "candidates", ["processing_status"])
    op.create_index("ix_candidates_adaptation_score", "candidates", ["adaptation_score"])


def downgrade() -> None:
    op.drop_index("ix_candidates_adaptation_score", table_name="candidates")
    op.drop_index("ix_candidates_processing_status", table_name="candidates")
    op.drop_index("ix_candidates_external_id", table_name="candidates")
    op.drop_table("candidates")
