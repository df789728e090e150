"""create pipeline_jobs table

Revision ID: 0002_create_pipeline_jobs
Revises: 0001_create_candidates
Create Date: 2026-10-19 09:10:00.000000
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


revision: str = "0002_create_pipeline_jobs"
down_revision: Union[str, None] = "0001_create_candidates"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "pipeline_jobs",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("video_id", sa.String(255), nullable=False),
        sa.Column("platform", sa.String(32), nullable=False, server_default="tiktok"),
        sa.Column("job_type", sa.String(16), nullable=False),
        sa.Column("target_lang", sa.String(8), nullable=True),
        # Queue state
        sa.Column("status", sa.String(16), nullable=False, server_default="pending"),
        sa.Column("priority", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("attempts", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("max_attempts", sa.Integer(), nullable=False, server_default="3"),
        sa.Column("error_message", sa.Text(), nullable=True),
        # Timestamps
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_pipeline_jobs_video_id", "pipeline_jobs", ["video_id"])
    op.create_index(
        "ix_pipeline_jobs_status_priority_created",
        "pipeline_jobs",
        ["status", "priority", "created_at"],
    )


def downgrade() -> None:
    op.drop_index("ix_pipeline_jobs_status_priority_created", table_name="pipeline_jobs")
    op.drop_index("ix_pipeline_jobs_video_id", table_name="pipeline_jobs")
    op.drop_table("pipeline_jobs")
