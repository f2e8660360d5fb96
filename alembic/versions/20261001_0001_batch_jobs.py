"""Batch job queue table."""

from __future__ import annotations

import sqlalchemy as sa

from alembic import op

revision = "20261001_0001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "batch_jobs",
        sa.Column("job_id", sa.String(), nullable=False),
        sa.Column("job_type", sa.String(), nullable=False),
        sa.Column("target", sa.String(), nullable=False),
        sa.Column("status", sa.String(), nullable=False),
        sa.Column("progress", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("error", sa.Text(), nullable=True),
        sa.Column("result_summary", sa.Text(), nullable=True),
        sa.Column("execution_log", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint(
            "status IN ('pending', 'processing', 'completed', 'failed')",
            name="ck_batch_jobs_status",
        ),
        sa.CheckConstraint("progress >= 0 AND progress <= 100", name="ck_batch_jobs_progress"),
        sa.PrimaryKeyConstraint("job_id"),
    )
    op.create_index("ix_batch_jobs_job_type", "batch_jobs", ["job_type"], unique=False)
    op.create_index("ix_batch_jobs_target", "batch_jobs", ["target"], unique=False)
    op.create_index("ix_batch_jobs_status", "batch_jobs", ["status"], unique=False)
    op.create_index(
        "idx_batch_jobs_queue",
        "batch_jobs",
        ["status", "created_at"],
        unique=False,
    )


def downgrade() -> None:
    op.drop_index("idx_batch_jobs_queue", table_name="batch_jobs")
    op.drop_index("ix_batch_jobs_status", table_name="batch_jobs")
    op.drop_index("ix_batch_jobs_target", table_name="batch_jobs")
    op.drop_index("ix_batch_jobs_job_type", table_name="batch_jobs")
    op.drop_table("batch_jobs")
