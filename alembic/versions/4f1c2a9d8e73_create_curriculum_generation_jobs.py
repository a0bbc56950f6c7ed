"""create curriculum generation jobs

Revision ID: 4f1c2a9d8e73
Revises:
Create Date: 2026-09-28 09:00:00.000000

"""

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = "4f1c2a9d8e73"
down_revision = None
branch_labels = None
depends_on = None

_ACTIVE_STATUS_SQL = "status IN ('queued', 'connecting', 'generating', 'parsing')"


def upgrade():
  op.create_table(
    "curriculum_generation_jobs",
    sa.Column("id", sa.String(), nullable=False),
    sa.Column("user_id", sa.String(), nullable=False),
    sa.Column("job_type", sa.String(), nullable=False),
    sa.Column("status", sa.String(), nullable=False),
    sa.Column("progress", sa.Integer(), nullable=False, server_default="0"),
    sa.Column("current_step", sa.Text(), nullable=True),
    sa.Column("input_params", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
    sa.Column("result", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
    sa.Column("error_message", sa.Text(), nullable=True),
    sa.Column("input_tokens", sa.Integer(), nullable=False, server_default="0"),
    sa.Column("output_tokens", sa.Integer(), nullable=False, server_default="0"),
    sa.Column("model_used", sa.String(), nullable=True),
    sa.Column("estimated_cost", sa.Float(), nullable=True),
    sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
    sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
    sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
    sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
    sa.CheckConstraint("progress >= 0 AND progress <= 100", name="ck_curriculum_jobs_progress_range"),
    sa.CheckConstraint("job_type IN ('structure', 'content')", name="ck_curriculum_jobs_job_type"),
    sa.CheckConstraint("status IN ('queued', 'connecting', 'generating', 'parsing', 'completed', 'failed')", name="ck_curriculum_jobs_status"),
    sa.PrimaryKeyConstraint("id"),
  )
  op.create_index("ix_curriculum_generation_jobs_user_id", "curriculum_generation_jobs", ["user_id"])
  op.create_index("ix_curriculum_generation_jobs_status", "curriculum_generation_jobs", ["status"])
  op.create_index("ix_curriculum_jobs_user_created", "curriculum_generation_jobs", ["user_id", "created_at"])
  # One non-terminal job per owner.
  op.create_index("ux_curriculum_jobs_owner_active", "curriculum_generation_jobs", ["user_id"], unique=True, postgresql_where=sa.text(_ACTIVE_STATUS_SQL))


def downgrade():
  op.drop_index("ux_curriculum_jobs_owner_active", table_name="curriculum_generation_jobs")
  op.drop_index("ix_curriculum_jobs_user_created", table_name="curriculum_generation_jobs")
  op.drop_index("ix_curriculum_generation_jobs_status", table_name="curriculum_generation_jobs")
  op.drop_index("ix_curriculum_generation_jobs_user_id", table_name="curriculum_generation_jobs")
  op.drop_table("curriculum_generation_jobs")
