from __future__ import annotations

from datetime import datetime

from sqlalchemy import CheckConstraint, DateTime, Float, Index, Integer, String, Text, func, text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from app.core.database import Base

ACTIVE_STATUS_SQL = "status IN ('queued', 'connecting', 'generating', 'parsing')"


class CurriculumGenerationJob(Base):
  __tablename__ = "curriculum_generation_jobs"
  __table_args__ = (
    CheckConstraint("progress >= 0 AND progress <= 100", name="ck_curriculum_jobs_progress_range"),
    CheckConstraint("job_type IN ('structure', 'content')", name="ck_curriculum_jobs_job_type"),
    CheckConstraint("status IN ('queued', 'connecting', 'generating', 'parsing', 'completed', 'failed')", name="ck_curriculum_jobs_status"),
    # One non-terminal job per owner; a losing concurrent insert fails here.
    Index("ux_curriculum_jobs_owner_active", "user_id", unique=True, postgresql_where=text(ACTIVE_STATUS_SQL)),
    Index("ix_curriculum_jobs_user_created", "user_id", "created_at"),
  )

  id: Mapped[str] = mapped_column(String, primary_key=True)
  user_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
  job_type: Mapped[str] = mapped_column(String, nullable=False)
  status: Mapped[str] = mapped_column(String, nullable=False, index=True)
  progress: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
  current_step: Mapped[str | None] = mapped_column(Text, nullable=True)
  input_params: Mapped[dict] = mapped_column(JSONB, nullable=False)
  result: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
  error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
  input_tokens: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
  output_tokens: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
  model_used: Mapped[str | None] = mapped_column(String, nullable=True)
  estimated_cost: Mapped[float | None] = mapped_column(Float, nullable=True)
  created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
  updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
  started_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
  completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
