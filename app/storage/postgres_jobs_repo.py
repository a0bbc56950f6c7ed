"""Postgres-backed repository for curriculum jobs using SQLAlchemy."""

from __future__ import annotations

from collections.abc import Iterable
from datetime import UTC, datetime
from typing import Any

from sqlalchemy import func, select, text, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_session_factory
from app.jobs.models import ACTIVE_STATUSES, JobRecord, JobStatus
from app.schema.jobs import CurriculumGenerationJob
from app.storage.jobs_repo import ActiveJobExistsError, JobsRepository

CHANGE_CHANNEL = "curriculum_job_changes"
_ACTIVE_OWNER_INDEX = "ux_curriculum_jobs_owner_active"

# Maps repository keyword arguments onto ORM column names.
_COLUMN_NAMES = {
  "status": "status",
  "progress": "progress",
  "step": "current_step",
  "result": "result",
  "error_message": "error_message",
  "input_tokens": "input_tokens",
  "output_tokens": "output_tokens",
  "model_used": "model_used",
  "estimated_cost": "estimated_cost",
  "started_at": "started_at",
  "completed_at": "completed_at",
}


def _now() -> datetime:
  return datetime.now(UTC)


class PostgresJobsRepository(JobsRepository):
  """Persist curriculum jobs to Postgres and announce each change with NOTIFY."""

  def __init__(self) -> None:
    self._session_factory = get_session_factory()
    if self._session_factory is None:
      raise RuntimeError("Database not initialized")

  async def _notify(self, session: AsyncSession, job_id: str) -> None:
    # NOTIFY is delivered on commit, so listeners never see uncommitted state.
    await session.execute(text("SELECT pg_notify(:channel, :job_id)"), {"channel": CHANGE_CHANNEL, "job_id": job_id})

  async def create_job(self, record: JobRecord) -> None:
    async with self._session_factory() as session:
      row = CurriculumGenerationJob(
        id=record.job_id,
        user_id=record.owner_id,
        job_type=record.kind,
        status=record.status,
        progress=record.progress,
        current_step=record.step,
        input_params=record.input_params,
        result=record.result,
        error_message=record.error_message,
        input_tokens=record.input_tokens,
        output_tokens=record.output_tokens,
        model_used=record.model_used,
        estimated_cost=record.estimated_cost,
        created_at=record.created_at,
        updated_at=record.updated_at,
        started_at=record.started_at,
        completed_at=record.completed_at,
      )
      session.add(row)
      try:
        await session.flush()
      except IntegrityError as exc:
        await session.rollback()
        if _ACTIVE_OWNER_INDEX in str(exc.orig):
          raise ActiveJobExistsError(record.owner_id) from exc
        raise
      await self._notify(session, record.job_id)
      await session.commit()

  async def get_job(self, job_id: str) -> JobRecord | None:
    async with self._session_factory() as session:
      row = await session.get(CurriculumGenerationJob, job_id)
      if row is None:
        return None
      return self._model_to_record(row)

  async def update_job(
    self,
    job_id: str,
    *,
    expected_statuses: Iterable[JobStatus] | None = None,
    status: JobStatus | None = None,
    progress: int | None = None,
    step: str | None = None,
    result: dict[str, Any] | None = None,
    error_message: str | None = None,
    input_tokens: int | None = None,
    output_tokens: int | None = None,
    model_used: str | None = None,
    estimated_cost: float | None = None,
    started_at: datetime | None = None,
    completed_at: datetime | None = None,
  ) -> JobRecord | None:
    provided = {
      "status": status,
      "progress": progress,
      "step": step,
      "result": result,
      "error_message": error_message,
      "input_tokens": input_tokens,
      "output_tokens": output_tokens,
      "model_used": model_used,
      "estimated_cost": estimated_cost,
      "started_at": started_at,
      "completed_at": completed_at,
    }
    values = {_COLUMN_NAMES[key]: value for key, value in provided.items() if value is not None}
    values["updated_at"] = _now()
    stmt = update(CurriculumGenerationJob).where(CurriculumGenerationJob.id == job_id)
    # Conditional writes make claims and finalization atomic against concurrent writers.
    if expected_statuses is not None:
      stmt = stmt.where(CurriculumGenerationJob.status.in_(list(expected_statuses)))
    stmt = stmt.values(**values).returning(CurriculumGenerationJob)
    async with self._session_factory() as session:
      row = (await session.execute(stmt)).scalar_one_or_none()
      if row is None:
        await session.rollback()
        return None
      await self._notify(session, job_id)
      await session.commit()
      return self._model_to_record(row)

  async def find_active_job(self, owner_id: str) -> JobRecord | None:
    async with self._session_factory() as session:
      stmt = select(CurriculumGenerationJob).where(CurriculumGenerationJob.user_id == owner_id, CurriculumGenerationJob.status.in_(ACTIVE_STATUSES)).order_by(CurriculumGenerationJob.created_at.desc()).limit(1)
      row = (await session.execute(stmt)).scalar_one_or_none()
      return self._model_to_record(row) if row is not None else None

  async def list_jobs(self, *, owner_id: str, statuses: Iterable[JobStatus] | None = None, limit: int = 20) -> list[JobRecord]:
    async with self._session_factory() as session:
      stmt = select(CurriculumGenerationJob).where(CurriculumGenerationJob.user_id == owner_id)
      if statuses is not None:
        stmt = stmt.where(CurriculumGenerationJob.status.in_(list(statuses)))
      stmt = stmt.order_by(CurriculumGenerationJob.created_at.desc()).limit(limit)
      rows = (await session.execute(stmt)).scalars().all()
      return [self._model_to_record(row) for row in rows]

  async def find_stalled(self, *, started_before: datetime, limit: int = 50) -> list[JobRecord]:
    async with self._session_factory() as session:
      reference_time = func.coalesce(CurriculumGenerationJob.started_at, CurriculumGenerationJob.created_at)
      stmt = (
        select(CurriculumGenerationJob)
        .where(CurriculumGenerationJob.status.in_(ACTIVE_STATUSES), reference_time < started_before)
        .order_by(CurriculumGenerationJob.created_at.asc())
        .limit(limit)
      )
      rows = (await session.execute(stmt)).scalars().all()
      return [self._model_to_record(row) for row in rows]

  @staticmethod
  def _model_to_record(row: CurriculumGenerationJob) -> JobRecord:
    return JobRecord(
      job_id=row.id,
      owner_id=row.user_id,
      kind=row.job_type,  # type: ignore[arg-type]
      status=row.status,  # type: ignore[arg-type]
      input_params=dict(row.input_params or {}),
      created_at=row.created_at,
      updated_at=row.updated_at,
      progress=int(row.progress or 0),
      step=row.current_step,
      result=row.result,
      error_message=row.error_message,
      input_tokens=int(row.input_tokens or 0),
      output_tokens=int(row.output_tokens or 0),
      model_used=row.model_used,
      estimated_cost=row.estimated_cost,
      started_at=row.started_at,
      completed_at=row.completed_at,
    )
