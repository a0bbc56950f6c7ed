"""Job progress tracking with cancellation-aware conditional writes."""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import Any

from app.jobs.models import ACTIVE_STATUSES, JobRecord, JobStatus
from app.storage.jobs_repo import JobsRepository

logger = logging.getLogger(__name__)

CONTENT_PROGRESS_START = 10
CONTENT_PROGRESS_END = 90


class JobCanceledError(Exception):
  """Exception raised when a job left the active states while the executor was working."""


def chapter_progress(completed: int, total: int) -> int:
  """Return the progress value shown before generating chapter `completed + 1`."""
  if total <= 0:
    return CONTENT_PROGRESS_START
  span = CONTENT_PROGRESS_END - CONTENT_PROGRESS_START
  return round(CONTENT_PROGRESS_START + span * completed / total)


class JobProgressTracker:
  """Persist status, progress and step updates for one executing job.

  Every write is conditional on the job still being active, so an external
  cancellation is never overwritten; a rejected write raises JobCanceledError.
  Progress values never decrease within one tracker.
  """

  def __init__(self, *, job_id: str, jobs_repo: JobsRepository, initial_progress: int = 0) -> None:
    self._job_id = job_id
    self._jobs_repo = jobs_repo
    self._progress = max(int(initial_progress), 0)

  @property
  def progress(self) -> int:
    return self._progress

  async def _write(self, **fields: Any) -> JobRecord:
    record = await self._jobs_repo.update_job(self._job_id, expected_statuses=ACTIVE_STATUSES, **fields)
    if record is None:
      raise JobCanceledError(f"Job {self._job_id} is no longer active.")
    return record

  async def advance(self, *, status: JobStatus, progress: int, step: str, **fields: Any) -> JobRecord:
    """Move the job to an active status, keeping progress non-decreasing."""
    self._progress = min(max(self._progress, int(progress)), 100)
    return await self._write(status=status, progress=self._progress, step=step, **fields)

  async def complete(self, *, step: str, result: dict[str, Any], input_tokens: int, output_tokens: int, model_used: str | None, estimated_cost: float | None) -> JobRecord:
    """Write the terminal success snapshot."""
    self._progress = 100
    return await self._write(
      status="completed",
      progress=100,
      step=step,
      result=result,
      input_tokens=input_tokens,
      output_tokens=output_tokens,
      model_used=model_used,
      estimated_cost=estimated_cost,
      completed_at=datetime.now(UTC),
    )

  async def is_canceled(self) -> bool:
    """Re-read the job and report whether it left the active states."""
    record = await self._jobs_repo.get_job(self._job_id)
    if record is None:
      logger.warning("Job %s disappeared while executing.", self._job_id)
      return True
    return record.status not in ACTIVE_STATUSES

  async def ensure_active(self) -> None:
    """Raise JobCanceledError when the job was cancelled externally."""
    if await self.is_canceled():
      raise JobCanceledError(f"Job {self._job_id} was canceled.")
