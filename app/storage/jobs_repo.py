"""Storage interfaces for curriculum generation jobs."""

from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime
from typing import Any, Protocol

from app.jobs.models import JobRecord, JobStatus


class ActiveJobExistsError(Exception):
  """Raised when an owner already holds a non-terminal job."""

  def __init__(self, owner_id: str) -> None:
    super().__init__(f"Owner {owner_id} already has an active curriculum job.")
    self.owner_id = owner_id


class JobsRepository(Protocol):
  """Repository contract for job persistence."""

  async def create_job(self, record: JobRecord) -> None:
    """Persist an initial job record, raising ActiveJobExistsError on a single-flight conflict."""

  async def get_job(self, job_id: str) -> JobRecord | None:
    """Fetch a job by identifier."""

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
    """Apply partial updates; returns None when the job is missing or not in an expected status."""

  async def find_active_job(self, owner_id: str) -> JobRecord | None:
    """Return the owner's non-terminal job, if any."""

  async def list_jobs(self, *, owner_id: str, statuses: Iterable[JobStatus] | None = None, limit: int = 20) -> list[JobRecord]:
    """Return the owner's jobs, newest first."""

  async def find_stalled(self, *, started_before: datetime, limit: int = 50) -> list[JobRecord]:
    """Return non-terminal jobs whose start (or creation) predates the cutoff."""
