"""Maintenance services for scheduled background cleanup tasks."""

from __future__ import annotations

import logging
from datetime import UTC, datetime, timedelta

from app.jobs.errors import STALLED_MESSAGE
from app.jobs.models import ACTIVE_STATUSES, FAILED_STEP
from app.storage.jobs_repo import JobsRepository

logger = logging.getLogger(__name__)


async def fail_stalled_jobs(repo: JobsRepository, *, max_age_seconds: int, now: datetime | None = None, limit: int = 50) -> list[str]:
  """Fail non-terminal jobs that have been running longer than `max_age_seconds`.

  A job counts from `started_at`, or from `created_at` when it was never
  claimed. Jobs that finish between the scan and the write are left alone.
  """
  cutoff = (now or datetime.now(UTC)) - timedelta(seconds=max_age_seconds)
  stalled = await repo.find_stalled(started_before=cutoff, limit=limit)
  failed: list[str] = []
  for record in stalled:
    updated = await repo.update_job(record.job_id, expected_statuses=ACTIVE_STATUSES, status="failed", progress=0, step=FAILED_STEP, error_message=STALLED_MESSAGE, completed_at=datetime.now(UTC))
    if updated is None:
      continue
    logger.warning("Failed stalled job %s (status=%s, started_at=%s)", record.job_id, record.status, record.started_at)
    failed.append(record.job_id)
  return failed
