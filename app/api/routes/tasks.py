from __future__ import annotations

import logging
import secrets
from typing import Annotated

from fastapi import APIRouter, BackgroundTasks, Depends, Header, HTTPException, status

from app.api.models import StalledSweepResponse, TaskAcceptedResponse, TaskProcessRequest
from app.config import Settings, get_settings
from app.services.jobs import process_job_sync
from app.services.maintenance import fail_stalled_jobs
from app.storage.factory import _get_jobs_repo

router = APIRouter(prefix="/tasks", tags=["tasks"])
logger = logging.getLogger(__name__)


def require_task_secret(settings: Annotated[Settings, Depends(get_settings)], x_internal_secret: Annotated[str | None, Header()] = None) -> None:
  """Reject internal calls that do not carry the shared task secret."""
  # Secure-by-default: internal endpoints stay closed until a secret is configured.
  if not settings.task_secret:
    raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Task authentication is not configured.")
  if not x_internal_secret:
    raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing task secret.")
  if not secrets.compare_digest(x_internal_secret, settings.task_secret):
    logger.warning("Unauthorized access attempt to an internal endpoint")
    raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Invalid task secret.")


@router.post("/process-curriculum-job", response_model=TaskAcceptedResponse, dependencies=[Depends(require_task_secret)])
async def process_curriculum_job_task(payload: TaskProcessRequest, background_tasks: BackgroundTasks, settings: Annotated[Settings, Depends(get_settings)]) -> TaskAcceptedResponse:
  """
  Handler for Cloud Tasks (and local simulation).
  Accepts the task quickly and processes the job in the background to avoid client disconnects/timeouts.
  """
  repo = _get_jobs_repo(settings)
  record = await repo.get_job(payload.job_id)
  if record is None:
    raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Job not found.")

  logger.info("Received task for job %s (status=%s)", payload.job_id, record.status)
  background_tasks.add_task(process_job_sync, payload.job_id, settings)
  return TaskAcceptedResponse()


@router.post("/sweep-stalled-jobs", response_model=StalledSweepResponse, dependencies=[Depends(require_task_secret)])
async def sweep_stalled_jobs(settings: Annotated[Settings, Depends(get_settings)]) -> StalledSweepResponse:
  """Fail jobs that exceeded the maximum run time."""
  repo = _get_jobs_repo(settings)
  job_ids = await fail_stalled_jobs(repo, max_age_seconds=settings.job_max_duration_seconds)
  if job_ids:
    logger.warning("Stalled-job sweep failed %d job(s)", len(job_ids))
  return StalledSweepResponse(failed=len(job_ids), job_ids=job_ids)
