import asyncio
import json
import logging
from collections.abc import AsyncIterator
from datetime import UTC, datetime
from typing import Literal

from fastapi import BackgroundTasks, HTTPException, status

from app.api.models import CurriculumJobRequest, JobCreateResponse, JobListResponse, JobStatusResponse
from app.config import Settings
from app.jobs.errors import DISPATCH_MESSAGE
from app.jobs.events import JobChangeEvent, JobEventBus
from app.jobs.models import ACTIVE_STATUSES, CANCELED_MESSAGE, CANCELED_STEP, FAILED_STEP, QUEUED_STEP, TERMINAL_STATUSES, JobRecord
from app.services.request_validation import _build_input_params, _validate_job_request
from app.services.tasks.factory import get_task_enqueuer
from app.storage.factory import _get_jobs_repo
from app.storage.jobs_repo import ActiveJobExistsError, JobsRepository
from app.utils.ids import generate_job_id

logger = logging.getLogger(__name__)

_JOB_NOT_FOUND_MSG = "Job not found."
_ACTIVE_JOB_MSG = "A curriculum generation job is already in progress. Wait for it to finish before starting another."
_QUEUED_MESSAGE = "Curriculum generation job accepted."
_HEARTBEAT_SECONDS = 15.0

JobListFilter = Literal["active", "finished", "all"]


def _job_status_from_record(record: JobRecord) -> JobStatusResponse:
  """Convert a persisted job record into an API response payload."""
  return JobStatusResponse(
    job_id=record.job_id,
    kind=record.kind,
    status=record.status,
    progress=record.progress,
    current_step=record.step,
    result=record.result,
    error_message=record.error_message,
    input_tokens=record.input_tokens,
    output_tokens=record.output_tokens,
    tokens_used=record.tokens_used,
    model_used=record.model_used,
    estimated_cost=record.estimated_cost,
    created_at=record.created_at,
    started_at=record.started_at,
    completed_at=record.completed_at,
  )


async def _load_owned_job(repo: JobsRepository, job_id: str, owner_id: str | None) -> JobRecord:
  record = await repo.get_job(job_id)
  if record is None:
    raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=_JOB_NOT_FOUND_MSG)
  if owner_id and record.owner_id != owner_id:
    raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Access denied.")
  return record


async def create_job(request: CurriculumJobRequest, settings: Settings, background_tasks: BackgroundTasks, *, owner_id: str) -> JobCreateResponse:
  """Create a background curriculum generation job."""
  _validate_job_request(request, settings)
  repo = _get_jobs_repo(settings)

  # Single-flight: one non-terminal job per owner.
  active = await repo.find_active_job(owner_id)
  if active is not None:
    logger.info("Rejecting %s job for owner %s; job %s is %s", request.kind, owner_id, active.job_id, active.status)
    raise HTTPException(status_code=status.HTTP_429_TOO_MANY_REQUESTS, detail=_ACTIVE_JOB_MSG)

  now = datetime.now(UTC)
  record = JobRecord(job_id=generate_job_id(), owner_id=owner_id, kind=request.kind, status="queued", input_params=_build_input_params(request, settings), created_at=now, updated_at=now, progress=0, step=QUEUED_STEP)
  try:
    await repo.create_job(record)
  except ActiveJobExistsError as exc:
    # A concurrent submission won the race between the check and the insert.
    raise HTTPException(status_code=status.HTTP_429_TOO_MANY_REQUESTS, detail=_ACTIVE_JOB_MSG) from exc

  logger.info("Queued %s job %s for owner %s", record.kind, record.job_id, owner_id)
  trigger_job_processing(background_tasks, record.job_id, settings)
  return JobCreateResponse(job_id=record.job_id, status=record.status, message=_QUEUED_MESSAGE)


async def cancel_job(job_id: str, settings: Settings, owner_id: str | None = None) -> JobStatusResponse:
  """Interrupt a non-terminal job; the executor observes it between units of work."""
  repo = _get_jobs_repo(settings)
  record = await _load_owned_job(repo, job_id, owner_id)
  if record.status in TERMINAL_STATUSES:
    raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Job is already finished and cannot be interrupted.")

  updated = await repo.update_job(job_id, expected_statuses=ACTIVE_STATUSES, status="failed", progress=0, step=CANCELED_STEP, error_message=CANCELED_MESSAGE, completed_at=datetime.now(UTC))
  if updated is None:
    # The job finished between the read and the conditional write.
    raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Job is already finished and cannot be interrupted.")
  logger.info("Job %s interrupted by owner %s", job_id, owner_id)
  return _job_status_from_record(updated)


async def get_job_status(job_id: str, settings: Settings, owner_id: str | None = None) -> JobStatusResponse:
  """Fetch the status and result of a background job."""
  repo = _get_jobs_repo(settings)
  record = await _load_owned_job(repo, job_id, owner_id)
  return _job_status_from_record(record)


async def list_jobs(settings: Settings, *, owner_id: str, job_filter: JobListFilter = "all", limit: int = 20) -> JobListResponse:
  """List the owner's jobs, newest first."""
  repo = _get_jobs_repo(settings)
  statuses = {"active": ACTIVE_STATUSES, "finished": TERMINAL_STATUSES}.get(job_filter)
  records = await repo.list_jobs(owner_id=owner_id, statuses=statuses, limit=limit)
  return JobListResponse(jobs=[_job_status_from_record(record) for record in records])


def _sse(event: JobChangeEvent) -> str:
  return f"data: {json.dumps(event.as_dict(), ensure_ascii=False)}\n\n"


async def stream_job_events(job_id: str, settings: Settings, bus: JobEventBus, *, owner_id: str | None = None) -> AsyncIterator[str]:
  """Yield server-sent events for a job: a snapshot first, then every change until terminal."""
  repo = _get_jobs_repo(settings)
  # Subscribe before reading the snapshot so no change falls between the two.
  subscription = bus.subscribe(job_id)
  try:
    record = await _load_owned_job(repo, job_id, owner_id)
  except HTTPException:
    subscription.close()
    raise

  async def _events() -> AsyncIterator[str]:
    async with subscription:
      snapshot = JobChangeEvent.from_record(record)
      yield _sse(snapshot)
      if snapshot.is_terminal:
        return
      while True:
        try:
          event = await asyncio.wait_for(anext(subscription), timeout=_HEARTBEAT_SECONDS)
        except TimeoutError:
          yield ": keepalive\n\n"
          continue
        except StopAsyncIteration:
          return
        yield _sse(event)
        if event.is_terminal:
          return

  return _events()


async def process_job_sync(job_id: str, settings: Settings) -> JobRecord | None:
  """Run a queued job immediately in the current task."""
  repo = _get_jobs_repo(settings)
  try:
    from app.jobs.worker import JobProcessor

    record = await repo.get_job(job_id)
    if record is None:
      logger.warning("Job %s not found for processing.", job_id)
      return None

    processor = JobProcessor(jobs_repo=repo, settings=settings)
    return await processor.process_job(record)
  except Exception as exc:  # noqa: BLE001
    logger.error("Job processing failed for job %s: %s", job_id, exc, exc_info=True)
    try:
      await repo.update_job(job_id, expected_statuses=ACTIVE_STATUSES, status="failed", progress=0, step=FAILED_STEP, error_message="An internal error occurred while starting the job.", completed_at=datetime.now(UTC))
    except Exception as update_exc:  # noqa: BLE001
      logger.error("Failed to update job status after processing error: %s", update_exc)
    return None


def trigger_job_processing(background_tasks: BackgroundTasks, job_id: str, settings: Settings) -> None:
  """Schedule dispatch of a queued job via the configured task enqueuer."""
  if not settings.jobs_auto_process:
    logger.warning("Job %s left queued because CURRICULUM_JOBS_AUTO_PROCESS is off; its owner stays blocked until it is dispatched or swept.", job_id)
    return

  enqueuer = get_task_enqueuer(settings)

  async def _dispatch() -> None:
    try:
      await enqueuer.enqueue(job_id)
    except Exception as exc:  # noqa: BLE001
      logger.error("Failed to dispatch job %s: %s", job_id, exc, exc_info=True)
      # Fail the job so a queued row does not block its owner forever.
      repo = _get_jobs_repo(settings)
      await repo.update_job(job_id, expected_statuses=("queued",), status="failed", progress=0, step=FAILED_STEP, error_message=DISPATCH_MESSAGE, completed_at=datetime.now(UTC))

  # Dispatch after the response is sent so submission never waits on the network.
  background_tasks.add_task(_dispatch)
