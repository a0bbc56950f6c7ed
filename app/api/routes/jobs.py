import logging
from typing import Annotated

from fastapi import APIRouter, BackgroundTasks, Depends, Query
from fastapi.responses import StreamingResponse

from app.api.models import CurriculumJobRequest, JobCreateResponse, JobListResponse, JobStatusResponse
from app.config import Settings, get_settings
from app.core.security import Actor, require_curriculum_admin
from app.jobs.events import JobEventBus, get_event_bus
from app.services import jobs as job_service
from app.services.jobs import JobListFilter

router = APIRouter()
logger = logging.getLogger("app.api.routes.jobs")


@router.post("", response_model=JobCreateResponse, status_code=202)
async def create_job(  # noqa: B008
  request: CurriculumJobRequest,
  background_tasks: BackgroundTasks,
  settings: Settings = Depends(get_settings),  # noqa: B008
  actor: Actor = Depends(require_curriculum_admin),  # noqa: B008
) -> JobCreateResponse:
  """Submit a curriculum structure or content job."""
  return await job_service.create_job(request, settings, background_tasks, owner_id=actor.id)


@router.get("", response_model=JobListResponse)
async def list_jobs(  # noqa: B008
  job_filter: Annotated[JobListFilter, Query(alias="filter")] = "all",
  limit: Annotated[int, Query(ge=1, le=100)] = 20,
  settings: Settings = Depends(get_settings),  # noqa: B008
  actor: Actor = Depends(require_curriculum_admin),  # noqa: B008
) -> JobListResponse:
  """List the caller's jobs, newest first."""
  return await job_service.list_jobs(settings, owner_id=actor.id, job_filter=job_filter, limit=limit)


@router.get("/{job_id}", response_model=JobStatusResponse)
async def get_job_status(  # noqa: B008
  job_id: str,
  settings: Settings = Depends(get_settings),  # noqa: B008
  actor: Actor = Depends(require_curriculum_admin),  # noqa: B008
) -> JobStatusResponse:
  """Fetch the status and result of a curriculum job."""
  return await job_service.get_job_status(job_id, settings, owner_id=actor.id)


@router.post("/{job_id}/abort", response_model=JobStatusResponse)
async def abort_job(  # noqa: B008
  job_id: str,
  settings: Settings = Depends(get_settings),  # noqa: B008
  actor: Actor = Depends(require_curriculum_admin),  # noqa: B008
) -> JobStatusResponse:
  """Interrupt a job that has not finished yet."""
  return await job_service.cancel_job(job_id, settings, owner_id=actor.id)


@router.get("/{job_id}/events")
async def stream_job_events(  # noqa: B008
  job_id: str,
  settings: Settings = Depends(get_settings),  # noqa: B008
  bus: JobEventBus = Depends(get_event_bus),  # noqa: B008
  actor: Actor = Depends(require_curriculum_admin),  # noqa: B008
) -> StreamingResponse:
  """Stream job change events as server-sent events until the job finishes."""
  events = await job_service.stream_job_events(job_id, settings, bus, owner_id=actor.id)
  return StreamingResponse(events, media_type="text/event-stream", headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"})
