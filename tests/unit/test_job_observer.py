from __future__ import annotations

import asyncio
import json

import httpx
import pytest

from app.jobs.events import JobChangeEvent, JobEventBus
from app.jobs.observer import GenerationWorkflow, JobObserver, WorkflowStateError, observe_local, watch_job_events
from tests.conftest import make_job


def _event(*, kind: str = "structure", status: str = "generating", progress: int = 50, result: dict | None = None, error: str | None = None, job_id: str = "job-1") -> JobChangeEvent:
  return JobChangeEvent.from_record(make_job(job_id=job_id, kind=kind, status=status, progress=progress, result=result, error_message=error))


def test_completed_structure_moves_workflow_to_review() -> None:
  workflow = GenerationWorkflow()
  workflow.start_structure("job-1")
  observer = JobObserver(workflow, "job-1")

  assert observer.apply(_event(progress=90)) is False
  assert observer.apply(_event(status="completed", progress=100, result={"name": "Plan"})) is True

  assert workflow.phase == "structure_review"
  assert workflow.structure == {"name": "Plan"}
  assert workflow.active_job_id is None


def test_failed_content_reverts_to_review_with_error() -> None:
  workflow = GenerationWorkflow(phase="structure_review", structure={"name": "Plan"})
  workflow.start_content("job-1")
  observer = JobObserver(workflow, "job-1")

  observer.apply(_event(kind="content", status="failed", progress=0, error="Job was interrupted by user"))

  assert workflow.phase == "structure_review"
  assert workflow.error == "Job was interrupted by user"
  assert workflow.content is None


def test_result_for_the_wrong_phase_is_not_adopted() -> None:
  workflow = GenerationWorkflow()
  workflow.start_structure("job-1")
  observer = JobObserver(workflow, "job-1")

  assert observer.apply(_event(kind="content", status="completed", progress=100, result={"chapters": []})) is True
  assert workflow.phase == "structure_generating"
  assert workflow.content is None


def test_events_after_close_or_for_other_jobs_are_ignored() -> None:
  seen: list[JobChangeEvent] = []
  workflow = GenerationWorkflow()
  workflow.start_structure("job-1")
  observer = JobObserver(workflow, "job-1", on_change=seen.append)

  observer.apply(_event(job_id="job-2", status="completed"))
  observer.close()
  observer.apply(_event(status="completed", result={"name": "late"}))

  assert seen == []
  assert workflow.structure is None


def test_content_requires_a_reviewed_structure() -> None:
  with pytest.raises(WorkflowStateError):
    GenerationWorkflow().start_content("job-1")


@pytest.mark.anyio
async def test_follow_stops_at_the_terminal_event() -> None:
  workflow = GenerationWorkflow()
  workflow.start_structure("job-1")
  observer = JobObserver(workflow, "job-1")
  events = [_event(progress=90), _event(status="completed", progress=100, result={"name": "Plan"}), _event(status="failed", progress=0)]

  result = await observer.follow(_replay(events))

  assert result.phase == "structure_review"
  assert result.error is None


async def _replay(events: list[JobChangeEvent]):
  for event in events:
    yield event


@pytest.mark.anyio
async def test_watch_job_events_parses_server_sent_events() -> None:
  body = "".join(
    [
      f"data: {json.dumps(_event(progress=5).as_dict())}\n\n",
      ": keepalive\n\n",
      f"data: {json.dumps(_event(status='completed', progress=100, result={'name': 'Plan'}).as_dict())}\n\n",
    ]
  )
  transport = httpx.MockTransport(lambda request: httpx.Response(200, text=body, headers={"content-type": "text/event-stream"}))
  workflow = GenerationWorkflow()
  workflow.start_structure("job-1")
  observer = JobObserver(workflow, "job-1")

  async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
    result = await watch_job_events(client, "/v1/curriculum-jobs/job-1/events", observer)

  assert result.phase == "structure_review"
  assert observer.last_event is not None
  assert observer.last_event.progress == 100


@pytest.mark.anyio
async def test_observe_local_returns_once_the_job_finishes() -> None:
  bus = JobEventBus()
  workflow = GenerationWorkflow()
  workflow.start_structure("job-1")
  observer = JobObserver(workflow, "job-1")

  task = asyncio.create_task(observe_local(bus, observer))
  while bus.subscriber_count("job-1") == 0:
    await asyncio.sleep(0)
  bus.publish(_event(status="failed", progress=0, error="boom"))

  result = await asyncio.wait_for(task, timeout=1)
  assert result.phase == "input"
  assert result.error == "boom"
  assert bus.subscriber_count("job-1") == 0
