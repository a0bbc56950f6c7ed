from __future__ import annotations

import asyncio
import json

import pytest

from app.jobs.observer import GenerationWorkflow, JobObserver, watch_job_events
from tests.conftest import make_job


def _data_lines(body: str) -> list[dict]:
  return [json.loads(line[len("data:") :]) for line in body.splitlines() if line.startswith("data:")]


@pytest.mark.anyio
async def test_stream_of_a_finished_job_is_a_single_snapshot(api_client, jobs_repo) -> None:
  await jobs_repo.create_job(make_job(job_id="done", owner_id="admin-1", status="completed", progress=100, result={"name": "Plan"}))

  response = await api_client.get("/v1/curriculum-jobs/done/events")

  assert response.status_code == 200
  assert response.headers["content-type"].startswith("text/event-stream")
  events = _data_lines(response.text)
  assert [(event["status"], event["progress"]) for event in events] == [("completed", 100)]


@pytest.mark.anyio
async def test_stream_delivers_every_change_until_terminal(api_client, jobs_repo, event_bus) -> None:
  await jobs_repo.create_job(make_job(job_id="live", owner_id="admin-1"))

  request = asyncio.create_task(api_client.get("/v1/curriculum-jobs/live/events"))
  while event_bus.subscriber_count("live") == 0:
    await asyncio.sleep(0)

  await jobs_repo.update_job("live", status="connecting", progress=5, step="Connecting to gemini")
  await jobs_repo.update_job("live", status="generating", progress=90)
  await jobs_repo.update_job("live", status="completed", progress=100, result={"name": "Plan"})
  await jobs_repo.update_job("live", status="failed")

  response = await asyncio.wait_for(request, timeout=2)
  events = _data_lines(response.text)
  assert [event["status"] for event in events] == ["queued", "connecting", "generating", "completed"]
  assert events[-1]["result"] == {"name": "Plan"}
  assert event_bus.subscriber_count("live") == 0


@pytest.mark.anyio
async def test_stream_of_another_owners_job_is_forbidden(api_client, jobs_repo, event_bus) -> None:
  await jobs_repo.create_job(make_job(job_id="theirs", owner_id="admin-2"))

  response = await api_client.get("/v1/curriculum-jobs/theirs/events")

  assert response.status_code == 403
  assert event_bus.subscriber_count("theirs") == 0


@pytest.mark.anyio
async def test_observer_follows_the_stream_into_review(api_client, jobs_repo) -> None:
  await jobs_repo.create_job(make_job(job_id="done", owner_id="admin-1", status="completed", progress=100, result={"name": "Plan", "chapters": []}))
  workflow = GenerationWorkflow()
  workflow.start_structure("done")

  result = await watch_job_events(api_client, "/v1/curriculum-jobs/done/events", JobObserver(workflow, "done"))

  assert result.phase == "structure_review"
  assert result.structure == {"name": "Plan", "chapters": []}
