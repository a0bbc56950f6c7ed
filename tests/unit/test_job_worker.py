from __future__ import annotations

import asyncio
import json
from dataclasses import replace
from datetime import UTC, datetime

import pytest

from app.ai.errors import ProviderCallError
from app.jobs.errors import DECODE_MESSAGE, RATE_LIMIT_MESSAGE, TIMEOUT_MESSAGE
from app.jobs.models import CANCELED_MESSAGE, CANCELED_STEP, FAILED_STEP
from app.jobs.worker import CONTENT_COMPLETED_STEP, STRUCTURE_COMPLETED_STEP, JobProcessor
from tests.conftest import ScriptedModel, make_job

STRUCTURE_OUTPUT = """```json
{
  "name": "Ticket Triage with AI",
  "description": "Hands-on triage practice.",
  "tags": ["support", "ai"],
  "chapters": [
    {"title": "Why triage matters", "summary": "Basics", "learningObjectives": ["Explain triage"], "estimatedMinutes": 15, "order": 7},
    {"title": "Prompting the assistant", "summary": "Practice"}
  ]
}
```"""

CONTENT_PARAMS = {
  "goal": "Teach support staff to triage tickets",
  "target_audience": "support staff",
  "duration_minutes": 60,
  "difficulty_level": "beginner",
  "structure": {
    "name": "Ticket Triage with AI",
    "description": "Hands-on triage practice.",
    "tags": ["support"],
    "chapters": [
      {"order": 1, "title": "Intro", "summary": "", "learning_objectives": [], "estimated_minutes": 10},
      {"order": 2, "title": "Practice", "summary": "", "learning_objectives": [], "estimated_minutes": 20},
    ],
  },
}


def _chapter_output(text: str) -> str:
  return json.dumps({"content": f"# {text}", "taskDescription": f"Try {text}"})


def _processor(jobs_repo, settings, model: ScriptedModel) -> JobProcessor:
  return JobProcessor(jobs_repo=jobs_repo, settings=settings, model_factory=lambda provider, name: model)


def _progress_writes(jobs_repo, job_id: str) -> list[int]:
  return [changes["progress"] for written_id, changes in jobs_repo.writes if written_id == job_id and "progress" in changes]


@pytest.mark.anyio
async def test_structure_job_runs_through_every_phase(jobs_repo, settings) -> None:
  job = make_job()
  await jobs_repo.create_job(job)
  model = ScriptedModel([STRUCTURE_OUTPUT])

  record = await _processor(jobs_repo, settings, model).process_job(job)

  assert record is not None
  assert record.status == "completed"
  assert record.progress == 100
  assert record.step == STRUCTURE_COMPLETED_STEP
  assert jobs_repo.statuses("job-1") == ["connecting", "generating", "generating", "parsing", "completed"]
  assert _progress_writes(jobs_repo, "job-1") == [5, 5, 90, 95, 100]
  assert record.result["name"] == "Ticket Triage with AI"
  chapters = record.result["chapters"]
  assert [chapter["order"] for chapter in chapters] == [1, 2]
  assert chapters[0]["learning_objectives"] == ["Explain triage"]
  assert chapters[0]["estimated_minutes"] == 15
  assert chapters[1]["learning_objectives"] == []
  assert chapters[1]["estimated_minutes"] == 10
  assert record.input_tokens == 100
  assert record.output_tokens == 50
  assert record.model_used == "scripted-model"
  assert record.started_at is not None
  assert record.completed_at is not None


@pytest.mark.anyio
async def test_connecting_step_names_the_provider(jobs_repo, settings) -> None:
  job = make_job()
  await jobs_repo.create_job(job)

  await _processor(jobs_repo, settings, ScriptedModel([STRUCTURE_OUTPUT])).process_job(job)

  _job_id, claim = jobs_repo.writes[0]
  assert claim["status"] == "connecting"
  assert claim["step"] == f"Connecting to {settings.structure_provider}"


@pytest.mark.anyio
async def test_content_job_writes_chapters_in_order(jobs_repo, settings) -> None:
  job = make_job(kind="content", input_params=CONTENT_PARAMS)
  await jobs_repo.create_job(job)
  model = ScriptedModel([_chapter_output("intro"), _chapter_output("practice")])

  record = await _processor(jobs_repo, settings, model).process_job(job)

  assert record is not None
  assert record.status == "completed"
  assert record.step == CONTENT_COMPLETED_STEP
  assert _progress_writes(jobs_repo, "job-1") == [5, 10, 50, 95, 100]
  steps = [changes["step"] for _job_id, changes in jobs_repo.writes if changes.get("status") == "generating"]
  assert steps == ["Generating chapter 1/2: Intro", "Generating chapter 2/2: Practice"]
  chapters = record.result["chapters"]
  assert [chapter["title"] for chapter in chapters] == ["Intro", "Practice"]
  assert chapters[0]["content"] == "# intro"
  assert chapters[1]["task_description"] == "Try practice"
  assert record.input_tokens == 200
  assert record.output_tokens == 100
  assert record.estimated_cost == pytest.approx(0.0004)


@pytest.mark.anyio
async def test_cancellation_stops_before_the_next_chapter(jobs_repo, settings) -> None:
  job = make_job(kind="content", input_params=CONTENT_PARAMS)
  await jobs_repo.create_job(job)

  async def cancel_during_first_call(call_number: int) -> None:
    if call_number == 1:
      await jobs_repo.update_job("job-1", status="failed", progress=0, step=CANCELED_STEP, error_message=CANCELED_MESSAGE, completed_at=datetime.now(UTC))

  model = ScriptedModel([_chapter_output("intro"), _chapter_output("practice")], on_call=cancel_during_first_call)

  record = await _processor(jobs_repo, settings, model).process_job(job)

  assert len(model.prompts) == 1
  assert record is not None
  assert record.status == "failed"
  assert record.progress == 0
  assert record.step == CANCELED_STEP
  assert record.error_message == CANCELED_MESSAGE
  assert record.result is None


@pytest.mark.anyio
async def test_duplicate_dispatch_is_a_no_op(jobs_repo, settings) -> None:
  job = make_job(status="generating", progress=40)
  await jobs_repo.create_job(job)
  model = ScriptedModel([STRUCTURE_OUTPUT])

  record = await _processor(jobs_repo, settings, model).process_job(job)

  assert record is job
  assert model.prompts == []
  assert jobs_repo.writes == []


@pytest.mark.anyio
async def test_stale_queued_record_loses_the_claim(jobs_repo, settings) -> None:
  job = make_job()
  await jobs_repo.create_job(job)
  await jobs_repo.update_job("job-1", status="connecting", progress=5)
  model = ScriptedModel([STRUCTURE_OUTPUT])

  record = await _processor(jobs_repo, settings, model).process_job(job)

  assert record is None
  assert model.prompts == []


@pytest.mark.anyio
async def test_rate_limited_provider_fails_the_job(jobs_repo, settings) -> None:
  job = make_job()
  await jobs_repo.create_job(job)
  model = ScriptedModel([ProviderCallError("quota exhausted", provider="gemini", status_code=429)])

  record = await _processor(jobs_repo, settings, model).process_job(job)

  assert record is not None
  assert record.status == "failed"
  assert record.progress == 0
  assert record.step == FAILED_STEP
  assert record.error_message == RATE_LIMIT_MESSAGE
  assert record.result is None


@pytest.mark.anyio
@pytest.mark.parametrize("output", ["I cannot help with that.", '{"name": "Empty", "chapters": []}'])
async def test_undecodable_structure_fails_with_parse_message(jobs_repo, settings, output: str) -> None:
  job = make_job()
  await jobs_repo.create_job(job)

  record = await _processor(jobs_repo, settings, ScriptedModel([output])).process_job(job)

  assert record is not None
  assert record.status == "failed"
  assert record.error_message == DECODE_MESSAGE
  assert "parsing" in jobs_repo.statuses("job-1")


@pytest.mark.anyio
async def test_slow_provider_call_times_out(jobs_repo, settings) -> None:
  job = make_job()
  await jobs_repo.create_job(job)

  async def stall(_call_number: int) -> None:
    await asyncio.sleep(1)

  model = ScriptedModel([STRUCTURE_OUTPUT], on_call=stall)
  record = await _processor(jobs_repo, replace(settings, provider_call_timeout_seconds=0.01), model).process_job(job)

  assert record is not None
  assert record.status == "failed"
  assert record.error_message == TIMEOUT_MESSAGE
