"""Shared fixtures: in-memory persistence, scripted models and an ASGI client."""

from __future__ import annotations

import os

os.environ.setdefault("CURRICULUM_ALLOWED_ORIGINS", "http://localhost:3000")
os.environ.setdefault("CURRICULUM_JOBS_AUTO_PROCESS", "0")
os.environ.setdefault("CURRICULUM_TASK_SECRET", "test-task-secret")

from collections.abc import Callable, Iterable  # noqa: E402
from dataclasses import replace  # noqa: E402
from datetime import UTC, datetime  # noqa: E402
from typing import Any  # noqa: E402

import pytest  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402

from app.ai.providers.base import AIModel, SimpleModelResponse  # noqa: E402
from app.config import Settings, get_settings  # noqa: E402
from app.core.security import Actor, get_current_actor  # noqa: E402
from app.jobs.events import JobChangeEvent, JobEventBus, get_event_bus  # noqa: E402
from app.jobs.models import ACTIVE_STATUSES, JobRecord, JobStatus  # noqa: E402
from app.main import app  # noqa: E402
from app.storage.jobs_repo import ActiveJobExistsError  # noqa: E402


class InMemoryJobsRepository:
  """Jobs repository that keeps rows in a dict and publishes every write."""

  def __init__(self, bus: JobEventBus | None = None) -> None:
    self.jobs: dict[str, JobRecord] = {}
    self.bus = bus
    self.writes: list[tuple[str, dict[str, Any]]] = []

  def _publish(self, record: JobRecord) -> None:
    if self.bus is not None:
      self.bus.publish(JobChangeEvent.from_record(record))

  async def create_job(self, record: JobRecord) -> None:
    if any(job.owner_id == record.owner_id and job.status in ACTIVE_STATUSES for job in self.jobs.values()):
      raise ActiveJobExistsError(record.owner_id)
    self.jobs[record.job_id] = record
    self._publish(record)

  async def get_job(self, job_id: str) -> JobRecord | None:
    return self.jobs.get(job_id)

  async def update_job(self, job_id: str, *, expected_statuses: Iterable[JobStatus] | None = None, **fields: Any) -> JobRecord | None:
    record = self.jobs.get(job_id)
    if record is None:
      return None
    if expected_statuses is not None and record.status not in tuple(expected_statuses):
      return None
    changes = {key: value for key, value in fields.items() if value is not None}
    self.writes.append((job_id, changes))
    updated = replace(record, updated_at=datetime.now(UTC), **changes)
    self.jobs[job_id] = updated
    self._publish(updated)
    return updated

  async def find_active_job(self, owner_id: str) -> JobRecord | None:
    for record in self.jobs.values():
      if record.owner_id == owner_id and record.status in ACTIVE_STATUSES:
        return record
    return None

  async def list_jobs(self, *, owner_id: str, statuses: Iterable[JobStatus] | None = None, limit: int = 20) -> list[JobRecord]:
    allowed = tuple(statuses) if statuses is not None else None
    records = [record for record in self.jobs.values() if record.owner_id == owner_id and (allowed is None or record.status in allowed)]
    records.sort(key=lambda record: record.created_at, reverse=True)
    return records[:limit]

  async def find_stalled(self, *, started_before: datetime, limit: int = 50) -> list[JobRecord]:
    stalled = [record for record in self.jobs.values() if record.status in ACTIVE_STATUSES and (record.started_at or record.created_at) < started_before]
    return stalled[:limit]

  def statuses(self, job_id: str) -> list[str]:
    """Return the status written by every successful update, in order."""
    return [changes["status"] for written_id, changes in self.writes if written_id == job_id and "status" in changes]


class ScriptedModel(AIModel):
  """Model double that replays scripted outputs; exceptions in the script are raised."""

  def __init__(self, outputs: list[str | BaseException], *, name: str = "scripted-model", provider: str = "gemini", usage: dict[str, int] | None = None, on_call: Callable[[int], Any] | None = None) -> None:
    self.name = name
    self.provider = provider
    self._outputs = list(outputs)
    self._usage = usage if usage is not None else {"prompt_tokens": 100, "completion_tokens": 50, "total_tokens": 150}
    self._on_call = on_call
    self.prompts: list[str] = []

  async def generate(self, prompt: str, *, system: str | None = None, json_mode: bool = False) -> SimpleModelResponse:
    self.prompts.append(prompt)
    if self._on_call is not None:
      outcome = self._on_call(len(self.prompts))
      if outcome is not None:
        await outcome
    if not self._outputs:
      raise AssertionError("ScriptedModel ran out of outputs")
    output = self._outputs.pop(0)
    if isinstance(output, BaseException):
      raise output
    return SimpleModelResponse(content=output, usage=dict(self._usage))


def make_job(*, job_id: str = "job-1", owner_id: str = "admin-1", kind: str = "structure", status: str = "queued", input_params: dict[str, Any] | None = None, **fields: Any) -> JobRecord:
  now = datetime.now(UTC)
  params = input_params or {"goal": "Teach support staff to triage tickets", "target_audience": "support staff", "duration_minutes": 60, "difficulty_level": "beginner"}
  return JobRecord(job_id=job_id, owner_id=owner_id, kind=kind, status=status, input_params=params, created_at=fields.pop("created_at", now), updated_at=now, **fields)


@pytest.fixture
def anyio_backend() -> str:
  return "asyncio"


@pytest.fixture
def settings() -> Settings:
  return replace(get_settings(), task_secret="test-task-secret", base_url="http://test", jobs_auto_process=False, llm_pricing={"gemini": {"scripted-model": [1.0, 2.0]}})


@pytest.fixture
def event_bus() -> JobEventBus:
  return JobEventBus()


@pytest.fixture
def jobs_repo(event_bus: JobEventBus) -> InMemoryJobsRepository:
  return InMemoryJobsRepository(bus=event_bus)


@pytest.fixture
def admin_actor() -> Actor:
  return Actor(id="admin-1", email="admin@example.com", name="Admin", role="super_admin")


@pytest.fixture
async def api_client(monkeypatch: pytest.MonkeyPatch, jobs_repo: InMemoryJobsRepository, event_bus: JobEventBus, settings: Settings, admin_actor: Actor):
  """ASGI client wired to the in-memory repository with an authenticated super admin."""
  monkeypatch.setattr("app.services.jobs._get_jobs_repo", lambda _settings: jobs_repo)
  monkeypatch.setattr("app.api.routes.tasks._get_jobs_repo", lambda _settings: jobs_repo)
  app.dependency_overrides[get_settings] = lambda: settings
  app.dependency_overrides[get_event_bus] = lambda: event_bus
  app.dependency_overrides[get_current_actor] = lambda: admin_actor
  async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
    yield client
  app.dependency_overrides.clear()
