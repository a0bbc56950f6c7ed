"""Background processor for queued curriculum generation jobs."""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime
from typing import Any

from app.ai.agents.chapter_writer import ChapterWriterAgent
from app.ai.agents.structure_planner import StructurePlannerAgent
from app.ai.providers.base import AIModel
from app.ai.router import get_model_for_mode
from app.ai.utils.cost import calculate_total_cost, sum_tokens
from app.config import Settings
from app.jobs.dispatch import JobProcessorHandler, JobProcessorRegistry
from app.jobs.dispatch import process_job as dispatch_process_job
from app.jobs.errors import classify_job_error
from app.jobs.models import ACTIVE_STATUSES, FAILED_STEP, JobRecord
from app.jobs.progress import JobCanceledError, JobProgressTracker, chapter_progress
from app.storage.jobs_repo import JobsRepository

ModelFactory = Callable[[str, str | None], AIModel]

CONNECTING_PROGRESS = 5
STRUCTURE_GENERATED_PROGRESS = 90
FINALIZING_PROGRESS = 95
FINALIZING_STEP = "Finalizing"
STRUCTURE_COMPLETED_STEP = "Curriculum structure generated"
CONTENT_COMPLETED_STEP = "Curriculum content generated"


class JobProcessor:
  """Coordinates execution of queued curriculum jobs."""

  def __init__(self, *, jobs_repo: JobsRepository, settings: Settings, model_factory: ModelFactory | None = None, registry: JobProcessorRegistry | None = None) -> None:
    self._jobs_repo = jobs_repo
    self._settings = settings
    self._logger = logging.getLogger(__name__)
    self._model_factory = model_factory or self._default_model_factory
    self._registry = registry or self._build_default_registry()

  def _default_model_factory(self, provider: str, model: str | None) -> AIModel:
    return get_model_for_mode(provider, model, settings=self._settings)

  def _build_default_registry(self) -> JobProcessorRegistry:
    """Build the default job-kind handler registry."""

    class _MethodHandler:
      """Adapter that exposes worker coroutine methods as DI handlers."""

      def __init__(self, method: Callable[[JobRecord], Awaitable[JobRecord | None]]) -> None:
        self._method = method

      async def process(self, job: JobRecord) -> JobRecord | None:
        return await self._method(job)

    handlers: dict[str, JobProcessorHandler] = {
      "structure": _MethodHandler(self._process_structure_job),
      "content": _MethodHandler(self._process_content_job),
    }
    return JobProcessorRegistry(handlers)

  def _provider_for(self, kind: str) -> tuple[str, str | None]:
    if kind == "content":
      return self._settings.content_provider, self._settings.content_model
    return self._settings.structure_provider, self._settings.structure_model

  async def process_job(self, job: JobRecord) -> JobRecord | None:
    """Claim and execute a single queued job, routing by kind."""
    if job.status != "queued":
      self._logger.info("Skipping job %s in status %s; it was already claimed.", job.job_id, job.status)
      return job

    provider, _model = self._provider_for(job.kind)
    # The claim only succeeds while the row is still queued, so duplicate dispatches no-op.
    claimed = await self._jobs_repo.update_job(
      job.job_id,
      expected_statuses=("queued",),
      status="connecting",
      progress=CONNECTING_PROGRESS,
      step=f"Connecting to {provider}",
      started_at=datetime.now(UTC),
    )
    if claimed is None:
      self._logger.info("Job %s was claimed or cancelled by another writer.", job.job_id)
      return None

    self._logger.info("Processing %s job %s for owner %s", claimed.kind, claimed.job_id, claimed.owner_id)
    try:
      result = await dispatch_process_job(claimed, self._registry)
      return result.record
    except JobCanceledError:
      self._logger.info("Job %s was interrupted; leaving the external failure in place.", job.job_id)
      return await self._jobs_repo.get_job(job.job_id)
    except Exception as exc:  # noqa: BLE001
      self._logger.error("Curriculum job %s failed", job.job_id, exc_info=True)
      return await self._fail_job(job.job_id, exc)

  async def _fail_job(self, job_id: str, exc: BaseException) -> JobRecord | None:
    """Record an executor failure unless the job already reached a terminal state."""
    record = await self._jobs_repo.update_job(
      job_id,
      expected_statuses=ACTIVE_STATUSES,
      status="failed",
      progress=0,
      step=FAILED_STEP,
      error_message=classify_job_error(exc),
      completed_at=datetime.now(UTC),
    )
    if record is None:
      return await self._jobs_repo.get_job(job_id)
    return record

  async def _process_structure_job(self, job: JobRecord) -> JobRecord | None:
    """Generate the curriculum skeleton in one provider call."""
    tracker = JobProgressTracker(job_id=job.job_id, jobs_repo=self._jobs_repo, initial_progress=job.progress)
    params = dict(job.input_params)
    usage: list[dict[str, Any]] = []
    provider, model_name = self._provider_for(job.kind)
    agent = StructurePlannerAgent(model=self._model_factory(provider, model_name), timeout_seconds=self._settings.provider_call_timeout_seconds, use=usage.append)

    await tracker.advance(status="generating", progress=CONNECTING_PROGRESS, step="Generating curriculum structure")
    raw = await agent.draft(params)
    await tracker.advance(status="generating", progress=STRUCTURE_GENERATED_PROGRESS, step="Curriculum structure received")

    await tracker.advance(status="parsing", progress=FINALIZING_PROGRESS, step=FINALIZING_STEP)
    result = agent.finalize(raw, params)
    return await self._complete(tracker, job=job, step=STRUCTURE_COMPLETED_STEP, result=result, usage=usage, model_used=agent.model_name)

  async def _process_content_job(self, job: JobRecord) -> JobRecord | None:
    """Write every chapter of the approved structure, in order."""
    tracker = JobProgressTracker(job_id=job.job_id, jobs_repo=self._jobs_repo, initial_progress=job.progress)
    params = dict(job.input_params)
    structure = params.get("structure") or {}
    chapters = list(structure.get("chapters") or [])
    if not chapters:
      raise ValueError("Content job has no chapters to generate.")

    usage: list[dict[str, Any]] = []
    provider, model_name = self._provider_for(job.kind)
    agent = ChapterWriterAgent(model=self._model_factory(provider, model_name), timeout_seconds=self._settings.provider_call_timeout_seconds, use=usage.append)

    total = len(chapters)
    written: list[dict[str, Any]] = []
    for index, chapter in enumerate(chapters):
      # Cancellation is observed between chapters; an in-flight call is allowed to finish.
      await tracker.ensure_active()
      title = str(chapter.get("title") or f"Chapter {index + 1}")
      await tracker.advance(status="generating", progress=chapter_progress(index, total), step=f"Generating chapter {index + 1}/{total}: {title}")
      self._logger.info("Generating chapter %d/%d for job %s", index + 1, total, job.job_id)
      written.append(await agent.run(params, {**chapter, "order": index + 1}, chapter_count=total))

    await tracker.ensure_active()
    await tracker.advance(status="parsing", progress=FINALIZING_PROGRESS, step=FINALIZING_STEP)
    result = {
      "name": structure.get("name"),
      "description": structure.get("description") or "",
      "difficulty_level": params.get("difficulty_level"),
      "tags": list(structure.get("tags") or []),
      "chapters": [{"order": index, **chapter} for index, chapter in enumerate(written, start=1)],
    }
    return await self._complete(tracker, job=job, step=CONTENT_COMPLETED_STEP, result=result, usage=usage, model_used=agent.model_name)

  async def _complete(self, tracker: JobProgressTracker, *, job: JobRecord, step: str, result: dict[str, Any], usage: list[dict[str, Any]], model_used: str) -> JobRecord:
    input_tokens, output_tokens = sum_tokens(usage)
    estimated_cost = calculate_total_cost(usage, self._settings.llm_pricing)
    record = await tracker.complete(step=step, result=result, input_tokens=input_tokens, output_tokens=output_tokens, model_used=model_used, estimated_cost=estimated_cost)
    self._logger.info("Job %s completed: tokens_in=%d tokens_out=%d model=%s cost=%.6f", job.job_id, input_tokens, output_tokens, model_used, estimated_cost)
    return record
