"""Client-side workflow state driven by job change events."""

from __future__ import annotations

import json
import logging
from collections.abc import AsyncIterable, Callable
from dataclasses import dataclass
from typing import Any, Literal

import httpx

from app.jobs.events import JobChangeEvent, JobEventBus

logger = logging.getLogger(__name__)

WorkflowPhase = Literal["input", "structure_generating", "structure_review", "content_generating", "complete"]

_KIND_FOR_PHASE: dict[str, str] = {"structure_generating": "structure", "content_generating": "content"}
_ADVANCE: dict[str, WorkflowPhase] = {"structure_generating": "structure_review", "content_generating": "complete"}
_REVERT: dict[str, WorkflowPhase] = {"structure_generating": "input", "content_generating": "structure_review"}
_DEFAULT_FAILURE = "Curriculum generation failed."


class WorkflowStateError(RuntimeError):
  """Raised when a workflow transition is requested from the wrong phase."""


@dataclass
class GenerationWorkflow:
  """Two-step generation workflow: structure, review, then content."""

  phase: WorkflowPhase = "input"
  structure: dict[str, Any] | None = None
  content: dict[str, Any] | None = None
  error: str | None = None
  active_job_id: str | None = None

  def start_structure(self, job_id: str) -> None:
    if self.phase not in ("input", "structure_review"):
      raise WorkflowStateError(f"Cannot generate a structure from phase {self.phase}.")
    self.phase = "structure_generating"
    self.active_job_id = job_id
    self.error = None

  def start_content(self, job_id: str) -> None:
    if self.phase != "structure_review" or not self.structure:
      raise WorkflowStateError("Content generation requires a reviewed structure.")
    self.phase = "content_generating"
    self.active_job_id = job_id
    self.error = None

  @property
  def expected_kind(self) -> str | None:
    return _KIND_FOR_PHASE.get(self.phase)


class JobObserver:
  """Apply one job's change events to a workflow until the job is terminal."""

  def __init__(self, workflow: GenerationWorkflow, job_id: str, *, on_change: Callable[[JobChangeEvent], None] | None = None) -> None:
    self.workflow = workflow
    self.job_id = job_id
    self.last_event: JobChangeEvent | None = None
    self._on_change = on_change
    self._finished = False

  @property
  def finished(self) -> bool:
    return self._finished

  def close(self) -> None:
    """Stop observing; later events are ignored."""
    self._finished = True

  def apply(self, event: JobChangeEvent) -> bool:
    """Apply an event and return True once observation should stop."""
    if event.job_id != self.job_id:
      return self._finished
    if self._finished:
      return True

    self.last_event = event
    if self._on_change is not None:
      self._on_change(event)

    if event.status == "completed":
      self._finished = True
      phase = self.workflow.phase
      if self.workflow.expected_kind != event.kind:
        logger.warning("Ignoring %s result for job %s while workflow is in %s", event.kind, event.job_id, phase)
        return True
      if event.kind == "structure":
        self.workflow.structure = event.result
      else:
        self.workflow.content = event.result
      self.workflow.phase = _ADVANCE[phase]
      self.workflow.active_job_id = None
    elif event.status == "failed":
      self._finished = True
      phase = self.workflow.phase
      self.workflow.error = event.error_message or _DEFAULT_FAILURE
      if phase in _REVERT:
        self.workflow.phase = _REVERT[phase]
      self.workflow.active_job_id = None
    return self._finished

  async def follow(self, events: AsyncIterable[JobChangeEvent]) -> GenerationWorkflow:
    """Consume events until the job is terminal or the observer is closed."""
    async for event in events:
      if self.apply(event):
        break
    return self.workflow


async def observe_local(bus: JobEventBus, observer: JobObserver) -> GenerationWorkflow:
  """Follow a job through the in-process event bus."""
  async with bus.subscribe(observer.job_id) as subscription:
    return await observer.follow(subscription)


async def watch_job_events(client: httpx.AsyncClient, url: str, observer: JobObserver, *, headers: dict[str, str] | None = None) -> GenerationWorkflow:
  """Follow a job through the server-sent event stream at `url`."""
  async with client.stream("GET", url, headers=headers) as response:
    response.raise_for_status()
    async for line in response.aiter_lines():
      if not line.startswith("data:"):
        continue
      payload = json.loads(line[len("data:") :].strip())
      if observer.apply(JobChangeEvent.from_dict(payload)):
        break
  return observer.workflow
