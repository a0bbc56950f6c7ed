"""Dependency-injected job processor dispatch helpers."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol

from app.jobs.models import JobKind, JobRecord


class JobProcessorHandler(Protocol):
  """Processor contract for one job kind."""

  async def process(self, job: JobRecord) -> JobRecord | None:
    """Process one claimed job record."""


@dataclass(frozen=True)
class JobProcessResult:
  """Result wrapper returned by the central dispatch function."""

  record: JobRecord | None


class JobProcessorRegistry:
  """Registry mapping job kinds to processor handlers."""

  def __init__(self, handlers: dict[str, JobProcessorHandler]) -> None:
    self._handlers = handlers

  def resolve(self, kind: JobKind | str) -> JobProcessorHandler:
    """Resolve the processor for a job kind."""
    handler = self._handlers.get(kind)
    if handler is None:
      raise ValueError(f"Unsupported job kind: {kind}")
    return handler


async def process_job(job: JobRecord, registry: JobProcessorRegistry) -> JobProcessResult:
  """Dispatch a claimed job to the handler registered for its kind."""
  handler = registry.resolve(job.kind)
  record = await handler.process(job)
  return JobProcessResult(record=record)
