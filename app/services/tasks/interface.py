from __future__ import annotations

from typing import Protocol

TASK_SECRET_HEADER = "x-internal-secret"
PROCESS_JOB_PATH = "/internal/tasks/process-curriculum-job"


class TaskEnqueuer(Protocol):
  """Interface for dispatching curriculum jobs to the background executor."""

  async def enqueue(self, job_id: str) -> None:
    """Dispatch a job for processing, raising when the dispatch is not accepted."""
    ...
