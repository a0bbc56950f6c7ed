from __future__ import annotations

import asyncio
import logging
from urllib.parse import urlparse

import httpx

from app.config import Settings
from app.services.tasks.interface import PROCESS_JOB_PATH, TASK_SECRET_HEADER, TaskEnqueuer

logger = logging.getLogger(__name__)

_DISPATCH_TIMEOUT_SECONDS = 30.0

# Strong references keep in-process job runs alive until they finish.
_PENDING_JOBS: set[asyncio.Task[object]] = set()


class LocalHttpEnqueuer(TaskEnqueuer):
  """Dispatches jobs via HTTP to the internal task endpoint."""

  def __init__(self, settings: Settings) -> None:
    self.settings = settings

  def _is_in_process(self, base_url: str) -> bool:
    """Decide if the job should run in this process instead of over HTTP."""
    parsed = urlparse(base_url)
    hostname = (parsed.hostname or "").lower()
    return hostname in {"localhost", "127.0.0.1", "::1", "0.0.0.0"}

  def _task_headers(self) -> dict[str, str]:
    """Build task authentication headers for internal endpoints."""
    if not self.settings.task_secret:
      raise RuntimeError("Task secret not configured.")
    return {TASK_SECRET_HEADER: self.settings.task_secret}

  def _spawn_in_process(self, job_id: str) -> asyncio.Task[object]:
    """Run the executor as a detached task so dispatch returns before the work."""
    from app.services.jobs import process_job_sync

    task = asyncio.create_task(process_job_sync(job_id, self.settings), name=f"curriculum-job-{job_id}")
    _PENDING_JOBS.add(task)
    task.add_done_callback(_PENDING_JOBS.discard)
    return task

  async def enqueue(self, job_id: str) -> None:
    """Dispatch a job; returns once the job is accepted, not once it has run."""
    if not self.settings.base_url:
      raise RuntimeError("Base URL not configured, strictly required for LocalHttpEnqueuer.")

    if self._is_in_process(self.settings.base_url):
      logger.info("Dispatching job %s in-process", job_id)
      self._spawn_in_process(job_id)
      return

    url = f"{self.settings.base_url.rstrip('/')}{PROCESS_JOB_PATH}"
    try:
      # Never trust environment proxy variables for internal task dispatch.
      async with httpx.AsyncClient(trust_env=False) as client:
        logger.info("Dispatching job %s to %s", job_id, url)
        response = await client.post(url, json={"job_id": job_id}, headers=self._task_headers(), timeout=_DISPATCH_TIMEOUT_SECONDS)
        response.raise_for_status()
    except httpx.HTTPStatusError as exc:
      logger.error("Local task dispatch returned %s for job %s: %s", exc.response.status_code, job_id, exc.response.text)
      raise
    except httpx.RequestError as exc:
      logger.error("Failed to dispatch local task for job %s: %s", job_id, exc)
      raise
