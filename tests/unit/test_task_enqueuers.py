from __future__ import annotations

import asyncio
import json
from dataclasses import replace
from unittest.mock import AsyncMock, MagicMock, Mock, patch

import pytest

from app.services.tasks.factory import get_task_enqueuer
from app.services.tasks.gcp import CloudTasksEnqueuer
from app.services.tasks.interface import PROCESS_JOB_PATH, TASK_SECRET_HEADER
from app.services.tasks.local import _PENDING_JOBS, LocalHttpEnqueuer
from tests.conftest import ScriptedModel, make_job


@pytest.mark.anyio
async def test_local_task_dispatch(settings) -> None:
  """Verify that the local enqueuer posts to the internal task endpoint."""
  settings = replace(settings, base_url="http://worker.internal:8080", task_service_provider="local-http")

  with patch("app.services.tasks.local.httpx.AsyncClient") as mock_client_cls:
    mock_client = AsyncMock()
    mock_client_cls.return_value.__aenter__.return_value = mock_client
    mock_response = Mock()
    mock_response.raise_for_status = Mock()
    mock_client.post.return_value = mock_response

    enqueuer = get_task_enqueuer(settings)
    assert isinstance(enqueuer, LocalHttpEnqueuer)
    await enqueuer.enqueue("job-123")

  args, kwargs = mock_client.post.call_args
  assert args[0] == f"http://worker.internal:8080{PROCESS_JOB_PATH}"
  assert kwargs["json"] == {"job_id": "job-123"}
  assert kwargs["headers"] == {TASK_SECRET_HEADER: "test-task-secret"}


@pytest.mark.anyio
async def test_local_dispatch_requires_a_base_url(settings) -> None:
  with pytest.raises(RuntimeError):
    await LocalHttpEnqueuer(replace(settings, base_url=None)).enqueue("job-1")


@pytest.mark.anyio
async def test_cloud_tasks_dispatch_builds_authenticated_task(settings) -> None:
  settings = replace(
    settings,
    task_service_provider="gcp",
    base_url="https://curriculum.example.run.app",
    cloud_tasks_queue_path="projects/p/locations/l/queues/q",
    cloud_run_invoker_service_account="invoker@p.iam.gserviceaccount.com",
  )
  client = MagicMock()
  client.create_task.return_value = Mock()

  with patch("app.services.tasks.gcp.tasks_v2.CloudTasksClient", return_value=client):
    enqueuer = get_task_enqueuer(settings)
    assert isinstance(enqueuer, CloudTasksEnqueuer)
    await enqueuer.enqueue("job-7")

  request = client.create_task.call_args.kwargs["request"]
  assert request["parent"] == "projects/p/locations/l/queues/q"
  http_request = request["task"]["http_request"]
  assert http_request["url"] == f"https://curriculum.example.run.app{PROCESS_JOB_PATH}"
  assert http_request["headers"][TASK_SECRET_HEADER] == "test-task-secret"
  assert http_request["body"] == b'{"job_id": "job-7"}'
  assert http_request["oidc_token"] == {"service_account_email": "invoker@p.iam.gserviceaccount.com"}


@pytest.mark.anyio
async def test_cloud_tasks_dispatch_requires_a_queue(settings) -> None:
  with patch("app.services.tasks.gcp.tasks_v2.CloudTasksClient"):
    enqueuer = CloudTasksEnqueuer(replace(settings, cloud_tasks_queue_path=None))
  with pytest.raises(RuntimeError):
    await enqueuer.enqueue("job-1")


@pytest.mark.anyio
async def test_in_process_dispatch_returns_while_the_job_is_still_active(settings, jobs_repo, monkeypatch) -> None:
  """Localhost dispatch acknowledges immediately and the executor finishes on its own task."""
  settings = replace(settings, base_url="http://localhost:8000")
  await jobs_repo.create_job(make_job(job_id="job-x"))
  release = asyncio.Event()
  model = ScriptedModel([json.dumps({"name": "Ticket Triage", "chapters": [{"title": "Intake"}]})], on_call=lambda _n: release.wait())
  monkeypatch.setattr("app.services.jobs._get_jobs_repo", lambda _settings: jobs_repo)
  monkeypatch.setattr("app.jobs.worker.get_model_for_mode", lambda provider, name, settings=None: model)

  with patch("app.services.tasks.local.httpx.AsyncClient") as mock_client_cls:
    await asyncio.wait_for(LocalHttpEnqueuer(settings).enqueue("job-x"), timeout=1.0)
  mock_client_cls.assert_not_called()

  pending = [task for task in _PENDING_JOBS if task.get_name() == "curriculum-job-job-x"]
  assert len(pending) == 1
  # Let the executor claim the job and block inside the model call.
  while not model.prompts:
    await asyncio.sleep(0)
  assert (await jobs_repo.get_job("job-x")).status == "generating"

  release.set()
  await asyncio.gather(*pending)
  assert (await jobs_repo.get_job("job-x")).status == "completed"
  assert not any(task.get_name() == "curriculum-job-job-x" for task in _PENDING_JOBS)
