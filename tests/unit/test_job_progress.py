from __future__ import annotations

import pytest

from app.jobs.progress import JobCanceledError, JobProgressTracker, chapter_progress
from tests.conftest import InMemoryJobsRepository, make_job


def test_chapter_progress_spans_ten_to_ninety() -> None:
  assert chapter_progress(0, 4) == 10
  assert chapter_progress(1, 4) == 30
  assert chapter_progress(2, 4) == 50
  assert chapter_progress(3, 4) == 70
  assert chapter_progress(4, 4) == 90


def test_chapter_progress_rounds_uneven_splits() -> None:
  assert chapter_progress(1, 3) == 37
  assert chapter_progress(2, 3) == 63


@pytest.mark.anyio
async def test_tracker_never_moves_progress_backwards() -> None:
  repo = InMemoryJobsRepository()
  await repo.create_job(make_job(status="connecting", progress=5))
  tracker = JobProgressTracker(job_id="job-1", jobs_repo=repo, initial_progress=5)

  await tracker.advance(status="generating", progress=50, step="halfway")
  record = await tracker.advance(status="generating", progress=20, step="late write")

  assert record.progress == 50
  assert record.step == "late write"


@pytest.mark.anyio
async def test_tracker_raises_when_job_was_cancelled() -> None:
  repo = InMemoryJobsRepository()
  await repo.create_job(make_job(status="failed", progress=0, step="Interrupted by user"))
  tracker = JobProgressTracker(job_id="job-1", jobs_repo=repo)

  with pytest.raises(JobCanceledError):
    await tracker.advance(status="generating", progress=40, step="should not land")
  with pytest.raises(JobCanceledError):
    await tracker.ensure_active()

  record = await repo.get_job("job-1")
  assert record is not None
  assert record.step == "Interrupted by user"
  assert record.progress == 0


@pytest.mark.anyio
async def test_tracker_complete_writes_terminal_snapshot() -> None:
  repo = InMemoryJobsRepository()
  await repo.create_job(make_job(status="parsing", progress=95))
  tracker = JobProgressTracker(job_id="job-1", jobs_repo=repo, initial_progress=95)

  record = await tracker.complete(step="done", result={"name": "Curriculum"}, input_tokens=10, output_tokens=5, model_used="m", estimated_cost=0.01)

  assert record.status == "completed"
  assert record.progress == 100
  assert record.tokens_used == 15
  assert record.completed_at is not None


@pytest.mark.anyio
async def test_missing_job_counts_as_cancelled() -> None:
  tracker = JobProgressTracker(job_id="gone", jobs_repo=InMemoryJobsRepository())
  assert await tracker.is_canceled() is True
