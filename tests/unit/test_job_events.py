from __future__ import annotations

import pytest

from app.jobs.events import JobChangeEvent, JobEventBus
from tests.conftest import InMemoryJobsRepository, make_job


def _event(job_id: str = "job-1", status: str = "generating", progress: int = 40) -> JobChangeEvent:
  return JobChangeEvent.from_record(make_job(job_id=job_id, status=status, progress=progress))


@pytest.mark.anyio
async def test_subscribers_receive_only_their_job() -> None:
  bus = JobEventBus()
  subscription = bus.subscribe("job-1")

  bus.publish(_event(job_id="job-2"))
  bus.publish(_event(progress=40))
  bus.publish(_event(status="completed", progress=100))

  received = [await anext(subscription), await anext(subscription)]
  assert [(event.status, event.progress) for event in received] == [("generating", 40), ("completed", 100)]
  subscription.close()


@pytest.mark.anyio
async def test_closing_a_subscription_ends_iteration_and_unregisters() -> None:
  bus = JobEventBus()
  async with bus.subscribe("job-1") as subscription:
    assert bus.subscriber_count("job-1") == 1
  assert bus.subscriber_count("job-1") == 0

  with pytest.raises(StopAsyncIteration):
    await anext(subscription)


@pytest.mark.anyio
async def test_every_repository_write_reaches_the_bus() -> None:
  bus = JobEventBus()
  repo = InMemoryJobsRepository(bus=bus)
  subscription = bus.subscribe("job-1")

  await repo.create_job(make_job())
  await repo.update_job("job-1", status="connecting", progress=5)

  first, second = await anext(subscription), await anext(subscription)
  assert (first.status, second.status) == ("queued", "connecting")
  subscription.close()


def test_event_round_trips_through_its_wire_form() -> None:
  event = JobChangeEvent.from_record(make_job(status="completed", progress=100, result={"name": "x"}, input_tokens=3, output_tokens=4))
  restored = JobChangeEvent.from_dict(event.as_dict())

  assert restored == event
  assert restored.tokens_used == 7
  assert restored.is_terminal
