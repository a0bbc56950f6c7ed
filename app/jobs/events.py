"""Change events published on every curriculum job mutation."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from functools import lru_cache
from typing import Any

from app.jobs.models import TERMINAL_STATUSES, JobRecord

logger = logging.getLogger(__name__)

_MAX_QUEUED_EVENTS = 100


def _iso(value: datetime | None) -> str | None:
  return value.isoformat() if value else None


def _parse_iso(value: Any) -> datetime | None:
  if not value:
    return None
  return datetime.fromisoformat(str(value))


@dataclass(frozen=True)
class JobChangeEvent:
  """Snapshot of a job row after one mutation."""

  job_id: str
  kind: str
  status: str
  progress: int
  step: str | None
  result: dict[str, Any] | None
  error_message: str | None
  tokens_used: int
  model_used: str | None
  started_at: datetime | None
  completed_at: datetime | None

  @classmethod
  def from_record(cls, record: JobRecord) -> JobChangeEvent:
    return cls(
      job_id=record.job_id,
      kind=record.kind,
      status=record.status,
      progress=record.progress,
      step=record.step,
      result=record.result,
      error_message=record.error_message,
      tokens_used=record.tokens_used,
      model_used=record.model_used,
      started_at=record.started_at,
      completed_at=record.completed_at,
    )

  @classmethod
  def from_dict(cls, payload: dict[str, Any]) -> JobChangeEvent:
    """Rebuild an event from its wire representation."""
    return cls(
      job_id=str(payload["job_id"]),
      kind=str(payload.get("kind") or ""),
      status=str(payload["status"]),
      progress=int(payload.get("progress") or 0),
      step=payload.get("step"),
      result=payload.get("result"),
      error_message=payload.get("error_message"),
      tokens_used=int(payload.get("tokens_used") or 0),
      model_used=payload.get("model_used"),
      started_at=_parse_iso(payload.get("started_at")),
      completed_at=_parse_iso(payload.get("completed_at")),
    )

  @property
  def is_terminal(self) -> bool:
    return self.status in TERMINAL_STATUSES

  def as_dict(self) -> dict[str, Any]:
    """Serialize the event for streaming."""
    return {
      "job_id": self.job_id,
      "kind": self.kind,
      "status": self.status,
      "progress": self.progress,
      "step": self.step,
      "result": self.result,
      "error_message": self.error_message,
      "tokens_used": self.tokens_used,
      "model_used": self.model_used,
      "started_at": _iso(self.started_at),
      "completed_at": _iso(self.completed_at),
    }


class JobSubscription:
  """Async iterator over one job's change events."""

  def __init__(self, bus: JobEventBus, job_id: str) -> None:
    self._bus = bus
    self.job_id = job_id
    self._queue: asyncio.Queue[JobChangeEvent | None] = asyncio.Queue(maxsize=_MAX_QUEUED_EVENTS)
    self._closed = False

  def _offer(self, event: JobChangeEvent | None) -> None:
    if self._queue.full():
      # Slow consumers lose the oldest snapshot; later snapshots supersede it.
      self._queue.get_nowait()
    self._queue.put_nowait(event)

  def close(self) -> None:
    """Unsubscribe and wake any pending reader."""
    if self._closed:
      return
    self._closed = True
    self._bus._remove(self)
    self._offer(None)

  @property
  def closed(self) -> bool:
    return self._closed

  def __aiter__(self) -> JobSubscription:
    return self

  async def __anext__(self) -> JobChangeEvent:
    event = await self._queue.get()
    if event is None:
      raise StopAsyncIteration
    return event

  async def __aenter__(self) -> JobSubscription:
    return self

  async def __aexit__(self, *exc_info: object) -> None:
    self.close()


class JobEventBus:
  """In-process fan-out of job change events keyed by job id."""

  def __init__(self) -> None:
    self._subscriptions: dict[str, set[JobSubscription]] = {}

  def subscribe(self, job_id: str) -> JobSubscription:
    subscription = JobSubscription(self, job_id)
    self._subscriptions.setdefault(job_id, set()).add(subscription)
    return subscription

  def _remove(self, subscription: JobSubscription) -> None:
    watchers = self._subscriptions.get(subscription.job_id)
    if not watchers:
      return
    watchers.discard(subscription)
    if not watchers:
      self._subscriptions.pop(subscription.job_id, None)

  def subscriber_count(self, job_id: str) -> int:
    return len(self._subscriptions.get(job_id, ()))

  def watched_job_ids(self) -> list[str]:
    """Job ids that currently have at least one subscriber."""
    return list(self._subscriptions)

  def publish(self, event: JobChangeEvent) -> None:
    """Deliver an event to every subscriber of its job."""
    watchers = list(self._subscriptions.get(event.job_id, ()))
    for subscription in watchers:
      subscription._offer(event)
    if watchers:
      logger.debug("Published job event job_id=%s status=%s progress=%s subscribers=%d", event.job_id, event.status, event.progress, len(watchers))


@lru_cache(maxsize=1)
def get_event_bus() -> JobEventBus:
  """Return the process-wide event bus."""
  return JobEventBus()
