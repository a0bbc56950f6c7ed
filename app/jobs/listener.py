"""Bridge Postgres NOTIFY traffic into the in-process job event bus."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Awaitable, Callable
from typing import Any

import asyncpg

from app.jobs.events import JobChangeEvent, JobEventBus
from app.storage.jobs_repo import JobsRepository
from app.storage.postgres_jobs_repo import CHANGE_CHANNEL

logger = logging.getLogger(__name__)

Connect = Callable[[str], Awaitable[Any]]


class PostgresChangeListener:
  """LISTEN for job changes and republish fresh snapshots to local subscribers.

  A supervisor task owns the LISTEN connection and reconnects with exponential
  backoff when it cannot connect or the connection drops. After every successful
  (re)connect, each watched job gets a fresh snapshot so changes missed while
  disconnected still reach observers.
  """

  def __init__(
    self,
    *,
    dsn: str,
    bus: JobEventBus,
    repo_factory: Callable[[], JobsRepository],
    channel: str = CHANGE_CHANNEL,
    reconnect_base_delay_seconds: float = 1.0,
    reconnect_max_delay_seconds: float = 30.0,
    connect: Connect = asyncpg.connect,
  ) -> None:
    self._dsn = dsn
    self._bus = bus
    self._repo_factory = repo_factory
    self._channel = channel
    self._base_delay = reconnect_base_delay_seconds
    self._max_delay = reconnect_max_delay_seconds
    self._connect = connect
    self._connection: Any | None = None
    self._pending: asyncio.Queue[str | None] = asyncio.Queue()
    self._worker: asyncio.Task[None] | None = None
    self._supervisor: asyncio.Task[None] | None = None
    self.connected = asyncio.Event()

  async def start(self) -> None:
    """Start draining and connecting; connection failures are retried in the background."""
    if self._supervisor is not None:
      return
    # A single worker keeps snapshots for the same job in notification order.
    self._worker = asyncio.create_task(self._drain(), name="curriculum-job-listener")
    self._supervisor = asyncio.create_task(self._supervise(), name="curriculum-job-listener-connection")

  async def stop(self) -> None:
    if self._supervisor is not None:
      self._supervisor.cancel()
      with contextlib.suppress(asyncio.CancelledError):
        await self._supervisor
      self._supervisor = None
    await self._close_connection()
    if self._worker is not None:
      await self._pending.put(None)
      await self._worker
      self._worker = None
    logger.info("Stopped job change listener.")

  def backoff_delay(self, attempt: int) -> float:
    return min(self._max_delay, self._base_delay * (2 ** (attempt - 1)))

  async def _supervise(self) -> None:
    attempt = 0
    while True:
      lost = asyncio.Event()
      connection = None
      try:
        connection = await self._connect(self._dsn)
        connection.add_termination_listener(lambda _connection: lost.set())
        await connection.add_listener(self._channel, self._on_notify)
      except (OSError, asyncpg.PostgresError, asyncpg.InterfaceError) as exc:
        if connection is not None:
          await self._discard(connection)
        attempt += 1
        delay = self.backoff_delay(attempt)
        logger.warning("Job change listener connection failed (attempt %d): %s; retrying in %.1fs", attempt, exc, delay)
        await asyncio.sleep(delay)
        continue

      self._connection = connection
      self.connected.set()
      logger.info("Listening for job changes on channel %s", self._channel)
      attempt = 0
      self._resync()

      await lost.wait()
      self.connected.clear()
      self._connection = None
      logger.warning("Job change listener connection lost; reconnecting.")
      await self._discard(connection)

  async def _discard(self, connection: Any) -> None:
    try:
      await connection.close()
    except Exception:  # noqa: BLE001
      logger.debug("Closing a dead listener connection failed", exc_info=True)

  def _resync(self) -> None:
    """Queue a fresh snapshot for every job that has local subscribers."""
    for job_id in self._bus.watched_job_ids():
      self._pending.put_nowait(job_id)

  async def _close_connection(self) -> None:
    connection, self._connection = self._connection, None
    self.connected.clear()
    if connection is None:
      return
    try:
      await connection.remove_listener(self._channel, self._on_notify)
    finally:
      await connection.close()

  def _on_notify(self, connection: object, pid: int, channel: str, payload: str) -> None:
    self._pending.put_nowait(payload)

  async def _drain(self) -> None:
    repo = self._repo_factory()
    while True:
      job_id = await self._pending.get()
      if job_id is None:
        return
      # Skip the fetch when nobody on this instance is watching the job.
      if self._bus.subscriber_count(job_id) == 0:
        continue
      try:
        record = await repo.get_job(job_id)
      except Exception:  # noqa: BLE001
        logger.warning("Failed to load job %s for change notification", job_id, exc_info=True)
        continue
      if record is not None:
        self._bus.publish(JobChangeEvent.from_record(record))
