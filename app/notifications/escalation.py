"""Fire-and-forget relay that forwards escalations to the notify endpoint."""

from __future__ import annotations

import asyncio
import logging

import httpx
from fastapi import BackgroundTasks

from app.notifications.contracts import EscalationDeliveryError, EscalationPayload
from app.services.tasks.interface import TASK_SECRET_HEADER

logger = logging.getLogger(__name__)

# Strong references keep detached relay tasks alive until they finish.
_PENDING_RELAYS: set[asyncio.Task[bool]] = set()


class EscalationRelay:
  """Deliver an escalation with bounded retries and exponential backoff.

  2xx ends delivery. 4xx is terminal. 5xx and transport failures are retried
  after `base_delay_seconds * 2 ** (attempt - 1)`. Failures are logged and
  never raised.
  """

  def __init__(self, *, notify_url: str | None, secret: str | None, max_attempts: int = 3, base_delay_seconds: float = 1.0, timeout_seconds: float = 10.0, client: httpx.AsyncClient | None = None) -> None:
    self._notify_url = notify_url
    self._secret = secret
    self._max_attempts = max(1, max_attempts)
    self._base_delay_seconds = base_delay_seconds
    self._timeout_seconds = timeout_seconds
    self._client = client

  def backoff_delay(self, attempt: int) -> float:
    return self._base_delay_seconds * (2 ** (attempt - 1))

  def _headers(self) -> dict[str, str]:
    headers = {"Content-Type": "application/json"}
    if self._secret:
      headers[TASK_SECRET_HEADER] = self._secret
    return headers

  async def _attempt(self, client: httpx.AsyncClient, payload: EscalationPayload) -> None:
    try:
      response = await client.post(self._notify_url, json=payload.as_dict(), headers=self._headers(), timeout=self._timeout_seconds)
    except httpx.HTTPError as exc:
      raise EscalationDeliveryError(f"{type(exc).__name__}: {exc}") from exc

    if response.is_success:
      return
    retryable = response.status_code >= 500
    raise EscalationDeliveryError(f"HTTP {response.status_code}", status_code=response.status_code, retryable=retryable)

  async def _deliver(self, client: httpx.AsyncClient, payload: EscalationPayload) -> bool:
    for attempt in range(1, self._max_attempts + 1):
      try:
        await self._attempt(client, payload)
        logger.info("Escalation for session %s delivered (attempt %d)", payload.session_id, attempt)
        return True
      except EscalationDeliveryError as exc:
        if not exc.retryable:
          logger.error("Escalation for session %s rejected with %s; not retrying", payload.session_id, exc)
          return False
        logger.warning("Escalation attempt %d/%d for session %s failed: %s", attempt, self._max_attempts, payload.session_id, exc)

      if attempt < self._max_attempts:
        await asyncio.sleep(self.backoff_delay(attempt))

    logger.error("Escalation notification failed after %d attempts for session %s", self._max_attempts, payload.session_id)
    return False

  async def send(self, payload: EscalationPayload) -> bool:
    """Deliver the escalation; returns True on success and never raises."""
    if not self._notify_url:
      logger.error("Escalation relay has no notify URL; set CURRICULUM_ESCALATION_NOTIFY_URL or CURRICULUM_BASE_URL. Dropping escalation for session %s", payload.session_id)
      return False
    try:
      if self._client is not None:
        return await self._deliver(self._client, payload)
      async with httpx.AsyncClient(trust_env=False) as client:
        return await self._deliver(client, payload)
    except Exception:  # noqa: BLE001
      logger.error("Escalation relay crashed for session %s", payload.session_id, exc_info=True)
      return False


def fire_escalation(relay: EscalationRelay, payload: EscalationPayload, *, background_tasks: BackgroundTasks | None = None) -> None:
  """Schedule delivery without delaying the caller's response."""
  if background_tasks is not None:
    background_tasks.add_task(relay.send, payload)
    return
  task = asyncio.create_task(relay.send(payload), name=f"escalation-{payload.session_id}")
  _PENDING_RELAYS.add(task)
  task.add_done_callback(_PENDING_RELAYS.discard)
