"""Microsoft Teams delivery through an incoming-webhook Adaptive Card."""

from __future__ import annotations

import logging
from typing import Any

import httpx

from app.notifications.contracts import ChannelResult, EscalationPayload

logger = logging.getLogger(__name__)

ADAPTIVE_CARD_CONTENT_TYPE = "application/vnd.microsoft.card.adaptive"


def build_escalation_card(payload: EscalationPayload, *, trigger_label: str, dashboard_url: str | None = None) -> dict[str, Any]:
  """Render an escalation as an Adaptive Card."""
  facts = [
    {"title": "User", "value": f"{payload.actor_name or payload.actor_id} ({payload.actor_email or '-'})"},
    {"title": "Trigger", "value": trigger_label},
    {"title": "Session", "value": payload.session_id},
  ]
  if payload.keywords:
    facts.append({"title": "Matched keywords", "value": ", ".join(payload.keywords)})

  card: dict[str, Any] = {
    "type": "AdaptiveCard",
    "$schema": "http://adaptivecards.io/schemas/adaptive-card.json",
    "version": "1.4",
    "body": [
      {"type": "TextBlock", "text": "Escalation", "size": "Large", "weight": "Bolder", "color": "attention", "wrap": True},
      {"type": "TextBlock", "text": f"Trigger: {trigger_label}", "size": "Small", "color": "accent", "wrap": True},
      {"type": "TextBlock", "text": payload.message, "wrap": True},
      {"type": "FactSet", "facts": facts},
    ],
  }
  if dashboard_url:
    card["actions"] = [{"type": "Action.OpenUrl", "title": "Open dashboard", "url": dashboard_url}]
  return card


class TeamsWebhookSender:
  """Posts Adaptive Cards to a Teams workflow webhook."""

  def __init__(self, *, webhook_url: str, timeout_seconds: float = 10.0, client: httpx.AsyncClient | None = None) -> None:
    self._webhook_url = webhook_url
    self._timeout_seconds = timeout_seconds
    self._client = client

  async def _post(self, client: httpx.AsyncClient, body: dict[str, Any]) -> httpx.Response:
    return await client.post(self._webhook_url, json=body, timeout=self._timeout_seconds)

  async def send_card(self, card: dict[str, Any]) -> ChannelResult:
    """Deliver one card and report the outcome without raising."""
    body = {"type": "message", "attachments": [{"contentType": ADAPTIVE_CARD_CONTENT_TYPE, "contentUrl": None, "content": card}]}
    try:
      if self._client is not None:
        response = await self._post(self._client, body)
      else:
        async with httpx.AsyncClient(trust_env=False) as client:
          response = await self._post(client, body)
    except httpx.HTTPError as exc:
      logger.error("Teams webhook request failed: %s", exc)
      return ChannelResult(success=False, error=str(exc) or type(exc).__name__)

    if response.is_success:
      return ChannelResult(success=True)
    logger.error("Teams webhook returned %s: %s", response.status_code, response.text)
    return ChannelResult(success=False, error=f"HTTP {response.status_code}: {response.text[:200]}")
