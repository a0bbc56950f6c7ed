"""Fan an escalation out to the configured staff channels."""

from __future__ import annotations

import html
import logging
from collections.abc import Iterable

from starlette.concurrency import run_in_threadpool

from app.notifications.contracts import ChannelResult, EmailNotification, EmailSender, EscalationPayload, NotificationProviderError
from app.notifications.escalation_triggers import trigger_label
from app.notifications.teams_sender import TeamsWebhookSender, build_escalation_card

logger = logging.getLogger(__name__)


def render_escalation_email(payload: EscalationPayload, *, dashboard_url: str | None = None) -> tuple[str, str, str]:
  """Return (subject, text, html) for an escalation email."""
  label = trigger_label(payload.trigger)
  who = payload.actor_name or payload.actor_id
  subject = f"[Escalation] {label} - {who}"
  keywords = ", ".join(payload.keywords or []) or "-"
  rows = [
    ("User", f"{who} ({payload.actor_email or '-'})"),
    ("Trigger", label),
    ("Matched keywords", keywords),
    ("Message", payload.message),
    ("Session ID", payload.session_id),
  ]
  text_body = "\n".join(f"{name}: {value}" for name, value in rows)
  cells = "".join(f'<tr><td style="padding: 8px; border: 1px solid #ddd; background: #f5f5f5;"><strong>{html.escape(name)}</strong></td><td style="padding: 8px; border: 1px solid #ddd;">{html.escape(value)}</td></tr>' for name, value in rows)
  html_body = f'<h2>Escalation</h2><table style="border-collapse: collapse; width: 100%; max-width: 600px;">{cells}</table>'
  if dashboard_url:
    text_body += f"\n\nReview: {dashboard_url}"
    html_body += f'<p style="margin-top: 20px;"><a href="{html.escape(dashboard_url, quote=True)}">Review in the dashboard</a></p>'
  return subject, text_body, html_body


class EscalationNotifier:
  """Deliver one escalation per channel; a failing channel never blocks the others."""

  def __init__(self, *, channels: Iterable[str], email_sender: EmailSender, email_recipients: Iterable[str], teams_sender: TeamsWebhookSender | None, dashboard_url: str | None = None) -> None:
    self._channels = tuple(channels)
    self._email_sender = email_sender
    self._email_recipients = tuple(email_recipients)
    self._teams_sender = teams_sender
    self._dashboard_url = dashboard_url

  async def _send_email(self, payload: EscalationPayload) -> ChannelResult:
    subject, text_body, html_body = render_escalation_email(payload, dashboard_url=self._dashboard_url)
    notification = EmailNotification(to_addresses=self._email_recipients, subject=subject, text=text_body, html=html_body)
    try:
      result = await run_in_threadpool(self._email_sender.send, notification)
    except NotificationProviderError as exc:
      logger.error("Escalation email delivery failed (provider error): %s", exc)
      return ChannelResult(success=False, error=str(exc))
    except Exception as exc:  # noqa: BLE001
      logger.error("Escalation email delivery failed: %s", exc, exc_info=True)
      return ChannelResult(success=False, error=str(exc))
    return ChannelResult(success=True, details={key: value for key, value in result.items() if value})

  async def _send_teams(self, payload: EscalationPayload) -> ChannelResult:
    if self._teams_sender is None:
      return ChannelResult(success=False, error="Teams webhook URL not configured.")
    card = build_escalation_card(payload, trigger_label=trigger_label(payload.trigger), dashboard_url=self._dashboard_url)
    return await self._teams_sender.send_card(card)

  async def notify(self, payload: EscalationPayload) -> dict[str, ChannelResult]:
    """Deliver to every configured channel and return per-channel results."""
    results: dict[str, ChannelResult] = {}
    if "email" in self._channels and self._email_recipients:
      results["email"] = await self._send_email(payload)
    if "teams" in self._channels:
      results["teams"] = await self._send_teams(payload)
    logger.info("Escalation for session %s notified: %s", payload.session_id, {name: result.success for name, result in results.items()})
    return results
