"""Factory helpers for escalation delivery."""

from __future__ import annotations

from app.config import Settings
from app.notifications.contracts import EmailSender
from app.notifications.email_sender import MailerSendConfig, MailerSendEmailSender, NullEmailSender
from app.notifications.escalation import EscalationRelay
from app.notifications.escalation_service import EscalationNotifier
from app.notifications.teams_sender import TeamsWebhookSender


def build_escalation_notifier(settings: Settings) -> EscalationNotifier:
  """Construct the receiving-side notifier from configuration."""
  # Email is sent only when MailerSend is fully configured.
  if settings.mailersend_api_key and settings.email_from_address:
    config = MailerSendConfig(api_key=settings.mailersend_api_key, from_address=settings.email_from_address, from_name=settings.email_from_name, timeout_seconds=settings.mailersend_timeout_seconds, base_url=settings.mailersend_base_url)
    email_sender: EmailSender = MailerSendEmailSender(config=config)
  else:
    email_sender = NullEmailSender()

  teams_sender = TeamsWebhookSender(webhook_url=settings.teams_webhook_url, timeout_seconds=settings.escalation_timeout_seconds) if settings.teams_webhook_url else None
  return EscalationNotifier(channels=settings.escalation_channels, email_sender=email_sender, email_recipients=settings.escalation_email_recipients, teams_sender=teams_sender, dashboard_url=settings.dashboard_url)


def build_escalation_relay(settings: Settings) -> EscalationRelay:
  """Construct the sending-side relay; the default target is this service's notify endpoint.

  Without a notify URL or base URL the relay is still built and drops escalations with an error log.
  """
  notify_url = settings.escalation_notify_url
  if not notify_url and settings.base_url:
    notify_url = f"{settings.base_url.rstrip('/')}/internal/escalations/notify"
  return EscalationRelay(
    notify_url=notify_url,
    secret=settings.task_secret,
    max_attempts=settings.escalation_max_attempts,
    base_delay_seconds=settings.escalation_base_delay_seconds,
    timeout_seconds=settings.escalation_timeout_seconds,
  )
