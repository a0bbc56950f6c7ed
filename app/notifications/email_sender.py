"""Email delivery implementations.

MailerSend is used via its HTTP API (not SMTP) so credentials are never shared with clients.
The implementation uses the standard library to avoid additional runtime dependencies.
"""

from __future__ import annotations

import json
import logging
import urllib.error
import urllib.request
from dataclasses import dataclass

from app.notifications.contracts import EmailNotification, EmailSender, NotificationProviderError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MailerSendConfig:
  """MailerSend configuration needed to send emails."""

  api_key: str
  from_address: str
  from_name: str | None
  timeout_seconds: int
  base_url: str = "https://api.mailersend.com/v1"


class MailerSendEmailSender(EmailSender):
  """MailerSend-backed email sender using the provider API."""

  def __init__(self, *, config: MailerSendConfig) -> None:
    self._config = config

  def _build_payload(self, notification: EmailNotification) -> dict[str, object]:
    from_payload: dict[str, str] = {"email": self._config.from_address}
    if self._config.from_name:
      from_payload["name"] = self._config.from_name
    recipients = [{"email": address} for address in notification.to_addresses]
    return {"from": from_payload, "to": recipients, "subject": notification.subject, "text": notification.text, "html": notification.html}

  def send(self, notification: EmailNotification) -> dict[str, str | None]:
    """Send an email using the MailerSend API and return provider identifiers."""
    if not notification.to_addresses:
      raise NotificationProviderError("No email recipients configured.")

    request = urllib.request.Request(
      url=f"{self._config.base_url}/email",
      data=json.dumps(self._build_payload(notification)).encode("utf-8"),
      method="POST",
      headers={"Authorization": f"Bearer {self._config.api_key}", "Content-Type": "application/json", "Accept": "application/json"},
    )

    try:
      with urllib.request.urlopen(request, timeout=self._config.timeout_seconds) as response:
        headers = dict(response.headers.items())
        return {"provider": "mailersend", "message_id": headers.get("X-Message-Id") or headers.get("X-Message-ID"), "request_id": headers.get("X-Request-Id") or headers.get("X-Request-ID")}

    except urllib.error.HTTPError as exc:
      raw_error = exc.read().decode("utf-8") if exc.fp else ""
      logger.error("MailerSend email request failed status=%s body=%s", exc.code, raw_error)
      raise NotificationProviderError(f"MailerSend returned HTTP {exc.code}") from exc

    except urllib.error.URLError as exc:
      logger.error("MailerSend email request failed: %s", exc)
      raise NotificationProviderError(f"MailerSend unreachable: {exc.reason}") from exc


class NullEmailSender(EmailSender):
  """No-op email sender used when email delivery is not configured."""

  def send(self, notification: EmailNotification) -> dict[str, str | None]:
    """Drop the notification while recording a debug log."""
    logger.debug("Email delivery not configured; dropping email to=%s subject=%s", ",".join(notification.to_addresses), notification.subject)
    return {"provider": None, "message_id": None, "request_id": None}
