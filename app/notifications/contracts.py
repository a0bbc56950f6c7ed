"""Contracts for escalation notification delivery."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Protocol


@dataclass(frozen=True)
class EmailNotification:
  """Represents an email notification payload."""

  to_addresses: tuple[str, ...]
  subject: str
  text: str
  html: str


@dataclass(frozen=True)
class EscalationPayload:
  """Escalation raised from a chat session and relayed to staff channels."""

  session_id: str
  actor_id: str
  trigger: str
  message: str
  actor_name: str | None = None
  actor_email: str | None = None
  keywords: list[str] | None = None
  company_id: str | None = None
  group_id: str | None = None

  def as_dict(self) -> dict[str, Any]:
    return asdict(self)


@dataclass
class ChannelResult:
  """Outcome of delivering one escalation over one channel."""

  success: bool
  error: str | None = None
  details: dict[str, Any] = field(default_factory=dict)


class NotificationError(Exception):
  """Base class for all notification delivery failures."""


class NotificationProviderError(NotificationError):
  """Exception raised when a specific provider (e.g. MailerSend) returns a delivery error."""


class EscalationDeliveryError(NotificationError):
  """Raised inside the relay when one delivery attempt fails."""

  def __init__(self, message: str, *, status_code: int | None = None, retryable: bool = True) -> None:
    super().__init__(message)
    self.status_code = status_code
    self.retryable = retryable


class EmailSender(Protocol):
  """Delivery contract for sending email notifications."""

  def send(self, notification: EmailNotification) -> dict[str, str | None]:
    """Send an email notification synchronously and return provider identifiers."""
