"""Exceptions raised by the AI provider layer."""

from __future__ import annotations


class ProviderCallError(RuntimeError):
  """Raised when a provider request fails, carrying the upstream HTTP status when known."""

  def __init__(self, message: str, *, provider: str, status_code: int | None = None) -> None:
    super().__init__(message)
    self.provider = provider
    self.status_code = status_code


class JobDecodeError(ValueError):
  """Raised when model output cannot be decoded into the expected JSON shape."""


_TIMEOUT_HINTS: tuple[str, ...] = ("timeout", "timed out", "deadline exceeded")


def looks_like_timeout(message: str) -> bool:
  """Return True when an error message describes a timeout."""
  lowered = message.lower()
  return any(hint in lowered for hint in _TIMEOUT_HINTS)
