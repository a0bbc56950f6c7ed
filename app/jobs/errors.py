"""Map executor failures to user-facing job error messages."""

from __future__ import annotations

import json

from app.ai.errors import JobDecodeError, ProviderCallError, looks_like_timeout

RATE_LIMIT_MESSAGE = "The AI service rate limit was reached. Please wait a moment and try again."
AUTH_MESSAGE = "The AI service rejected the configured credentials. Please contact an administrator."
UNAVAILABLE_MESSAGE = "The AI service is temporarily unavailable. Please try again later."
TIMEOUT_MESSAGE = "The AI service timed out. Please try again."
DECODE_MESSAGE = "Could not parse the AI response. Please try again."
GENERIC_MESSAGE = "An error occurred while generating the curriculum."
DISPATCH_MESSAGE = "Failed to start the background job. Please try again."
STALLED_MESSAGE = "The job timed out before finishing. Please try again."

_UNAVAILABLE_STATUSES = frozenset({500, 502, 503, 529})


def _status_code(exc: BaseException) -> int | None:
  code = getattr(exc, "status_code", None)
  if code is None:
    code = getattr(exc, "code", None)
  return code if isinstance(code, int) else None


def classify_job_error(exc: BaseException) -> str:
  """Return the human-readable error message stored on a failed job."""
  if isinstance(exc, (JobDecodeError, json.JSONDecodeError)):
    return DECODE_MESSAGE
  if isinstance(exc, TimeoutError):
    return TIMEOUT_MESSAGE

  status = _status_code(exc)
  if status == 429:
    return RATE_LIMIT_MESSAGE
  if status in (401, 403):
    return AUTH_MESSAGE
  if status in _UNAVAILABLE_STATUSES:
    return UNAVAILABLE_MESSAGE
  if status == 408 or looks_like_timeout(str(exc)):
    return TIMEOUT_MESSAGE
  if status is not None:
    return f"AI API error ({status}): {exc}"
  if isinstance(exc, ProviderCallError):
    return f"AI API error: {exc}"
  return GENERIC_MESSAGE
