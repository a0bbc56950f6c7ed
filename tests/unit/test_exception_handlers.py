"""Unit tests for API exception sanitization behavior."""

from __future__ import annotations

from app.core.exceptions import _sanitize_http_detail, _sanitize_validation_errors


def test_sanitize_validation_errors_removes_input_and_serializes_exception_ctx() -> None:
  """Ensure validation errors stay JSON-serializable and redact raw request payloads."""
  errors = [{"type": "value_error", "loc": ("body",), "msg": "Value error, Content jobs require an approved structure.", "input": {"goal": "secret plans"}, "ctx": {"error": ValueError("Content jobs require an approved structure."), "input": {"goal": "secret plans"}}}]
  sanitized = _sanitize_validation_errors(errors)
  assert "input" not in sanitized[0]
  assert sanitized[0]["ctx"]["error"] == "ValueError: Content jobs require an approved structure."
  assert "input" not in sanitized[0]["ctx"]
  assert sanitized[0]["loc"] == ["body"]


def test_sanitize_http_detail_drops_payload_keys() -> None:
  detail = {"error": "BAD_REQUEST", "goal": "confidential goal", "nested": [{"message": "hi", "code": 1}]}
  assert _sanitize_http_detail(detail) == {"error": "BAD_REQUEST", "nested": [{"code": 1}]}
