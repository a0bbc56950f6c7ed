"""Base class for AI agents."""

from __future__ import annotations

import asyncio
import json
import logging
from abc import ABC
from collections.abc import Callable
from typing import Any

from app.ai.errors import JobDecodeError, ProviderCallError
from app.ai.json_parser import parse_json_with_fallback, strip_json_fences
from app.ai.providers.base import AIModel, ModelResponse
from app.ai.utils.cost import usage_entry

UsageSink = Callable[[dict[str, Any]], None] | None

logger = logging.getLogger(__name__)


class BaseAgent(ABC):
  """Base agent with shared dependencies."""

  name: str

  def __init__(self, *, model: AIModel, timeout_seconds: float, use: UsageSink = None) -> None:
    self._model = model
    self._timeout_seconds = timeout_seconds
    self._usage_sink = use

  @property
  def model_name(self) -> str:
    return getattr(self._model, "name", "unknown")

  async def _call_model(self, prompt: str, *, system: str) -> str:
    """Issue one bounded provider call and record its usage."""
    provider = getattr(self._model, "provider", "unknown")
    try:
      response: ModelResponse = await asyncio.wait_for(self._model.generate(prompt, system=system, json_mode=True), timeout=self._timeout_seconds)
    except TimeoutError as exc:
      raise ProviderCallError(f"{self.name} call timed out after {self._timeout_seconds:g}s", provider=provider, status_code=408) from exc

    self._record_usage(provider=provider, usage=response.usage)
    return response.content

  def _record_usage(self, *, provider: str, usage: dict[str, int] | None) -> None:
    if not self._usage_sink:
      return
    entry = usage_entry(provider=provider, model=self.model_name, usage=usage)
    entry["agent"] = self.name
    self._usage_sink(entry)

  def _decode_json(self, raw: str) -> dict[str, Any]:
    """Decode a fenced or bare JSON object from model output."""
    cleaned = strip_json_fences(raw)
    try:
      parsed = parse_json_with_fallback(cleaned)
    except json.JSONDecodeError as exc:
      logger.warning("%s returned undecodable output: %s", self.name, exc)
      raise JobDecodeError(f"{self.name} returned invalid JSON: {exc}") from exc
    if not isinstance(parsed, dict):
      raise JobDecodeError(f"{self.name} returned {type(parsed).__name__}, expected a JSON object")
    return parsed
