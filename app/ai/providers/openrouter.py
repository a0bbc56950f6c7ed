"""OpenRouter provider implementation using openai SDK."""

from __future__ import annotations

import logging
import os
from typing import Any, Final

import openai
from openai import AsyncOpenAI

from app.ai.errors import ProviderCallError
from app.ai.providers.base import AIModel, ModelResponse, Provider, SimpleModelResponse

logger = logging.getLogger(__name__)


class OpenRouterModel(AIModel):
  """OpenRouter model client speaking the OpenAI-compatible API."""

  provider = "openrouter"

  def __init__(self, name: str, api_key: str | None = None, base_url: str | None = None) -> None:
    self.name: str = name

    api_key = api_key or os.getenv("OPENROUTER_API_KEY")
    if not api_key:
      raise ValueError("OPENROUTER_API_KEY environment variable is required")

    # OpenRouter uses the OpenAI-compatible API; we add optional attribution headers.
    default_headers = {}
    referer = os.getenv("OPENROUTER_HTTP_REFERER")
    if referer:
      default_headers["HTTP-Referer"] = referer
    title = os.getenv("OPENROUTER_TITLE")
    if title:
      default_headers["X-Title"] = title

    # The SDK retries by default; retries are disabled so a failed call fails the job.
    self._client = AsyncOpenAI(api_key=api_key, base_url=base_url or "https://openrouter.ai/api/v1", default_headers=default_headers or None, max_retries=0)

  async def generate(self, prompt: str, *, system: str | None = None, json_mode: bool = False) -> ModelResponse:
    """Generate text response from OpenRouter."""
    messages: list[dict[str, Any]] = []
    if system:
      messages.append({"role": "system", "content": system})
    messages.append({"role": "user", "content": prompt})
    kwargs: dict[str, Any] = {}
    if json_mode:
      kwargs["response_format"] = {"type": "json_object"}

    try:
      response = await self._client.chat.completions.create(model=self.name, messages=messages, **kwargs)
    except openai.APITimeoutError as exc:
      raise ProviderCallError("OpenRouter request timed out", provider=self.provider, status_code=408) from exc
    except openai.APIStatusError as exc:
      raise ProviderCallError(f"OpenRouter request failed: {exc.message}", provider=self.provider, status_code=exc.status_code) from exc
    except openai.APIConnectionError as exc:
      raise ProviderCallError(f"OpenRouter connection failed: {exc}", provider=self.provider, status_code=503) from exc

    content = response.choices[0].message.content or ""
    logger.debug("OpenRouter response:\n%s", content)
    usage = None
    if response.usage:
      usage = {"prompt_tokens": response.usage.prompt_tokens, "completion_tokens": response.usage.completion_tokens, "total_tokens": response.usage.total_tokens}

    return SimpleModelResponse(content=content, usage=usage)


class OpenRouterProvider(Provider):
  """OpenRouter provider."""

  _DEFAULT_MODEL: Final[str] = "anthropic/claude-opus-4.5"
  _AVAILABLE_MODELS: Final[set[str]] = {
    "anthropic/claude-opus-4.5",
    "anthropic/claude-sonnet-4.5",
    "openai/gpt-oss-120b:free",
    "meta-llama/llama-3.3-70b-instruct:free",
    "google/gemma-3-27b-it:free",
  }

  def __init__(self, api_key: str | None = None, base_url: str | None = None) -> None:
    self.name: str = "openrouter"
    self._api_key = api_key
    self._base_url = base_url

  def get_model(self, model: str | None = None) -> AIModel:
    """Return an OpenRouter model client."""
    model_name = model or self._DEFAULT_MODEL
    if model_name not in self._AVAILABLE_MODELS:
      raise ValueError(f"Unsupported OpenRouter model '{model_name}'.")
    return OpenRouterModel(model_name, api_key=self._api_key, base_url=self._base_url)
