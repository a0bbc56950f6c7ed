"""Chapter writer agent implementation."""

from __future__ import annotations

from typing import Any

from pydantic import ValidationError

from app.ai.agents.base import BaseAgent
from app.ai.agents.prompts import chapter_system_prompt, render_chapter_prompt
from app.ai.errors import JobDecodeError
from app.ai.pipeline.contracts import ChapterContent


class ChapterWriterAgent(BaseAgent):
  """Write the body and hands-on task for one chapter of an approved structure."""

  name = "ChapterWriter"

  async def run(self, params: dict[str, Any], chapter: dict[str, Any], *, chapter_count: int) -> dict[str, Any]:
    raw = await self._call_model(render_chapter_prompt(params, chapter, chapter_count=chapter_count), system=chapter_system_prompt())
    payload = self._decode_json(raw)
    try:
      written = ChapterContent.model_validate(payload)
    except ValidationError as exc:
      raise JobDecodeError(f"Chapter '{chapter.get('title')}' response is missing content or task_description") from exc

    return {
      "title": chapter.get("title"),
      "content": written.content,
      "task_description": written.task_description,
      "estimated_minutes": chapter.get("estimated_minutes") or 10,
    }
