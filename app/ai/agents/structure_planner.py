"""Structure planner agent implementation."""

from __future__ import annotations

from typing import Any

from pydantic import ValidationError

from app.ai.agents.base import BaseAgent
from app.ai.agents.prompts import render_structure_prompt, structure_system_prompt
from app.ai.errors import JobDecodeError
from app.ai.pipeline.contracts import CurriculumStructure


class StructurePlannerAgent(BaseAgent):
  """Design a curriculum skeleton from the training goal in a single call."""

  name = "StructurePlanner"

  async def draft(self, params: dict[str, Any]) -> str:
    """Request the skeleton and return the raw model output."""
    return await self._call_model(render_structure_prompt(params), system=structure_system_prompt())

  def finalize(self, raw: str, params: dict[str, Any]) -> dict[str, Any]:
    """Decode the raw output into the stored structure result."""
    payload = self._decode_json(raw)
    try:
      structure = CurriculumStructure.model_validate(payload)
    except ValidationError as exc:
      raise JobDecodeError(f"Structure response is missing required fields: {exc.error_count()} error(s)") from exc

    # Chapter order follows the model's list order, not any order field it emitted.
    chapters = [
      {
        "order": index,
        "title": chapter.title,
        "summary": chapter.summary,
        "learning_objectives": list(chapter.learning_objectives),
        "estimated_minutes": chapter.estimated_minutes,
      }
      for index, chapter in enumerate(structure.chapters, start=1)
    ]
    return {
      "name": structure.name,
      "description": structure.description,
      "difficulty_level": params.get("difficulty_level"),
      "target_audience": params.get("target_audience"),
      "duration_minutes": params.get("duration_minutes"),
      "tags": list(structure.tags),
      "chapters": chapters,
    }
