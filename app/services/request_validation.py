from typing import Any

from fastapi import HTTPException, status

from app.api.models import CurriculumJobRequest
from app.config import Settings


def _validate_job_request(request: CurriculumJobRequest, settings: Settings) -> None:
  """Enforce goal length bounds that depend on runtime configuration."""
  goal = request.goal.strip()
  if len(goal) < settings.goal_min_length:
    raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"Goal must be at least {settings.goal_min_length} characters.")
  if len(goal) > settings.goal_max_length:
    raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"Goal exceeds max length of {settings.goal_max_length} chars.")
  if request.target_audience is not None and not request.target_audience.strip():
    raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Target audience must not be blank.")


def _build_input_params(request: CurriculumJobRequest, settings: Settings) -> dict[str, Any]:
  """Resolve defaults and return the parameters persisted with the job."""
  params: dict[str, Any] = {
    "goal": request.goal.strip(),
    "target_audience": (request.target_audience or settings.default_target_audience).strip(),
    "duration_minutes": request.duration_minutes or settings.default_duration_minutes,
    "difficulty_level": request.difficulty_level or settings.default_difficulty_level,
  }
  if request.kind == "content" and request.structure is not None:
    structure = request.structure.model_dump(mode="json")
    # Chapter order is positional; any submitted order values are replaced.
    structure["chapters"] = [{**chapter, "order": index} for index, chapter in enumerate(structure["chapters"], start=1)]
    params["structure"] = structure
  return params
