from __future__ import annotations

import pytest
from fastapi import HTTPException
from pydantic import ValidationError

from app.api.models import CurriculumJobRequest
from app.services.request_validation import _build_input_params, _validate_job_request

GOAL = "Teach support staff to triage customer tickets"


def test_defaults_are_applied_to_structure_jobs(settings) -> None:
  request = CurriculumJobRequest(kind="structure", goal=f"  {GOAL}  ")
  _validate_job_request(request, settings)

  params = _build_input_params(request, settings)

  assert params == {"goal": GOAL, "target_audience": "general staff", "duration_minutes": 60, "difficulty_level": "beginner"}


@pytest.mark.parametrize("goal", ["too short", "x" * 1001])
def test_goal_length_is_bounded(settings, goal: str) -> None:
  with pytest.raises(HTTPException) as exc_info:
    _validate_job_request(CurriculumJobRequest(kind="structure", goal=goal), settings)
  assert exc_info.value.status_code == 400


def test_content_jobs_require_a_structure() -> None:
  with pytest.raises(ValidationError):
    CurriculumJobRequest(kind="content", goal=GOAL)


def test_content_structure_is_renumbered_positionally(settings) -> None:
  request = CurriculumJobRequest(
    kind="content",
    goal=GOAL,
    difficulty_level="advanced",
    structure={"name": "Triage", "chapters": [{"title": "B", "order": 5}, {"title": "A", "order": 1}]},
  )

  params = _build_input_params(request, settings)

  assert [(chapter["title"], chapter["order"]) for chapter in params["structure"]["chapters"]] == [("B", 1), ("A", 2)]
  assert params["difficulty_level"] == "advanced"


def test_unknown_fields_are_rejected() -> None:
  with pytest.raises(ValidationError):
    CurriculumJobRequest(kind="structure", goal=GOAL, priority="high")


def test_target_audience_length_is_limited() -> None:
  with pytest.raises(ValidationError):
    CurriculumJobRequest(kind="structure", goal=GOAL, target_audience="a" * 201)
