"""Prompt helpers shared by agents."""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Any

_DIFFICULTY_LABELS = {"beginner": "Beginner", "intermediate": "Intermediate", "advanced": "Advanced"}


def difficulty_label(level: str | None) -> str:
  """Return the display label for a difficulty level."""
  return _DIFFICULTY_LABELS.get(str(level or "").lower(), "Beginner")


def _format_objectives(objectives: list[str] | None) -> str:
  if not objectives:
    return "-"
  return "\n".join(f"{index}. {item}" for index, item in enumerate(objectives, start=1))


def _replace_placeholders(template: str, values: dict[str, str]) -> str:
  """Substitute {{PLACEHOLDER}} markers with request values."""
  rendered = template
  for key, value in values.items():
    rendered = rendered.replace(f"{{{{{key}}}}}", value)
  return rendered


def structure_system_prompt() -> str:
  return _load_prompt("structure_system.md")


def chapter_system_prompt() -> str:
  return _load_prompt("chapter_system.md")


def render_structure_prompt(params: dict[str, Any]) -> str:
  """Build the user prompt for a curriculum structure request."""
  values = {
    "GOAL": str(params.get("goal") or ""),
    "TARGET_AUDIENCE": str(params.get("target_audience") or ""),
    "DURATION_MINUTES": str(params.get("duration_minutes") or ""),
    "DIFFICULTY": difficulty_label(params.get("difficulty_level")),
  }
  return _replace_placeholders(_load_prompt("structure_user.md"), values)


def render_chapter_prompt(params: dict[str, Any], chapter: dict[str, Any], *, chapter_count: int) -> str:
  """Build the user prompt for one chapter of an approved structure."""
  structure = params.get("structure") or {}
  values = {
    "CURRICULUM_NAME": str(structure.get("name") or ""),
    "CURRICULUM_DESCRIPTION": str(structure.get("description") or ""),
    "GOAL": str(params.get("goal") or ""),
    "TARGET_AUDIENCE": str(params.get("target_audience") or ""),
    "DIFFICULTY": difficulty_label(params.get("difficulty_level")),
    "CHAPTER_TITLE": str(chapter.get("title") or ""),
    "CHAPTER_SUMMARY": str(chapter.get("summary") or ""),
    "LEARNING_OBJECTIVES": _format_objectives(chapter.get("learning_objectives")),
    "ESTIMATED_MINUTES": str(chapter.get("estimated_minutes") or 10),
    "CHAPTER_NUMBER": str(chapter.get("order") or ""),
    "CHAPTER_COUNT": str(chapter_count),
  }
  return _replace_placeholders(_load_prompt("chapter_user.md"), values)


@lru_cache(maxsize=8)
def _load_prompt(name: str) -> str:
  try:
    path = Path(__file__).parents[1] / "prompts" / name
    return path.read_text(encoding="utf-8").strip()
  except (FileNotFoundError, PermissionError, UnicodeDecodeError) as exc:
    raise RuntimeError(f"Failed to load prompt '{name}': {exc}") from exc
