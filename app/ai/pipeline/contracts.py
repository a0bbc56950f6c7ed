"""Shared data contracts for the curriculum generation pipeline."""

from __future__ import annotations

from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field


class JobContext(BaseModel):
  """Context metadata for one generation job."""

  job_id: str
  provider: str
  model: str
  params: dict[str, Any]


class StructureChapter(BaseModel):
  """One chapter of a generated curriculum skeleton."""

  model_config = ConfigDict(populate_by_name=True, extra="ignore")

  title: str = Field(min_length=1)
  summary: str = ""
  learning_objectives: list[str] = Field(default_factory=list, validation_alias=AliasChoices("learning_objectives", "learningObjectives"))
  estimated_minutes: int = Field(default=10, ge=1, validation_alias=AliasChoices("estimated_minutes", "estimatedMinutes"))


class CurriculumStructure(BaseModel):
  """Curriculum skeleton returned by the structure planner."""

  model_config = ConfigDict(extra="ignore")

  name: str = Field(min_length=1)
  description: str = ""
  tags: list[str] = Field(default_factory=list)
  chapters: list[StructureChapter] = Field(min_length=1)


class ChapterContent(BaseModel):
  """Realized body and hands-on task for one chapter."""

  model_config = ConfigDict(populate_by_name=True, extra="ignore")

  content: str = Field(min_length=1)
  task_description: str = Field(min_length=1, validation_alias=AliasChoices("task_description", "taskDescription"))
