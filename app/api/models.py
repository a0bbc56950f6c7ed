from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, StrictInt, StrictStr, model_validator

from app.jobs.models import DifficultyLevel, JobKind, JobStatus

EscalationTrigger = Literal["system_error", "bug_report", "urgent", "manual", "sentiment"]


class StructureChapterInput(BaseModel):
  """One chapter of an approved curriculum structure."""

  title: StrictStr = Field(min_length=1, max_length=300)
  summary: StrictStr = Field(default="", max_length=2000)
  learning_objectives: list[StrictStr] = Field(default_factory=list, max_length=20)
  estimated_minutes: StrictInt = Field(default=10, ge=1, le=600)
  order: StrictInt | None = Field(default=None, ge=1)
  model_config = ConfigDict(extra="ignore")


class CurriculumStructureInput(BaseModel):
  """Approved structure submitted with a content job."""

  name: StrictStr = Field(min_length=1, max_length=300)
  description: StrictStr = Field(default="", max_length=4000)
  tags: list[StrictStr] = Field(default_factory=list, max_length=20)
  chapters: list[StructureChapterInput] = Field(min_length=1, max_length=50)
  model_config = ConfigDict(extra="ignore")


class CurriculumJobRequest(BaseModel):
  """Request payload for submitting a curriculum generation job."""

  kind: JobKind = Field(description="Phase to run: the structure skeleton or the chapter content.")
  goal: StrictStr = Field(min_length=1, description="Training goal the curriculum should achieve.", examples=["Teach support staff to triage customer tickets with AI assistants"])
  target_audience: StrictStr | None = Field(default=None, min_length=1, max_length=200, description="Who the curriculum is for.")
  duration_minutes: StrictInt | None = Field(default=None, ge=1, le=1440, description="Target total duration in minutes.")
  difficulty_level: DifficultyLevel | None = Field(default=None, description="beginner, intermediate or advanced.")
  structure: CurriculumStructureInput | None = Field(default=None, description="Approved structure; required for content jobs.")
  model_config = ConfigDict(extra="forbid")

  @model_validator(mode="after")
  def _require_structure_for_content(self) -> CurriculumJobRequest:
    if self.kind == "content" and self.structure is None:
      raise ValueError("Content jobs require an approved structure with at least one chapter.")
    return self


class JobCreateResponse(BaseModel):
  """Response payload for job creation."""

  job_id: StrictStr
  status: JobStatus
  message: StrictStr


class JobStatusResponse(BaseModel):
  """Status payload for a curriculum job."""

  job_id: StrictStr
  kind: JobKind
  status: JobStatus
  progress: StrictInt = Field(ge=0, le=100)
  current_step: StrictStr | None = None
  result: dict[str, Any] | None = None
  error_message: StrictStr | None = None
  input_tokens: StrictInt = 0
  output_tokens: StrictInt = 0
  tokens_used: StrictInt = 0
  model_used: StrictStr | None = None
  estimated_cost: float | None = None
  created_at: datetime
  started_at: datetime | None = None
  completed_at: datetime | None = None


class JobListResponse(BaseModel):
  """The caller's jobs, newest first."""

  jobs: list[JobStatusResponse]


class TaskProcessRequest(BaseModel):
  """Payload delivered by the task dispatcher."""

  job_id: StrictStr = Field(min_length=1)


class TaskAcceptedResponse(BaseModel):
  status: Literal["accepted"] = "accepted"


class StalledSweepResponse(BaseModel):
  """Result of one watchdog sweep."""

  failed: StrictInt
  job_ids: list[StrictStr]


class EscalationNotifyRequest(BaseModel):
  """Escalation relayed from a chat session."""

  session_id: StrictStr = Field(min_length=1)
  actor_id: StrictStr = Field(min_length=1)
  trigger: EscalationTrigger
  keywords: list[StrictStr] | None = None
  message: StrictStr = Field(min_length=1, max_length=10000)
  actor_name: StrictStr | None = None
  actor_email: StrictStr | None = None
  company_id: StrictStr | None = None
  group_id: StrictStr | None = None


class ChannelResult(BaseModel):
  success: bool
  error: StrictStr | None = None


class EscalationNotifyResponse(BaseModel):
  """Per-channel delivery results."""

  results: dict[str, ChannelResult]


class EscalationCreateRequest(BaseModel):
  """A chat message that may need staff attention."""

  session_id: StrictStr = Field(min_length=1, max_length=200)
  message: StrictStr = Field(min_length=1, max_length=10000)
  trigger: EscalationTrigger | None = Field(default=None, description="Explicit trigger; detected from the message when omitted.")
  company_id: StrictStr | None = None
  group_id: StrictStr | None = None
  model_config = ConfigDict(extra="forbid")


class EscalationCreateResponse(BaseModel):
  """Whether an escalation was raised for the message."""

  escalated: bool
  trigger: EscalationTrigger | None = None
  keywords: list[StrictStr] = Field(default_factory=list)
