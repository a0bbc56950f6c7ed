"""Domain models for asynchronous curriculum generation jobs."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Literal

JobStatus = Literal["queued", "connecting", "generating", "parsing", "completed", "failed"]
JobKind = Literal["structure", "content"]
DifficultyLevel = Literal["beginner", "intermediate", "advanced"]

JOB_KINDS: tuple[JobKind, ...] = ("structure", "content")
ACTIVE_STATUSES: tuple[JobStatus, ...] = ("queued", "connecting", "generating", "parsing")
TERMINAL_STATUSES: tuple[JobStatus, ...] = ("completed", "failed")

QUEUED_STEP = "Job added to queue"
CANCELED_STEP = "Interrupted by user"
CANCELED_MESSAGE = "Job was interrupted by user"
FAILED_STEP = "An error occurred"


@dataclass
class JobRecord:
  """Represents a background curriculum generation job."""

  job_id: str
  owner_id: str
  kind: JobKind
  status: JobStatus
  input_params: dict[str, Any]
  created_at: datetime
  updated_at: datetime
  progress: int = 0
  step: str | None = None
  result: dict[str, Any] | None = None
  error_message: str | None = None
  input_tokens: int = 0
  output_tokens: int = 0
  model_used: str | None = None
  estimated_cost: float | None = None
  started_at: datetime | None = None
  completed_at: datetime | None = None

  @property
  def tokens_used(self) -> int:
    """Total tokens consumed across every AI call of the job."""
    return self.input_tokens + self.output_tokens

  @property
  def is_terminal(self) -> bool:
    return self.status in TERMINAL_STATUSES
