"""Application configuration loaded from environment variables."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Any

from app.utils.env import default_env_path, load_env_file

load_env_file(default_env_path(), override=False)

_DIFFICULTY_LEVELS = ("beginner", "intermediate", "advanced")
_ESCALATION_CHANNELS = {"email", "teams"}


@dataclass(frozen=True)
class Settings:
  """Typed settings for the curriculum job service."""

  environment: str
  allowed_origins: tuple[str, ...]
  debug: bool
  log_max_bytes: int
  log_backup_count: int
  log_http_4xx: bool
  pg_dsn: str | None
  pg_connect_timeout: int
  firebase_project_id: str | None
  firebase_service_account_json_path: str | None
  task_service_provider: str
  base_url: str | None
  cloud_tasks_queue_path: str | None
  cloud_run_invoker_service_account: str | None
  task_secret: str | None
  jobs_auto_process: bool
  structure_provider: str
  structure_model: str | None
  content_provider: str
  content_model: str | None
  gemini_api_key: str | None
  openrouter_api_key: str | None
  provider_call_timeout_seconds: int
  job_max_duration_seconds: int
  goal_min_length: int
  goal_max_length: int
  default_target_audience: str
  default_duration_minutes: int
  default_difficulty_level: str
  escalation_notify_url: str | None
  escalation_max_attempts: int
  escalation_base_delay_seconds: float
  escalation_timeout_seconds: float
  escalation_channels: tuple[str, ...]
  escalation_email_recipients: tuple[str, ...]
  teams_webhook_url: str | None
  dashboard_url: str | None
  email_from_address: str | None
  email_from_name: str | None
  mailersend_api_key: str | None
  mailersend_timeout_seconds: int
  mailersend_base_url: str
  llm_pricing: dict[str, Any] = field(hash=False)


@dataclass(frozen=True)
class DatabaseSettings:
  """Typed settings for database connectivity."""

  debug: bool
  pg_dsn: str | None
  pg_connect_timeout: int


def _parse_origins(raw: str | None) -> tuple[str, ...]:
  if not raw:
    raise ValueError("CURRICULUM_ALLOWED_ORIGINS must be set to one or more origins.")

  origins = [origin.strip() for origin in raw.split(",") if origin.strip()]

  if not origins:
    raise ValueError("CURRICULUM_ALLOWED_ORIGINS must include at least one origin.")

  if "*" in origins:
    raise ValueError("CURRICULUM_ALLOWED_ORIGINS must not include wildcard origins.")

  return tuple(origins)


def _parse_csv(raw: str | None) -> tuple[str, ...]:
  if not raw:
    return ()
  return tuple(item.strip() for item in raw.split(",") if item.strip())


def _parse_json_dict(raw: str | None, default: dict[str, Any]) -> dict[str, Any]:
  if not raw:
    return default
  try:
    parsed = json.loads(raw)
  except json.JSONDecodeError:
    return default
  if not isinstance(parsed, dict):
    return default
  return parsed


def _parse_bool(raw: str | None) -> bool:
  """Parse a boolean-ish string from environment variables."""

  if raw is None:
    return False

  normalized = raw.strip().lower()
  return normalized in {"1", "true", "yes", "on"}


def _positive_int(name: str, default: str) -> int:
  value = int(os.getenv(name, default))
  if value <= 0:
    raise ValueError(f"{name} must be a positive integer.")
  return value


@lru_cache(maxsize=1)
def get_settings() -> Settings:
  """Load settings once per process."""

  environment = os.getenv("CURRICULUM_ENV", "development").lower()
  debug = _parse_bool(os.getenv("CURRICULUM_DEBUG"))

  log_max_bytes = _positive_int("CURRICULUM_LOG_MAX_BYTES", "5242880")
  log_backup_count = int(os.getenv("CURRICULUM_LOG_BACKUP_COUNT", "10"))
  if log_backup_count < 0:
    raise ValueError("CURRICULUM_LOG_BACKUP_COUNT must be zero or a positive integer.")

  task_service_provider = os.getenv("CURRICULUM_TASK_SERVICE_PROVIDER", "local-http").strip().lower()
  if task_service_provider not in {"local-http", "gcp"}:
    raise ValueError("CURRICULUM_TASK_SERVICE_PROVIDER must be 'local-http' or 'gcp'.")

  # Default to dispatching jobs; tests and offline tooling switch it off explicitly.
  # When off, new jobs stay queued and block their owner until dispatched or swept as stalled.
  raw_auto_process = os.getenv("CURRICULUM_JOBS_AUTO_PROCESS")
  jobs_auto_process = True if raw_auto_process is None else _parse_bool(raw_auto_process)

  goal_min_length = _positive_int("CURRICULUM_GOAL_MIN_LENGTH", "10")
  goal_max_length = _positive_int("CURRICULUM_GOAL_MAX_LENGTH", "1000")
  if goal_max_length < goal_min_length:
    raise ValueError("CURRICULUM_GOAL_MAX_LENGTH must not be smaller than CURRICULUM_GOAL_MIN_LENGTH.")

  default_difficulty_level = os.getenv("CURRICULUM_DEFAULT_DIFFICULTY", "beginner").strip().lower()
  if default_difficulty_level not in _DIFFICULTY_LEVELS:
    raise ValueError(f"CURRICULUM_DEFAULT_DIFFICULTY must be one of {', '.join(_DIFFICULTY_LEVELS)}.")

  escalation_max_attempts = _positive_int("CURRICULUM_ESCALATION_MAX_ATTEMPTS", "3")
  escalation_base_delay_seconds = float(os.getenv("CURRICULUM_ESCALATION_BASE_DELAY_SECONDS", "1"))
  if escalation_base_delay_seconds < 0:
    raise ValueError("CURRICULUM_ESCALATION_BASE_DELAY_SECONDS must not be negative.")

  escalation_channels = _parse_csv(os.getenv("CURRICULUM_ESCALATION_CHANNELS") or "email")
  unknown_channels = set(escalation_channels) - _ESCALATION_CHANNELS
  if unknown_channels:
    raise ValueError(f"CURRICULUM_ESCALATION_CHANNELS contains unsupported channels: {', '.join(sorted(unknown_channels))}.")

  return Settings(
    environment=environment,
    allowed_origins=_parse_origins(os.getenv("CURRICULUM_ALLOWED_ORIGINS")),
    debug=debug,
    log_max_bytes=log_max_bytes,
    log_backup_count=log_backup_count,
    log_http_4xx=_parse_bool(os.getenv("CURRICULUM_LOG_HTTP_4XX")),
    pg_dsn=os.getenv("CURRICULUM_PG_DSN") or os.getenv("DATABASE_URL"),
    pg_connect_timeout=_positive_int("CURRICULUM_PG_CONNECT_TIMEOUT", "5"),
    firebase_project_id=_optional_str(os.getenv("FIREBASE_PROJECT_ID")),
    firebase_service_account_json_path=_optional_str(os.getenv("FIREBASE_SERVICE_ACCOUNT_JSON_PATH")),
    task_service_provider=task_service_provider,
    base_url=_optional_str(os.getenv("CURRICULUM_BASE_URL")),
    cloud_tasks_queue_path=_optional_str(os.getenv("CURRICULUM_CLOUD_TASKS_QUEUE_PATH")),
    cloud_run_invoker_service_account=_optional_str(os.getenv("CURRICULUM_CLOUD_RUN_INVOKER_SERVICE_ACCOUNT")),
    task_secret=_optional_str(os.getenv("CURRICULUM_TASK_SECRET")),
    jobs_auto_process=jobs_auto_process,
    structure_provider=os.getenv("CURRICULUM_STRUCTURE_PROVIDER", "gemini").strip().lower(),
    structure_model=_optional_str(os.getenv("CURRICULUM_STRUCTURE_MODEL")),
    content_provider=os.getenv("CURRICULUM_CONTENT_PROVIDER", "gemini").strip().lower(),
    content_model=_optional_str(os.getenv("CURRICULUM_CONTENT_MODEL")),
    gemini_api_key=_optional_str(os.getenv("GEMINI_API_KEY")),
    openrouter_api_key=_optional_str(os.getenv("OPENROUTER_API_KEY")),
    provider_call_timeout_seconds=_positive_int("CURRICULUM_PROVIDER_CALL_TIMEOUT_SECONDS", "300"),
    job_max_duration_seconds=_positive_int("CURRICULUM_JOB_MAX_DURATION_SECONDS", "1800"),
    goal_min_length=goal_min_length,
    goal_max_length=goal_max_length,
    default_target_audience=(os.getenv("CURRICULUM_DEFAULT_TARGET_AUDIENCE") or "general staff").strip(),
    default_duration_minutes=_positive_int("CURRICULUM_DEFAULT_DURATION_MINUTES", "60"),
    default_difficulty_level=default_difficulty_level,
    escalation_notify_url=_optional_str(os.getenv("CURRICULUM_ESCALATION_NOTIFY_URL")),
    escalation_max_attempts=escalation_max_attempts,
    escalation_base_delay_seconds=escalation_base_delay_seconds,
    escalation_timeout_seconds=float(os.getenv("CURRICULUM_ESCALATION_TIMEOUT_SECONDS", "10")),
    escalation_channels=escalation_channels,
    escalation_email_recipients=_parse_csv(os.getenv("CURRICULUM_ESCALATION_EMAIL_RECIPIENTS")),
    teams_webhook_url=_optional_str(os.getenv("CURRICULUM_TEAMS_WEBHOOK_URL")),
    dashboard_url=_optional_str(os.getenv("CURRICULUM_DASHBOARD_URL")),
    email_from_address=_optional_str(os.getenv("CURRICULUM_EMAIL_FROM_ADDRESS")),
    email_from_name=_optional_str(os.getenv("CURRICULUM_EMAIL_FROM_NAME")),
    mailersend_api_key=_optional_str(os.getenv("CURRICULUM_MAILERSEND_API_KEY")),
    mailersend_timeout_seconds=_positive_int("CURRICULUM_MAILERSEND_TIMEOUT_SECONDS", "10"),
    mailersend_base_url=(os.getenv("CURRICULUM_MAILERSEND_BASE_URL") or "https://api.mailersend.com/v1").strip(),
    llm_pricing=_parse_json_dict(os.getenv("CURRICULUM_LLM_PRICING"), {}),
  )


@lru_cache(maxsize=1)
def get_database_settings() -> DatabaseSettings:
  """Load database settings without requiring web-runtime configuration like CORS."""
  # Keep database configuration isolated so migrations don't require unrelated env vars.
  debug = _parse_bool(os.getenv("CURRICULUM_DEBUG"))
  pg_connect_timeout = _positive_int("CURRICULUM_PG_CONNECT_TIMEOUT", "5")
  pg_dsn = os.getenv("CURRICULUM_PG_DSN") or os.getenv("DATABASE_URL")
  return DatabaseSettings(debug=debug, pg_dsn=pg_dsn, pg_connect_timeout=pg_connect_timeout)


def _optional_str(raw: str | None) -> str | None:
  if raw is None:
    return None
  value = raw.strip()
  if value == "":
    return None
  return value
