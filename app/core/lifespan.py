import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from functools import partial
from urllib.parse import urlparse

from app.core.database import listener_dsn
from app.core.firebase import initialize_firebase
from app.core.logging import _initialize_logging
from app.jobs.events import get_event_bus
from app.jobs.listener import PostgresChangeListener
from app.storage.factory import _get_jobs_repo
from fastapi import FastAPI


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
  """Initialize logging, Firebase, and the job change listener."""
  from app.config import get_settings

  settings = get_settings()
  logger = logging.getLogger("app.core.lifespan")
  listener: PostgresChangeListener | None = None

  try:
    _initialize_logging(settings)
    logger.info("Startup complete - logging verified.")
  except Exception:  # noqa: BLE001
    logger.warning("Initial logging setup failed; continuing with default handlers.", exc_info=True)

  try:
    initialize_firebase()
  except Exception:  # noqa: BLE001
    logger.error("Firebase initialization failed; authenticated endpoints will reject tokens.", exc_info=True)

  dsn = listener_dsn()
  if dsn:
    logger.info("Starting job change listener on %s", _redact_dsn(dsn))
    listener = PostgresChangeListener(dsn=dsn, bus=get_event_bus(), repo_factory=partial(_get_jobs_repo, settings))
    # Connection failures are retried by the listener itself.
    await listener.start()

  app.state.change_listener = listener
  try:
    yield
  finally:
    if listener is not None:
      await listener.stop()


def _redact_dsn(raw: str | None) -> str:
  """Redact credentials from a DSN while keeping host/db visible."""
  if not raw:
    return "<unset>"

  parsed = urlparse(raw)
  if not parsed.scheme:
    return "<invalid>"

  user = parsed.username or ""
  host = parsed.hostname or ""
  port = f":{parsed.port}" if parsed.port else ""
  netloc = f"{user}@{host}{port}" if user else f"{host}{port}"
  database = parsed.path.lstrip("/")
  path = f"/{database}" if database else ""
  return f"{parsed.scheme}://{netloc}{path}"
