"""Escalation intake for chat sessions and the internal notify endpoint."""

from __future__ import annotations

import logging
from typing import Annotated

from fastapi import APIRouter, BackgroundTasks, Depends

from app.api.models import ChannelResult, EscalationCreateRequest, EscalationCreateResponse, EscalationNotifyRequest, EscalationNotifyResponse
from app.api.routes.tasks import require_task_secret
from app.config import Settings, get_settings
from app.core.security import Actor, get_current_actor
from app.notifications.contracts import EscalationPayload
from app.notifications.escalation import fire_escalation
from app.notifications.escalation_triggers import detect_escalation
from app.notifications.factory import build_escalation_notifier, build_escalation_relay

router = APIRouter()
internal_router = APIRouter(prefix="/escalations", tags=["escalations"])
logger = logging.getLogger(__name__)


@router.post("", response_model=EscalationCreateResponse)
async def create_escalation(
  request: EscalationCreateRequest,
  background_tasks: BackgroundTasks,
  settings: Annotated[Settings, Depends(get_settings)],
  actor: Annotated[Actor, Depends(get_current_actor)],
) -> EscalationCreateResponse:
  """Raise an escalation when the message warrants one; delivery happens after the response."""
  if request.trigger is not None:
    trigger, keywords = request.trigger, []
  else:
    match = detect_escalation(request.message)
    if match is None:
      return EscalationCreateResponse(escalated=False)
    trigger, keywords = match.trigger, match.keywords

  payload = EscalationPayload(
    session_id=request.session_id,
    actor_id=actor.id,
    trigger=trigger,
    message=request.message,
    actor_name=actor.name,
    actor_email=actor.email,
    keywords=keywords or None,
    company_id=request.company_id,
    group_id=request.group_id,
  )
  fire_escalation(build_escalation_relay(settings), payload, background_tasks=background_tasks)
  logger.info("Escalation %s raised for session %s", trigger, request.session_id)
  return EscalationCreateResponse(escalated=True, trigger=trigger, keywords=keywords)


@internal_router.post("/notify", response_model=EscalationNotifyResponse, dependencies=[Depends(require_task_secret)])
async def notify_escalation(request: EscalationNotifyRequest, settings: Annotated[Settings, Depends(get_settings)]) -> EscalationNotifyResponse:
  """Deliver a relayed escalation to the configured staff channels."""
  payload = EscalationPayload(**request.model_dump())
  notifier = build_escalation_notifier(settings)
  results = await notifier.notify(payload)
  return EscalationNotifyResponse(results={name: ChannelResult(success=result.success, error=result.error) for name, result in results.items()})
