from __future__ import annotations

from dataclasses import dataclass
from typing import Annotated, Any

from app.core.firebase import verify_id_token
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from starlette.concurrency import run_in_threadpool

security_scheme = HTTPBearer()

CURRICULUM_ADMIN_ROLE = "super_admin"


@dataclass(frozen=True)
class Actor:
  """Authenticated caller resolved from verified token claims."""

  id: str
  email: str | None
  name: str | None
  role: str | None


def _role_from_claims(claims: dict[str, Any]) -> str | None:
  # Role claims are either a plain name or an object carrying a name.
  role = claims.get("role")
  if isinstance(role, dict):
    role = role.get("name")
  if role is None:
    return None
  return str(role)


def actor_from_claims(claims: dict[str, Any]) -> Actor:
  """Build an Actor from decoded Firebase claims."""
  uid = claims.get("uid")
  if not uid:
    raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token claims")
  email = claims.get("email")
  name = claims.get("name")
  return Actor(id=str(uid), email=str(email) if email else None, name=str(name) if name else None, role=_role_from_claims(claims))


async def get_current_actor(token: Annotated[HTTPAuthorizationCredentials, Depends(security_scheme)]) -> Actor:
  """Verify the Firebase ID token and return the calling actor."""
  decoded_claims = await run_in_threadpool(verify_id_token, token.credentials)
  if not decoded_claims:
    raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid authentication credentials", headers={"WWW-Authenticate": "Bearer"})

  return actor_from_claims(decoded_claims)


async def require_curriculum_admin(actor: Actor = Depends(get_current_actor)) -> Actor:  # noqa: B008
  """Allow only super admins to drive curriculum generation."""
  if actor.role != CURRICULUM_ADMIN_ROLE:
    raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Not enough permissions")
  return actor
