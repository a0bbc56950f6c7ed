from __future__ import annotations

from unittest.mock import patch

import pytest
from fastapi import HTTPException
from fastapi.security import HTTPAuthorizationCredentials

from app.core.security import Actor, actor_from_claims, get_current_actor, require_curriculum_admin


def _token() -> HTTPAuthorizationCredentials:
  return HTTPAuthorizationCredentials(scheme="Bearer", credentials="id-token")


@pytest.mark.anyio
async def test_verified_token_becomes_an_actor() -> None:
  claims = {"uid": "u-1", "email": "a@example.com", "name": "Aki", "role": "super_admin"}
  with patch("app.core.security.verify_id_token", return_value=claims):
    actor = await get_current_actor(_token())

  assert actor == Actor(id="u-1", email="a@example.com", name="Aki", role="super_admin")


@pytest.mark.anyio
async def test_invalid_token_is_unauthorized() -> None:
  with patch("app.core.security.verify_id_token", return_value=None):
    with pytest.raises(HTTPException) as exc_info:
      await get_current_actor(_token())

  assert exc_info.value.status_code == 401
  assert exc_info.value.headers == {"WWW-Authenticate": "Bearer"}


def test_role_claim_may_be_an_object() -> None:
  assert actor_from_claims({"uid": "u-1", "role": {"name": "super_admin", "level": "GLOBAL"}}).role == "super_admin"


def test_claims_without_uid_are_rejected() -> None:
  with pytest.raises(HTTPException) as exc_info:
    actor_from_claims({"email": "a@example.com"})
  assert exc_info.value.status_code == 401


@pytest.mark.anyio
async def test_only_super_admins_may_generate() -> None:
  admin = Actor(id="u-1", email=None, name=None, role="super_admin")
  assert await require_curriculum_admin(admin) is admin

  with pytest.raises(HTTPException) as exc_info:
    await require_curriculum_admin(Actor(id="u-2", email=None, name=None, role="member"))
  assert exc_info.value.status_code == 403
