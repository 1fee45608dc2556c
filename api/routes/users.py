"""
api/routes/users.py -- Self profile and user administration.

Routes:
  GET   /api/me                          -- caller's profile (user)
  PATCH /api/me                          -- set caller's nickname (user)
  GET   /api/admin/users                 -- paged user listing (admin)
  POST  /api/admin/users/{user_id}/role  -- assign admin|user (super_admin); 204

Role checks live in auth.rbac.RBACPolicy, not here: every handler passes the
raw session id through and lets the policy raise. main.py maps the errors.
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query, Request, Response

from api.models import (
    AdminUserResponse,
    MeResponse,
    SetRoleRequest,
    UpdateMeRequest,
    UserListResponse,
)
from api.timeouts import bounded
from auth.dependencies import get_rbac_policy, get_session_id
from auth.rbac import RBACPolicy

router = APIRouter()


def _timeout(request: Request) -> float:
    return request.app.state.settings.gateway_timeout_seconds


# ---------------------------------------------------------------------------
# Self profile
# ---------------------------------------------------------------------------


@router.get("/me", response_model=MeResponse)
async def get_me(
    request: Request,
    session_id: str = Depends(get_session_id),
    rbac: RBACPolicy = Depends(get_rbac_policy),
) -> MeResponse:
    me = await bounded(rbac.me(session_id), _timeout(request), "me")
    return MeResponse.from_domain(me)


@router.patch("/me", response_model=MeResponse)
async def update_me(
    request: Request,
    body: UpdateMeRequest,
    session_id: str = Depends(get_session_id),
    rbac: RBACPolicy = Depends(get_rbac_policy),
) -> MeResponse:
    """Set the caller's nickname. Trimmed; empty clears it; at most 32 characters."""
    me = await bounded(rbac.update_my_nickname(session_id, body.nickname), _timeout(request), "update me")
    return MeResponse.from_domain(me)


# ---------------------------------------------------------------------------
# Administration
# ---------------------------------------------------------------------------


@router.get("/admin/users", response_model=UserListResponse)
async def list_users(
    request: Request,
    limit: Optional[int] = Query(default=None),
    offset: Optional[int] = Query(default=None),
    session_id: str = Depends(get_session_id),
    rbac: RBACPolicy = Depends(get_rbac_policy),
) -> UserListResponse:
    """List users newest first. Non-positive limit falls back to the page size; negative offset to 0."""
    users = await bounded(rbac.list_users(session_id, limit, offset), _timeout(request), "list users")
    return UserListResponse(users=[AdminUserResponse.from_domain(u) for u in users])


@router.post("/admin/users/{user_id}/role", status_code=204)
async def set_user_role(
    request: Request,
    user_id: str,
    body: SetRoleRequest,
    session_id: str = Depends(get_session_id),
    rbac: RBACPolicy = Depends(get_rbac_policy),
) -> Response:
    await bounded(rbac.set_user_role(session_id, user_id, body.role), _timeout(request), "set role")
    return Response(status_code=204)
