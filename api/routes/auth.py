"""
api/routes/auth.py -- OAuth login, callback and logout.

Routes:
  GET  /api/auth/oauth/login     -- remember return_to, 302 to the identity provider
  GET  /api/auth/oauth/callback  -- complete login, set session cookie, 302 to the frontend
  POST /api/auth/logout          -- delete session, clear cookie; 204

Security:
  Both OAuth endpoints are rate-limited per client IP (LOGIN_RATE_LIMIT).
  return_to is only ever honoured as a same-site relative path; see
  auth.dependencies.sanitize_return_to.
  Any failure while completing the callback answers 401 oauth_failed without
  saying which step failed.
"""

from __future__ import annotations

import logging
from urllib.parse import quote, unquote

from fastapi import APIRouter, Depends, HTTPException, Request, Response
from fastapi.responses import RedirectResponse

from api.limiter import limiter, login_rate_limit
from api.models import ErrorDetail
from api.timeouts import bounded
from auth.dependencies import (
    clear_cookie,
    get_auth_service,
    get_session_id,
    sanitize_return_to,
    set_cookie,
)
from auth.service import AuthService
from core.config import Settings
from core.errors import ConfigurationError, GatewayError

logger = logging.getLogger("llmstudio.api")

CALLBACK_PATH = "/api/auth/oauth/callback"
DEFAULT_REDIRECT_PATH = "/dashboard"

# Auth policy:
# - GET  /api/auth/oauth/login:     public, rate limited
# - GET  /api/auth/oauth/callback:  public, rate limited
# - POST /api/auth/logout:          public -- clearing a cookie needs no prior auth
router = APIRouter()


@limiter.limit(login_rate_limit)  # must be ABOVE @router to preserve FastAPI introspection
@router.get("/auth/oauth/login")
async def oauth_login(
    request: Request,
    return_to: str = "",
    auth: AuthService = Depends(get_auth_service),
) -> RedirectResponse:
    """Start the OAuth flow and redirect the browser to the provider."""
    settings: Settings = request.app.state.settings
    callback_url = settings.public_base_url + CALLBACK_PATH

    try:
        login_url, _state = await bounded(
            auth.start_oauth(settings.oauth_provider, callback_url),
            settings.gateway_timeout_seconds,
            "oauth start",
        )
    except ConfigurationError:
        raise
    except Exception as exc:
        logger.warning("OAuth start failed: %s", exc)
        raise GatewayError("failed to start oauth login") from exc

    response = RedirectResponse(login_url, status_code=302)
    return_to = sanitize_return_to(return_to)
    if return_to:
        set_cookie(
            response,
            settings,
            settings.return_to_cookie_name,
            quote(return_to, safe=""),
            settings.return_to_max_age_mins * 60,
        )
    return response


@limiter.limit(login_rate_limit)
@router.get("/auth/oauth/callback")
async def oauth_callback(
    request: Request,
    code: str = "",
    state: str = "",
    auth: AuthService = Depends(get_auth_service),
) -> RedirectResponse:
    """Exchange the authorization code for a session and redirect to the frontend."""
    settings: Settings = request.app.state.settings
    code, state = code.strip(), state.strip()
    if not code or not state:
        raise HTTPException(
            status_code=400,
            detail=ErrorDetail(code="missing_code_state", message="missing code/state").model_dump(),
        )

    try:
        session_id, _user_id = await bounded(
            auth.complete_oauth_to_session(code, state, settings.session_ttl_seconds),
            settings.oauth_callback_timeout_seconds,
            "oauth callback",
        )
    except Exception as exc:
        logger.warning("OAuth login failed: %s", exc)
        raise HTTPException(
            status_code=401,
            detail=ErrorDetail(code="oauth_failed", message="oauth login failed").model_dump(),
        ) from exc

    redirect_path = DEFAULT_REDIRECT_PATH
    raw_return_to = request.cookies.get(settings.return_to_cookie_name, "")
    if raw_return_to:
        redirect_path = sanitize_return_to(unquote(raw_return_to)) or DEFAULT_REDIRECT_PATH

    response = RedirectResponse(settings.frontend_base_url + redirect_path, status_code=302)
    set_cookie(response, settings, settings.session_cookie_name, session_id, settings.session_ttl_seconds)
    if raw_return_to:
        clear_cookie(response, settings, settings.return_to_cookie_name)
    return response


@router.post("/auth/logout", status_code=204)
async def logout(
    request: Request,
    session_id: str = Depends(get_session_id),
    auth: AuthService = Depends(get_auth_service),
) -> Response:
    """Delete the caller's session if any and clear the session cookie.

    Always 204: logging out without a session, or with one the store has
    already forgotten, is not an error.
    """
    settings: Settings = request.app.state.settings
    if session_id:
        try:
            await bounded(auth.logout(session_id), settings.gateway_timeout_seconds, "logout")
        except Exception as exc:
            logger.warning("Logout could not delete the session: %s", exc)
    response = Response(status_code=204)
    clear_cookie(response, settings, settings.session_cookie_name)
    return response
