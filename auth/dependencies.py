"""
auth/dependencies.py -- FastAPI Depends() helpers and cookie plumbing.

Session id sources, checked in priority order:
  1. Session cookie (SESSION_COOKIE_NAME) -- set by the OAuth callback.
  2. Authorization: Bearer <session id> -- non-browser clients.

get_session_id() never raises: an absent id comes back as "" and the RBAC
policy turns that into UnauthenticatedError, so "no cookie" and "bad cookie"
take the same path.

Cookies written here are always HttpOnly and SameSite=Lax; Secure, Domain and
Path come from Settings.

Layer rule: no imports from api/ or llm/. This module may import from fastapi
because it is part of the FastAPI dependency injection system.
"""

from __future__ import annotations

import base64

from fastapi import Request, Response

from auth.rbac import RBACPolicy
from auth.service import AuthService
from core.config import Settings


def get_session_id(request: Request) -> str:
    """Return the caller's session id, or "" when none was presented."""
    settings: Settings = request.app.state.settings
    session_id = request.cookies.get(settings.session_cookie_name, "")
    if session_id:
        return session_id
    auth_header = request.headers.get("Authorization", "")
    if auth_header.startswith("Bearer "):
        return auth_header[7:].strip()
    return ""


def get_auth_service(request: Request) -> AuthService:
    return request.app.state.auth_service


def get_rbac_policy(request: Request) -> RBACPolicy:
    return request.app.state.rbac


# ---------------------------------------------------------------------------
# Cookie helpers
# ---------------------------------------------------------------------------


def set_cookie(response: Response, settings: Settings, name: str, value: str, max_age: int) -> None:
    """Write an HttpOnly, SameSite=Lax cookie using the configured scope."""
    response.set_cookie(
        name,
        value=value,
        max_age=max_age,
        path=settings.cookie_path,
        domain=settings.cookie_domain or None,
        secure=settings.cookie_secure,
        httponly=True,
        samesite="lax",
    )


def clear_cookie(response: Response, settings: Settings, name: str) -> None:
    response.delete_cookie(
        name,
        path=settings.cookie_path,
        domain=settings.cookie_domain or None,
        secure=settings.cookie_secure,
        httponly=True,
        samesite="lax",
    )


def sanitize_return_to(value: str | None) -> str:
    """Return a same-site relative path, or "" if value could redirect off-site.

    Accepts only paths starting with a single "/". Rejects absolute URLs
    ("://" anywhere) and protocol-relative "//host" forms.
    """
    value = (value or "").strip()
    if not value:
        return ""
    if "://" in value or value.startswith("//"):
        return ""
    if not value.startswith("/"):
        return ""
    return value


def is_cookie_value_safe(value: str) -> bool:
    """True when every character is an RFC 6265 cookie-octet."""
    for ch in value:
        code = ord(ch)
        if code <= 0x20 or code >= 0x7F:
            return False
        if ch in '",;\\':
            return False
    return True


def cookie_safe(value: str) -> str:
    """Return value unchanged if cookie-safe, else its unpadded base64url encoding."""
    if is_cookie_value_safe(value):
        return value
    return base64.urlsafe_b64encode(value.encode("utf-8")).decode("ascii").rstrip("=")
