"""
auth/service.py -- OAuth-to-session orchestration.

AuthService is a stateless coordinator over four injected ports (see
auth/ports.py). It owns no persistent state; the only thing it keeps between
calls is the normalized super-admin allow-list, which is fixed at
construction.

Identity resolution at login completion, in order:
  1. Authoritative: gateway.get_current_user_login_info(access_token). A
     non-empty user_id wins, and the snapshot is persisted.
  2. Fallback: uid_extractor.extract_user_id(access_token). Only consulted when
     step 1 raised or returned an empty user_id. No snapshot is available on
     this path, so super-admin promotion cannot happen either.

Failure policy: fail fast, no partial session. The user record created by
ensure_exists() is not rolled back when a later step fails -- ensure_exists
is idempotent, so a retried login converges.

Layer rule: no imports from api/ or llm/.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable

from auth.models import LoginInfo, Role, Session
from auth.ports import OAuthGateway, SessionStore, UIDExtractor, UserRepository
from auth.tokens import new_session_id
from core.errors import ConfigurationError, ExtractionError

logger = logging.getLogger("llmstudio.auth")


def normalize_email(email: str | None) -> str:
    return (email or "").strip().lower()


class AuthService:
    """Drives OAuth start, OAuth completion into a session, and logout."""

    def __init__(
        self,
        gateway: OAuthGateway | None,
        sessions: SessionStore | None,
        uid_extractor: UIDExtractor | None,
        users: UserRepository | None,
        super_admin_emails: Iterable[str] = (),
    ) -> None:
        self.gateway = gateway
        self.sessions = sessions
        self.uid_extractor = uid_extractor
        self.users = users
        self.super_admin_emails: frozenset[str] = frozenset(
            e for e in (normalize_email(raw) for raw in super_admin_emails) if e
        )

    # ------------------------------------------------------------------
    # OAuth
    # ------------------------------------------------------------------

    async def start_oauth(self, provider: str, redirect_url: str) -> tuple[str, str]:
        """Return (authorization_url, state) from the identity gateway."""
        if self.gateway is None:
            raise ConfigurationError("oauth gateway is not configured")
        return await self.gateway.get_authorization_url(provider, redirect_url)

    async def complete_oauth_to_session(self, code: str, state: str, ttl_seconds: int) -> tuple[str, str]:
        """Exchange code+state, resolve the user, and open a session.

        Returns (session_id, user_id).
        """
        if self.gateway is None:
            raise ConfigurationError("oauth gateway is not configured")

        tokens = await self.gateway.login_by_oauth(code, state)
        access_token = tokens.access_token.value

        login_info = await self._authoritative_login_info(access_token)
        if login_info is not None:
            user_id = login_info.user_id
        else:
            user_id = self._fallback_user_id(access_token)

        if self.users is None:
            raise ConfigurationError("user repository is not configured")
        await self.users.ensure_exists(user_id)

        promoted = False
        if login_info is not None:
            await self.users.save_login_info(login_info)
            if self.is_super_admin_email(login_info.email):
                await self.users.set_role(user_id, Role.SUPER_ADMIN)
                promoted = True

        if self.sessions is None:
            raise ConfigurationError("session store is not configured")
        session_id = new_session_id()
        await self.sessions.save(session_id, Session(user_id=user_id, token=tokens), ttl_seconds)

        logger.info(
            "Login completed (user_id=%s source=%s super_admin_promoted=%s)",
            user_id,
            "login_info" if login_info is not None else "token_claims",
            promoted,
        )
        return session_id, user_id

    async def _authoritative_login_info(self, access_token: str) -> LoginInfo | None:
        """Return the login-info snapshot, or None when the fallback must be used.

        Any failure here is a signal to fall back, not an error: the lookup is
        preferred, not required.
        """
        try:
            info = await self.gateway.get_current_user_login_info(access_token)
        except Exception as exc:  # noqa: BLE001 -- any lookup failure selects the fallback path
            logger.warning("Login-info lookup failed, falling back to token claims: %s", exc)
            return None
        if info is None or not info.user_id:
            logger.warning("Login-info lookup returned no user id, falling back to token claims")
            return None
        return info

    def _fallback_user_id(self, access_token: str) -> str:
        if self.uid_extractor is None:
            raise ConfigurationError("uid extractor is not configured")
        user_id = self.uid_extractor.extract_user_id(access_token)
        if not user_id:
            raise ExtractionError("empty user id")
        return user_id

    def is_super_admin_email(self, email: str | None) -> bool:
        """True when the trimmed, lowercased email is on the allow-list.

        An empty allow-list disables promotion entirely.
        """
        if not self.super_admin_emails:
            return False
        normalized = normalize_email(email)
        return bool(normalized) and normalized in self.super_admin_emails

    # ------------------------------------------------------------------
    # Logout
    # ------------------------------------------------------------------

    async def logout(self, session_id: str) -> None:
        """Delete the session. Empty ids and unknown ids are both no-ops."""
        if not session_id:
            return
        if self.sessions is None:
            raise ConfigurationError("session store is not configured")
        await self.sessions.delete(session_id)
        logger.info("Session logged out")
