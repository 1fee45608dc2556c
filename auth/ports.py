"""
auth/ports.py -- Interfaces the auth core consumes.

Each port is a typing.Protocol: implementations satisfy it structurally and
never import this module. Every I/O method is a coroutine, so a caller can
bound any port call with asyncio.wait_for and cancellation reaches the adapter.
UIDExtractor is pure token parsing and stays synchronous.

Implementations shipped in this repo:
  SessionStore   -- auth.sessions.MemorySessionStore, auth.sessions.SQLSessionStore
  UserRepository -- auth.store.UserStore
  UIDExtractor   -- auth.tokens.JWTUIDExtractor
  OAuthGateway   -- none; the identity provider integration is supplied by the
                    deployment and attached to app.state.oauth_gateway.

Error contract:
  SessionStore.get raises core.errors.SessionNotFoundError on miss or expiry.
  UserRepository.get_role raises core.errors.UserNotFoundError when absent.
  Gateways raise core.errors.GatewayError for transport failures.
"""

from __future__ import annotations

from typing import Protocol

from auth.models import AdminUser, LoginInfo, Me, Role, Session, TokenPair


class OAuthGateway(Protocol):
    async def get_authorization_url(self, provider: str, redirect_url: str) -> tuple[str, str]: ...

    async def login_by_oauth(self, code: str, state: str) -> TokenPair: ...

    async def get_current_user_login_info(self, access_token: str) -> LoginInfo: ...


class UIDExtractor(Protocol):
    def extract_user_id(self, access_token: str) -> str: ...


class SessionStore(Protocol):
    async def save(self, session_id: str, session: Session, ttl_seconds: int) -> None: ...

    async def get(self, session_id: str) -> Session: ...

    async def delete(self, session_id: str) -> None: ...


class UserRepository(Protocol):
    async def ensure_exists(self, user_id: str) -> None: ...

    async def save_login_info(self, info: LoginInfo) -> None: ...

    async def get_role(self, user_id: str) -> Role: ...

    async def set_role(self, user_id: str, role: Role) -> None: ...

    async def list_users(self, limit: int, offset: int) -> list[AdminUser]: ...

    async def get_me(self, user_id: str) -> Me: ...

    async def set_nickname(self, user_id: str, nickname: str) -> None: ...
