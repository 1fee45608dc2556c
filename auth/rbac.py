"""
auth/rbac.py -- Role-based access control over sessions.

RBACPolicy is the one authorization gate. Every privileged use case (self
profile, user administration, LLM administration in llm/admin.py) calls
authorize() with its minimum role before touching a port. Token issuance
needs only a live session and calls authenticate().

Canonical check for a session id:
  1. Empty id                          -> UnauthenticatedError
  2. Session lookup misses or errors   -> UnauthenticatedError (one kind; an
                                          expired id and a forged id look the same)
  3. Role lookup for session.user_id   -> missing user is created lazily with
                                          role `user`; other errors propagate
  4. role.satisfies(minimum) is False  -> ForbiddenError

Role assignment has two extra rules on top of the super_admin gate:
  - only `admin` and `user` can be assigned (InvalidRoleError otherwise);
  - a target that is currently super_admin cannot be changed (ForbiddenError),
    whoever is asking. super_admin comes from the config allow-list only.
Both target checks are read-then-act with no isolation; a concurrent login
promoting the target between the read and the write is an accepted race.

Layer rule: no imports from api/ or llm/.
"""

from __future__ import annotations

import logging

from auth.models import ASSIGNABLE_ROLES, AdminUser, Me, Role, Session, parse_role
from auth.ports import SessionStore, UserRepository
from core.errors import (
    ConfigurationError,
    ForbiddenError,
    InvalidInputError,
    InvalidNicknameError,
    InvalidRoleError,
    UnauthenticatedError,
    UserNotFoundError,
)

logger = logging.getLogger("llmstudio.rbac")

NICKNAME_MAX_LENGTH = 32
DEFAULT_PAGE_SIZE = 50


class RBACPolicy:
    """Session -> role resolution plus the user-facing RBAC use cases."""

    def __init__(
        self,
        sessions: SessionStore | None,
        users: UserRepository | None,
        *,
        page_size: int = DEFAULT_PAGE_SIZE,
    ) -> None:
        self.sessions = sessions
        self.users = users
        self.page_size = page_size

    # ------------------------------------------------------------------
    # Canonical check
    # ------------------------------------------------------------------

    async def authenticate(self, session_id: str) -> Session:
        """Steps 1-2: return the live session or raise UnauthenticatedError."""
        if not session_id:
            raise UnauthenticatedError("missing session")
        if self.sessions is None:
            raise ConfigurationError("session store is not configured")
        try:
            return await self.sessions.get(session_id)
        except Exception as exc:  # noqa: BLE001 -- every lookup failure is "unauthenticated"
            logger.debug("Session lookup failed: %s", type(exc).__name__)
            raise UnauthenticatedError("invalid or expired session") from exc

    async def resolve_role(self, user_id: str) -> Role:
        """Step 3: the user's role, creating the user with role `user` if absent."""
        if self.users is None:
            raise ConfigurationError("user repository is not configured")
        try:
            return await self.users.get_role(user_id)
        except UserNotFoundError:
            await self.users.ensure_exists(user_id)
            return Role.USER

    async def authorize(self, session_id: str, minimum: Role) -> tuple[Session, Role]:
        """Full check. Returns (session, role) when the role meets `minimum`."""
        session = await self.authenticate(session_id)
        role = await self.resolve_role(session.user_id)
        if not role.satisfies(minimum):
            logger.debug("Forbidden (user_id=%s role=%s required=%s)", session.user_id, role.value, minimum.value)
            raise ForbiddenError(f"{minimum.value} role required")
        return session, role

    # ------------------------------------------------------------------
    # Self profile
    # ------------------------------------------------------------------

    async def me(self, session_id: str) -> Me:
        session, _ = await self.authorize(session_id, Role.USER)
        return await self.users.get_me(session.user_id)

    async def update_my_nickname(self, session_id: str, nickname: str) -> Me:
        """Set the caller's nickname (trimmed, at most 32 characters; empty clears it)."""
        session, _ = await self.authorize(session_id, Role.USER)
        nickname = (nickname or "").strip()
        if len(nickname) > NICKNAME_MAX_LENGTH:
            raise InvalidNicknameError(f"nickname must be at most {NICKNAME_MAX_LENGTH} characters")
        await self.users.set_nickname(session.user_id, nickname)
        return await self.users.get_me(session.user_id)

    # ------------------------------------------------------------------
    # User administration
    # ------------------------------------------------------------------

    async def list_users(self, session_id: str, limit: int | None = None, offset: int | None = None) -> list[AdminUser]:
        """One page of users for admins. Non-positive limit -> page size; negative offset -> 0."""
        await self.authorize(session_id, Role.ADMIN)
        if limit is None or limit <= 0:
            limit = self.page_size
        if offset is None or offset < 0:
            offset = 0
        return await self.users.list_users(limit, offset)

    async def set_user_role(self, actor_session_id: str, target_user_id: str, role: Role | str) -> None:
        """Assign `admin` or `user` to target_user_id. super_admin actors only."""
        actor, _ = await self.authorize(actor_session_id, Role.SUPER_ADMIN)

        requested = role if isinstance(role, Role) else parse_role(role)
        if requested not in ASSIGNABLE_ROLES:
            raise InvalidRoleError("role must be 'admin' or 'user'")

        target_user_id = (target_user_id or "").strip()
        if not target_user_id:
            raise InvalidInputError("target user id is required")

        try:
            current = await self.users.get_role(target_user_id)
        except UserNotFoundError:
            current = None
        if current is Role.SUPER_ADMIN:
            raise ForbiddenError("super_admin role is managed by configuration")

        await self.users.set_role(target_user_id, requested)
        logger.info("Role changed (actor=%s target=%s role=%s)", actor.user_id, target_user_id, requested.value)
