"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, near-zero logic). Stores, the
orchestrator, and the RBAC policy do the work; these only own domain shape.

Role is the one exception: it is an Enum with a rank so the RBAC policy can
compare "at least admin" without a chain of equality checks.

Layer rule: no imports from api/ or llm/.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


class Role(str, Enum):
    USER = "user"
    ADMIN = "admin"
    SUPER_ADMIN = "super_admin"

    @property
    def rank(self) -> int:
        return _ROLE_RANK[self]

    def satisfies(self, minimum: Role) -> bool:
        """True when this role meets `minimum`.

        admin and super_admin are equivalent for ADMIN gates; only a
        super_admin satisfies a SUPER_ADMIN gate.
        """
        return self.rank >= minimum.rank


_ROLE_RANK = {Role.USER: 0, Role.ADMIN: 1, Role.SUPER_ADMIN: 2}

# Roles the role-assignment operation may hand out. super_admin is config-driven.
ASSIGNABLE_ROLES = frozenset({Role.ADMIN, Role.USER})


def parse_role(value: str | None) -> Role | None:
    """Parse a role name, case-insensitive and whitespace-trimmed. None if unknown."""
    if value is None:
        return None
    try:
        return Role(value.strip().lower())
    except ValueError:
        return None


@dataclass
class Token:
    value: str
    expires_at: int = 0  # unix seconds, 0 = unknown


@dataclass
class TokenPair:
    """Upstream token pair returned by the identity gateway's code exchange."""

    access_token: Token
    refresh_token: Token
    token_type: str = "Bearer"


@dataclass
class Session:
    """Server-side session payload.

    user_id is the identity provider uid, which is also the local User
    primary key. The session id itself is the store key and is not repeated
    here.
    """

    user_id: str
    token: TokenPair


@dataclass
class OAuthConnection:
    provider: str
    provider_user_id: str


@dataclass
class LoginInfo:
    """Profile snapshot reported by the identity provider, refreshed on every login."""

    user_id: str
    email: str = ""
    github_id: str | None = None
    password_enabled: bool = False
    oauth_connections: list[OAuthConnection] = field(default_factory=list)


@dataclass
class User:
    id: str
    role: Role = Role.USER
    nickname: str = ""
    created_at: str | None = None
    updated_at: str | None = None


@dataclass
class Me:
    """Current-user view: User joined with its LoginInfo snapshot."""

    user_id: str
    role: Role
    email: str = ""
    github_id: str | None = None
    nickname: str = ""


@dataclass
class AdminUser:
    """Row of the user-management listing."""

    id: str
    role: Role
    email: str = ""
    github_id: str | None = None
    password_enabled: bool = False
    created_at: str | None = None
    updated_at: str | None = None
