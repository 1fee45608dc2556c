"""
auth/store.py -- SQLAlchemy Core persistence layer for users and login info.

Pattern: Repository + Data Mapper. UserStore is the repository;
_row_to_user / _row_to_me / _row_to_admin_user are the mappers. The
orchestrator and RBAC policy never touch SQL directly.

Tables:
  users        -- primary key is the identity provider uid. role and
                  nickname are the only locally-owned fields.
  login_infos  -- one snapshot row per user, overwritten on every login.
                  oauth_connections is a JSON list.

Security:
  All queries use bound parameters. No f-strings in SQL.

Atomicity: every public method is a single statement or a single
transaction. Nothing here spans records; callers that read-then-act (the
protect-super-admin check, for instance) accept the race.

Methods are coroutines to satisfy auth.ports.UserRepository. The engine is
synchronous; each call is short and runs inline on the event loop.

Layer rule: no imports from api/ or llm/.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, MetaData, String, Table, Text, create_engine, event, func, select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError

from auth.models import AdminUser, LoginInfo, Me, OAuthConnection, Role, User, parse_role
from core.errors import UserNotFoundError

logger = logging.getLogger("llmstudio.auth.store")

_DEFAULT_DB_URL = "sqlite:///llm_studio.db"

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_users = Table(
    "users",
    _metadata,
    Column("id", String(128), primary_key=True),  # identity provider uid
    Column("role", String(32), nullable=False, server_default=Role.USER.value, index=True),
    Column("nickname", String(64), nullable=False, server_default=""),
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
)

_login_infos = Table(
    "login_infos",
    _metadata,
    Column("user_id", String(128), primary_key=True),
    Column("email", String(320), nullable=False, server_default=""),
    Column("github_id", String(128)),
    Column("password_enabled", Boolean, nullable=False, server_default="0"),
    Column("oauth_connections", Text, nullable=False, server_default="[]"),  # JSON list
    Column("created_at", String(32), nullable=False),
    Column("updated_at", String(32), nullable=False),
)


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode for concurrent read safety.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


def make_engine(db_url: str) -> Engine:
    """Create an engine with the SQLite conventions shared by every store here."""
    connect_args: dict = {}
    if db_url.startswith("sqlite"):
        connect_args["check_same_thread"] = False
    engine = create_engine(db_url, connect_args=connect_args)
    if db_url.startswith("sqlite"):
        event.listen(engine, "connect", _set_wal_mode)
    return engine


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class UserStore:
    """Repository for User and LoginInfo records.

    get_user, count_users and get_login_info are inspection helpers for
    tests and operators; no use case reads through them.

    Usage:
        store = UserStore("sqlite:///llm_studio.db")
        await store.ensure_exists("uid-123")
        role = await store.get_role("uid-123")
        store.close()
    """

    def __init__(self, db_url: str = _DEFAULT_DB_URL) -> None:
        self.engine: Engine = make_engine(db_url)
        _metadata.create_all(self.engine)

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------

    async def ensure_exists(self, user_id: str) -> None:
        """Create the user with role `user` unless a record already exists.

        Idempotent. A concurrent creator winning the insert shows up as an
        IntegrityError on the primary key, which means the row exists -- the
        outcome we wanted.
        """
        with self.engine.connect() as conn:
            exists = conn.execute(select(_users.c.id).where(_users.c.id == user_id)).first()
        if exists is not None:
            return
        now = _now_iso()
        try:
            with self.engine.begin() as conn:
                conn.execute(
                    _users.insert().values(id=user_id, role=Role.USER.value, nickname="", created_at=now, updated_at=now)
                )
        except IntegrityError:
            return
        logger.info("Created local user %s", user_id)

    async def get_user(self, user_id: str) -> User | None:
        """Look up a user by primary key. Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.id == user_id)).fetchone()
        return _row_to_user(row) if row is not None else None

    async def get_role(self, user_id: str) -> Role:
        """Return the stored role. Unknown role strings read back as `user`.

        Raises UserNotFoundError if the user has no record.
        """
        with self.engine.connect() as conn:
            row = conn.execute(select(_users.c.role).where(_users.c.id == user_id)).fetchone()
        if row is None:
            raise UserNotFoundError(f"user {user_id!r} not found")
        return parse_role(row.role) or Role.USER

    async def set_role(self, user_id: str, role: Role) -> None:
        """Set the role, creating the user first if needed."""
        await self.ensure_exists(user_id)
        with self.engine.begin() as conn:
            conn.execute(_users.update().where(_users.c.id == user_id).values(role=role.value, updated_at=_now_iso()))

    async def set_nickname(self, user_id: str, nickname: str) -> None:
        """Set the nickname, creating the user first if needed. Length is the caller's concern."""
        await self.ensure_exists(user_id)
        with self.engine.begin() as conn:
            conn.execute(
                _users.update().where(_users.c.id == user_id).values(nickname=nickname, updated_at=_now_iso())
            )

    async def count_users(self) -> int:
        with self.engine.connect() as conn:
            result = conn.execute(select(func.count()).select_from(_users)).scalar()
        return result or 0

    # ------------------------------------------------------------------
    # Login info
    # ------------------------------------------------------------------

    async def save_login_info(self, info: LoginInfo) -> None:
        """Upsert the login-info snapshot for info.user_id.

        Update first; insert when no row matched. If a concurrent login inserts
        between the two, the IntegrityError is resolved by updating again.
        """
        now = _now_iso()
        values = {
            "email": info.email,
            "github_id": info.github_id,
            "password_enabled": info.password_enabled,
            "oauth_connections": json.dumps(
                [{"provider": c.provider, "provider_user_id": c.provider_user_id} for c in info.oauth_connections]
            ),
            "updated_at": now,
        }
        update = _login_infos.update().where(_login_infos.c.user_id == info.user_id).values(**values)
        with self.engine.begin() as conn:
            result = conn.execute(update)
        if result.rowcount > 0:
            return
        try:
            with self.engine.begin() as conn:
                conn.execute(_login_infos.insert().values(user_id=info.user_id, created_at=now, **values))
        except IntegrityError:
            with self.engine.begin() as conn:
                conn.execute(update)

    async def get_login_info(self, user_id: str) -> LoginInfo | None:
        with self.engine.connect() as conn:
            row = conn.execute(_login_infos.select().where(_login_infos.c.user_id == user_id)).fetchone()
        return _row_to_login_info(row) if row is not None else None

    # ------------------------------------------------------------------
    # Composite views
    # ------------------------------------------------------------------

    async def get_me(self, user_id: str) -> Me:
        """Return the user joined with its login-info snapshot.

        Users created through the fallback path have no snapshot yet; their
        email is empty and github_id None. Raises UserNotFoundError when the
        user itself is missing.
        """
        query = (
            select(
                _users.c.id,
                _users.c.role,
                _users.c.nickname,
                _login_infos.c.email,
                _login_infos.c.github_id,
            )
            .select_from(_users.outerjoin(_login_infos, _login_infos.c.user_id == _users.c.id))
            .where(_users.c.id == user_id)
        )
        with self.engine.connect() as conn:
            row = conn.execute(query).fetchone()
        if row is None:
            raise UserNotFoundError(f"user {user_id!r} not found")
        return _row_to_me(row)

    async def list_users(self, limit: int, offset: int) -> list[AdminUser]:
        """Return one page of users, newest first. Admin-only operation.

        Paging defaults are applied by the RBAC policy; this method trusts the
        values it is given.
        """
        query = (
            select(
                _users.c.id,
                _users.c.role,
                _users.c.created_at,
                _users.c.updated_at,
                _login_infos.c.email,
                _login_infos.c.github_id,
                _login_infos.c.password_enabled,
            )
            .select_from(_users.outerjoin(_login_infos, _login_infos.c.user_id == _users.c.id))
            .order_by(_users.c.created_at.desc(), _users.c.id)
            .limit(limit)
            .offset(offset)
        )
        with self.engine.connect() as conn:
            rows = conn.execute(query).fetchall()
        return [_row_to_admin_user(r) for r in rows]

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_user(row) -> User:
    return User(
        id=row.id,
        role=parse_role(row.role) or Role.USER,
        nickname=row.nickname or "",
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _row_to_login_info(row) -> LoginInfo:
    connections = json.loads(row.oauth_connections or "[]")
    return LoginInfo(
        user_id=row.user_id,
        email=row.email or "",
        github_id=row.github_id,
        password_enabled=bool(row.password_enabled),
        oauth_connections=[OAuthConnection(c["provider"], c["provider_user_id"]) for c in connections],
    )


def _row_to_me(row) -> Me:
    return Me(
        user_id=row.id,
        role=parse_role(row.role) or Role.USER,
        email=row.email or "",
        github_id=row.github_id,
        nickname=row.nickname or "",
    )


def _row_to_admin_user(row) -> AdminUser:
    # Outer join: login-info columns are NULL for users without a snapshot.
    return AdminUser(
        id=row.id,
        role=parse_role(row.role) or Role.USER,
        email=row.email or "",
        github_id=row.github_id,
        password_enabled=bool(row.password_enabled),
        created_at=row.created_at,
        updated_at=row.updated_at,
    )
