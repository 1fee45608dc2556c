"""
auth/sessions.py -- Session store implementations.

Two stores satisfy auth.ports.SessionStore:

  MemorySessionStore -- dict keyed by session id with an absolute expiry.
      Single-process only; used by tests and SESSION_BACKEND=memory.

  SQLSessionStore -- SQLAlchemy Core table, same engine conventions as
      auth/store.py. Sessions survive restarts and are shared by every worker
      pointing at the same database.

TTL is enforced on read in both: an expired record is deleted and reported as
SessionNotFoundError, exactly like an id that never existed. purge_expired()
only reclaims space; correctness never depends on it running.

Payload format (SQL): JSON of the Session dataclass. Token values are stored
as-is; the database holding sessions must be treated as a secret store.

Layer rule: no imports from api/ or llm/.
"""

from __future__ import annotations

import json
import logging
import time
from collections.abc import Callable
from dataclasses import asdict

from sqlalchemy import Column, Float, MetaData, String, Table, Text
from sqlalchemy.engine import Engine

from auth.models import Session, Token, TokenPair
from auth.store import make_engine
from core.errors import SessionNotFoundError

logger = logging.getLogger("llmstudio.sessions")

Clock = Callable[[], float]

# ---------------------------------------------------------------------------
# In-memory store
# ---------------------------------------------------------------------------


class MemorySessionStore:
    """Process-local session store with TTL.

    Every method body runs without awaiting, so on a single event loop each
    operation is atomic with respect to other coroutines.
    """

    def __init__(self, clock: Clock = time.time) -> None:
        self._clock = clock
        self._records: dict[str, tuple[Session, float]] = {}

    async def save(self, session_id: str, session: Session, ttl_seconds: int) -> None:
        self._records[session_id] = (session, self._clock() + ttl_seconds)

    async def get(self, session_id: str) -> Session:
        record = self._records.get(session_id)
        if record is None:
            raise SessionNotFoundError("session not found")
        session, expires_at = record
        if self._clock() >= expires_at:
            self._records.pop(session_id, None)
            raise SessionNotFoundError("session not found")
        return session

    async def delete(self, session_id: str) -> None:
        if not session_id:
            return
        self._records.pop(session_id, None)

    def purge_expired(self) -> int:
        now = self._clock()
        expired = [sid for sid, (_, expires_at) in self._records.items() if now >= expires_at]
        for sid in expired:
            del self._records[sid]
        return len(expired)

    def close(self) -> None:
        self._records.clear()


# ---------------------------------------------------------------------------
# SQL store
# ---------------------------------------------------------------------------

_metadata = MetaData()

_sessions = Table(
    "sessions",
    _metadata,
    Column("id", String(64), primary_key=True),
    Column("user_id", String(128), nullable=False, index=True),
    Column("payload", Text, nullable=False),  # JSON of Session
    Column("expires_at", Float, nullable=False, index=True),  # unix seconds
)


class SQLSessionStore:
    """Durable session store backed by a single `sessions` table.

    Usage:
        store = SQLSessionStore("sqlite:///llm_studio.db")
        await store.save(sid, Session(...), ttl_seconds=3600)
        session = await store.get(sid)
        store.close()
    """

    def __init__(self, db_url: str, clock: Clock = time.time) -> None:
        self.engine: Engine = make_engine(db_url)
        _metadata.create_all(self.engine)
        self._clock = clock

    async def save(self, session_id: str, session: Session, ttl_seconds: int) -> None:
        """Insert or replace the record for session_id.

        Delete-then-insert inside one transaction keeps this portable across
        dialects without a dialect-specific upsert.
        """
        values = {
            "id": session_id,
            "user_id": session.user_id,
            "payload": _session_to_json(session),
            "expires_at": self._clock() + ttl_seconds,
        }
        with self.engine.begin() as conn:
            conn.execute(_sessions.delete().where(_sessions.c.id == session_id))
            conn.execute(_sessions.insert().values(**values))

    async def get(self, session_id: str) -> Session:
        with self.engine.connect() as conn:
            row = conn.execute(_sessions.select().where(_sessions.c.id == session_id)).fetchone()
        if row is None:
            raise SessionNotFoundError("session not found")
        if self._clock() >= row.expires_at:
            await self.delete(session_id)
            raise SessionNotFoundError("session not found")
        return _json_to_session(row.payload)

    async def delete(self, session_id: str) -> None:
        if not session_id:
            return
        with self.engine.begin() as conn:
            conn.execute(_sessions.delete().where(_sessions.c.id == session_id))

    def purge_expired(self) -> int:
        """Delete all expired sessions. Returns number of rows removed."""
        with self.engine.begin() as conn:
            result = conn.execute(_sessions.delete().where(_sessions.c.expires_at <= self._clock()))
        if result.rowcount:
            logger.info("Purged %d expired sessions", result.rowcount)
        return result.rowcount

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Payload mappers
# ---------------------------------------------------------------------------


def _session_to_json(session: Session) -> str:
    return json.dumps(asdict(session), separators=(",", ":"))


def _json_to_session(payload: str) -> Session:
    data = json.loads(payload)
    token = data.get("token") or {}
    return Session(
        user_id=data["user_id"],
        token=TokenPair(
            access_token=Token(**token.get("access_token", {"value": ""})),
            refresh_token=Token(**token.get("refresh_token", {"value": ""})),
            token_type=token.get("token_type", "Bearer"),
        ),
    )
