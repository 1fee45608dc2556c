"""
tests/test_sessions.py -- MemorySessionStore and SQLSessionStore.

Both stores run the same contract tests: save/get round-trip including the
token pair, TTL enforced on read, delete semantics, purge_expired(). A fake
clock drives expiry so nothing sleeps.
"""

from __future__ import annotations

import asyncio

import pytest

from auth.models import Session
from auth.sessions import MemorySessionStore, SQLSessionStore
from conftest import make_token_pair, memory_db_url
from core.errors import SessionNotFoundError


class FakeClock:
    def __init__(self, now: float = 10_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


@pytest.fixture(params=["memory", "sql"])
def store_and_clock(request):
    clock = FakeClock()
    if request.param == "memory":
        store = MemorySessionStore(clock=clock)
    else:
        store = SQLSessionStore(memory_db_url("sessions"), clock=clock)
    yield store, clock
    store.close()


def _session(user_id: str = "u-1") -> Session:
    return Session(user_id=user_id, token=make_token_pair("at-" + user_id, "rt-" + user_id))


def test_save_then_get_round_trips(store_and_clock) -> None:
    store, _ = store_and_clock
    asyncio.run(store.save("sid-1", _session(), 60))

    session = asyncio.run(store.get("sid-1"))

    assert session == _session()
    assert session.token.access_token.expires_at == 1_900_000_000
    assert session.token.token_type == "Bearer"


def test_unknown_id_is_not_found(store_and_clock) -> None:
    store, _ = store_and_clock
    with pytest.raises(SessionNotFoundError):
        asyncio.run(store.get("missing"))


def test_expired_session_is_not_found(store_and_clock) -> None:
    store, clock = store_and_clock
    asyncio.run(store.save("sid-1", _session(), 60))

    clock.now += 59
    assert asyncio.run(store.get("sid-1")).user_id == "u-1"

    clock.now += 1
    with pytest.raises(SessionNotFoundError):
        asyncio.run(store.get("sid-1"))

    # Expired records are deleted on read, so winding the clock back does not revive them.
    clock.now -= 30
    with pytest.raises(SessionNotFoundError):
        asyncio.run(store.get("sid-1"))


def test_save_replaces_existing_record(store_and_clock) -> None:
    store, clock = store_and_clock
    asyncio.run(store.save("sid-1", _session("u-1"), 10))
    asyncio.run(store.save("sid-1", _session("u-2"), 100))

    clock.now += 50
    assert asyncio.run(store.get("sid-1")).user_id == "u-2"


def test_delete(store_and_clock) -> None:
    store, _ = store_and_clock
    asyncio.run(store.save("sid-1", _session(), 60))
    asyncio.run(store.delete("sid-1"))
    with pytest.raises(SessionNotFoundError):
        asyncio.run(store.get("sid-1"))


def test_delete_unknown_and_empty_are_noops(store_and_clock) -> None:
    store, _ = store_and_clock
    asyncio.run(store.delete(""))
    asyncio.run(store.delete("missing"))


def test_purge_expired(store_and_clock) -> None:
    store, clock = store_and_clock
    asyncio.run(store.save("short", _session("u-1"), 10))
    asyncio.run(store.save("long", _session("u-2"), 1000))

    clock.now += 11
    assert store.purge_expired() == 1
    assert asyncio.run(store.get("long")).user_id == "u-2"
    assert store.purge_expired() == 0


def test_sql_sessions_are_shared_across_store_instances() -> None:
    url = memory_db_url("shared_sessions")
    first = SQLSessionStore(url)
    second = SQLSessionStore(url)
    try:
        asyncio.run(first.save("sid-1", _session(), 60))
        assert asyncio.run(second.get("sid-1")).user_id == "u-1"
    finally:
        second.close()
        first.close()
