"""
tests/conftest.py -- Shared fakes and fixtures for the LLM Studio BFF tests.

This module provides:
  - Fake ports: FakeOAuthGateway, FakeUIDExtractor, FakeLLMAdmin, FakeTokenIssuer
  - memory_db_url(): unique named shared-memory SQLite URI
  - user_store / session_store: isolated stores for unit tests
  - _patch_lifespan(): wires test stores and fakes into app.state, bypassing real startup
  - api: module-scoped ApiContext (TestClient + stores + fakes) for HTTP tests

Design: Named shared-memory SQLite URIs (not plain :memory:) are required
because TestClient runs the app on its own event-loop thread while fixtures
seed data from the test thread. Plain :memory: DBs are per-connection and
would present a blank schema to the other thread. The named URI format
(file:name?mode=memory&cache=shared&uri=true) shares one in-memory instance
across all connections in the same process.

Async use cases are driven with asyncio.run() -- no async test plugin.

LOGIN_RATE_LIMIT must be raised before api.main is imported: the shared
limiter would otherwise trip on the OAuth tests that run in one module.
"""

from __future__ import annotations

import asyncio
import os
import uuid
from collections.abc import Generator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field

os.environ.setdefault("LOGIN_RATE_LIMIT", "1000/minute")

import pytest
from fastapi.testclient import TestClient

from api.limiter import limiter
from api.main import app, wire_services
from auth.models import LoginInfo, Role, Session, Token, TokenPair
from auth.sessions import MemorySessionStore
from auth.store import UserStore
from auth.tokens import new_session_id
from core.config import Settings
from core.errors import ExtractionError, GatewayError
from llm.models import ModelConfig, ModelSpec, ProviderConfig, ProviderConfigView, ProviderType

SUPER_ADMIN_EMAIL = "root@example.com"


def memory_db_url(prefix: str) -> str:
    return f"sqlite:///file:{prefix}_{uuid.uuid4().hex}?mode=memory&cache=shared&uri=true"


def make_token_pair(access: str = "access-token", refresh: str = "refresh-token") -> TokenPair:
    return TokenPair(access_token=Token(access, 1_900_000_000), refresh_token=Token(refresh, 1_900_100_000))


# ---------------------------------------------------------------------------
# Fake ports
# ---------------------------------------------------------------------------


class FakeOAuthGateway:
    """Identity gateway double. Set login_info / login_info_error per test."""

    def __init__(self) -> None:
        self.reset()

    def reset(self) -> None:
        self.authorization_url = "https://idp.example.com/authorize?state=xyz"
        self.tokens = make_token_pair()
        self.login_info: LoginInfo | None = LoginInfo(user_id="gh-1", email="user@example.com", github_id="101")
        self.login_info_error: Exception | None = None
        self.start_error: Exception | None = None
        self.login_error: Exception | None = None
        self.calls: list[tuple] = []

    async def get_authorization_url(self, provider: str, redirect_url: str) -> tuple[str, str]:
        self.calls.append(("get_authorization_url", provider, redirect_url))
        if self.start_error is not None:
            raise self.start_error
        return self.authorization_url, "xyz"

    async def login_by_oauth(self, code: str, state: str) -> TokenPair:
        self.calls.append(("login_by_oauth", code, state))
        if self.login_error is not None:
            raise self.login_error
        return self.tokens

    async def get_current_user_login_info(self, access_token: str) -> LoginInfo:
        self.calls.append(("get_current_user_login_info", access_token))
        if self.login_info_error is not None:
            raise self.login_info_error
        return self.login_info


class FakeUIDExtractor:
    def __init__(self, user_id: str = "claims-uid") -> None:
        self.user_id = user_id
        self.calls: list[str] = []

    def extract_user_id(self, access_token: str) -> str:
        self.calls.append(access_token)
        if self.user_id is None:
            raise ExtractionError("no uid claim")
        return self.user_id


class FakeLLMAdmin:
    """In-memory LLM gateway control plane. Records every call by name."""

    def __init__(self) -> None:
        self.reset()

    def reset(self) -> None:
        self.providers: dict[ProviderType, ProviderConfig] = {}
        self.models: dict[str, ModelSpec] = {}
        self.calls: list[str] = []

    async def upsert_provider_config(self, config: ProviderConfig) -> None:
        self.calls.append("upsert_provider_config")
        self.providers[config.provider] = config

    async def delete_provider_config(self, provider: ProviderType) -> None:
        self.calls.append("delete_provider_config")
        self.providers.pop(provider, None)

    async def list_provider_configs(self) -> list[ProviderConfigView]:
        self.calls.append("list_provider_configs")
        return [
            ProviderConfigView(
                provider=c.provider,
                base_url=c.base_url,
                timeout_seconds=c.timeout_seconds,
                api_key_present=bool(c.api_key),
            )
            for c in reversed(list(self.providers.values()))
        ]

    async def upsert_model(self, config: ModelConfig) -> str:
        self.calls.append("upsert_model")
        model_id = f"{config.provider.value}/{config.upstream_model}"
        self.models[model_id] = ModelSpec(
            id=model_id,
            provider=config.provider,
            upstream_model=config.upstream_model,
            capabilities=list(config.capabilities),
        )
        return model_id

    async def delete_model(self, model_id: str) -> None:
        self.calls.append("delete_model")
        self.models.pop(model_id, None)

    async def list_models(self) -> list[ModelSpec]:
        self.calls.append("list_models")
        return list(reversed(list(self.models.values())))


class FakeTokenIssuer:
    def __init__(self, token: str = "data-plane-token", expires_at: int = 1_900_000_000) -> None:
        self.reset(token, expires_at)

    def reset(self, token: str = "data-plane-token", expires_at: int = 1_900_000_000) -> None:
        self.token = token
        self.expires_at = expires_at
        self.error: Exception | None = None
        self.calls: list[tuple[str, int, list[str]]] = []

    async def issue_token(self, subject: str, ttl_seconds: int, allowed_model_ids: list[str]) -> tuple[str, int]:
        self.calls.append((subject, ttl_seconds, allowed_model_ids))
        if self.error is not None:
            raise self.error
        return self.token, self.expires_at


class FailingSessionStore:
    """Session store whose reads always fail with a transport-style error."""

    async def save(self, session_id: str, session: Session, ttl_seconds: int) -> None:
        raise GatewayError("session backend unavailable")

    async def get(self, session_id: str) -> Session:
        raise GatewayError("session backend unavailable")

    async def delete(self, session_id: str) -> None:
        raise GatewayError("session backend unavailable")


# ---------------------------------------------------------------------------
# Unit-test fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def user_store() -> Generator[UserStore, None, None]:
    store = UserStore(db_url=memory_db_url("users"))
    yield store
    store.close()


@pytest.fixture()
def session_store() -> MemorySessionStore:
    return MemorySessionStore()


def login_as(users: UserStore, sessions, user_id: str, role: Role = Role.USER, ttl_seconds: int = 3600) -> str:
    """Create user_id with role and a live session for it. Returns the session id."""

    async def _seed() -> str:
        await users.ensure_exists(user_id)
        if role is not Role.USER:
            await users.set_role(user_id, role)
        session_id = new_session_id()
        await sessions.save(session_id, Session(user_id=user_id, token=make_token_pair()), ttl_seconds)
        return session_id

    return asyncio.run(_seed())


# ---------------------------------------------------------------------------
# HTTP fixtures
# ---------------------------------------------------------------------------


def make_test_settings(**overrides) -> Settings:
    values = {
        "public_base_url": "http://bff.test/",
        "frontend_base_url": "http://frontend.test",
        "session_backend": "memory",
        "super_admin_emails": [SUPER_ADMIN_EMAIL],
        "llm_allowed_model_ids": ["dashscope/qwen-max"],
        "llm_token_ttl_seconds": 900,
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


def _patch_lifespan(settings: Settings, user_store: UserStore, session_store, **collaborators):
    """Return an async context manager that replaces the real lifespan.

    Every collaborator is assigned, None included, so nothing leaks from a
    previous module's client through the shared app.state.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        for name in ("oauth_gateway", "uid_extractor", "llm_admin", "token_issuer"):
            setattr(app.state, name, collaborators.get(name))
        wire_services(app, settings, user_store, session_store)
        app.state.purge_task = asyncio.create_task(asyncio.sleep(99999))
        yield
        app.state.purge_task.cancel()

    return test_lifespan


@dataclass
class ApiContext:
    client: TestClient
    settings: Settings
    users: UserStore
    sessions: MemorySessionStore
    gateway: FakeOAuthGateway
    llm_admin: FakeLLMAdmin
    token_issuer: FakeTokenIssuer
    extractor: FakeUIDExtractor = field(default_factory=FakeUIDExtractor)

    def login(self, user_id: str, role: Role = Role.USER) -> dict[str, str]:
        """Seed a session for user_id and return Bearer headers for it."""
        session_id = login_as(self.users, self.sessions, user_id, role)
        return {"Authorization": f"Bearer {session_id}"}


@pytest.fixture(scope="module")
def api_context() -> Generator[ApiContext, None, None]:
    """One TestClient per test module, with isolated stores and fresh fakes.

    follow_redirects=False so OAuth tests can assert on redirect locations.
    """
    settings = make_test_settings()
    users = UserStore(db_url=memory_db_url("api"))
    sessions = MemorySessionStore()
    gateway = FakeOAuthGateway()
    llm_admin = FakeLLMAdmin()
    token_issuer = FakeTokenIssuer()
    extractor = FakeUIDExtractor()

    app.router.lifespan_context = _patch_lifespan(
        settings,
        users,
        sessions,
        oauth_gateway=gateway,
        uid_extractor=extractor,
        llm_admin=llm_admin,
        token_issuer=token_issuer,
    )
    limiter.reset()

    with TestClient(app, follow_redirects=False, raise_server_exceptions=False) as client:
        yield ApiContext(client, settings, users, sessions, gateway, llm_admin, token_issuer, extractor)

    users.close()


@pytest.fixture()
def api(api_context: ApiContext) -> ApiContext:
    """Per-test view of the module client: empty cookie jar, fakes reset."""
    api_context.client.cookies.clear()
    api_context.gateway.reset()
    api_context.llm_admin.reset()
    api_context.token_issuer.reset()
    api_context.extractor.user_id = "claims-uid"
    return api_context
