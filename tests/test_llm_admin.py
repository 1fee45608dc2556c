"""
tests/test_llm_admin.py -- LLMAdminService and TokenIssuanceService.

Coverage:
  - every admin operation is gated on the admin role, before any port call
  - local validation happens before the delegating call
  - upsert_model requires a configured provider
  - listings come back sorted; api keys are never echoed
  - token issuance: any live session, fixed TTL/scope, missing issuer
"""

from __future__ import annotations

import asyncio

import pytest

from auth.models import Role
from auth.rbac import RBACPolicy
from conftest import FakeLLMAdmin, FakeTokenIssuer, login_as
from core.errors import (
    ConfigurationError,
    ForbiddenError,
    InvalidCapabilityError,
    InvalidModelIDError,
    InvalidProviderError,
    InvalidUpstreamModelError,
    ProviderNotConfiguredError,
    UnauthenticatedError,
)
from llm.admin import LLMAdminService
from llm.models import ModelCapability, ProviderType
from llm.tokens import TokenIssuanceService


@pytest.fixture()
def fake_admin() -> FakeLLMAdmin:
    return FakeLLMAdmin()


@pytest.fixture()
def policy(session_store, user_store) -> RBACPolicy:
    return RBACPolicy(session_store, user_store)


@pytest.fixture()
def service(fake_admin, policy) -> LLMAdminService:
    return LLMAdminService(fake_admin, policy)


@pytest.fixture()
def admin_session(session_store, user_store) -> str:
    return login_as(user_store, session_store, "admin-1", Role.ADMIN)


@pytest.fixture()
def user_session(session_store, user_store) -> str:
    return login_as(user_store, session_store, "u-1")


class TestAuthorization:
    @pytest.mark.parametrize(
        "call",
        [
            lambda s, sid: s.list_provider_configs(sid),
            lambda s, sid: s.upsert_provider_config(sid, "dashscope", "https://x", "k"),
            lambda s, sid: s.delete_provider_config(sid, "dashscope"),
            lambda s, sid: s.list_models(sid),
            lambda s, sid: s.upsert_model(sid, "dashscope", "qwen-max"),
            lambda s, sid: s.delete_model(sid, "dashscope/qwen-max"),
        ],
    )
    def test_user_is_forbidden_and_no_port_call(self, service, fake_admin, user_session, call) -> None:
        with pytest.raises(ForbiddenError):
            asyncio.run(call(service, user_session))
        assert fake_admin.calls == []

    def test_unauthenticated(self, service, fake_admin) -> None:
        with pytest.raises(UnauthenticatedError):
            asyncio.run(service.list_models(""))
        assert fake_admin.calls == []

    def test_super_admin_passes_admin_gate(self, service, session_store, user_store) -> None:
        session_id = login_as(user_store, session_store, "root", Role.SUPER_ADMIN)
        assert asyncio.run(service.list_models(session_id)) == []

    def test_missing_admin_port(self, policy, admin_session) -> None:
        with pytest.raises(ConfigurationError):
            asyncio.run(LLMAdminService(None, policy).list_models(admin_session))

    def test_missing_admin_port_still_checks_role_first(self, policy, user_session) -> None:
        with pytest.raises(ForbiddenError):
            asyncio.run(LLMAdminService(None, policy).list_models(user_session))


class TestProviderConfigs:
    def test_upsert_trims_and_parses(self, service, fake_admin, admin_session) -> None:
        asyncio.run(
            service.upsert_provider_config(admin_session, "PROVIDER_TYPE_DASHSCOPE", " https://dash/ ", " key ", 30)
        )
        config = fake_admin.providers[ProviderType.DASHSCOPE]
        assert config.base_url == "https://dash/"
        assert config.api_key == "key"
        assert config.timeout_seconds == 30

    def test_upsert_without_timeout_defaults_to_zero(self, service, fake_admin, admin_session) -> None:
        asyncio.run(service.upsert_provider_config(admin_session, "openrouter"))
        assert fake_admin.providers[ProviderType.OPENROUTER].timeout_seconds == 0

    def test_invalid_provider(self, service, fake_admin, admin_session) -> None:
        with pytest.raises(InvalidProviderError):
            asyncio.run(service.upsert_provider_config(admin_session, "openai", "https://x", "k"))
        with pytest.raises(InvalidProviderError):
            asyncio.run(service.delete_provider_config(admin_session, ""))
        assert fake_admin.calls == []

    def test_list_is_sorted_and_hides_keys(self, service, admin_session) -> None:
        asyncio.run(service.upsert_provider_config(admin_session, "dashscope", "https://d", "secret"))
        asyncio.run(service.upsert_provider_config(admin_session, "open-router", "https://o", ""))

        views = asyncio.run(service.list_provider_configs(admin_session))

        assert [v.provider for v in views] == [ProviderType.DASHSCOPE, ProviderType.OPENROUTER]
        assert views[0].api_key_present is True
        assert views[1].api_key_present is False
        assert not hasattr(views[0], "api_key")

    def test_delete(self, service, fake_admin, admin_session) -> None:
        asyncio.run(service.upsert_provider_config(admin_session, "dashscope", "https://d", "k"))
        asyncio.run(service.delete_provider_config(admin_session, ProviderType.DASHSCOPE))
        assert fake_admin.providers == {}


class TestModels:
    def test_upsert_requires_configured_provider(self, service, fake_admin, admin_session) -> None:
        with pytest.raises(ProviderNotConfiguredError):
            asyncio.run(service.upsert_model(admin_session, "dashscope", "qwen-max", ["text"]))
        assert "upsert_model" not in fake_admin.calls

    def test_upsert_returns_backend_id(self, service, fake_admin, admin_session) -> None:
        asyncio.run(service.upsert_provider_config(admin_session, "dashscope", "https://d", "k"))

        model_id = asyncio.run(
            service.upsert_model(admin_session, "DashScope", " qwen-max ", ["text", "IMAGE", "MODEL_CAPABILITY_TOOLS", "text"])
        )

        assert model_id == "dashscope/qwen-max"
        spec = fake_admin.models[model_id]
        assert spec.upstream_model == "qwen-max"
        assert spec.capabilities == [ModelCapability.TEXT, ModelCapability.IMAGES, ModelCapability.TOOLS]

    def test_validation_precedes_provider_lookup(self, service, fake_admin, admin_session) -> None:
        with pytest.raises(InvalidProviderError):
            asyncio.run(service.upsert_model(admin_session, "nope", "m"))
        with pytest.raises(InvalidCapabilityError):
            asyncio.run(service.upsert_model(admin_session, "dashscope", "m", ["telepathy"]))
        with pytest.raises(InvalidUpstreamModelError):
            asyncio.run(service.upsert_model(admin_session, "dashscope", "   "))
        assert fake_admin.calls == []

    def test_list_is_sorted_by_id(self, service, admin_session) -> None:
        asyncio.run(service.upsert_provider_config(admin_session, "dashscope", "https://d", "k"))
        asyncio.run(service.upsert_provider_config(admin_session, "openrouter", "https://o", "k"))
        asyncio.run(service.upsert_model(admin_session, "openrouter", "z-model"))
        asyncio.run(service.upsert_model(admin_session, "dashscope", "a-model"))

        ids = [m.id for m in asyncio.run(service.list_models(admin_session))]
        assert ids == ["dashscope/a-model", "openrouter/z-model"]

    def test_delete_trims_id(self, service, fake_admin, admin_session) -> None:
        asyncio.run(service.upsert_provider_config(admin_session, "dashscope", "https://d", "k"))
        asyncio.run(service.upsert_model(admin_session, "dashscope", "qwen-max"))
        asyncio.run(service.delete_model(admin_session, "  dashscope/qwen-max "))
        assert fake_admin.models == {}

    def test_delete_empty_id(self, service, fake_admin, admin_session) -> None:
        with pytest.raises(InvalidModelIDError):
            asyncio.run(service.delete_model(admin_session, "  "))
        assert fake_admin.calls == []


class TestTokenIssuance:
    def test_any_live_session_gets_a_token(self, policy, user_session) -> None:
        issuer = FakeTokenIssuer("tok", 1_800_000_000)
        service = TokenIssuanceService(issuer, policy, ttl_seconds=900, allowed_model_ids=("a", "b"))

        token, expires_at = asyncio.run(service.issue_token(user_session))

        assert (token, expires_at) == ("tok", 1_800_000_000)
        assert issuer.calls == [("u-1", 900, ["a", "b"])]

    def test_unauthenticated(self, policy) -> None:
        issuer = FakeTokenIssuer()
        service = TokenIssuanceService(issuer, policy, ttl_seconds=900)
        with pytest.raises(UnauthenticatedError):
            asyncio.run(service.issue_token("expired-or-unknown"))
        assert issuer.calls == []

    def test_missing_issuer(self, policy, user_session) -> None:
        service = TokenIssuanceService(None, policy, ttl_seconds=900)
        with pytest.raises(ConfigurationError):
            asyncio.run(service.issue_token(user_session))

    def test_missing_issuer_still_checks_session_first(self, policy) -> None:
        service = TokenIssuanceService(None, policy, ttl_seconds=900)
        with pytest.raises(UnauthenticatedError):
            asyncio.run(service.issue_token(""))
