"""
llm/admin.py -- Provider and model administration, gated by RBAC.

Every method runs RBACPolicy.authorize(session_id, Role.ADMIN) first, then
validates locally, then makes exactly one delegating call to the
LLMGatewayAdmin port (upsert_model makes one extra read, see below).

Local validation:
  provider        must parse to a ProviderType          -> InvalidProviderError
  capabilities    each must parse to a ModelCapability  -> InvalidCapabilityError
  upstream_model  non-empty after trimming              -> InvalidUpstreamModelError
  model id        non-empty after trimming              -> InvalidModelIDError

upsert_model also requires the provider to appear in a live
list_provider_configs() read (ProviderNotConfiguredError otherwise). That is a
consistency check, not a constraint: a provider deleted between the read and
the upsert still lets the model through.

Listings are sorted (configs by provider, models by id) so repeated calls
render identically regardless of backend order.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable

from auth.models import Role
from auth.rbac import RBACPolicy
from core.errors import (
    ConfigurationError,
    InvalidCapabilityError,
    InvalidModelIDError,
    InvalidProviderError,
    InvalidUpstreamModelError,
    ProviderNotConfiguredError,
)
from llm.models import (
    ModelCapability,
    ModelConfig,
    ModelSpec,
    ProviderConfig,
    ProviderConfigView,
    ProviderType,
    parse_capability,
    parse_provider_type,
)
from llm.ports import LLMGatewayAdmin

logger = logging.getLogger("llmstudio.llm")


def _require_provider(value: ProviderType | str | None) -> ProviderType:
    provider = value if isinstance(value, ProviderType) else parse_provider_type(value)
    if provider is None:
        raise InvalidProviderError(f"unknown provider {value!r}")
    return provider


def _require_capabilities(values: Iterable[ModelCapability | str]) -> list[ModelCapability]:
    capabilities: list[ModelCapability] = []
    for value in values:
        capability = value if isinstance(value, ModelCapability) else parse_capability(value)
        if capability is None:
            raise InvalidCapabilityError(f"unknown capability {value!r}")
        if capability not in capabilities:
            capabilities.append(capability)
    return capabilities


class LLMAdminService:
    def __init__(self, admin: LLMGatewayAdmin | None, policy: RBACPolicy) -> None:
        self.admin = admin
        self.policy = policy

    async def _authorize(self, session_id: str) -> str:
        session, _ = await self.policy.authorize(session_id, Role.ADMIN)
        if self.admin is None:
            raise ConfigurationError("llm gateway admin is not configured")
        return session.user_id

    # ------------------------------------------------------------------
    # Provider configs
    # ------------------------------------------------------------------

    async def list_provider_configs(self, session_id: str) -> list[ProviderConfigView]:
        await self._authorize(session_id)
        configs = await self.admin.list_provider_configs()
        return sorted(configs, key=lambda c: c.provider.value)

    async def upsert_provider_config(
        self,
        session_id: str,
        provider: ProviderType | str,
        base_url: str = "",
        api_key: str = "",
        timeout_seconds: int | None = None,
    ) -> None:
        actor = await self._authorize(session_id)
        config = ProviderConfig(
            provider=_require_provider(provider),
            base_url=(base_url or "").strip(),
            api_key=(api_key or "").strip(),
            timeout_seconds=timeout_seconds or 0,
        )
        await self.admin.upsert_provider_config(config)
        logger.info("Provider config upserted (actor=%s provider=%s)", actor, config.provider.value)

    async def delete_provider_config(self, session_id: str, provider: ProviderType | str) -> None:
        actor = await self._authorize(session_id)
        resolved = _require_provider(provider)
        await self.admin.delete_provider_config(resolved)
        logger.info("Provider config deleted (actor=%s provider=%s)", actor, resolved.value)

    # ------------------------------------------------------------------
    # Models
    # ------------------------------------------------------------------

    async def list_models(self, session_id: str) -> list[ModelSpec]:
        await self._authorize(session_id)
        models = await self.admin.list_models()
        return sorted(models, key=lambda m: m.id)

    async def upsert_model(
        self,
        session_id: str,
        provider: ProviderType | str,
        upstream_model: str,
        capabilities: Iterable[ModelCapability | str] = (),
    ) -> str:
        """Create or update a model spec. Returns the model id assigned by the backend."""
        actor = await self._authorize(session_id)
        config = ModelConfig(
            provider=_require_provider(provider),
            upstream_model=(upstream_model or "").strip(),
            capabilities=_require_capabilities(capabilities),
        )
        if not config.upstream_model:
            raise InvalidUpstreamModelError("upstream_model is required")

        configured = await self.admin.list_provider_configs()
        if not any(c.provider == config.provider for c in configured):
            raise ProviderNotConfiguredError(f"provider {config.provider.value!r} has no provider config")

        model_id = await self.admin.upsert_model(config)
        logger.info(
            "Model upserted (actor=%s id=%s provider=%s upstream_model=%s)",
            actor,
            model_id,
            config.provider.value,
            config.upstream_model,
        )
        return model_id

    async def delete_model(self, session_id: str, model_id: str) -> None:
        actor = await self._authorize(session_id)
        model_id = (model_id or "").strip()
        if not model_id:
            raise InvalidModelIDError("model id is required")
        await self.admin.delete_model(model_id)
        logger.info("Model deleted (actor=%s id=%s)", actor, model_id)
