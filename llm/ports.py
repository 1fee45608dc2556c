"""
llm/ports.py -- Interfaces to the downstream LLM gateway control plane.

Both ports are supplied by the deployment (app.state.llm_admin,
app.state.token_issuer); this repo only defines the contract. Adapters raise
core.errors.GatewayError for transport failures.
"""

from __future__ import annotations

from typing import Protocol

from llm.models import ModelConfig, ModelSpec, ProviderConfig, ProviderConfigView, ProviderType


class LLMGatewayAdmin(Protocol):
    async def upsert_provider_config(self, config: ProviderConfig) -> None: ...

    async def delete_provider_config(self, provider: ProviderType) -> None: ...

    async def list_provider_configs(self) -> list[ProviderConfigView]: ...

    async def upsert_model(self, config: ModelConfig) -> str: ...

    async def delete_model(self, model_id: str) -> None: ...

    async def list_models(self) -> list[ModelSpec]: ...


class TokenIssuer(Protocol):
    async def issue_token(self, subject: str, ttl_seconds: int, allowed_model_ids: list[str]) -> tuple[str, int]:
        """Return (token, expires_at_unix) for a data-plane token scoped to `subject`."""
        ...
