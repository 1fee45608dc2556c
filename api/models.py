"""
API request and response models for the LLM Studio BFF REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py and
llm/models.py, which own the internal domain representation. Route handlers
map between the two.

Request models do not re-implement domain validation (nickname length,
provider names, role names): the services own those rules and raise typed
errors that main.py maps to 400s. Pydantic only checks shape.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from auth.models import AdminUser, Me
from llm.models import ModelSpec, ProviderConfigView

# ---------------------------------------------------------------------------
# Errors and health
# ---------------------------------------------------------------------------


class ErrorDetail(BaseModel):
    """Machine-readable error payload."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: Optional[str] = None


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    error: ErrorDetail


class HealthResponse(BaseModel):
    """Response for GET /api/health."""

    model_config = ConfigDict(frozen=True)

    ok: bool = True


# ---------------------------------------------------------------------------
# Self profile
# ---------------------------------------------------------------------------


class UpdateMeRequest(BaseModel):
    """Request body for PATCH /api/me. An empty string clears the nickname."""

    nickname: str


class MeResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    user_id: str
    role: str
    email: str
    github_id: Optional[str] = None
    nickname: str

    @classmethod
    def from_domain(cls, me: Me) -> "MeResponse":
        return cls(
            user_id=me.user_id,
            role=me.role.value,
            email=me.email,
            github_id=me.github_id,
            nickname=me.nickname,
        )


# ---------------------------------------------------------------------------
# User administration
# ---------------------------------------------------------------------------


class SetRoleRequest(BaseModel):
    """Request body for POST /api/admin/users/{user_id}/role."""

    role: str


class AdminUserResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    role: str
    email: str
    github_id: Optional[str] = None
    password_enabled: bool
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    @classmethod
    def from_domain(cls, user: AdminUser) -> "AdminUserResponse":
        return cls(
            id=user.id,
            role=user.role.value,
            email=user.email,
            github_id=user.github_id,
            password_enabled=user.password_enabled,
            created_at=user.created_at,
            updated_at=user.updated_at,
        )


class UserListResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    users: list[AdminUserResponse]


# ---------------------------------------------------------------------------
# LLM administration
# ---------------------------------------------------------------------------


class UpsertProviderRequest(BaseModel):
    """Request body for PUT /api/admin/llm/providers/{provider}."""

    base_url: str = Field(default="", max_length=2048)
    api_key: str = Field(default="", max_length=4096)
    timeout_seconds: Optional[int] = Field(default=None, ge=0)


class ProviderConfigResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    provider: str
    base_url: str
    timeout_seconds: int
    api_key_present: bool

    @classmethod
    def from_domain(cls, view: ProviderConfigView) -> "ProviderConfigResponse":
        return cls(
            provider=view.provider.value,
            base_url=view.base_url,
            timeout_seconds=view.timeout_seconds,
            api_key_present=view.api_key_present,
        )


class ProviderListResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    configs: list[ProviderConfigResponse]


class UpsertModelRequest(BaseModel):
    """Request body for POST /api/admin/llm/models."""

    provider: str
    upstream_model: str = ""
    capabilities: list[str] = Field(default_factory=list, max_length=16)


class ModelSpecResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    provider: str
    upstream_model: str
    capabilities: list[str]

    @classmethod
    def from_domain(cls, spec: ModelSpec) -> "ModelSpecResponse":
        return cls(
            id=spec.id,
            provider=spec.provider.value,
            upstream_model=spec.upstream_model,
            capabilities=[c.value for c in spec.capabilities],
        )


class ModelListResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    models: list[ModelSpecResponse]


class ModelUpsertResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str


# ---------------------------------------------------------------------------
# Data-plane token
# ---------------------------------------------------------------------------


class TokenResponse(BaseModel):
    """Response for POST /api/llm/token. The token itself travels only in the HttpOnly cookie."""

    model_config = ConfigDict(frozen=True)

    expires_at_unix: int
