"""
api/routes/llm.py -- LLM gateway administration and data-plane token issuance.

Routes:
  GET    /api/admin/llm/providers             -- list provider configs (admin)
  PUT    /api/admin/llm/providers/{provider}  -- create/replace a provider config (admin); 204
  DELETE /api/admin/llm/providers/{provider}  -- delete a provider config (admin); 204
  GET    /api/admin/llm/models                -- list model specs (admin)
  POST   /api/admin/llm/models                -- create/update a model spec (admin)
  DELETE /api/admin/llm/models?id=            -- delete a model spec (admin); 204
  POST   /api/llm/token                       -- issue a data-plane token into an HttpOnly cookie

API keys never leave the BFF: provider listings only say whether one is set.
The data-plane token is likewise never in a response body, only in the
cookie the gateway proxy reads.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query, Request, Response

from api.models import (
    ModelListResponse,
    ModelSpecResponse,
    ModelUpsertResponse,
    ProviderConfigResponse,
    ProviderListResponse,
    TokenResponse,
    UpsertModelRequest,
    UpsertProviderRequest,
)
from api.timeouts import bounded
from auth.dependencies import cookie_safe, get_session_id, set_cookie
from core.config import Settings
from llm.admin import LLMAdminService
from llm.tokens import TokenIssuanceService

router = APIRouter()


def get_llm_admin_service(request: Request) -> LLMAdminService:
    return request.app.state.llm_admin_service


def get_token_service(request: Request) -> TokenIssuanceService:
    return request.app.state.token_service


def _timeout(request: Request) -> float:
    return request.app.state.settings.gateway_timeout_seconds


# ---------------------------------------------------------------------------
# Provider configs
# ---------------------------------------------------------------------------


@router.get("/admin/llm/providers", response_model=ProviderListResponse)
async def list_providers(
    request: Request,
    session_id: str = Depends(get_session_id),
    service: LLMAdminService = Depends(get_llm_admin_service),
) -> ProviderListResponse:
    configs = await bounded(service.list_provider_configs(session_id), _timeout(request), "list providers")
    return ProviderListResponse(configs=[ProviderConfigResponse.from_domain(c) for c in configs])


@router.put("/admin/llm/providers/{provider}", status_code=204)
async def upsert_provider(
    request: Request,
    provider: str,
    body: UpsertProviderRequest,
    session_id: str = Depends(get_session_id),
    service: LLMAdminService = Depends(get_llm_admin_service),
) -> Response:
    await bounded(
        service.upsert_provider_config(
            session_id,
            provider,
            base_url=body.base_url,
            api_key=body.api_key,
            timeout_seconds=body.timeout_seconds,
        ),
        _timeout(request),
        "upsert provider",
    )
    return Response(status_code=204)


@router.delete("/admin/llm/providers/{provider}", status_code=204)
async def delete_provider(
    request: Request,
    provider: str,
    session_id: str = Depends(get_session_id),
    service: LLMAdminService = Depends(get_llm_admin_service),
) -> Response:
    await bounded(service.delete_provider_config(session_id, provider), _timeout(request), "delete provider")
    return Response(status_code=204)


# ---------------------------------------------------------------------------
# Models
# ---------------------------------------------------------------------------


@router.get("/admin/llm/models", response_model=ModelListResponse)
async def list_models(
    request: Request,
    session_id: str = Depends(get_session_id),
    service: LLMAdminService = Depends(get_llm_admin_service),
) -> ModelListResponse:
    models = await bounded(service.list_models(session_id), _timeout(request), "list models")
    return ModelListResponse(models=[ModelSpecResponse.from_domain(m) for m in models])


@router.post("/admin/llm/models", response_model=ModelUpsertResponse)
async def upsert_model(
    request: Request,
    body: UpsertModelRequest,
    session_id: str = Depends(get_session_id),
    service: LLMAdminService = Depends(get_llm_admin_service),
) -> ModelUpsertResponse:
    """Create or update a model spec; the provider must already have a config."""
    model_id = await bounded(
        service.upsert_model(session_id, body.provider, body.upstream_model, body.capabilities),
        _timeout(request),
        "upsert model",
    )
    return ModelUpsertResponse(id=model_id)


@router.delete("/admin/llm/models", status_code=204)
async def delete_model(
    request: Request,
    model_id: str = Query(default="", alias="id"),
    session_id: str = Depends(get_session_id),
    service: LLMAdminService = Depends(get_llm_admin_service),
) -> Response:
    await bounded(service.delete_model(session_id, model_id), _timeout(request), "delete model")
    return Response(status_code=204)


# ---------------------------------------------------------------------------
# Data-plane token
# ---------------------------------------------------------------------------


@router.post("/llm/token", response_model=TokenResponse)
async def issue_token(
    request: Request,
    response: Response,
    session_id: str = Depends(get_session_id),
    service: TokenIssuanceService = Depends(get_token_service),
) -> TokenResponse:
    """Issue a data-plane token for the caller and set it as an HttpOnly cookie.

    Cookie max-age is the configured token TTL, not the issuer's expires_at,
    so a skewed issuer clock cannot produce a negative max-age.
    """
    settings: Settings = request.app.state.settings
    token, expires_at = await bounded(service.issue_token(session_id), _timeout(request), "issue token")
    set_cookie(
        response,
        settings,
        settings.llm_auth_cookie_name,
        cookie_safe(token),
        settings.llm_token_ttl_seconds,
    )
    return TokenResponse(expires_at_unix=expires_at)
