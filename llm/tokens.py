"""
llm/tokens.py -- Data-plane token issuance for browser sessions.

Any live session may obtain a token; no role check. The subject is the
session's user id, and the TTL and allowed-model list are process-wide
settings (LLM_TOKEN_TTL_SECONDS, LLM_ALLOWED_MODEL_IDS), so every
browser-issued token in a deployment carries the same scope.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable

from auth.rbac import RBACPolicy
from core.errors import ConfigurationError
from llm.ports import TokenIssuer

logger = logging.getLogger("llmstudio.llm")


class TokenIssuanceService:
    def __init__(
        self,
        issuer: TokenIssuer | None,
        policy: RBACPolicy,
        ttl_seconds: int,
        allowed_model_ids: Iterable[str] = (),
    ) -> None:
        self.issuer = issuer
        self.policy = policy
        self.ttl_seconds = ttl_seconds
        self.allowed_model_ids: tuple[str, ...] = tuple(allowed_model_ids)

    async def issue_token(self, session_id: str) -> tuple[str, int]:
        """Return (token, expires_at_unix) for the session's user."""
        session = await self.policy.authenticate(session_id)
        if self.issuer is None:
            raise ConfigurationError("token issuer is not configured")
        token, expires_at = await self.issuer.issue_token(
            session.user_id, self.ttl_seconds, list(self.allowed_model_ids)
        )
        logger.info("Data-plane token issued (subject=%s expires_at=%d)", session.user_id, expires_at)
        return token, expires_at
