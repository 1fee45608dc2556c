"""
auth/tokens.py -- Session id generation and fallback uid extraction.

Security design decisions:
  Session ids: secrets.token_urlsafe(32) gives 256 bits of entropy encoded as
       43 URL-safe characters. Ids are never derived from user data, so a
       deleted or expired id is never issued again in practice.

  JWTUIDExtractor: python-jose get_unverified_claims(). The SIGNATURE IS NOT
       VERIFIED. The access token arrives straight from the identity gateway's
       code exchange over a channel that gateway already authenticated; the
       extractor only runs when the authoritative login-info lookup failed.
       Anyone wiring this extractor to tokens from another source must swap in
       a verifying implementation (identity provider JWKS) first.

Layer rule: no imports from api/ or llm/.
"""

from __future__ import annotations

import logging
import secrets

from jose import JWTError, jwt

from core.errors import ExtractionError

logger = logging.getLogger("llmstudio.auth")

_SESSION_ID_BYTES = 32

# Claim lookup order: identity-specific uid first, then the standard subject.
_UID_CLAIMS = ("uid", "sub")


def new_session_id() -> str:
    """Return a fresh opaque session id (256 random bits, base64url, no padding)."""
    return secrets.token_urlsafe(_SESSION_ID_BYTES)


class JWTUIDExtractor:
    """Best-effort user id extraction from an access token's claims."""

    def extract_user_id(self, access_token: str) -> str:
        """Return the `uid` claim, else `sub`.

        Raises ExtractionError for an empty token, a token that is not a JWT,
        or a token with neither claim set to a non-empty string.
        """
        if not access_token:
            raise ExtractionError("empty access token")
        try:
            claims = jwt.get_unverified_claims(access_token)
        except JWTError as exc:
            raise ExtractionError("access token is not a parseable JWT") from exc

        for name in _UID_CLAIMS:
            value = claims.get(name)
            if isinstance(value, str) and value:
                return value
        raise ExtractionError("user id not found in jwt claims")
