"""
core/errors.py -- Exception taxonomy shared by auth/, llm/ and api/.

Every error carries a stable string `code`. The api layer maps classes to
HTTP status codes; the core never talks about status codes itself.

Unauthenticated is deliberately a single class. A missing, expired, or forged
session id all raise UnauthenticatedError so callers cannot probe which one
they hit.

Layer rule: core/ is the kernel. This module may not import from api/, auth/,
or llm/.
"""

from __future__ import annotations


class StudioError(Exception):
    """Base class for every error raised by the BFF core."""

    code: str = "error"

    def __init__(self, message: str = "", *, detail: str | None = None) -> None:
        super().__init__(message or self.code)
        self.message = message or self.code
        self.detail = detail


# ---------------------------------------------------------------------------
# Authentication / authorization
# ---------------------------------------------------------------------------


class UnauthenticatedError(StudioError):
    code = "unauthenticated"


class ForbiddenError(StudioError):
    code = "forbidden"


# ---------------------------------------------------------------------------
# Input validation family
# ---------------------------------------------------------------------------


class InvalidInputError(StudioError):
    code = "invalid_input"


class InvalidProviderError(InvalidInputError):
    code = "invalid_provider"


class InvalidUpstreamModelError(InvalidInputError):
    code = "invalid_upstream_model"


class InvalidModelIDError(InvalidInputError):
    code = "invalid_model_id"


class InvalidCapabilityError(InvalidInputError):
    code = "invalid_capability"


class InvalidRoleError(InvalidInputError):
    code = "invalid_role"


class InvalidNicknameError(InvalidInputError):
    code = "invalid_nickname"


# ---------------------------------------------------------------------------
# Preconditions, wiring, downstream
# ---------------------------------------------------------------------------


class ProviderNotConfiguredError(StudioError):
    """A model was upserted for a provider with no provider config.

    Checked against a live listing, not a transaction: two admins racing can
    still slip a model past a concurrent provider delete.
    """

    code = "provider_not_configured"


class ConfigurationError(StudioError):
    """A required collaborator was not wired. Deployment bug, not user error."""

    code = "configuration_error"


class ExtractionError(StudioError):
    """The fallback claim extractor could not produce a user id."""

    code = "extraction_failed"


class GatewayError(StudioError):
    """A downstream port (identity, admin, token issuer) failed or timed out."""

    code = "gateway_error"


# ---------------------------------------------------------------------------
# Store-level misses
# ---------------------------------------------------------------------------


class SessionNotFoundError(StudioError):
    """Raised by SessionStore.get for unknown or expired ids.

    Never reaches HTTP callers directly: the RBAC layer folds it into
    UnauthenticatedError.
    """

    code = "session_not_found"


class UserNotFoundError(StudioError):
    code = "user_not_found"
