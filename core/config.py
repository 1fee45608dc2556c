"""
core/config.py -- Centralized application configuration via pydantic-settings.

All environment variable reads for the BFF happen here. No module should call
os.getenv() or os.environ.get() directly -- import get_settings() instead.

Design patterns used:
  Singleton via lru_cache: get_settings() instantiates Settings once at first
      call and returns the cached instance on every subsequent call.

  BaseSettings (pydantic-settings): Reads values from environment variables
      and an optional .env file automatically. Field names map to env var names
      (e.g. session_ttl_days -> SESSION_TTL_DAYS).

  NoDecode list fields: SUPER_ADMIN_EMAILS and LLM_ALLOWED_MODEL_IDS accept
      either a JSON list or a plain comma-separated string. The before-mode
      validator splits the string form.

The super-admin allow-list is read once here and handed to AuthService, which
normalizes it into a frozenset. There is no runtime registry: changing the
list means restarting the process.

Layer rule: core/ is the kernel. This module may not import from api/, auth/,
or llm/.
"""

import json
import logging
from functools import lru_cache
from typing import Annotated

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

logger = logging.getLogger("llmstudio.config")


def _split_csv(value):
    if isinstance(value, str):
        return [part.strip() for part in value.split(",") if part.strip()]
    return value


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file.

    All fields have defaults so Settings() can be instantiated in test
    environments without a real .env file.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ------------------------------------------------------------------
    # Core
    # ------------------------------------------------------------------

    debug: bool = False
    database_url: str = "sqlite:///llm_studio.db"
    # "sql" persists sessions next to users; "memory" is single-process only.
    session_backend: str = "sql"

    # ------------------------------------------------------------------
    # URLs
    # ------------------------------------------------------------------

    public_base_url: str = "http://localhost:8080"
    frontend_base_url: str = "http://localhost:3000"
    oauth_provider: str = "github"

    # ------------------------------------------------------------------
    # Sessions and cookies
    # ------------------------------------------------------------------

    session_ttl_days: int = 7
    session_cookie_name: str = "llmstudio_session"
    return_to_cookie_name: str = "llmstudio_return_to"
    return_to_max_age_mins: int = 10
    cookie_domain: str = ""
    cookie_path: str = "/"
    cookie_secure: bool = False

    # ------------------------------------------------------------------
    # RBAC
    # ------------------------------------------------------------------

    super_admin_emails: Annotated[list[str], NoDecode] = []
    list_users_page_size: int = 50

    # ------------------------------------------------------------------
    # LLM gateway data-plane tokens
    # ------------------------------------------------------------------

    llm_token_ttl_seconds: int = 3600
    llm_allowed_model_ids: Annotated[list[str], NoDecode] = []
    llm_auth_cookie_name: str = "llmgw_access_token"

    # ------------------------------------------------------------------
    # Timeouts (seconds) -- bound every downstream call at the boundary
    # ------------------------------------------------------------------

    gateway_timeout_seconds: float = 5.0
    oauth_callback_timeout_seconds: float = 10.0

    # ------------------------------------------------------------------
    # HTTP
    # ------------------------------------------------------------------

    login_rate_limit: str = "10/minute"
    cors_origins: Annotated[list[str], NoDecode] = []
    allowed_hosts: Annotated[list[str], NoDecode] = ["*"]

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @field_validator(
        "super_admin_emails", "llm_allowed_model_ids", "cors_origins", "allowed_hosts", mode="before"
    )
    @classmethod
    def split_lists(cls, value):
        """Accept "a@x.io, b@y.io" as well as a JSON list."""
        if isinstance(value, str) and value.strip().startswith("["):
            return json.loads(value)
        return _split_csv(value)

    @field_validator("public_base_url", "frontend_base_url")
    @classmethod
    def strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/")

    @field_validator("oauth_provider")
    @classmethod
    def strip_provider(cls, value: str) -> str:
        return value.strip()

    @model_validator(mode="after")
    def validate_limits(self) -> "Settings":
        """Reject non-positive TTLs and page sizes, and unknown session backends."""
        if self.session_ttl_days <= 0:
            raise ValueError("SESSION_TTL_DAYS must be positive.")
        if self.llm_token_ttl_seconds <= 0:
            raise ValueError("LLM_TOKEN_TTL_SECONDS must be positive.")
        if self.list_users_page_size <= 0:
            raise ValueError("LIST_USERS_PAGE_SIZE must be positive.")
        if self.session_backend not in ("sql", "memory"):
            raise ValueError("SESSION_BACKEND must be 'sql' or 'memory'.")
        if not self.cors_origins:
            self.cors_origins = [self.frontend_base_url]
        return self

    @property
    def session_ttl_seconds(self) -> int:
        return self.session_ttl_days * 24 * 60 * 60


@lru_cache
def get_settings() -> Settings:
    """Return the application Settings singleton.

    In tests: call get_settings.cache_clear() between test cases if you need
    to inject different environment variables.
    """
    settings = Settings()
    logger.info(
        "Config loaded (public_base_url=%s frontend_base_url=%s oauth_provider=%s "
        "session_backend=%s session_ttl_days=%d super_admin_emails=%d llm_token_ttl_seconds=%d)",
        settings.public_base_url,
        settings.frontend_base_url,
        settings.oauth_provider,
        settings.session_backend,
        settings.session_ttl_days,
        len(settings.super_admin_emails),
        settings.llm_token_ttl_seconds,
    )
    return settings
