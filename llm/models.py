"""
llm/models.py -- Domain types for LLM gateway administration.

Provider and capability names arrive from browsers, the admin backend, and
hand-edited scripts, so both parsers are lenient: case, surrounding
whitespace, enum-style prefixes ("PROVIDER_TYPE_DASHSCOPE") and separators are
all tolerated. Anything else parses to None.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


class ProviderType(str, Enum):
    DASHSCOPE = "dashscope"
    OPENROUTER = "openrouter"


class ModelCapability(str, Enum):
    TEXT = "text"
    IMAGES = "images"
    AUDIO = "audio"
    VIDEO = "video"
    TOOLS = "tools"
    PROMPT_CACHE = "prompt_cache"
    STREAMING = "streaming"
    REASONING = "reasoning"


_PROVIDER_PREFIXES = ("provider_type_", "provider-type-", "provider_", "provider-")
_CAPABILITY_PREFIXES = ("model_capability_", "model-capability-", "capability_", "capability-")

_CAPABILITY_ALIASES = {
    "image": ModelCapability.IMAGES,
    "tool": ModelCapability.TOOLS,
    "promptcache": ModelCapability.PROMPT_CACHE,
    "stream": ModelCapability.STREAMING,
    "reason": ModelCapability.REASONING,
}


def _strip_prefix(value: str, prefixes: tuple[str, ...]) -> str:
    for prefix in prefixes:
        if value.startswith(prefix):
            return value[len(prefix) :]
    return value


def parse_provider_type(value: str | None) -> ProviderType | None:
    """Parse "dashscope", "OpenRouter", "PROVIDER_TYPE_OPEN_ROUTER", ..."""
    if value is None:
        return None
    normalized = _strip_prefix(value.strip().lower(), _PROVIDER_PREFIXES)
    normalized = normalized.replace("_", "").replace("-", "")
    for provider in ProviderType:
        if provider.value == normalized:
            return provider
    return None


def parse_capability(value: str | None) -> ModelCapability | None:
    """Parse "text", "MODEL_CAPABILITY_PROMPT_CACHE", "image", "prompt-cache", ..."""
    if value is None:
        return None
    normalized = _strip_prefix(value.strip().lower(), _CAPABILITY_PREFIXES).replace("-", "_")
    if normalized in _CAPABILITY_ALIASES:
        return _CAPABILITY_ALIASES[normalized]
    try:
        return ModelCapability(normalized)
    except ValueError:
        return None


@dataclass
class ProviderConfig:
    """Upsert input. api_key is write-only: it is never read back."""

    provider: ProviderType
    base_url: str = ""
    api_key: str = ""
    timeout_seconds: int = 0


@dataclass
class ProviderConfigView:
    provider: ProviderType
    base_url: str = ""
    timeout_seconds: int = 0
    api_key_present: bool = False


@dataclass
class ModelConfig:
    provider: ProviderType
    upstream_model: str
    capabilities: list[ModelCapability] = field(default_factory=list)


@dataclass
class ModelSpec:
    id: str
    provider: ProviderType
    upstream_model: str
    capabilities: list[ModelCapability] = field(default_factory=list)
