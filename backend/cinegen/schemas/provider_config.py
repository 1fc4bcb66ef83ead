"""Pydantic v2 schemas for provider configurations and resolution scopes."""

from __future__ import annotations

import enum

from pydantic import BaseModel, Field, SecretStr


class Capability(str, enum.Enum):
    """Generation kinds served by the orchestration core."""

    LLM = "llm"
    TEXT2IMAGE = "text2image"
    IMAGE2VIDEO = "image2video"


class ProviderName(str, enum.Enum):
    """Supported external generation backends."""

    DOUBAO = "doubao"
    DEEPSEEK = "deepseek"
    OPENAI = "openai"
    GEMINI = "gemini"
    YUNWU = "yunwu"
    KLING = "kling"
    MINIMAX = "minimax"
    SORA = "sora"
    SKYREELS = "skyreels"


class ProviderConfig(BaseModel):
    """A stored credential/model/endpoint set for one provider + capability pair.

    Read-only to the orchestration core; only the config store mutates it.
    """

    id: str = Field(..., min_length=1, max_length=64)
    provider: ProviderName
    capability: Capability
    model: str = ""
    api_key: SecretStr = SecretStr("")
    api_url: str = ""
    enabled: bool = False
    description: str = ""

    model_config = {"frozen": True, "from_attributes": True}

    @property
    def has_credential(self) -> bool:
        return bool(self.api_key.get_secret_value().strip())


class ProviderConfigWrite(BaseModel):
    """Schema for creating or replacing a provider configuration."""

    id: str = Field(..., min_length=1, max_length=64)
    provider: ProviderName
    capability: Capability
    model: str = ""
    api_key: str = ""
    api_url: str = ""
    enabled: bool = False
    description: str = ""

    def to_config(self) -> ProviderConfig:
        return ProviderConfig(
            id=self.id,
            provider=self.provider,
            capability=self.capability,
            model=self.model,
            api_key=SecretStr(self.api_key),
            api_url=self.api_url,
            enabled=self.enabled,
            description=self.description,
        )


class ProviderConfigRead(BaseModel):
    """Schema for reading a provider configuration; the key is masked."""

    id: str
    provider: ProviderName
    capability: Capability
    model: str
    api_key_masked: str
    api_url: str
    enabled: bool
    description: str

    @classmethod
    def from_config(cls, config: ProviderConfig) -> "ProviderConfigRead":
        return cls(
            id=config.id,
            provider=config.provider,
            capability=config.capability,
            model=config.model,
            api_key_masked=mask_key(config.api_key.get_secret_value()),
            api_url=config.api_url,
            enabled=config.enabled,
            description=config.description,
        )


class ResolutionScope(BaseModel):
    """Override levels consulted when resolving a provider, most specific first.

    With neither id set, resolution falls through to the single globally
    enabled configuration for the capability.
    """

    request: str | None = None
    project: str | None = None

    model_config = {"frozen": True}


def mask_key(key: str) -> str:
    """Mask an API key for safe logging: show first 8 and last 4 chars."""
    if len(key) <= 16:
        return "***" if key else ""
    return f"{key[:8]}...{key[-4:]}"
