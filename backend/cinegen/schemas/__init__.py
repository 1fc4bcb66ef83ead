"""Pydantic v2 schemas package."""

from cinegen.schemas.generation import (
    ArtifactRead,
    AssetRole,
    GenerationRequest,
    ImageGenerateBody,
    ImageOptions,
    ReferenceAsset,
    TextGenerateBody,
    TextOptions,
    TextResult,
    VideoGenerateBody,
    VideoOptions,
)
from cinegen.schemas.provider_config import (
    Capability,
    ProviderConfig,
    ProviderConfigRead,
    ProviderConfigWrite,
    ProviderName,
    ResolutionScope,
)

__all__ = [
    "ArtifactRead",
    "AssetRole",
    "Capability",
    "GenerationRequest",
    "ImageGenerateBody",
    "ImageOptions",
    "ProviderConfig",
    "ProviderConfigRead",
    "ProviderConfigWrite",
    "ProviderName",
    "ReferenceAsset",
    "ResolutionScope",
    "TextGenerateBody",
    "TextOptions",
    "TextResult",
    "VideoGenerateBody",
    "VideoOptions",
]
