"""Pydantic v2 schemas for generation requests and the inbound HTTP API."""

from __future__ import annotations

import enum

from pydantic import BaseModel, Field

from cinegen.schemas.provider_config import Capability, ResolutionScope


class AssetRole(str, enum.Enum):
    """Positional meaning of a reference image in a scene + cast composition."""

    ENVIRONMENT = "environment"
    CHARACTER = "character"
    FRAME = "frame"


class ReferenceAsset(BaseModel):
    """An input image given either as a remote URL or an inline data URL."""

    source: str = Field(..., min_length=1)
    role: AssetRole = AssetRole.FRAME
    label: str | None = None  # character name for CHARACTER assets

    model_config = {"frozen": True}


class TextOptions(BaseModel):
    system_prompt: str | None = None
    temperature: float = 0.7
    max_tokens: int = 8192
    json_mode: bool = False

    model_config = {"frozen": True}


class ImageOptions(BaseModel):
    """Image options; count > 1 requests an N-up grid."""

    style: str = "写实"
    size: str = "2560x1440"
    count: int = Field(1, ge=1, le=9)
    is_character: bool = False

    model_config = {"frozen": True}

    @property
    def aspect_ratio(self) -> str:
        return "16:9" if self.size == "2560x1440" else "9:16"

    @property
    def is_landscape(self) -> bool:
        width, _, height = self.size.partition("x")
        try:
            return int(width) > int(height)
        except ValueError:
            return True


class VideoOptions(BaseModel):
    """Video options; full_frame treats the start image as a grid reference."""

    duration: int = Field(5, ge=1, le=30)
    full_frame: bool = False
    size: str = "1280x720"
    style: str = "真人写实"

    model_config = {"frozen": True}

    @property
    def is_landscape(self) -> bool:
        width, _, height = self.size.partition("x")
        try:
            return int(width) > int(height)
        except ValueError:
            return True

    @property
    def aspect_ratio(self) -> str:
        return "16:9" if self.is_landscape else "9:16"


class GenerationRequest(BaseModel):
    """A submitted generation request; immutable once built."""

    capability: Capability
    prompt: str
    references: tuple[ReferenceAsset, ...] = ()
    text_options: TextOptions = TextOptions()
    image_options: ImageOptions = ImageOptions()
    video_options: VideoOptions = VideoOptions()
    scope: ResolutionScope = ResolutionScope()

    model_config = {"frozen": True}


# ---------------------------------------------------------------------------
# HTTP bodies
# ---------------------------------------------------------------------------

class ScopeBody(BaseModel):
    request_config_id: str | None = None
    project_config_id: str | None = None

    def to_scope(self) -> ResolutionScope:
        return ResolutionScope(request=self.request_config_id, project=self.project_config_id)


class TextGenerateBody(ScopeBody):
    prompt: str = Field(..., min_length=1)
    options: TextOptions = TextOptions()


class ImageGenerateBody(ScopeBody):
    prompt: str = Field(..., min_length=1)
    references: list[ReferenceAsset] = []
    options: ImageOptions = ImageOptions()


class VideoGenerateBody(ScopeBody):
    prompt: str = Field(..., min_length=1)
    start_image: str | None = None
    end_image: str | None = None
    options: VideoOptions = VideoOptions()


class TextResult(BaseModel):
    text: str
    provider: str


class ArtifactRead(BaseModel):
    url: str
    origin: str
    persisted: bool
    provider: str
    capability: Capability
    media_type: str = "image"
