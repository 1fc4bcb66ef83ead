"""Generation API — text, image and video through the orchestrator."""

from __future__ import annotations

import asyncio
import logging

from fastapi import APIRouter, Depends, Request

from cinegen.api.deps import get_orchestrator
from cinegen.schemas.generation import (
    ArtifactRead,
    ImageGenerateBody,
    TextGenerateBody,
    TextResult,
    VideoGenerateBody,
)
from cinegen.services.orchestrator import GenerationOrchestrator
from cinegen.services.persistence import Artifact

logger = logging.getLogger(__name__)

router = APIRouter()

DISCONNECT_CHECK_INTERVAL = 1.0


def _artifact_read(artifact: Artifact) -> ArtifactRead:
    return ArtifactRead(
        url=artifact.location,
        origin=artifact.origin,
        persisted=artifact.persisted,
        provider=artifact.provider,
        capability=artifact.capability,
        media_type=artifact.media_type,
    )


async def _watch_disconnect(request: Request, cancel: asyncio.Event) -> None:
    """Set ``cancel`` once the client goes away, so polling stops."""
    while not cancel.is_set():
        if await request.is_disconnected():
            logger.info("Client disconnected, cancelling video generation")
            cancel.set()
            return
        await asyncio.sleep(DISCONNECT_CHECK_INTERVAL)


@router.post("/text", response_model=TextResult)
async def generate_text(
    body: TextGenerateBody,
    orchestrator: GenerationOrchestrator = Depends(get_orchestrator),
):
    """Generate text with the resolved llm provider."""
    result = await orchestrator.resolve_and_generate_text(body.prompt, body.options, body.to_scope())
    return TextResult(text=result.text, provider=result.provider)


@router.post("/image", response_model=ArtifactRead)
async def generate_image(
    body: ImageGenerateBody,
    orchestrator: GenerationOrchestrator = Depends(get_orchestrator),
):
    """Generate an image (or an N-up grid) and persist it."""
    artifact = await orchestrator.resolve_and_generate_image(
        body.prompt, body.references, body.options, body.to_scope(),
    )
    return _artifact_read(artifact)


@router.post("/video", response_model=ArtifactRead)
async def generate_video(
    request: Request,
    body: VideoGenerateBody,
    orchestrator: GenerationOrchestrator = Depends(get_orchestrator),
):
    """Generate a video; blocks until the backend task reaches a terminal state."""
    cancel = asyncio.Event()
    watcher = asyncio.create_task(_watch_disconnect(request, cancel))
    try:
        artifact = await orchestrator.resolve_and_generate_video(
            body.prompt, body.start_image, body.end_image, body.options, body.to_scope(),
            cancel=cancel,
        )
    finally:
        watcher.cancel()
    return _artifact_read(artifact)
