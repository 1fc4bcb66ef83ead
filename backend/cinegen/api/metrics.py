"""Metrics API — generation usage statistics."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from cinegen.api.deps import get_orchestrator
from cinegen.services.orchestrator import GenerationOrchestrator

router = APIRouter()


@router.get("/generation")
async def generation_metrics(
    orchestrator: GenerationOrchestrator = Depends(get_orchestrator),
):
    """Return per-capability call, error and latency counters."""
    return {"capabilities": orchestrator.get_metrics()}
