"""Master API router — mounts all sub-routers."""

from __future__ import annotations

from fastapi import APIRouter

from cinegen.api.generation import router as generation_router
from cinegen.api.metrics import router as metrics_router
from cinegen.api.model_configs import router as model_configs_router

api_router = APIRouter(prefix="/api", redirect_slashes=False)

api_router.include_router(generation_router, prefix="/generate", tags=["Generation"])
api_router.include_router(model_configs_router, prefix="/model-configs", tags=["Model Configs"])
api_router.include_router(metrics_router, prefix="/metrics", tags=["Metrics"])
