"""FastAPI dependencies — services live on app.state, built in the lifespan."""

from __future__ import annotations

from fastapi import Request

from cinegen.services.config_store import ProviderConfigStore
from cinegen.services.orchestrator import GenerationOrchestrator
from cinegen.services.providers import AdapterRegistry


def get_orchestrator(request: Request) -> GenerationOrchestrator:
    return request.app.state.orchestrator


def get_config_store(request: Request) -> ProviderConfigStore:
    return request.app.state.config_store


def get_registry(request: Request) -> AdapterRegistry:
    return request.app.state.registry
