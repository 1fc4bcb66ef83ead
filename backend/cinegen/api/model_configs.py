"""Provider configuration API — list, save, toggle and delete configs."""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Response

from cinegen.api.deps import get_config_store, get_registry
from cinegen.schemas.provider_config import (
    Capability,
    ProviderConfigRead,
    ProviderConfigWrite,
)
from cinegen.services.config_store import ConfigNotFound, ProviderConfigStore
from cinegen.services.providers import AdapterRegistry

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("", response_model=list[ProviderConfigRead])
async def list_configs(
    capability: Capability | None = None,
    store: ProviderConfigStore = Depends(get_config_store),
):
    """List provider configs (keys masked), optionally for one capability."""
    configs = await (store.list_by_capability(capability) if capability else store.list_all())
    return [ProviderConfigRead.from_config(c) for c in configs]


@router.get("/providers")
async def list_providers(registry: AdapterRegistry = Depends(get_registry)) -> dict[str, Any]:
    """Support matrix of every registered provider adapter."""
    return {"providers": registry.support_matrix()}


@router.post("", response_model=ProviderConfigRead, status_code=201)
async def save_config(
    body: ProviderConfigWrite,
    store: ProviderConfigStore = Depends(get_config_store),
    registry: AdapterRegistry = Depends(get_registry),
):
    """Create or replace a config; saving it enabled disables its siblings."""
    adapter = registry.get(body.provider.value)
    if not adapter.supports(body.capability):
        raise HTTPException(
            status_code=400,
            detail=f"{body.provider.value} does not support {body.capability.value}",
        )
    config = await store.save(body.to_config())
    logger.info("Saved provider config %s (%s/%s)", config.id, config.provider.value, config.capability.value)
    return ProviderConfigRead.from_config(config)


@router.post("/{config_id}/toggle", response_model=ProviderConfigRead)
async def toggle_config(
    config_id: str,
    store: ProviderConfigStore = Depends(get_config_store),
):
    """Flip a config's enabled flag."""
    try:
        config = await store.toggle(config_id)
    except ConfigNotFound:
        raise HTTPException(status_code=404, detail="Provider config not found")
    return ProviderConfigRead.from_config(config)


@router.delete("/{config_id}", status_code=204)
async def delete_config(
    config_id: str,
    store: ProviderConfigStore = Depends(get_config_store),
):
    """Delete a config."""
    try:
        await store.delete(config_id)
    except ConfigNotFound:
        raise HTTPException(status_code=404, detail="Provider config not found")
    return Response(status_code=204)
