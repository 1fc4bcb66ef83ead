"""CineGen — FastAPI application entry point.

Builds the generation core (config store, adapters, resolver, persistence,
orchestrator) in the lifespan and mounts the API routes.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from cinegen.api.router import api_router
from cinegen.config import get_settings
from cinegen.database import close_db, get_session_factory, init_db
from cinegen.services.composition import GridComposer
from cinegen.services.config_store import (
    InMemoryProviderConfigStore,
    ProviderConfigStore,
    SqlProviderConfigStore,
)
from cinegen.services.errors import GenerationError
from cinegen.services.orchestrator import GenerationOrchestrator
from cinegen.services.persistence import ArtifactPersistence
from cinegen.services.poller import TaskPoller
from cinegen.services.providers import build_registry
from cinegen.services.reference_assets import ReferenceAssetNormalizer
from cinegen.services.resolver import CapabilityResolver
from cinegen.services.retry import RetryExecutor, RetryPolicy

settings = get_settings()

# Configure logging
logging.basicConfig(
    level=logging.DEBUG if settings.DEBUG else logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


def create_app(
    store: ProviderConfigStore | None = None,
    http_client: httpx.AsyncClient | None = None,
    retry: RetryExecutor | None = None,
    poller: TaskPoller | None = None,
) -> FastAPI:
    """Build the application; injected collaborators replace the configured ones."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("%s starting up...", settings.APP_NAME)

        config_store = store
        use_sql = config_store is None and settings.CONFIG_STORE == "sql"
        if config_store is None:
            if use_sql:
                logger.info("Config store: sql (%s@%s/%s)", settings.DB_USER, settings.DB_HOST, settings.DB_NAME)
                await init_db()
                config_store = SqlProviderConfigStore(get_session_factory())
            else:
                logger.info("Config store: memory")
                config_store = InMemoryProviderConfigStore()
        if settings.SEED_DEFAULT_CONFIGS:
            await config_store.seed_defaults()

        client = http_client or httpx.AsyncClient(timeout=settings.HTTP_TIMEOUT)
        registry = build_registry(
            client,
            retry=retry or RetryExecutor(RetryPolicy.from_settings()),
            poller=poller,
        )
        persistence = ArtifactPersistence(client)
        normalizer = ReferenceAssetNormalizer(client, persistence)

        app.state.config_store = config_store
        app.state.registry = registry
        app.state.orchestrator = GenerationOrchestrator(
            CapabilityResolver(config_store, registry),
            normalizer,
            persistence,
            GridComposer(normalizer),
        )
        logger.info("Persistence: %s", "enabled" if persistence.enabled else "disabled")

        yield

        if http_client is None:
            await client.aclose()
        if use_sql:
            await close_db()
        logger.info("%s shut down", settings.APP_NAME)

    app = FastAPI(
        title=f"{settings.APP_NAME} API",
        description="Generation-task orchestration: provider resolution, task polling, artifact persistence",
        version="0.1.0",
        lifespan=lifespan,
        redirect_slashes=False,
    )

    @app.exception_handler(GenerationError)
    async def generation_error_handler(request: Request, exc: GenerationError):
        return JSONResponse(status_code=exc.http_status, content=exc.to_dict())

    app.include_router(api_router)

    @app.get("/health")
    async def health():
        """Health check endpoint."""
        return {"service": settings.APP_NAME, "status": "running"}

    return app


app = create_app()
