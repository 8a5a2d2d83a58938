"""FastAPI application entry point."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    import httpx

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles

from foodvision.api.routes import router
from foodvision.client.examples import ExampleCatalog
from foodvision.client.session import ClassificationSession
from foodvision.client.transport import ClassificationTransport
from foodvision.client.warmup import WarmupProber, WarmupStatus
from foodvision.config import Settings, get_settings

logger = logging.getLogger(__name__)


def init_app_state(app: FastAPI, settings: Settings, http_client: httpx.AsyncClient | None = None) -> None:
    """Wire transport, catalog, session and warmup prober onto ``app.state``.

    ``http_client`` is shared by transport and catalog when given; otherwise
    each creates its own from ``settings``.
    """
    transport = ClassificationTransport.from_settings(settings, client=http_client)
    catalog = ExampleCatalog.from_settings(settings, client=http_client)
    warmup = WarmupStatus()

    app.state.settings = settings
    app.state.transport = transport
    app.state.catalog = catalog
    app.state.session = ClassificationSession(transport, catalog=catalog, warmup=warmup)
    app.state.warmup_prober = WarmupProber(transport, warmup)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan: initialize on startup, clean up on shutdown."""
    settings: Settings = app.state.settings

    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )

    logger.info(
        "Starting FoodVision (api=%s, timeout=%s, warmup=%s)",
        settings.predict_url,
        settings.request_timeout,
        settings.warmup_enabled,
    )

    init_app_state(app, settings)
    prober: WarmupProber = app.state.warmup_prober
    if settings.warmup_enabled:
        prober.start()

    logger.info("FoodVision ready")
    yield

    logger.info("Shutting down FoodVision")
    warmup_settled = not prober.started or await prober.wait(timeout=settings.warmup_grace_seconds)
    if not warmup_settled:
        logger.info("Warmup still pending after %.1fs grace; abandoning it", settings.warmup_grace_seconds)
    session: ClassificationSession = app.state.session
    await session.aclose()
    # Classifications have settled here; anything left in flight is the warmup.
    await app.state.transport.aclose(timeout=None if warmup_settled else 0)
    await app.state.catalog.aclose()
    logger.info("FoodVision shutdown complete")


def create_app(settings: Settings | None = None) -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = settings or get_settings()
    application = FastAPI(
        title="FoodVision",
        description="Image classification client for the FoodVision inference service",
        version="0.1.0",
        lifespan=lifespan,
    )
    application.state.settings = settings

    application.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    application.include_router(router)

    examples_dir = Path(settings.examples_dir)
    if examples_dir.is_dir():
        application.mount("/examples", StaticFiles(directory=examples_dir), name="examples")
    else:
        logger.warning(
            "Examples directory %s not found; example selection needs FOODVISION_ASSETS_BASE_URL "
            "to point at a host serving the images (currently %s)",
            examples_dir.resolve(),
            settings.assets_base_url,
        )
    return application


app = create_app()


def run() -> None:
    """Serve the application with uvicorn on the configured host and port."""
    settings = get_settings()
    uvicorn.run("foodvision.main:app", host=settings.host, port=settings.port, log_level=settings.log_level.lower())
