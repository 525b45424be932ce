"""Kindred API: FastAPI application factory.

The app factory creates a FastAPI instance with:
- CORS middleware (configurable origins)
- Lifespan handler that opens the database pool and builds the store
- Health endpoint at GET /api/health
- The anniversaries router
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from kindred.api.deps import init_store, shutdown_store, wire_store_dependencies
from kindred.api.middleware import register_error_handlers
from kindred.api.models import HealthResponse
from kindred.api.routers.anniversaries import router as anniversaries_router
from kindred.config import KindredConfig

logger = logging.getLogger(__name__)


def _lifespan(config: KindredConfig):
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Open the store on startup and close its pool on shutdown."""
        await init_store(config)
        wire_store_dependencies(app)
        logger.info("Anniversary store ready (db=%s, schema=%s)", config.db_name, config.db_schema)

        yield

        await shutdown_store()

    return lifespan


def create_app(
    config: KindredConfig | None = None,
    cors_origins: list[str] | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Parameters
    ----------
    config:
        Parsed configuration; defaults to ``KindredConfig()``.
    cors_origins:
        Allowed CORS origins. Defaults to ["http://localhost:5173"] for
        local Vite dev server.
    """
    config = config or KindredConfig()
    if cors_origins is None:
        cors_origins = ["http://localhost:5173"]

    app = FastAPI(
        title="Kindred API",
        version="0.1.0",
        lifespan=_lifespan(config),
    )
    app.router.redirect_slashes = False

    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_error_handlers(app)

    app.include_router(anniversaries_router)

    @app.get("/api/health", response_model=HealthResponse)
    async def health():
        return HealthResponse(status="ok")

    return app
