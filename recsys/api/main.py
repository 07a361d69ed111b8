"""
FastAPI Main Application
App factory, lifespan wiring and the uvicorn entrypoint.

Run with:
    python -m recsys.api.main
"""

import logging
import sys
from contextlib import asynccontextmanager
from typing import Optional
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from starlette.concurrency import run_in_threadpool

from .config import get_settings, APISettings
from .errors import setup_error_handlers
from .middleware import RequestLoggingMiddleware, RequestTimingMiddleware
from .routers import (
    health_router,
    search_router,
    recommend_router,
    feedback_router,
    admin_router,
)
from ..db.metadata_store import MetadataStore
from ..ml.config import MLConfig, get_ml_config
from ..ml.search import RecommendationService

# Configure logging
logging.basicConfig(
    level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Hydrate before serving, persist after.

    Startup blocks until the indexes agree with the metadata store. Shutdown
    stops admitting requests, drains the in-flight ones and saves the vector
    index; the outcome is left on app.state.shutdown_ok for the entrypoint.
    """
    settings: APISettings = app.state.settings
    ml_config: MLConfig = app.state.ml_config

    service = RecommendationService.build(
        MetadataStore(settings.database_url),
        config=ml_config,
        index_path=settings.vector_index_path,
    )
    app.state.service = service

    report = await run_in_threadpool(service.start)
    logger.info(
        f"Serving {report.item_count} items "
        f"(index {report.load_status}, rebuilt={report.rebuilt}, {report.duration_ms:.0f}ms)"
    )

    yield

    app.state.shutdown_ok = await run_in_threadpool(service.stop)
    if app.state.shutdown_ok:
        logger.info("Shutdown complete")
    else:
        logger.error("Shutdown could not persist state; the next start will rebuild from the store")


def create_app(
    settings: Optional[APISettings] = None,
    ml_config: Optional[MLConfig] = None,
) -> FastAPI:
    """
    Build the application.

    The engine itself is created by the lifespan, so building an app is cheap
    and touches neither the database nor the index file.

    Args:
        settings: API settings (default: global settings)
        ml_config: Engine configuration (default: global ML config)
    """
    settings = settings or get_settings()

    app = FastAPI(
        title=settings.app_name,
        description=settings.description,
        version=settings.version,
        lifespan=lifespan,
    )

    app.state.settings = settings
    app.state.ml_config = ml_config or get_ml_config()
    app.state.service = None
    app.state.shutdown_ok = None

    # The last middleware added runs first, so request IDs exist before anything logs
    app.add_middleware(GZipMiddleware, minimum_size=1000)
    app.add_middleware(RequestTimingMiddleware, slow_threshold_ms=settings.slow_request_ms)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origin_list,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(RequestLoggingMiddleware)

    setup_error_handlers(app)

    for router in (health_router, recommend_router, search_router, feedback_router, admin_router):
        app.include_router(router)

    @app.get("/")
    async def root():
        """Service name, version and the main endpoints."""
        return {
            "name": settings.app_name,
            "version": settings.version,
            "endpoints": {
                "recommend": "/api/v1/recommend",
                "search": "/api/v1/search",
                "health": "/health",
                "ready": "/ready",
                "metrics": "/metrics",
                "docs": "/docs",
            },
        }

    return app


# Create app instance
app = create_app()


def main() -> int:
    """Serve until interrupted. Exit code 1 if shutdown could not persist the index."""
    import uvicorn

    settings = get_settings()
    logging.getLogger().setLevel(settings.numeric_log_level)

    uvicorn.run(app, host=settings.host, port=settings.port, log_level=settings.log_level.lower())

    if app.state.shutdown_ok is False:
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
