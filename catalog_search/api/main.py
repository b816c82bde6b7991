"""
FastAPI Main Application
Entry point for the Catalog Search API.
"""

import logging
import threading
from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware

from .config import get_settings, APISettings
from .errors import setup_error_handlers
from .middleware import RequestLoggingMiddleware, RequestTimingMiddleware
from .routers import health_router, search_router, admin_router
from ..ml.embedding import get_embedding_adapter
from ..ml.model_loader import ModelNotAvailableError, get_model_registry
from ..ml.search.flags import flags_from_settings, log_flags
from ..ml.user_modeling.profile_store import get_profile_store

# Configure logging
logging.basicConfig(
    level=get_settings().log_level.upper(),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


def load_profiles(settings: APISettings) -> None:
    """
    Publish the initial profile snapshot.

    Prefers the artifact written by the background worker; falls back to
    building from the order/product exports.
    """
    store = get_profile_store()
    snapshot_path = settings.snapshot_path

    if snapshot_path.exists():
        try:
            store.load_artifact(snapshot_path)
        except (OSError, ValueError) as e:
            logger.warning(f"Failed to load profile snapshot {snapshot_path}: {e}")

    if not store.is_loaded:
        store.rebuild_from_files(settings.orders_path, settings.products_path)

    if store.current.is_empty:
        logger.warning("No user profiles available, search will not be personalized")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan handler.

    Runs on startup and shutdown to initialize/cleanup resources.
    """
    # Startup
    logger.info("Starting Catalog Search API...")

    settings = get_settings()
    log_flags(flags_from_settings(settings))

    load_profiles(settings)

    # Load the embedding model in background (non-blocking)
    # This allows the app to start quickly and pass health checks
    def load_model_background():
        try:
            logger.info("Loading embedding model in background...")
            get_model_registry().get_embedding_model()
            logger.info(f"Embedding model ready ({get_embedding_adapter().dimension} dims)")
        except ModelNotAvailableError as e:
            logger.error(f"Failed to load embedding model: {e}")
            logger.warning("Searches will use keyword scoring only")

    if settings.preload_embeddings:
        model_thread = threading.Thread(target=load_model_background, daemon=True)
        model_thread.start()

    logger.info("Catalog Search API started successfully (embedding model loading in background)")

    yield

    # Shutdown
    logger.info("Shutting down Catalog Search API...")


def create_app() -> FastAPI:
    """
    Create and configure FastAPI application.

    Returns:
        Configured FastAPI application instance
    """
    settings = get_settings()

    # Create FastAPI app
    app = FastAPI(
        title=settings.app_name,
        description=settings.description,
        version=settings.version,
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
    )

    # Set up CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=settings.cors_allow_credentials,
        allow_methods=settings.cors_allow_methods,
        allow_headers=settings.cors_allow_headers,
    )

    # Add GZip compression
    app.add_middleware(GZipMiddleware, minimum_size=1000)

    # Add custom middleware
    app.add_middleware(
        RequestTimingMiddleware, slow_request_ms=settings.target_p95_latency_ms * 2
    )
    app.add_middleware(RequestLoggingMiddleware)

    # Set up error handlers
    setup_error_handlers(app)

    # Include routers
    app.include_router(health_router)
    app.include_router(search_router)
    app.include_router(admin_router)

    return app


# Create app instance
app = create_app()


# Root endpoint
@app.get("/")
async def root():
    """
    Root endpoint.

    Returns:
        API information
    """
    settings = get_settings()

    return {
        "name": settings.app_name,
        "version": settings.version,
        "description": settings.description,
        "endpoints": {
            "search": "/api/v1/search",
            "health": "/health",
            "metrics": "/metrics",
            "docs": "/docs",
        },
    }


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()

    uvicorn.run(
        "catalog_search.api.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.reload,
        log_level=settings.log_level.lower(),
    )
