"""
FastAPI application entry point for the SuburbMates quality scoring service.

Builds the application: logging, CORS, the error handlers, the service
container and the /admin/quality-scoring routers. create_app() accepts a
prebuilt ServiceContainer so tests can run the full HTTP surface against
in-memory collaborators.
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from suburbmates import __version__
from suburbmates.api import api_router
from suburbmates.core.config import get_settings
from suburbmates.core.database import close_db, init_db
from suburbmates.core.dependencies import ServiceContainer, build_services
from suburbmates.core.exceptions import register_exception_handlers

# Configure logging
logging.basicConfig(
    level=get_settings().log_level.upper(),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


def create_app(services: Optional[ServiceContainer] = None) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        services: Prebuilt service graph. When omitted, the PostgreSQL-backed
            graph is built and the connection pool is managed by the lifespan.
    """
    manage_database = services is None
    settings = services.settings if services else get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        logger.info("SuburbMates quality scoring API starting")
        if manage_database:
            try:
                await init_db()
                logger.info("Database connection pool initialized")
            except Exception as e:
                logger.error(f"Failed to initialize database: {e}")

        yield

        logger.info("SuburbMates quality scoring API shutting down")
        await app.state.services.jobs.shutdown()
        if manage_database:
            try:
                await close_db()
                logger.info("Database connection pool closed")
            except Exception as e:
                logger.error(f"Error closing database pool: {e}")

    app = FastAPI(
        title="SuburbMates Quality Scoring API",
        version=__version__,
        description=(
            "Quality scoring for SuburbMates business profiles: low-quality "
            "listings, directory statistics and batch rescoring jobs."
        ),
        lifespan=lifespan,
    )
    app.state.services = services or build_services(settings)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_exception_handlers(app)
    app.include_router(api_router)

    @app.get("/health")
    async def health_check():
        """Liveness check."""
        return {"status": "healthy"}

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "suburbmates.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
    )
