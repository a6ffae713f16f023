"""Taskhook main application."""

import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from taskhook import __version__
from taskhook.api import router
from taskhook.api.deps import validate_auth_config
from taskhook.config import settings
from taskhook.db.base import close_db, init_db
from taskhook.runners.session import session_registry
from taskhook.runners.sweep import start_dispatch_sweep, stop_dispatch_sweep

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper()),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger("taskhook")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    logger.info("Starting Taskhook server...")
    logger.info(f"Environment: {settings.env.value}")

    # Validate authentication configuration (fail fast if insecure)
    validate_auth_config()

    # Initialize database
    await init_db()
    logger.info("Database initialized")

    # Start background tasks
    if settings.dispatch_sweep_enabled:
        await start_dispatch_sweep()
        logger.info("Dispatch sweep task started")
    else:
        logger.info("Dispatch sweep disabled; relying on external scheduling")

    yield

    # Cleanup
    logger.info("Shutting down Taskhook server...")
    await session_registry.close_all()
    await stop_dispatch_sweep()
    await close_db()
    logger.info("Shutdown complete")


# Create FastAPI application
app = FastAPI(
    title="Taskhook",
    description="Tasks with due dates and webhook notifications",
    version=__version__,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_allowed_origins,
    allow_credentials=settings.cors_allow_credentials,
    allow_methods=settings.cors_allowed_methods,
    allow_headers=settings.cors_allowed_headers,
)

# Include API router
app.include_router(router)


def main():
    """Entry point for the application."""
    uvicorn.run(
        "taskhook.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
