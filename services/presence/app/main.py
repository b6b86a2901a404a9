"""
Main application module for the presence service.
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional, cast

import uvicorn
from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from slowapi.util import get_remote_address
from starlette.types import ExceptionHandler

from .api.routers import health_check, presence_websocket, root_router, router
from .core.config import Settings, get_settings
from .core.logging_config import setup_logging
from .core.presence_manager import PresenceManager
from .db.repository import PresenceRepository

# Load environment variables
load_dotenv()

logger = logging.getLogger(__name__)


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """Build the FastAPI application for the given settings."""
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # Startup logic
        logger.info("Starting Presence service...")
        repository = PresenceRepository(
            settings.DATABASE_URL,
            echo=settings.DB_ECHO,
            timeout=settings.DB_TIMEOUT,
            connect_attempts=settings.DB_CONNECT_ATTEMPTS,
        )
        app.state.presence_manager = PresenceManager(settings, repository)
        await app.state.presence_manager.initialize()

        logger.info("Presence service started successfully")

        yield  # This is where FastAPI serves requests

        # Shutdown logic
        logger.info("Shutting down Presence Service")
        await app.state.presence_manager.shutdown()
        app.state.presence_manager = None

        logger.info("Presence service shut down successfully")

    app = FastAPI(
        title=settings.PROJECT_NAME,
        description="Tracks launcher sessions and streams who is online",
        version=settings.VERSION,
        lifespan=lifespan,
    )

    # Initialize rate limiter; health and the observer socket are not limited
    limiter = Limiter(
        key_func=get_remote_address, default_limits=[settings.RATE_LIMIT]
    )
    limiter.exempt(health_check)
    limiter.exempt(presence_websocket)
    app.state.limiter = limiter
    app.add_middleware(SlowAPIMiddleware)
    app.add_exception_handler(
        RateLimitExceeded, cast(ExceptionHandler, _rate_limit_exceeded_handler)
    )

    # Configure CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=settings.CORS_CREDENTIALS,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Include routers
    app.include_router(router, prefix=settings.API_PREFIX)
    app.include_router(root_router)

    return app


def run() -> None:
    """Serve the application with uvicorn, over TLS when configured."""
    settings = get_settings()
    setup_logging(settings.LOG_LEVEL)

    if settings.SSL_KEYFILE and settings.SSL_CERTFILE:
        logger.info("Using SSL certificates, serving HTTPS and WSS")
    else:
        logger.info("No SSL certificates configured, serving HTTP and WS")

    uvicorn.run(
        create_app(settings),
        host=settings.HOST,
        port=settings.PORT,
        ssl_keyfile=settings.SSL_KEYFILE,
        ssl_certfile=settings.SSL_CERTFILE,
        log_level=settings.LOG_LEVEL.lower(),
    )


app = create_app()


if __name__ == "__main__":
    run()
