"""
Application factory for the Order Assistant API.

Builds the FastAPI application with CORS, rate limiting and the chat
routes mounted both under /api/v1 and at the root.
"""

import logging

from fastapi import APIRouter, FastAPI
from fastapi.middleware.cors import CORSMiddleware
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from . import __version__
from .config import CORS_ORIGINS
from .routes import chat_router, limiter

logger = logging.getLogger(__name__)


def create_app() -> FastAPI:
    """
    Create a FastAPI application.

    Returns:
        Configured FastAPI application
    """
    app = FastAPI(
        title="Order Assistant API",
        description="Conversational ordering orchestration backend",
        version=__version__,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Configure rate limiting
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

    # Include routers with API version prefix
    api_v1 = APIRouter(prefix="/api/v1")
    api_v1.include_router(chat_router)
    app.include_router(api_v1)

    # Also mount at root for backward compatibility
    app.include_router(chat_router)

    @app.get("/health")
    def health_check():
        return {"status": "healthy", "version": __version__}

    logger.info("Application created (version %s)", __version__)
    return app
