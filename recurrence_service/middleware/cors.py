"""CORS configuration for the Recurrence Service."""
import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from recurrence_service.config import Settings

logger = logging.getLogger(__name__)

# Base allowed origins for development
DEFAULT_ORIGINS = [
    "http://localhost:3000",
    "http://127.0.0.1:3000",
]


def allowed_origins(frontend_url: str) -> list:
    origins = list(DEFAULT_ORIGINS)
    # Add production frontend URL if provided
    if frontend_url and frontend_url not in origins:
        origins.append(frontend_url)
    return origins


def add_cors_middleware(app: FastAPI, settings: Settings) -> None:
    """Add CORS middleware to the FastAPI application."""
    if settings.environment == "production":
        # Wildcard support for Vercel preview deployments
        logger.info("[CORS] Using production CORS with Vercel wildcard support")
        app.add_middleware(
            CORSMiddleware,
            allow_origin_regex=r"https://.*\.vercel\.app",
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )
    else:
        origins = allowed_origins(settings.frontend_url)
        logger.info(f"[CORS] Using development CORS with origins: {origins}")
        app.add_middleware(
            CORSMiddleware,
            allow_origins=origins,
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )
