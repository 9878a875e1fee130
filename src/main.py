"""Classius Sage FastAPI Application."""

from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from src.config import settings
from src.logging_config import get_logger, setup_logging
from src.middleware import CorrelationIdMiddleware
from src.routers import health, sage
from src.services.ai_client import AIServiceError
from src.services.sage import build_provider_config, create_sage_service

setup_logging(
    log_format=settings.log_format,
    log_level=settings.log_level,
    service_name=settings.service_name,
)
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler.

    Builds the single SageService for the process. A misconfigured provider
    leaves the rest of the API running with the Sage routes answering 503.
    """
    app.state.sage = None
    try:
        app.state.sage = create_sage_service(
            settings.sage_provider, build_provider_config(settings)
        )
        logger.info("Sage service initialised", provider=settings.sage_provider)
    except AIServiceError as e:
        logger.warning(
            "Failed to initialise Sage service; Sage endpoints will not be available",
            provider=settings.sage_provider,
            error=str(e),
        )

    yield

    logger.info("Shutting down Classius API...")
    if app.state.sage is not None:
        await app.state.sage.aclose()
    logger.info("Classius API shutdown complete")


app = FastAPI(
    title="Classius Sage API",
    description="AI tutor for classical texts",
    version="0.1.0",
    lifespan=lifespan,
)

# Middleware (order matters: first added = last executed)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(CorrelationIdMiddleware)

app.include_router(health.router)
app.include_router(sage.router)


@app.get("/")
async def root() -> dict[str, Any]:
    """Root endpoint."""
    return {
        "name": "Classius Sage API",
        "version": "0.1.0",
        "docs": "/docs",
    }
