"""Sage router.

API endpoints for asking the AI Sage questions and inspecting the
configured provider. The SageService is built once at startup and read
from ``app.state``; it is never looked up globally.
"""

import asyncio
from datetime import UTC, datetime
from typing import Annotated

from fastapi import APIRouter, Depends, Header, HTTPException, Request, status

from src.config import settings
from src.logging_config import get_logger
from src.schemas.sage import (
    ErrorResponse,
    SageCapabilitiesResponse,
    SageHealthResponse,
    SageQuestionRequest,
    SageQuestionResponse,
)
from src.services.ai_client import AIProviderNotImplementedError, AIServiceError
from src.services.sage import SageRequestError, SageService

logger = get_logger(__name__)

router = APIRouter(prefix="/api/sage", tags=["sage"])


def get_sage_service(request: Request) -> SageService:
    """Return the SageService wired at startup, or 503 if none is configured."""
    sage: SageService | None = getattr(request.app.state, "sage", None)
    if sage is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Sage service is not available",
        )
    return sage


Sage = Annotated[SageService, Depends(get_sage_service)]


@router.post(
    "/ask",
    response_model=SageQuestionResponse,
    responses={
        200: {"description": "Sage answer"},
        501: {"model": ErrorResponse, "description": "Provider not implemented"},
        502: {"model": ErrorResponse, "description": "Provider request failed"},
        503: {"model": ErrorResponse, "description": "Sage not configured"},
        504: {"model": ErrorResponse, "description": "Provider timed out"},
    },
)
async def ask_sage(
    request: SageQuestionRequest,
    sage: Sage,
    x_user_id: Annotated[str | None, Header()] = None,
) -> SageQuestionResponse:
    """Ask the Sage a question about the book being read."""
    logger.info(
        "Sage question received",
        user_id=x_user_id,
        book_id=request.book_id,
        annotation_id=request.annotation_id,
    )
    try:
        async with asyncio.timeout(settings.sage_ask_timeout_seconds):
            response = await sage.ask(
                request.question,
                user_id=x_user_id,
                book_title=request.book_title,
                book_author=request.book_author,
                passage_text=request.passage_text,
                context=request.context,
            )
    except TimeoutError:
        logger.warning(
            "Sage question timed out",
            timeout_seconds=settings.sage_ask_timeout_seconds,
            user_id=x_user_id,
        )
        raise HTTPException(
            status_code=status.HTTP_504_GATEWAY_TIMEOUT,
            detail="Sage did not answer in time",
        ) from None
    except SageRequestError as e:
        if isinstance(e.cause, AIProviderNotImplementedError):
            raise HTTPException(
                status_code=status.HTTP_501_NOT_IMPLEMENTED,
                detail=str(e.cause),
            ) from e
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail="Failed to get response from Sage",
        ) from e

    return SageQuestionResponse(
        answer=response.answer,
        response_time=round(response.response_time, 3),
        model=response.model,
        provider=response.provider,
        tokens_used=response.tokens_used,
        sources=response.sources,
        confidence=response.confidence,
    )


@router.get("/capabilities", response_model=SageCapabilitiesResponse)
async def get_sage_capabilities(sage: Sage) -> SageCapabilitiesResponse:
    """Return what the configured provider supports. Makes no network call."""
    capabilities = sage.get_capabilities()
    return SageCapabilitiesResponse(
        **capabilities.model_dump(),
        provider_info=sage.get_provider_info(),
    )


@router.get(
    "/health",
    response_model=SageHealthResponse,
    responses={
        503: {"model": ErrorResponse, "description": "Provider unhealthy"},
    },
)
async def check_sage_health(sage: Sage) -> SageHealthResponse:
    """Probe the configured provider."""
    try:
        async with asyncio.timeout(settings.sage_health_timeout_seconds):
            await sage.is_healthy()
    except (AIServiceError, TimeoutError) as e:
        logger.warning(
            "Sage health check failed",
            provider=sage.provider_type.value,
            error=str(e) or type(e).__name__,
        )
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Sage service is unhealthy",
        ) from e

    info = sage.get_provider_info()
    return SageHealthResponse(
        provider=info.name,
        model=info.model,
        is_local=info.is_local,
        timestamp=datetime.now(UTC),
    )
