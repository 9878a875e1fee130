"""Health check endpoints for container orchestration."""

from typing import Any

from fastapi import APIRouter, Request

router = APIRouter(tags=["Health"])


@router.get("/health")
async def health_check(request: Request) -> dict[str, Any]:
    """
    Service health with Sage wiring status.

    Returns:
        {"status": "healthy", "sage": "configured", "provider": "<type>"} when
        a Sage provider was constructed at startup,
        {"status": "degraded", "sage": "unavailable", "provider": None} otherwise.

    Does not call the provider; use /api/sage/health for that.
    """
    sage = getattr(request.app.state, "sage", None)
    if sage is None:
        return {"status": "degraded", "sage": "unavailable", "provider": None}
    return {
        "status": "healthy",
        "sage": "configured",
        "provider": sage.provider_type.value,
    }


@router.get("/health/live")
async def liveness_probe() -> dict[str, Any]:
    """
    Kubernetes liveness probe.

    Returns success if the application process is running.
    This should NOT check external dependencies like AI providers.
    """
    return {"status": "alive"}
