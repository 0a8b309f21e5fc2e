"""Health check endpoints.

Liveness (/health) never touches dependencies; readiness (/health/ready)
checks the database and reports whether an LLM provider is configured.
"""

from __future__ import annotations

from fastapi import APIRouter, Request, status
from fastapi.responses import JSONResponse
from sqlalchemy import text

from src.dealdesk.config import get_settings
from src.dealdesk.core.database import get_engine

router = APIRouter(tags=["health"])


@router.get("/health")
async def health_check():
    """Basic liveness check."""
    settings = get_settings()
    return {"status": "ok", "environment": settings.ENVIRONMENT.value}


async def _check_dependencies(request: Request) -> dict:
    """Check database connectivity, workflow wiring and LLM keys."""
    checks: dict = {"database": "ok", "deal_workflow": "ok", "litellm": "ok"}

    try:
        engine = get_engine()
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
    except Exception as e:
        checks["database"] = "error"
        checks["database_error"] = str(e)

    if getattr(request.app.state, "deal_workflow", None) is None:
        checks["deal_workflow"] = "error"

    settings = get_settings()
    if not (settings.ANTHROPIC_API_KEY or settings.OPENAI_API_KEY):
        checks["litellm"] = "no_keys"

    return checks


@router.get("/health/ready")
async def readiness_check(request: Request):
    """Readiness check. 200 if the database and workflow are up, else 503."""
    checks = await _check_dependencies(request)
    all_healthy = checks["database"] == "ok" and checks["deal_workflow"] == "ok"

    return JSONResponse(
        status_code=status.HTTP_200_OK if all_healthy else status.HTTP_503_SERVICE_UNAVAILABLE,
        content={
            "status": "ready" if all_healthy else "degraded",
            "checks": checks,
        },
    )
