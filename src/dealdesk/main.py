"""FastAPI application factory.

Creates the app with logging middleware, CORS, lifespan events for
database and workflow initialization, and the v1 API router under /api/v1.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from src.dealdesk.api.middleware.logging import LoggingMiddleware, configure_structlog
from src.dealdesk.api.v1.router import router as v1_router
from src.dealdesk.config import get_settings
from src.dealdesk.core.database import close_db, get_session, init_db


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Init DB, repository, workflow and assessor on startup; close on shutdown."""
    log = structlog.get_logger(__name__)
    settings = get_settings()
    configure_structlog()
    await init_db()

    # A component that fails to start is left as None; its endpoints return 503
    try:
        from src.dealdesk.deals.repository import DealRepository
        from src.dealdesk.deals.workflow import DealWorkflow

        app.state.deal_workflow = DealWorkflow(
            repository=DealRepository(session_factory=get_session),
            bottleneck_threshold_days=settings.BOTTLENECK_THRESHOLD_DAYS,
            finance_auto_approve_threshold=settings.FINANCE_AUTO_APPROVE_THRESHOLD,
        )
        log.info("deal_workflow_initialized")
    except Exception:
        log.warning("deal_workflow_init_failed", exc_info=True)
        app.state.deal_workflow = None

    try:
        from src.dealdesk.deals.assessment import build_deal_assessor

        app.state.deal_assessor = build_deal_assessor(settings)
        log.info("deal_assessor_initialized", mode=settings.DEAL_ASSESSOR.value)
    except Exception:
        log.warning("deal_assessor_init_failed", exc_info=True)
        app.state.deal_assessor = None

    yield

    await close_db()
    log.info("shutdown_complete")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="Deal Desk API",
        version="0.1.0",
        description="Sales deal submission, approval routing and tracking",
        lifespan=lifespan,
    )

    # Middleware is added in reverse order (last added = outermost)
    if settings.CORS_ALLOWED_ORIGINS == "*":
        origins = ["*"]
    else:
        origins = [o.strip() for o in settings.CORS_ALLOWED_ORIGINS.split(",")]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(LoggingMiddleware)

    app.include_router(v1_router, prefix="/api/v1")

    return app


# Module-level app for uvicorn
app = create_app()
