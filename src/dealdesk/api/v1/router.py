"""V1 API router -- aggregates all v1 endpoint routers."""

from __future__ import annotations

from fastapi import APIRouter

from src.dealdesk.api.v1 import approvals, auth, deals, health, scoping, users

router = APIRouter()

router.include_router(health.router)
router.include_router(auth.router)
router.include_router(users.router)
router.include_router(deals.router)
router.include_router(deals.statuses_router)
router.include_router(scoping.router)
router.include_router(approvals.router)
