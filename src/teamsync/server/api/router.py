"""Main API router that includes all sub-routers."""

from __future__ import annotations

from fastapi import APIRouter

from teamsync.server.api import auth, data, health

router = APIRouter()

# Include all API routers
router.include_router(health.router)
router.include_router(auth.router)
router.include_router(data.router)
