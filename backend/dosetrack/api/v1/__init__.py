"""Versioned API router."""

from fastapi import APIRouter

from . import health, medications, schedule

router = APIRouter()
router.include_router(health.router, prefix="/health", tags=["health"])
router.include_router(medications.router, prefix="/medications", tags=["medications"])
router.include_router(schedule.router, prefix="/schedule", tags=["schedule"])

__all__ = ["router"]
