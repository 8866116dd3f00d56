"""
API Version 1 Router
"""
from fastapi import APIRouter

from . import admin, health, rewards

router = APIRouter(prefix="/v1", tags=["v1"])

# Include all routers
router.include_router(rewards.router, tags=["rewards"], prefix="/rewards")
router.include_router(health.router, tags=["health"])
router.include_router(admin.router, tags=["admin"], prefix="/admin")
