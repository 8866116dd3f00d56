"""
Main API router that assembles all API endpoints.
"""
from fastapi import APIRouter

from .v1 import router as v1_router

# Create main router
router = APIRouter()

# Include API version routers
router.include_router(v1_router)
