"""API v1 router combining all route modules."""

from fastapi import APIRouter

from audience.api.v1 import audience, health

api_router = APIRouter()

# Include health check routes (no prefix)
api_router.include_router(health.router)

# Audience ingestion (public, rate limited per client IP)
api_router.include_router(
    audience.router,
    prefix="/audience",
    tags=["audience"],
)
