"""Liveness and readiness probes for the ingestion service."""

import logging

from fastapi import APIRouter, Response, status
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from audience.core.config import settings
from audience.core.deps import DBSession
from audience.schemas.common import HealthResponse, ProbeResponse

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


async def _check_store(db: AsyncSession) -> str:
    try:
        await db.execute(text("SELECT 1"))
    except SQLAlchemyError as exc:
        logger.warning("Audience store health check failed: %s", exc)
        return "unhealthy"
    return "healthy"


@router.get("/health", response_model=HealthResponse)
async def health_check(db: DBSession) -> HealthResponse:
    """
    Service status with per-dependency checks.

    Always answers 200 so dashboards can read the body. Orchestrators
    should use /health/ready instead.
    """
    checks = {"database": await _check_store(db)}
    overall = "healthy" if all(v == "healthy" for v in checks.values()) else "unhealthy"
    return HealthResponse(
        status=overall,
        version=settings.version,
        environment=settings.environment,
        checks=checks,
    )


@router.get("/health/live", response_model=ProbeResponse)
async def liveness_check() -> ProbeResponse:
    """Process is up. Never touches the database."""
    return ProbeResponse(status="alive")


@router.get(
    "/health/ready",
    response_model=ProbeResponse,
    responses={status.HTTP_503_SERVICE_UNAVAILABLE: {"model": ProbeResponse}},
)
async def readiness_check(
    response: Response,
    db: DBSession,
) -> ProbeResponse:
    """Ready to accept clicks only while the audience store answers."""
    if await _check_store(db) != "healthy":
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        return ProbeResponse(status="unavailable")
    return ProbeResponse(status="ready")
