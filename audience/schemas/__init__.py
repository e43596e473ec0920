"""Pydantic schemas for request/response validation."""

from audience.schemas.audience import (
    ClickRequest,
    IdentifyRequest,
    IngestionErrorResponse,
    IngestionResponse,
    VisitRequest,
)
from audience.schemas.common import HealthResponse, ProbeResponse

__all__ = [
    "HealthResponse",
    "ProbeResponse",
    "ClickRequest",
    "VisitRequest",
    "IdentifyRequest",
    "IngestionResponse",
    "IngestionErrorResponse",
]
