"""Shared Pydantic base and probe schemas."""

from pydantic import BaseModel, ConfigDict


class BaseSchema(BaseModel):
    """Base for request/response models; also validates ORM rows."""

    model_config = ConfigDict(
        from_attributes=True,
        populate_by_name=True,
    )


class ProbeResponse(BaseSchema):
    status: str


class HealthResponse(ProbeResponse):
    """Aggregate status plus one entry per checked dependency."""

    version: str
    environment: str
    checks: dict[str, str]
