"""Pydantic schemas for audience ingestion endpoints."""

from typing import Any, Literal
from uuid import UUID

from pydantic import Field, field_validator, model_validator

from audience.models.audience_member import ActionType, DeviceType
from audience.schemas.common import BaseSchema

MAX_METADATA_KEYS = 50


def _reject_unstorable(value: Any) -> Any:
    """PostgreSQL text and JSONB cannot hold NUL or unpaired UTF-16 surrogates."""
    if isinstance(value, str):
        if "\x00" in value:
            raise ValueError("text must not contain NUL characters")
        try:
            value.encode("utf-8")
        except UnicodeEncodeError as e:
            raise ValueError("text must be valid UTF-8") from e
    elif isinstance(value, dict):
        for key, item in value.items():
            _reject_unstorable(key)
            _reject_unstorable(item)
    elif isinstance(value, list):
        for item in value:
            _reject_unstorable(item)
    return value


class NetworkSignals(BaseSchema):
    """Client signals shared by all ingestion payloads.

    ``ip_address`` and ``user_agent`` fall back to the request's own
    values when omitted.
    """

    ip_address: str | None = Field(default=None, max_length=64)
    user_agent: str | None = Field(default=None, max_length=512)
    referrer: str | None = Field(default=None, max_length=2048)
    city: str | None = Field(default=None, max_length=128)
    country: str | None = Field(default=None, max_length=64)
    device_type: DeviceType | None = None

    @field_validator("*")
    @classmethod
    def validate_storable_text(cls, value: Any) -> Any:
        return _reject_unstorable(value)


class ClickRequest(NetworkSignals):
    """A click on a creator profile."""

    creator_id: UUID
    link_id: UUID | None = None
    action_type: ActionType
    action_label: str | None = Field(default=None, max_length=120)
    platform: str | None = Field(default=None, max_length=64)
    os: str | None = Field(default=None, max_length=64)
    browser: str | None = Field(default=None, max_length=64)
    metadata: dict[str, Any] = Field(default_factory=dict)
    audience_member_id: UUID | None = None

    @field_validator("metadata")
    @classmethod
    def validate_metadata(cls, metadata: dict[str, Any]) -> dict[str, Any]:
        if len(metadata) > MAX_METADATA_KEYS:
            raise ValueError(f"metadata may contain at most {MAX_METADATA_KEYS} keys")
        return metadata


class VisitRequest(NetworkSignals):
    """A profile page view."""

    creator_id: UUID
    audience_member_id: UUID | None = None


class IdentifyRequest(NetworkSignals):
    """A visitor identifying themselves through a notification sign-up."""

    creator_id: UUID
    channel: Literal["email", "sms"]
    email: str | None = Field(default=None, max_length=255)
    phone: str | None = Field(default=None, max_length=32)

    @model_validator(mode="after")
    def validate_contact(self) -> "IdentifyRequest":
        if self.channel == "email" and not (self.email and "@" in self.email):
            raise ValueError("A valid email is required for the email channel")
        if self.channel == "sms" and not (self.phone and self.phone.strip()):
            raise ValueError("A phone number is required for the sms channel")
        return self


class IngestionResponse(BaseSchema):
    """Acknowledgement returned by all ingestion endpoints."""

    success: bool = True
    fingerprint: str
    audience_member_id: UUID | None = None


class IngestionErrorResponse(BaseSchema):
    """Failure body for ingestion endpoints."""

    error: str
    code: str
    retryable: bool = False
