# src/tagdrop/schemas/drop.py
"""Drop message-related Pydantic schemas."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_serializer


class DropTokenResponse(BaseModel):
    """Freshly issued public drop token."""

    token: str = Field(..., description="URL-safe base64 token without padding")


class DropMessageCreate(BaseModel):
    """Body of a drop write.

    A missing or non-string ``content`` reads as empty and is rejected by the
    length check, not by schema validation.
    """

    content: Any = Field(None, description="Notice text, 1-300 characters after trimming")

    def text(self) -> str:
        """Return the content if it is a string, otherwise an empty string."""
        return self.content if isinstance(self.content, str) else ""


class DropMessageResponse(BaseModel):
    """Single active message as returned to readers."""

    id: str
    content: str
    created_at: datetime = Field(serialization_alias="createdAt")
    expires_at: datetime = Field(serialization_alias="expiresAt")

    model_config = ConfigDict(from_attributes=True)

    @field_serializer("created_at", "expires_at")
    def serialize_timestamp(self, value: datetime) -> str:
        """Render timestamps as ISO-8601 UTC with a ``Z`` suffix."""
        return _iso_utc(value)


class DropFetchResponse(BaseModel):
    """Envelope shared by every JSON read, including rejected ones."""

    ok: bool = True
    messages: list[DropMessageResponse] = Field(default_factory=list)
    ttl_days: int = Field(serialization_alias="ttlDays")
    server_time: datetime = Field(serialization_alias="serverTime")

    @field_serializer("server_time")
    def serialize_server_time(self, value: datetime) -> str:
        """Render the server clock as ISO-8601 UTC with a ``Z`` suffix."""
        return _iso_utc(value)


class DropWriteResponse(BaseModel):
    """Envelope returned by writes that passed content validation."""

    ok: bool = True
    accepted: bool


class DropErrorResponse(BaseModel):
    """Envelope returned for caller-correctable input errors."""

    ok: bool = False
    error: str


def _iso_utc(value: datetime) -> str:
    return value.isoformat(timespec="milliseconds").replace("+00:00", "Z")
