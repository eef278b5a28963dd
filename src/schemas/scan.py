"""Scanned URL schemas: device submissions and change events."""

from datetime import datetime
from typing import Literal
from urllib.parse import urlsplit

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator


class ScanSubmit(BaseModel):
    """A URL read from a receipt QR code, optionally with the rendered page."""

    url: str = Field(..., min_length=1, max_length=2048)
    html_snapshot: str | None = Field(
        None, validation_alias=AliasChoices("html_snapshot", "htmlSnapshot")
    )

    @field_validator("url")
    @classmethod
    def validate_url(cls, value: str) -> str:
        value = value.strip()
        parts = urlsplit(value)
        if parts.scheme not in ("http", "https") or not parts.hostname:
            raise ValueError("url must be an absolute http(s) URL")
        return value


class JobStatusResponse(BaseModel):
    """Processing state of a scanned URL."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    status: str
    attempts: int
    awaiting_snapshot: bool = False
    error_message: str | None = None
    last_attempted_at: datetime | None = None
    updated_at: datetime | None = None


class ScanResponse(BaseModel):
    """A scanned URL with its processing state."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    url: str
    user_id: int
    created_at: datetime
    has_html_snapshot: bool = False
    job: JobStatusResponse | None = None
    receipt_id: int | None = None


class ScanSubmitResponse(BaseModel):
    """Response when submitting a scan."""

    scan: ScanResponse
    created: bool
    message: str


class ScanEventRecord(BaseModel):
    """The inserted scanned_urls row carried by a change event."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: int
    url: str = Field(..., min_length=1)
    user_id: int = Field(..., validation_alias=AliasChoices("user_id", "userId"))
    created_at: datetime | None = Field(
        None, validation_alias=AliasChoices("created_at", "createdAt")
    )
    html_snapshot: str | None = Field(
        None, validation_alias=AliasChoices("html_snapshot", "htmlSnapshot")
    )


class ScanEvent(BaseModel):
    """Row-insert notification for the scanned_urls table."""

    model_config = ConfigDict(extra="ignore")

    type: Literal["INSERT"]
    table: str | None = None
    record: ScanEventRecord
