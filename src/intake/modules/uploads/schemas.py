"""
Uploads Schemas

Pydantic schemas for upload slot requests and responses.
"""

from datetime import datetime

from pydantic import BaseModel, Field

from intake.modules.uploads.constraints import MAX_DURATION_SEC


class UploadSlotRequest(BaseModel):
    """Request body for POST /uploads/slot."""

    content_type: str = Field(..., min_length=1, max_length=100)
    size_bytes: int = Field(..., ge=1)
    duration_sec: float | None = Field(None, ge=1, le=MAX_DURATION_SEC)


class UploadConstraints(BaseModel):
    max_size_mb: int
    max_duration_sec: int
    target_duration_sec: int
    allowed_types: list[str]


class UploadSlotResponse(BaseModel):
    mode: str
    key: str
    upload_url: str
    method: str
    headers: dict[str, str]
    public_url: str
    client_token: str | None = None
    expires_at: datetime
    constraints: UploadConstraints


class LocalUploadResponse(BaseModel):
    key: str
    url: str
