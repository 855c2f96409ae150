"""
Applications Schemas

Pydantic schemas for request validation and response serialization.
"""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, EmailStr, Field, HttpUrl, field_validator

from intake.modules.uploads.constraints import MAX_DURATION_SEC


class ApplicationStartRequest(BaseModel):
    """Request body for POST /applications/start."""

    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(..., min_length=1, max_length=100)
    email: EmailStr
    location: str = Field(..., min_length=1, max_length=100)
    timezone: str = Field(..., min_length=1, max_length=100)
    role_company: str | None = Field(None, max_length=150)
    heard_about: str = Field(..., min_length=1, max_length=200)
    prior_events: str | None = Field(None, max_length=300)
    three_words: str = Field(..., min_length=1, max_length=100)
    bio: str = Field(..., min_length=10, max_length=500)
    links: list[HttpUrl] = Field(default_factory=list, max_length=5)

    # Honeypot: real users never see this field, so it must stay empty
    website: str | None = Field(None, max_length=500)

    @field_validator("email")
    @classmethod
    def lowercase_email(cls, value: str) -> str:
        return value.lower()

    @field_validator("role_company", "prior_events")
    @classmethod
    def blank_to_none(cls, value: str | None) -> str | None:
        return value or None

    @field_validator("links", mode="before")
    @classmethod
    def null_links(cls, value):
        return value or []

    def link_strings(self) -> list[str]:
        return [str(link) for link in self.links]


class ApplicationStartResponse(BaseModel):
    token: str
    requires_verification: bool


class PromptResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    text: str


class PromptListResponse(BaseModel):
    prompts: list[PromptResponse]


class PendingApplicationView(BaseModel):
    """Response for GET /applications/{token}."""

    id: UUID
    name: str
    email: str
    expires_at: datetime
    prompt: PromptResponse
    prompts: list[PromptResponse]


class VerifyCodeRequest(BaseModel):
    token: str = Field(..., min_length=1, max_length=64)
    code: str = Field(..., pattern=r"^\d{6}$")


class ResendCodeRequest(BaseModel):
    token: str = Field(..., min_length=1, max_length=64)


class VerificationResponse(BaseModel):
    success: bool = True
    already_verified: bool = False
    message: str


class FinalizeRequest(BaseModel):
    """Request body for POST /applications/finalize."""

    token: str = Field(..., min_length=1, max_length=64)
    video_key: str = Field(..., min_length=1, max_length=500)
    video_url: str = Field(..., min_length=1, max_length=1000)
    video_duration_sec: float = Field(..., ge=1, le=MAX_DURATION_SEC)


class FinalizeResponse(BaseModel):
    success: bool = True
    submission_id: UUID
    message: str
