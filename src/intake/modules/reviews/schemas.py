"""
Reviews Schemas

Pydantic schemas for the reviewer dashboard.
"""

from datetime import date, datetime
from typing import Annotated
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, model_validator

from intake.modules.applications.models import SubmissionStatus
from intake.modules.reviews.scoring import ConfidenceLevel

RubricScore = Annotated[int, Field(ge=1, le=5)]


class ReviewSubmitRequest(BaseModel):
    """Request body for POST /admin/reviews. Resubmitting replaces the scores."""

    submission_id: UUID
    curiosity_vs_ego: RubricScore
    participation_vs_spectatorship: RubricScore
    emotional_intelligence: RubricScore
    notes: str | None = Field(None, max_length=2000)


class ReviewResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    submission_id: UUID
    reviewer_id: UUID
    reviewer_name: str | None = None
    curiosity_vs_ego: int
    participation_vs_spectatorship: int
    emotional_intelligence: int
    notes: str | None
    created_at: datetime
    updated_at: datetime


class ScoreBreakdownResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    curiosity_vs_ego: float | None
    participation_vs_spectatorship: float | None
    emotional_intelligence: float | None


class ScoringResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    average_score: float | None
    review_count: int
    confidence: ConfidenceLevel
    breakdown: ScoreBreakdownResponse


class ApplicantSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    name: str
    email: str
    location: str


class ApplicantDetail(ApplicantSummary):
    timezone: str
    role_company: str | None
    heard_about: str
    prior_events: str | None
    three_words: str
    bio: str
    links: list[str]


class SubmissionListItem(BaseModel):
    id: UUID
    status: SubmissionStatus
    created_at: datetime
    video_url: str
    video_duration_sec: int
    prompt_text: str
    applicant: ApplicantSummary
    scoring: ScoringResponse


class PaginationInfo(BaseModel):
    page: int
    limit: int
    total: int
    total_pages: int


class SubmissionListResponse(BaseModel):
    items: list[SubmissionListItem]
    pagination: PaginationInfo


class SubmissionDetailResponse(BaseModel):
    id: UUID
    status: SubmissionStatus
    created_at: datetime
    updated_at: datetime
    video_url: str
    video_duration_sec: int
    prompt_text: str
    applicant: ApplicantDetail
    reviews: list[ReviewResponse]
    scoring: ScoringResponse


class StatusUpdateRequest(BaseModel):
    status: SubmissionStatus


class SubmissionFilters(BaseModel):
    """Query filters for the triage list."""

    status: SubmissionStatus | None = None
    date_from: date | None = None
    date_to: date | None = None
    has_review: bool | None = None
    min_score: float | None = Field(None, ge=1, le=5)
    max_score: float | None = Field(None, ge=1, le=5)

    @model_validator(mode="after")
    def check_ranges(self) -> "SubmissionFilters":
        if self.date_from and self.date_to and self.date_from > self.date_to:
            raise ValueError("date_from must not be after date_to")
        if (
            self.min_score is not None
            and self.max_score is not None
            and self.min_score > self.max_score
        ):
            raise ValueError("min_score must not be greater than max_score")
        return self


class DashboardStatsResponse(BaseModel):
    total: int
    by_status: dict[str, int]
    needs_review: int
    total_reviews: int
    average_score: float | None
    accepted_cap: int
    spots_remaining: int
