"""
Reviews Service Layer

Reviewer workflow on top of the scoring engine:
- Submit (or replace) a review of a submission
- Triage list with filters, sorting and pagination
- Submission detail with all reviews and computed scoring
- Status decisions (admin only), capped at ACCEPTANCE_CAP accepted
- Dashboard statistics
"""

import logging
import math
from datetime import UTC, datetime, time, timedelta
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from intake.core.errors import ApplicationServiceError
from intake.modules.applications.models import Submission, SubmissionStatus
from intake.modules.reviews import repository
from intake.modules.reviews.models import Review
from intake.modules.reviews.schemas import (
    ApplicantDetail,
    ApplicantSummary,
    DashboardStatsResponse,
    PaginationInfo,
    ReviewResponse,
    ReviewSubmitRequest,
    ScoringResponse,
    SubmissionDetailResponse,
    SubmissionFilters,
    SubmissionListItem,
    SubmissionListResponse,
)
from intake.modules.reviews.scoring import (
    ScoringResult,
    SortOption,
    score_submission,
    sort_submissions,
)

logger = logging.getLogger(__name__)

ACCEPTANCE_CAP = 150
DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100


class SubmissionNotFoundError(ApplicationServiceError):
    def __init__(self, submission_id: UUID):
        super().__init__(
            message=f"Submission {submission_id} not found",
            error_code="SUBMISSION_NOT_FOUND",
            status_code=404,
        )


class AcceptanceCapReachedError(ApplicationServiceError):
    def __init__(self, cap: int):
        super().__init__(
            message=f"The acceptance cap of {cap} has been reached.",
            error_code="ACCEPTANCE_CAP_REACHED",
            status_code=409,
        )


class _Scored:
    """Submission paired with its computed scoring, for sorting."""

    __slots__ = ("submission", "scoring", "created_at")

    def __init__(self, submission: Submission):
        self.submission = submission
        self.scoring: ScoringResult = score_submission(submission.reviews)
        self.created_at: datetime = submission.created_at


def resolve_sort(sort_by: str | None, sort_order: str | None = None) -> SortOption:
    """
    Map dashboard sort parameters onto a SortOption.

    Accepts the SortOption names directly, or a field name
    (``created_at`` / ``average_score``) combined with ``sort_order``.
    Unknown values fall back to newest first.
    """
    ascending = (sort_order or "").lower() == "asc"

    if sort_by in ("created_at", SortOption.NEWEST.value):
        return SortOption.OLDEST if ascending else SortOption.NEWEST
    if sort_by in ("average_score", SortOption.HIGHEST_SCORE.value):
        return SortOption.LOWEST_SCORE if ascending else SortOption.HIGHEST_SCORE
    if sort_by == SortOption.OLDEST.value:
        return SortOption.OLDEST
    if sort_by == SortOption.LOWEST_SCORE.value:
        return SortOption.LOWEST_SCORE
    if sort_by == SortOption.NEEDS_REVIEW.value:
        return SortOption.NEEDS_REVIEW
    return SortOption.NEWEST


def _scoring_response(scoring: ScoringResult) -> ScoringResponse:
    return ScoringResponse.model_validate(scoring)


def _review_response(review: Review) -> ReviewResponse:
    response = ReviewResponse.model_validate(review)
    reviewer = review.__dict__.get("reviewer")
    if reviewer is not None:
        response.reviewer_name = reviewer.name
    return response


def _day_start(value) -> datetime:
    return datetime.combine(value, time.min, tzinfo=UTC)


def _matches_score_filters(scored: _Scored, filters: SubmissionFilters) -> bool:
    if filters.has_review is True and scored.scoring.review_count == 0:
        return False
    if filters.has_review is False and scored.scoring.review_count > 0:
        return False

    if filters.min_score is None and filters.max_score is None:
        return True

    average = scored.scoring.average_score
    if average is None:
        return False
    if filters.min_score is not None and average < filters.min_score:
        return False
    if filters.max_score is not None and average > filters.max_score:
        return False
    return True


async def submit_review(
    db: AsyncSession,
    reviewer_id: UUID,
    data: ReviewSubmitRequest,
) -> ReviewResponse:
    """
    Store the reviewer's scores for a submission, replacing earlier ones.

    Raises:
        SubmissionNotFoundError: If the submission doesn't exist
    """
    if not await repository.submission_exists(db, data.submission_id):
        raise SubmissionNotFoundError(data.submission_id)

    review = await repository.upsert_review(
        db,
        submission_id=data.submission_id,
        reviewer_id=reviewer_id,
        scores=data.model_dump(exclude={"submission_id"}),
    )
    logger.info(f"Reviewer {reviewer_id} reviewed submission {data.submission_id}")

    return _review_response(review)


async def list_submissions_for_triage(
    db: AsyncSession,
    filters: SubmissionFilters,
    sort_by: str | None = None,
    sort_order: str | None = None,
    page: int = 1,
    limit: int = DEFAULT_PAGE_SIZE,
) -> SubmissionListResponse:
    """
    Filtered, sorted and paginated submissions with computed scoring.

    ``date_to`` includes the whole day. Score filters exclude submissions
    without reviews.
    """
    page = max(1, page)
    limit = min(max(1, limit), MAX_PAGE_SIZE)

    submissions = await repository.list_submissions(
        db,
        status=filters.status,
        created_from=_day_start(filters.date_from) if filters.date_from else None,
        created_before=(
            _day_start(filters.date_to) + timedelta(days=1) if filters.date_to else None
        ),
    )

    scored = [_Scored(s) for s in submissions]
    scored = [s for s in scored if _matches_score_filters(s, filters)]
    ordered = sort_submissions(scored, resolve_sort(sort_by, sort_order))

    total = len(ordered)
    start = (page - 1) * limit
    page_items = ordered[start : start + limit]

    return SubmissionListResponse(
        items=[
            SubmissionListItem(
                id=s.submission.id,
                status=s.submission.status,
                created_at=s.submission.created_at,
                video_url=s.submission.video_url,
                video_duration_sec=s.submission.video_duration_sec,
                prompt_text=s.submission.prompt.text,
                applicant=ApplicantSummary.model_validate(s.submission.applicant),
                scoring=_scoring_response(s.scoring),
            )
            for s in page_items
        ],
        pagination=PaginationInfo(
            page=page,
            limit=limit,
            total=total,
            total_pages=math.ceil(total / limit) if total else 0,
        ),
    )


def _detail_response(submission: Submission) -> SubmissionDetailResponse:
    return SubmissionDetailResponse(
        id=submission.id,
        status=submission.status,
        created_at=submission.created_at,
        updated_at=submission.updated_at,
        video_url=submission.video_url,
        video_duration_sec=submission.video_duration_sec,
        prompt_text=submission.prompt.text,
        applicant=ApplicantDetail.model_validate(submission.applicant),
        reviews=[_review_response(r) for r in submission.reviews],
        scoring=_scoring_response(score_submission(submission.reviews)),
    )


async def get_submission_detail(db: AsyncSession, submission_id: UUID) -> SubmissionDetailResponse:
    """
    Raises:
        SubmissionNotFoundError: If the submission doesn't exist
    """
    submission = await repository.get_submission(db, submission_id)
    if submission is None:
        raise SubmissionNotFoundError(submission_id)
    return _detail_response(submission)


async def update_submission_status(
    db: AsyncSession,
    submission_id: UUID,
    status: SubmissionStatus,
    admin_id: UUID,
) -> SubmissionDetailResponse:
    """
    Record a decision on a submission.

    Raises:
        SubmissionNotFoundError: If the submission doesn't exist
        AcceptanceCapReachedError: If accepting would exceed ACCEPTANCE_CAP
    """
    submission = await repository.get_submission(db, submission_id)
    if submission is None:
        raise SubmissionNotFoundError(submission_id)

    if status == SubmissionStatus.ACCEPTED and submission.status != SubmissionStatus.ACCEPTED:
        accepted = await repository.count_with_status(db, SubmissionStatus.ACCEPTED)
        if accepted >= ACCEPTANCE_CAP:
            logger.warning(
                f"Acceptance of {submission_id} refused: cap of {ACCEPTANCE_CAP} reached"
            )
            raise AcceptanceCapReachedError(ACCEPTANCE_CAP)

    previous = submission.status
    await repository.update_submission_status(db, submission, status)
    logger.info(
        f"Submission {submission_id} status {previous.value} -> {status.value} by admin {admin_id}"
    )

    submission = await repository.get_submission(db, submission_id)
    return _detail_response(submission)


async def get_dashboard_stats(db: AsyncSession) -> DashboardStatsResponse:
    counts = await repository.count_by_status(db)
    by_status = {status.value: counts.get(status, 0) for status in SubmissionStatus}
    accepted = by_status[SubmissionStatus.ACCEPTED.value]

    average = await repository.mean_review_average(db)

    return DashboardStatsResponse(
        total=sum(by_status.values()),
        by_status=by_status,
        needs_review=await repository.count_needs_review(db),
        total_reviews=await repository.count_reviews(db),
        average_score=round(average, 2) if average is not None else None,
        accepted_cap=ACCEPTANCE_CAP,
        spots_remaining=max(0, ACCEPTANCE_CAP - accepted),
    )
