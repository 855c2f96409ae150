"""
Reviews Router

Reviewer dashboard endpoints. All require a reviewer Bearer token; status
changes additionally require the admin role.

Endpoints:
- POST  /admin/reviews            - Submit or replace a review
- GET   /admin/submissions        - Triage list (filters, sort, pagination)
- GET   /admin/submissions/{id}   - Submission detail with reviews
- PATCH /admin/submissions/{id}   - Change status (admin)
- GET   /admin/stats              - Dashboard statistics
"""

import logging
from datetime import date
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from intake.core.auth import ReviewerPrincipal, get_current_reviewer, require_admin
from intake.core.database import get_db
from intake.core.errors import ApplicationServiceError, to_http_exception
from intake.modules.applications.models import SubmissionStatus
from intake.modules.reviews import service
from intake.modules.reviews.schemas import (
    DashboardStatsResponse,
    ReviewResponse,
    ReviewSubmitRequest,
    StatusUpdateRequest,
    SubmissionDetailResponse,
    SubmissionFilters,
    SubmissionListResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter()


def get_submission_filters(
    status_filter: str | None = Query(None, alias="status"),
    date_from: date | None = Query(None),
    date_to: date | None = Query(None),
    has_review: bool | None = Query(None),
    min_score: float | None = Query(None),
    max_score: float | None = Query(None),
) -> SubmissionFilters:
    """Build triage filters from query parameters. ``status=all`` means no filter."""
    try:
        return SubmissionFilters(
            status=None if status_filter in (None, "", "all") else SubmissionStatus(status_filter),
            date_from=date_from,
            date_to=date_to,
            has_review=has_review,
            min_score=min_score,
            max_score=max_score,
        )
    except (ValueError, ValidationError) as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"error": "INVALID_FILTER", "message": str(e)},
        ) from e


@router.post("/reviews", response_model=ReviewResponse, summary="Submit Review")
async def submit_review(
    data: ReviewSubmitRequest,
    reviewer: ReviewerPrincipal = Depends(get_current_reviewer),
    db: AsyncSession = Depends(get_db),
) -> ReviewResponse:
    try:
        return await service.submit_review(db, reviewer.id, data)
    except ApplicationServiceError as e:
        raise to_http_exception(e) from e


@router.get("/submissions", response_model=SubmissionListResponse, summary="List Submissions")
async def list_submissions(
    filters: SubmissionFilters = Depends(get_submission_filters),
    sort_by: str = Query("newest"),
    sort_order: str | None = Query(None, pattern="^(asc|desc)$"),
    page: int = Query(1, ge=1),
    limit: int = Query(service.DEFAULT_PAGE_SIZE, ge=1, le=service.MAX_PAGE_SIZE),
    _reviewer: ReviewerPrincipal = Depends(get_current_reviewer),
    db: AsyncSession = Depends(get_db),
) -> SubmissionListResponse:
    return await service.list_submissions_for_triage(
        db, filters, sort_by=sort_by, sort_order=sort_order, page=page, limit=limit
    )


@router.get(
    "/submissions/{submission_id}",
    response_model=SubmissionDetailResponse,
    summary="Get Submission",
)
async def get_submission(
    submission_id: UUID,
    _reviewer: ReviewerPrincipal = Depends(get_current_reviewer),
    db: AsyncSession = Depends(get_db),
) -> SubmissionDetailResponse:
    try:
        return await service.get_submission_detail(db, submission_id)
    except ApplicationServiceError as e:
        raise to_http_exception(e) from e


@router.patch(
    "/submissions/{submission_id}",
    response_model=SubmissionDetailResponse,
    summary="Update Submission Status",
    responses={
        403: {"description": "Admin access required"},
        404: {"description": "Submission not found"},
        409: {"description": "Acceptance cap reached"},
    },
)
async def update_submission_status(
    submission_id: UUID,
    data: StatusUpdateRequest,
    admin: ReviewerPrincipal = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> SubmissionDetailResponse:
    try:
        return await service.update_submission_status(db, submission_id, data.status, admin.id)
    except ApplicationServiceError as e:
        raise to_http_exception(e) from e


@router.get("/stats", response_model=DashboardStatsResponse, summary="Dashboard Statistics")
async def get_stats(
    _reviewer: ReviewerPrincipal = Depends(get_current_reviewer),
    db: AsyncSession = Depends(get_db),
) -> DashboardStatsResponse:
    return await service.get_dashboard_stats(db)
