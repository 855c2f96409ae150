"""
Reviews Repository

Database operations for reviewers, reviews and submission triage.
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from intake.modules.applications.models import Submission, SubmissionStatus

from .models import Review, Reviewer, ReviewerRole

# ============================================
# Reviewers
# ============================================


async def get_reviewer_by_email(db: AsyncSession, email: str) -> Reviewer | None:
    result = await db.execute(select(Reviewer).where(Reviewer.email == email.lower()))
    return result.scalar_one_or_none()


async def create_reviewer(
    db: AsyncSession,
    email: str,
    name: str,
    password_hash: str,
    role: ReviewerRole = ReviewerRole.REVIEWER,
) -> Reviewer:
    reviewer = Reviewer(email=email.lower(), name=name, password_hash=password_hash, role=role)
    db.add(reviewer)
    await db.commit()
    await db.refresh(reviewer)
    return reviewer


# ============================================
# Submissions
# ============================================


def _submission_query():
    return select(Submission).options(
        selectinload(Submission.applicant),
        selectinload(Submission.prompt),
        selectinload(Submission.reviews),
    )


async def get_submission(db: AsyncSession, submission_id: UUID) -> Submission | None:
    """Load a submission with applicant, prompt and reviews."""
    result = await db.execute(_submission_query().where(Submission.id == submission_id))
    return result.scalar_one_or_none()


async def submission_exists(db: AsyncSession, submission_id: UUID) -> bool:
    result = await db.execute(select(Submission.id).where(Submission.id == submission_id))
    return result.scalar_one_or_none() is not None


async def list_submissions(
    db: AsyncSession,
    status: SubmissionStatus | None = None,
    created_from: datetime | None = None,
    created_before: datetime | None = None,
) -> list[Submission]:
    """
    Submissions matching the SQL-expressible filters, newest first.

    Score and review-count filters depend on computed scoring and are
    applied by the service.
    """
    query = _submission_query().order_by(Submission.created_at.desc())

    if status is not None:
        query = query.where(Submission.status == status)
    if created_from is not None:
        query = query.where(Submission.created_at >= created_from)
    if created_before is not None:
        query = query.where(Submission.created_at < created_before)

    result = await db.execute(query)
    return list(result.scalars().all())


async def update_submission_status(
    db: AsyncSession, submission: Submission, status: SubmissionStatus
) -> Submission:
    submission.status = status
    await db.commit()
    await db.refresh(submission)
    return submission


async def count_by_status(db: AsyncSession) -> dict[SubmissionStatus, int]:
    result = await db.execute(
        select(Submission.status, func.count(Submission.id)).group_by(Submission.status)
    )
    return {status: count for status, count in result.all()}


async def count_with_status(db: AsyncSession, status: SubmissionStatus) -> int:
    result = await db.execute(
        select(func.count(Submission.id)).where(Submission.status == status)
    )
    return result.scalar() or 0


async def count_needs_review(db: AsyncSession) -> int:
    """SUBMITTED submissions with no reviews yet."""
    result = await db.execute(
        select(func.count(Submission.id)).where(
            Submission.status == SubmissionStatus.SUBMITTED,
            ~Submission.reviews.any(),
        )
    )
    return result.scalar() or 0


# ============================================
# Reviews
# ============================================


async def get_review(db: AsyncSession, submission_id: UUID, reviewer_id: UUID) -> Review | None:
    result = await db.execute(
        select(Review).where(
            Review.submission_id == submission_id,
            Review.reviewer_id == reviewer_id,
        )
    )
    return result.scalar_one_or_none()


def _apply_scores(review: Review, scores: dict) -> None:
    review.curiosity_vs_ego = scores["curiosity_vs_ego"]
    review.participation_vs_spectatorship = scores["participation_vs_spectatorship"]
    review.emotional_intelligence = scores["emotional_intelligence"]
    review.notes = scores.get("notes")


async def upsert_review(
    db: AsyncSession,
    submission_id: UUID,
    reviewer_id: UUID,
    scores: dict,
) -> Review:
    """
    Create the reviewer's review of a submission, or replace its scores.

    ``scores`` holds the three rubric values and optional ``notes``.
    """
    review = await get_review(db, submission_id, reviewer_id)

    if review is None:
        review = Review(submission_id=submission_id, reviewer_id=reviewer_id)
        _apply_scores(review, scores)
        db.add(review)
        try:
            await db.commit()
        except IntegrityError:
            # The same reviewer's concurrent request inserted first
            await db.rollback()
            review = await get_review(db, submission_id, reviewer_id)
            if review is None:
                raise
            _apply_scores(review, scores)
            await db.commit()
    else:
        _apply_scores(review, scores)
        await db.commit()

    await db.refresh(review)
    return review


async def count_reviews(db: AsyncSession) -> int:
    result = await db.execute(select(func.count(Review.id)))
    return result.scalar() or 0


async def mean_review_average(db: AsyncSession) -> float | None:
    """Mean over all reviews of each review's three-score average."""
    per_review = (
        Review.curiosity_vs_ego
        + Review.participation_vs_spectatorship
        + Review.emotional_intelligence
    ) / 3.0
    result = await db.execute(select(func.avg(per_review)))
    value = result.scalar()
    return float(value) if value is not None else None
