"""
Applications Repository

Database operations for prompts, pending applications, applicants and
submissions. Only data access lives here; expiry rules, duplicate policy
and compensation belong to the service layer.

Every write commits its own transaction except
``create_applicant_with_submission``, which performs three writes in one.
"""

from datetime import datetime
from uuid import UUID, uuid4

from sqlalchemy import delete, exists, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from .models import Applicant, PendingApplication, Prompt, Submission, SubmissionStatus


# ============================================
# Prompts
# ============================================


async def get_active_prompts(db: AsyncSession) -> list[Prompt]:
    result = await db.execute(
        select(Prompt).where(Prompt.active == True).order_by(Prompt.created_at)  # noqa: E712
    )
    return list(result.scalars().all())


# ============================================
# Pending applications
# ============================================


async def get_pending_by_token(db: AsyncSession, token: str) -> PendingApplication | None:
    result = await db.execute(select(PendingApplication).where(PendingApplication.token == token))
    return result.scalar_one_or_none()


async def get_pending_by_email(db: AsyncSession, email: str) -> PendingApplication | None:
    result = await db.execute(select(PendingApplication).where(PendingApplication.email == email))
    return result.scalar_one_or_none()


async def create_pending(
    db: AsyncSession,
    *,
    token: str,
    email: str,
    name: str,
    location: str,
    timezone: str,
    role_company: str | None,
    heard_about: str,
    prior_events: str | None,
    three_words: str,
    bio: str,
    links: list[str],
    prompt_id: UUID,
    email_verified: bool,
    expires_at: datetime,
) -> PendingApplication:
    """
    Insert a pending application.

    Raises:
        IntegrityError: If a pending application for the email already
            exists (the session is rolled back first)
    """
    pending = PendingApplication(
        token=token,
        email=email,
        name=name,
        location=location,
        timezone=timezone,
        role_company=role_company,
        heard_about=heard_about,
        prior_events=prior_events,
        three_words=three_words,
        bio=bio,
        links=links,
        prompt_id=prompt_id,
        email_verified=email_verified,
        expires_at=expires_at,
    )
    db.add(pending)
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise
    await db.refresh(pending)
    return pending


async def mark_pending_verified(db: AsyncSession, pending: PendingApplication) -> None:
    pending.email_verified = True
    await db.commit()


async def delete_pending(db: AsyncSession, pending_id: UUID) -> None:
    """Delete a pending application by id. Missing rows are ignored."""
    await db.execute(delete(PendingApplication).where(PendingApplication.id == pending_id))
    await db.commit()


async def delete_expired_pending(db: AsyncSession, now: datetime) -> int:
    """Delete every pending application that expired before ``now``."""
    result = await db.execute(delete(PendingApplication).where(PendingApplication.expires_at < now))
    await db.commit()
    return result.rowcount or 0


# ============================================
# Applicants and submissions
# ============================================


async def get_applicant_by_email(db: AsyncSession, email: str) -> Applicant | None:
    result = await db.execute(select(Applicant).where(Applicant.email == email))
    return result.scalar_one_or_none()


async def submission_exists_for_video_key(db: AsyncSession, video_key: str) -> bool:
    result = await db.execute(select(exists().where(Submission.video_key == video_key)))
    return bool(result.scalar())


async def create_applicant_with_submission(
    db: AsyncSession,
    pending: PendingApplication,
    video_key: str,
    video_url: str,
    video_duration_sec: int,
) -> UUID:
    """
    Atomically turn a pending application into Applicant + Submission.

    Creates the applicant, creates its SUBMITTED submission and deletes the
    pending row in a single commit. Nothing touches the database after the
    commit, so a returned id always belongs to a durable submission.

    Returns:
        The new submission id

    Raises:
        IntegrityError: If an applicant with the same email, or a submission
            for the same upload, was committed concurrently (the session is
            rolled back first)
    """
    applicant = Applicant(
        email=pending.email,
        name=pending.name,
        location=pending.location,
        timezone=pending.timezone,
        role_company=pending.role_company,
        heard_about=pending.heard_about,
        prior_events=pending.prior_events,
        three_words=pending.three_words,
        bio=pending.bio,
        links=list(pending.links or []),
    )
    db.add(applicant)

    try:
        await db.flush()

        submission = Submission(
            id=uuid4(),
            applicant_id=applicant.id,
            prompt_id=pending.prompt_id,
            video_key=video_key,
            video_url=video_url,
            video_duration_sec=video_duration_sec,
            status=SubmissionStatus.SUBMITTED,
        )
        db.add(submission)

        await db.execute(delete(PendingApplication).where(PendingApplication.id == pending.id))
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise

    return submission.id
