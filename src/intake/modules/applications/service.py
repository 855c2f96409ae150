"""
Applications Service Layer

Business logic for the intake pipeline:

1. Start:
   - Reject emails that already belong to an applicant
   - Resume a live pending application for the same email (same token)
   - Otherwise assign a random active prompt, mint a token (24h expiry)
     and, when verification is enabled, email a 6-digit code

2. Verification:
   - Check and resend codes bound to the pending application's email

3. Finalize:
   - Turn pending application + confirmed upload into Applicant + Submission
     in one transaction, releasing the upload on every failure path except
     those where the client is expected to retry with it

Security considerations:
- Tokens use cryptographically secure random generation (secrets.token_urlsafe)
- Honeypot submissions get a fake success and store nothing
- Emails are compared lower-cased
- Tokens and codes are never logged
"""

import asyncio
import logging
import random
import secrets
from datetime import timedelta
from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from intake.core.email import send_submission_received, send_verification_code
from intake.core.errors import ApplicationServiceError
from intake.core.kv_store import Clock, utc_now
from intake.modules.applications import repository
from intake.modules.applications.models import PendingApplication, Prompt
from intake.modules.applications.schemas import (
    ApplicationStartRequest,
    ApplicationStartResponse,
    FinalizeRequest,
    FinalizeResponse,
    PendingApplicationView,
    PromptResponse,
    VerificationResponse,
)
from intake.modules.applications.verification import VerificationCodeService
from intake.modules.uploads.backends import UploadBackend
from intake.modules.uploads.compensation import upload_compensation
from intake.modules.uploads.constraints import InvalidUploadError, is_valid_upload_key

logger = logging.getLogger(__name__)

# Constants
PENDING_TTL = timedelta(hours=24)
TOKEN_LENGTH = 32  # 256 bits of entropy when using token_urlsafe
HONEYPOT_TOKEN = "fake-token"
PROMPT_SAMPLE_SIZE = 2

# Fire-and-forget notification tasks, kept referenced until they finish
_background_tasks: set[asyncio.Task] = set()


class DuplicateApplicantError(ApplicationServiceError):
    """Raised when an applicant with the email already exists."""

    def __init__(self, release_upload: bool = True):
        self.release_upload = release_upload
        super().__init__(
            message="An application with this email already exists.",
            error_code="DUPLICATE_APPLICANT",
            status_code=409,
        )


class PendingApplicationNotFoundError(ApplicationServiceError):
    """Raised when no pending application matches the token."""

    release_upload = False

    def __init__(self):
        super().__init__(
            message="Application not found.",
            error_code="APPLICATION_NOT_FOUND",
            status_code=404,
        )


class PendingApplicationExpiredError(ApplicationServiceError):
    """Raised when the pending application has expired (it is deleted first)."""

    def __init__(self):
        super().__init__(
            message="Application expired. Please start over.",
            error_code="APPLICATION_EXPIRED",
            status_code=410,
        )


class NotVerifiedError(ApplicationServiceError):
    """Raised when email verification is required but not yet done."""

    release_upload = False

    def __init__(self, email: str):
        self.email = email
        super().__init__(
            message="Please verify your email first.",
            error_code="EMAIL_NOT_VERIFIED",
            status_code=403,
        )

    def extra_detail(self) -> dict:
        return {"requires_verification": True, "email": self.email}


class NoPromptsAvailableError(ApplicationServiceError):
    """Raised when there are no active prompts to assign."""

    def __init__(self):
        super().__init__(
            message="No prompts available. Please try again later.",
            error_code="NO_PROMPTS_AVAILABLE",
            status_code=503,
        )


class VerificationDisabledError(ApplicationServiceError):
    def __init__(self):
        super().__init__(
            message="Email verification is not enabled.",
            error_code="VERIFICATION_DISABLED",
            status_code=400,
        )


class InvalidCodeError(ApplicationServiceError):
    def __init__(self):
        super().__init__(
            message="Invalid or expired code.",
            error_code="INVALID_CODE",
            status_code=400,
        )


class UploadMissingError(ApplicationServiceError):
    """Raised when the referenced upload is not in storage."""

    release_upload = False

    def __init__(self):
        super().__init__(
            message="Upload not found. Please try uploading again.",
            error_code="UPLOAD_NOT_FOUND",
            status_code=404,
        )


class FinalizeFailedError(ApplicationServiceError):
    """Generic finalize failure; the cause is logged, not returned."""

    def __init__(self):
        super().__init__(
            message="Failed to complete application.",
            error_code="FINALIZE_FAILED",
            status_code=500,
        )


def _generate_token() -> str:
    return secrets.token_urlsafe(TOKEN_LENGTH)


def _is_expired(pending: PendingApplication, clock: Clock) -> bool:
    return pending.expires_at < clock()


def _requires_verification(pending: PendingApplication, codes: VerificationCodeService) -> bool:
    return codes.enabled and not pending.email_verified


async def _deliver_code(email: str, code: str, codes: VerificationCodeService) -> None:
    """Email a verification code. Delivery failure is logged, not raised."""
    try:
        sent = await send_verification_code(email, code, codes.ttl_minutes)
        if not sent:
            logger.error("Failed to send verification code email")
    except Exception as e:
        logger.error(f"Exception sending verification code email: {e}")


def _log_task_failure(task: asyncio.Task) -> None:
    _background_tasks.discard(task)
    if task.cancelled():
        return
    error = task.exception()
    if error is not None:
        logger.error(f"Background notification failed: {error}")


def _notify_submission_received(email: str, name: str) -> None:
    """Schedule the confirmation email without waiting for it."""
    task = asyncio.create_task(send_submission_received(email, name))
    _background_tasks.add(task)
    task.add_done_callback(_log_task_failure)


# ============================================
# Prompts
# ============================================


async def list_active_prompts(db: AsyncSession) -> list[Prompt]:
    return await repository.get_active_prompts(db)


# ============================================
# Start
# ============================================


async def start_application(
    db: AsyncSession,
    data: ApplicationStartRequest,
    codes: VerificationCodeService,
    clock: Clock = utc_now,
) -> ApplicationStartResponse:
    """
    Start (or resume) an application.

    Args:
        db: Database session
        data: Validated profile
        codes: Verification code service (carries the enabled flag)
        clock: Time source

    Returns:
        The token to carry through the remaining steps, and whether a
        verification code must be entered first

    Raises:
        DuplicateApplicantError: If the email already has a finalized application
        NoPromptsAvailableError: If there are no active prompts
    """
    if data.website:
        logger.warning("Honeypot field filled, discarding application")
        return ApplicationStartResponse(token=HONEYPOT_TOKEN, requires_verification=False)

    email = data.email.lower()

    if await repository.get_applicant_by_email(db, email):
        logger.info("Start rejected: applicant already exists")
        raise DuplicateApplicantError()

    existing = await repository.get_pending_by_email(db, email)
    if existing is not None:
        if not _is_expired(existing, clock):
            logger.info(f"Resuming pending application {existing.id}")
            return ApplicationStartResponse(
                token=existing.token,
                requires_verification=_requires_verification(existing, codes),
            )
        await repository.delete_pending(db, existing.id)
        logger.info(f"Replaced expired pending application {existing.id}")

    prompts = await repository.get_active_prompts(db)
    if not prompts:
        logger.error("No active prompts available")
        raise NoPromptsAvailableError()
    prompt = random.choice(prompts)

    try:
        pending = await repository.create_pending(
            db,
            token=_generate_token(),
            email=email,
            name=data.name,
            location=data.location,
            timezone=data.timezone,
            role_company=data.role_company,
            heard_about=data.heard_about,
            prior_events=data.prior_events,
            three_words=data.three_words,
            bio=data.bio,
            links=data.link_strings(),
            prompt_id=prompt.id,
            email_verified=not codes.enabled,
            expires_at=clock() + PENDING_TTL,
        )
    except IntegrityError:
        # A concurrent start for the same email committed first; resume it
        winner = await repository.get_pending_by_email(db, email)
        if winner is None or _is_expired(winner, clock):
            raise
        logger.info(f"Concurrent start resolved to pending application {winner.id}")
        return ApplicationStartResponse(
            token=winner.token,
            requires_verification=_requires_verification(winner, codes),
        )

    logger.info(f"Created pending application {pending.id}")

    if codes.enabled:
        code = await codes.issue(email)
        await _deliver_code(email, code, codes)

    return ApplicationStartResponse(
        token=pending.token,
        requires_verification=codes.enabled,
    )


# ============================================
# Pending application lookup
# ============================================


async def get_pending_application(
    db: AsyncSession,
    token: str,
    clock: Clock = utc_now,
) -> PendingApplication:
    """
    Load a live pending application.

    An expired application is deleted before ``PendingApplicationExpiredError``
    is raised, so a second lookup reports it as not found.

    Raises:
        PendingApplicationNotFoundError: If no application matches the token
        PendingApplicationExpiredError: If the application has expired
    """
    pending = await repository.get_pending_by_token(db, token)
    if pending is None:
        raise PendingApplicationNotFoundError()

    if _is_expired(pending, clock):
        await repository.delete_pending(db, pending.id)
        logger.info(f"Pending application {pending.id} expired")
        raise PendingApplicationExpiredError()

    return pending


async def get_pending_view(
    db: AsyncSession,
    token: str,
    codes: VerificationCodeService,
    clock: Clock = utc_now,
) -> PendingApplicationView:
    """
    Summary shown on the recording page.

    Raises:
        PendingApplicationNotFoundError / PendingApplicationExpiredError
        NotVerifiedError: While verification is still pending
    """
    pending = await get_pending_application(db, token, clock)

    if _requires_verification(pending, codes):
        raise NotVerifiedError(pending.email)

    prompts = await repository.get_active_prompts(db)
    sample = random.sample(prompts, min(PROMPT_SAMPLE_SIZE, len(prompts)))

    return PendingApplicationView(
        id=pending.id,
        name=pending.name,
        email=pending.email,
        expires_at=pending.expires_at,
        prompt=PromptResponse.model_validate(pending.prompt),
        prompts=[PromptResponse.model_validate(p) for p in sample],
    )


# ============================================
# Verification
# ============================================


async def verify_code(
    db: AsyncSession,
    token: str,
    code: str,
    codes: VerificationCodeService,
    clock: Clock = utc_now,
) -> VerificationResponse:
    """
    Check a verification code and mark the application verified.

    Raises:
        VerificationDisabledError: If verification is turned off
        PendingApplicationNotFoundError / PendingApplicationExpiredError
        InvalidCodeError: If the code is wrong, expired, or was never issued
    """
    if not codes.enabled:
        raise VerificationDisabledError()

    pending = await get_pending_application(db, token, clock)

    if pending.email_verified:
        return VerificationResponse(already_verified=True, message="Email already verified.")

    if not await codes.check(pending.email, code):
        logger.info(f"Invalid verification code for pending application {pending.id}")
        raise InvalidCodeError()

    await repository.mark_pending_verified(db, pending)
    logger.info(f"Email verified for pending application {pending.id}")

    return VerificationResponse(message="Email verified.")


async def resend_code(
    db: AsyncSession,
    token: str,
    codes: VerificationCodeService,
    clock: Clock = utc_now,
) -> VerificationResponse:
    """
    Issue a fresh code, replacing any live one.

    Raises:
        VerificationDisabledError: If verification is turned off
        PendingApplicationNotFoundError / PendingApplicationExpiredError
    """
    if not codes.enabled:
        raise VerificationDisabledError()

    pending = await get_pending_application(db, token, clock)

    if pending.email_verified:
        return VerificationResponse(already_verified=True, message="Email already verified.")

    code = await codes.issue(pending.email)
    await _deliver_code(pending.email, code, codes)

    return VerificationResponse(message="A new code has been sent.")


# ============================================
# Finalize
# ============================================


async def finalize_submission(
    db: AsyncSession,
    data: FinalizeRequest,
    backend: UploadBackend,
    codes: VerificationCodeService,
    clock: Clock = utc_now,
) -> FinalizeResponse:
    """
    Turn a verified pending application and a stored upload into a submission.

    Steps:
    1. Load the pending application (expired: deleted, upload released)
    2. Require verification when enabled (upload kept for retry)
    3. Confirm the upload exists (nothing to release if it doesn't)
    4. Re-check for an existing applicant (pending deleted, upload released)
    5. Create applicant + submission and delete the pending row atomically
    6. Schedule the confirmation email without waiting for it

    Any unexpected failure before the commit releases the upload and surfaces
    as FinalizeFailedError. The compensation scope ends at the commit in
    step 5, so a durable submission never loses its video.

    Raises:
        InvalidUploadError: If the upload reference is malformed or reused
        PendingApplicationNotFoundError / PendingApplicationExpiredError
        NotVerifiedError
        UploadMissingError
        DuplicateApplicantError
        FinalizeFailedError
    """
    key = data.video_key

    try:
        if not is_valid_upload_key(key):
            raise InvalidUploadError("Invalid upload reference.")
        if data.video_url != backend.public_url_for(key):
            raise InvalidUploadError("Upload URL does not match the upload reference.")
        if await repository.submission_exists_for_video_key(db, key):
            raise InvalidUploadError("This upload has already been submitted.")

        async with upload_compensation(backend, key) as guard:
            pending = await get_pending_application(db, data.token, clock)

            if _requires_verification(pending, codes):
                raise NotVerifiedError(pending.email)

            upload = await backend.confirm(key)
            if not upload.exists:
                raise UploadMissingError()

            if await repository.get_applicant_by_email(db, pending.email):
                logger.warning(f"Duplicate applicant at finalize for pending {pending.id}")
                await repository.delete_pending(db, pending.id)
                raise DuplicateApplicantError()

            pending_id, email, name = pending.id, pending.email, pending.name

            try:
                submission_id = await repository.create_applicant_with_submission(
                    db,
                    pending,
                    video_key=key,
                    video_url=data.video_url,
                    video_duration_sec=round(data.video_duration_sec),
                )
            except IntegrityError as e:
                # Lost a race with a concurrent finalize for the same email.
                # The rollback expired ``pending``; only the copied fields are used.
                # The winner may hold this upload until proven otherwise.
                guard.hold()
                keep = await _winner_holds_upload(db, key)
                await _discard_pending(db, pending_id)
                logger.warning(
                    f"Concurrent finalize for pending {pending_id} (upload kept: {keep})"
                )
                raise DuplicateApplicantError(release_upload=not keep) from e

    except ApplicationServiceError:
        raise
    except Exception as e:
        logger.exception(f"Unexpected error finalizing application: {e}")
        raise FinalizeFailedError() from e

    logger.info(f"Created submission {submission_id}")
    _notify_submission_received(email, name)

    return FinalizeResponse(
        submission_id=submission_id,
        message="Application submitted successfully.",
    )


async def _winner_holds_upload(db: AsyncSession, key: str) -> bool:
    """
    Whether the submission that won a finalize race references ``key``.

    When the check itself fails the upload is treated as held, so a durable
    video is never deleted on a guess.
    """
    try:
        return await repository.submission_exists_for_video_key(db, key)
    except Exception as e:
        logger.error(f"Could not check upload {key} after concurrent finalize, keeping it: {e}")
        return True


async def _discard_pending(db: AsyncSession, pending_id: UUID) -> None:
    try:
        await repository.delete_pending(db, pending_id)
    except Exception as e:
        # The hourly purge removes it once it expires
        logger.error(f"Failed to delete pending {pending_id} after concurrent finalize: {e}")
