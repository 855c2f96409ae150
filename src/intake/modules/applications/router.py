"""
Applications Router

Public endpoints for the intake flow. No authentication: the pending
application token is the applicant's credential between steps.

Endpoints:
- GET  /prompts                     - List active prompts
- POST /applications/start          - Start or resume an application
- GET  /applications/{token}        - Pending application summary + prompts
- POST /applications/verify         - Check the emailed code
- POST /applications/verify/resend  - Send a new code
- POST /applications/finalize       - Turn the upload into a submission

Rate limits (per client IP):
- start: 3 per hour
- verify/resend: 5 per hour
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from intake.core.database import get_db
from intake.core.errors import ApplicationServiceError, to_http_exception
from intake.core.rate_limit import RateLimitResult, rate_limit
from intake.modules.applications import service
from intake.modules.applications.schemas import (
    ApplicationStartRequest,
    ApplicationStartResponse,
    FinalizeRequest,
    FinalizeResponse,
    PendingApplicationView,
    PromptListResponse,
    PromptResponse,
    ResendCodeRequest,
    VerificationResponse,
    VerifyCodeRequest,
)
from intake.modules.applications.verification import VerificationCodeService
from intake.modules.uploads.backends import UploadBackend
from intake.modules.uploads.resolver import require_backend
from intake.modules.uploads.router import get_upload_backend

logger = logging.getLogger(__name__)

router = APIRouter()
prompts_router = APIRouter()


def get_code_service(request: Request) -> VerificationCodeService:
    return request.app.state.verification_codes


def _internal_error(message: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail={"error": "INTERNAL_ERROR", "message": message},
    )


@prompts_router.get("", response_model=PromptListResponse, summary="List Active Prompts")
async def list_prompts(db: AsyncSession = Depends(get_db)) -> PromptListResponse:
    prompts = await service.list_active_prompts(db)
    return PromptListResponse(prompts=[PromptResponse.model_validate(p) for p in prompts])


@router.post(
    "/start",
    response_model=ApplicationStartResponse,
    summary="Start Application",
    description="""
Start an application with the applicant's profile.

Calling again with the same email while the application is still pending
returns the same token. If email verification is enabled, a 6-digit code
is emailed and must be entered before recording.
""",
    responses={
        409: {"description": "An application with this email already exists"},
        429: {"description": "Too many applications from this address"},
        503: {"description": "No prompts available"},
    },
)
async def start_application(
    data: ApplicationStartRequest,
    db: AsyncSession = Depends(get_db),
    codes: VerificationCodeService = Depends(get_code_service),
    _limit: RateLimitResult = Depends(rate_limit("application")),
) -> ApplicationStartResponse:
    try:
        return await service.start_application(db, data, codes)
    except ApplicationServiceError as e:
        logger.warning(f"Start rejected: {e.error_code}")
        raise to_http_exception(e) from e
    except Exception as e:
        logger.exception(f"Unexpected error starting application: {e}")
        raise _internal_error("Failed to start application.") from e


@router.post(
    "/verify",
    response_model=VerificationResponse,
    summary="Verify Email Code",
    responses={
        400: {"description": "Verification disabled, or invalid/expired code"},
        404: {"description": "Application not found"},
        410: {"description": "Application expired"},
    },
)
async def verify_code(
    data: VerifyCodeRequest,
    db: AsyncSession = Depends(get_db),
    codes: VerificationCodeService = Depends(get_code_service),
) -> VerificationResponse:
    try:
        return await service.verify_code(db, data.token, data.code, codes)
    except ApplicationServiceError as e:
        raise to_http_exception(e) from e
    except Exception as e:
        logger.exception(f"Unexpected error verifying code: {e}")
        raise _internal_error("Verification failed.") from e


@router.post(
    "/verify/resend",
    response_model=VerificationResponse,
    summary="Resend Verification Code",
    responses={
        400: {"description": "Verification disabled"},
        404: {"description": "Application not found"},
        410: {"description": "Application expired"},
        429: {"description": "Too many resend requests"},
    },
)
async def resend_code(
    data: ResendCodeRequest,
    db: AsyncSession = Depends(get_db),
    codes: VerificationCodeService = Depends(get_code_service),
    _limit: RateLimitResult = Depends(rate_limit("email_verification")),
) -> VerificationResponse:
    try:
        return await service.resend_code(db, data.token, codes)
    except ApplicationServiceError as e:
        raise to_http_exception(e) from e
    except Exception as e:
        logger.exception(f"Unexpected error resending code: {e}")
        raise _internal_error("Failed to resend code.") from e


@router.post(
    "/finalize",
    response_model=FinalizeResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Finalize Submission",
    description="""
Complete the application once the video is in storage.

Creates the applicant and submission atomically. If the application cannot
be completed, the uploaded video is deleted, except when the client can
fix the problem and retry with the same upload (email not yet verified).
""",
    responses={
        403: {"description": "Email not verified"},
        404: {"description": "Application or upload not found"},
        409: {"description": "An application with this email already exists"},
        410: {"description": "Application expired"},
        503: {"description": "Storage not configured"},
    },
)
async def finalize_submission(
    data: FinalizeRequest,
    db: AsyncSession = Depends(get_db),
    codes: VerificationCodeService = Depends(get_code_service),
    backend: UploadBackend | None = Depends(get_upload_backend),
) -> FinalizeResponse:
    try:
        return await service.finalize_submission(db, data, require_backend(backend), codes)
    except ApplicationServiceError as e:
        if e.status_code >= 500:
            logger.error(f"Finalize failed: {e.error_code}")
        else:
            logger.warning(f"Finalize rejected: {e.error_code}")
        raise to_http_exception(e) from e


@router.get(
    "/{token}",
    response_model=PendingApplicationView,
    summary="Get Pending Application",
    responses={
        403: {"description": "Email not verified"},
        404: {"description": "Application not found"},
        410: {"description": "Application expired"},
    },
)
async def get_pending_application(
    token: str,
    db: AsyncSession = Depends(get_db),
    codes: VerificationCodeService = Depends(get_code_service),
) -> PendingApplicationView:
    try:
        return await service.get_pending_view(db, token, codes)
    except ApplicationServiceError as e:
        raise to_http_exception(e) from e
