"""
Uploads Router

Endpoints:
- POST /uploads/slot  - Issue an upload slot on the configured backend
- POST /uploads/local - Receive a file directly (local development only)

Slot requests are rate limited per client IP (10 per 10 minutes).
"""

import logging

from fastapi import APIRouter, Depends, File, HTTPException, Query, Request, UploadFile, status

from intake.core.errors import ApplicationServiceError, to_http_exception
from intake.core.rate_limit import RateLimitResult, rate_limit
from intake.modules.uploads.backends import LocalDiskBackend, UploadBackend
from intake.modules.uploads.constraints import constraints_summary
from intake.modules.uploads.resolver import require_backend
from intake.modules.uploads.schemas import (
    LocalUploadResponse,
    UploadConstraints,
    UploadSlotRequest,
    UploadSlotResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter()


def get_upload_backend(request: Request) -> UploadBackend | None:
    """Backend chosen at startup (None when storage is unavailable)."""
    return getattr(request.app.state, "upload_backend", None)


@router.post(
    "/slot",
    response_model=UploadSlotResponse,
    summary="Request Upload Slot",
    description="""
Issue a short-lived upload slot for one video.

The response's `mode` tells the client how to upload:
- `presigned`: PUT the file to `upload_url` with the given headers
- `blob`: PUT the file to `upload_url` using `client_token`
- `local`: POST the file as multipart field `file` to `upload_url`

Allowed types are MP4, QuickTime and WebM, up to 500MB and 120 seconds.
""",
    responses={
        400: {"description": "File type, size or duration not allowed"},
        429: {"description": "Too many slot requests"},
        503: {"description": "Storage not configured"},
    },
)
async def request_upload_slot(
    data: UploadSlotRequest,
    backend: UploadBackend | None = Depends(get_upload_backend),
    _limit: RateLimitResult = Depends(rate_limit("presign")),
) -> UploadSlotResponse:
    try:
        slot = await require_backend(backend).request_slot(
            content_type=data.content_type,
            size_bytes=data.size_bytes,
            duration_sec=data.duration_sec,
        )
    except ApplicationServiceError as e:
        logger.warning(f"Upload slot rejected: {e.message}")
        raise to_http_exception(e) from e
    except Exception as e:
        logger.exception(f"Unexpected error issuing upload slot: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={
                "error": "INTERNAL_ERROR",
                "message": "Failed to prepare upload.",
            },
        ) from e

    logger.info(f"Issued {slot.mode} upload slot {slot.key}")

    return UploadSlotResponse(
        mode=slot.mode,
        key=slot.key,
        upload_url=slot.upload_url,
        method=slot.method,
        headers=slot.headers,
        public_url=slot.public_url,
        client_token=slot.client_token,
        expires_at=slot.expires_at,
        constraints=UploadConstraints(**constraints_summary()),
    )


@router.post(
    "/local",
    response_model=LocalUploadResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Local Development Upload",
    responses={
        400: {"description": "Invalid file"},
        403: {"description": "Local uploads are not available"},
    },
)
async def upload_local(
    key: str = Query(..., min_length=1, max_length=200),
    file: UploadFile = File(...),
    backend: UploadBackend | None = Depends(get_upload_backend),
) -> LocalUploadResponse:
    """Receive a file for a slot issued by the local disk backend."""
    if not isinstance(backend, LocalDiskBackend):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail={
                "error": "LOCAL_UPLOAD_DISABLED",
                "message": "Local uploads are not available in this environment.",
            },
        )

    try:
        await backend.store(key, file.content_type or "", file.file)
    except ApplicationServiceError as e:
        logger.warning(f"Local upload rejected: {e.message}")
        raise to_http_exception(e) from e
    finally:
        await file.close()

    return LocalUploadResponse(key=key, url=backend.public_url_for(key))
