"""
Upload Constraints

The video contract every backend enforces, plus upload key minting.
"""

import re
import uuid
from datetime import datetime, timedelta

from intake.core.errors import ApplicationServiceError

# Content type -> file extension
ALLOWED_CONTENT_TYPES: dict[str, str] = {
    "video/mp4": "mp4",
    "video/quicktime": "mov",
    "video/webm": "webm",
}

MAX_FILE_SIZE_BYTES = 500 * 1024 * 1024
MAX_DURATION_SEC = 120
MIN_DURATION_SEC = 1
TARGET_DURATION_SEC = 90  # What the UI asks applicants to aim for

# How long an issued upload slot stays usable
SLOT_TTL = timedelta(minutes=30)

_KEY_PATTERN = re.compile(r"^videos/[0-9a-f]{32}/\d+\.(mp4|mov|webm)$")


class InvalidUploadError(ApplicationServiceError):
    """Raised when an upload request or reference breaks the video contract."""

    release_upload = False

    def __init__(self, message: str):
        super().__init__(message=message, error_code="INVALID_UPLOAD", status_code=400)


def constraints_summary() -> dict:
    """Constraints echoed back to clients alongside an upload slot."""
    return {
        "max_size_mb": MAX_FILE_SIZE_BYTES // (1024 * 1024),
        "max_duration_sec": MAX_DURATION_SEC,
        "target_duration_sec": TARGET_DURATION_SEC,
        "allowed_types": list(ALLOWED_CONTENT_TYPES),
    }


def validate_content_type(content_type: str) -> str:
    """Return the file extension for an allowed content type."""
    extension = ALLOWED_CONTENT_TYPES.get(content_type)
    if extension is None:
        raise InvalidUploadError(
            f"Invalid file type. Allowed: {', '.join(ALLOWED_CONTENT_TYPES)}"
        )
    return extension


def validate_size(size_bytes: int) -> None:
    if size_bytes < 1:
        raise InvalidUploadError("File is empty.")
    if size_bytes > MAX_FILE_SIZE_BYTES:
        raise InvalidUploadError(
            f"File too large. Maximum size is {MAX_FILE_SIZE_BYTES // (1024 * 1024)}MB."
        )


def validate_duration(duration_sec: float) -> None:
    if not MIN_DURATION_SEC <= duration_sec <= MAX_DURATION_SEC:
        raise InvalidUploadError(
            f"Video must be between {MIN_DURATION_SEC} and {MAX_DURATION_SEC} seconds."
        )


def validate_upload_request(
    content_type: str,
    size_bytes: int,
    duration_sec: float | None = None,
) -> str:
    """
    Check a slot request against the video contract.

    Returns:
        File extension for the content type

    Raises:
        InvalidUploadError: On a disallowed type, size, or duration
    """
    extension = validate_content_type(content_type)
    validate_size(size_bytes)
    if duration_sec is not None:
        validate_duration(duration_sec)
    return extension


def build_upload_key(extension: str, now: datetime) -> str:
    """
    Mint a storage key: ``videos/<random>/<epoch-ms>.<ext>``.

    The random segment keeps keys unguessable and free of applicant data.
    """
    return f"videos/{uuid.uuid4().hex}/{int(now.timestamp() * 1000)}.{extension}"


def is_valid_upload_key(key: str) -> bool:
    """True if ``key`` has the shape produced by ``build_upload_key``."""
    return bool(_KEY_PATTERN.match(key))


def content_type_for_key(key: str) -> str | None:
    extension = key.rsplit(".", 1)[-1]
    for content_type, ext in ALLOWED_CONTENT_TYPES.items():
        if ext == extension:
            return content_type
    return None
