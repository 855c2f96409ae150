"""
Service Errors

Base exception for service-layer failures. Routers translate these into
``HTTPException`` with a ``{"error": code, "message": text}`` detail.
"""

from fastapi import HTTPException


class ApplicationServiceError(Exception):
    """
    Base exception for service errors.

    ``release_upload`` tells the finalize compensation whether an upload
    already sitting in storage should be deleted when this error escapes.
    """

    release_upload = True

    def __init__(self, message: str, error_code: str, status_code: int = 400):
        self.message = message
        self.error_code = error_code
        self.status_code = status_code
        super().__init__(message)

    def extra_detail(self) -> dict:
        return {}


def to_http_exception(error: ApplicationServiceError) -> HTTPException:
    """Map a service error to the HTTP error shape used by every router."""
    return HTTPException(
        status_code=error.status_code,
        detail={
            "error": error.error_code,
            "message": error.message,
            **error.extra_detail(),
        },
    )
