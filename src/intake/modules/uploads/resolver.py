"""
Upload Backend Resolution

Chooses the upload backend once at startup, in priority order:

1. S3-compatible object storage, when all R2 settings are present
2. Client-token blob store, when a read-write token is present
3. Local disk, outside production
4. Nothing: upload operations answer 503
"""

import logging

from intake.core.config import Settings
from intake.core.errors import ApplicationServiceError
from intake.core.kv_store import Clock, utc_now
from intake.modules.uploads.backends import (
    ClientTokenBlobBackend,
    LocalDiskBackend,
    PresignedObjectStorageBackend,
    UploadBackend,
)

logger = logging.getLogger(__name__)


class StorageUnavailableError(ApplicationServiceError):
    """Raised when no upload backend is configured."""

    release_upload = False

    def __init__(self):
        super().__init__(
            message="Storage not configured.",
            error_code="STORAGE_UNAVAILABLE",
            status_code=503,
        )


def resolve_upload_backend(settings: Settings, clock: Clock = utc_now) -> UploadBackend | None:
    """Build the highest-priority backend the settings allow, or None."""
    if settings.object_storage_configured:
        logger.info("Uploads: presigned object storage")
        return PresignedObjectStorageBackend(
            endpoint=settings.r2_endpoint,
            access_key_id=settings.r2_access_key_id,
            secret_access_key=settings.r2_secret_access_key,
            bucket=settings.r2_bucket_name,
            public_base_url=settings.r2_public_url,
            clock=clock,
        )

    if settings.blob_configured:
        logger.info("Uploads: client-token blob store")
        return ClientTokenBlobBackend(
            read_write_token=settings.blob_read_write_token,
            api_url=settings.blob_api_url,
            public_base_url=settings.blob_public_url,
            clock=clock,
        )

    if not settings.is_production:
        logger.warning(f"Uploads: local disk at '{settings.local_upload_dir}' (development only)")
        return LocalDiskBackend(settings.local_upload_dir, clock=clock)

    logger.error("Uploads: no storage backend configured")
    return None


def require_backend(backend: UploadBackend | None) -> UploadBackend:
    """Return ``backend`` or raise StorageUnavailableError."""
    if backend is None:
        raise StorageUnavailableError()
    return backend
