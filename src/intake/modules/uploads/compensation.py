"""
Upload Compensation

When a multi-step operation fails after a file already reached storage, the
file must be deleted or it is orphaned. ``upload_compensation`` wraps such a
step and releases the upload on every failure path, unless the error says
the upload should be kept (``release_upload = False``), e.g. when the
client is expected to retry with the same upload.

Once the upload may belong to a durable record, the block calls
``guard.hold()``. From then on failures that carry no ``release_upload``
flag (cancellation included) leave the upload in place.

Release is best-effort: failures are logged and never replace the original
error.
"""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from intake.modules.uploads.backends import UploadBackend

logger = logging.getLogger(__name__)


class UploadGuard:
    """Per-block release decision handed out by ``upload_compensation``."""

    def __init__(self) -> None:
        self.held = False

    def hold(self) -> None:
        self.held = True


async def release_quietly(backend: UploadBackend, key: str) -> bool:
    """Release ``key``, logging instead of raising. Returns True on success."""
    try:
        await backend.release(key)
        return True
    except Exception as e:
        logger.error(f"Failed to release upload {key}: {e}", exc_info=True)
        return False


@asynccontextmanager
async def upload_compensation(backend: UploadBackend, key: str) -> AsyncIterator[UploadGuard]:
    """
    Release ``key`` if the wrapped block raises.

    Usage:
        async with upload_compensation(backend, key) as guard:
            ...  # any exception here deletes the upload, then propagates
            guard.hold()
            ...  # from here only errors with release_upload=True delete it
    """
    guard = UploadGuard()
    try:
        yield guard
    except BaseException as e:
        if getattr(e, "release_upload", not guard.held):
            logger.warning(f"Releasing upload {key} after {type(e).__name__}")
            await release_quietly(backend, key)
        else:
            logger.info(f"Keeping upload {key} after {type(e).__name__}")
        raise
