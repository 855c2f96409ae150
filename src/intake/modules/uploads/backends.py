"""
Upload Backends

Three interchangeable ways of getting a video from the browser into storage
without streaming it through the API process (except in local development):

- PresignedObjectStorageBackend: S3-compatible bucket (Cloudflare R2) via a
  signed PUT URL. boto3 is synchronous, so calls run in a worker thread.
- ClientTokenBlobBackend: blob store that accepts uploads authenticated by
  a short-lived, path-scoped client token signed with the store's
  read-write token.
- LocalDiskBackend: development only; the API receives the file itself.

All backends share the video contract in ``constraints`` and the same three
operations: ``request_slot``, ``confirm`` and ``release``.
"""

import asyncio
import base64
import hashlib
import hmac
import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import BinaryIO

import boto3
import httpx
from botocore.config import Config as BotoConfig
from botocore.exceptions import ClientError

from intake.core.kv_store import Clock, utc_now
from intake.modules.uploads.constraints import (
    ALLOWED_CONTENT_TYPES,
    MAX_FILE_SIZE_BYTES,
    SLOT_TTL,
    InvalidUploadError,
    build_upload_key,
    content_type_for_key,
    is_valid_upload_key,
    validate_upload_request,
)

logger = logging.getLogger(__name__)

LOCAL_UPLOAD_PATH = "/api/v1/uploads/local"
LOCAL_PUBLIC_PREFIX = "/uploads"


@dataclass(frozen=True)
class UploadSlot:
    """Everything a client needs to upload one file."""

    mode: str
    key: str
    upload_url: str
    public_url: str
    expires_at: datetime
    method: str = "PUT"
    headers: dict[str, str] = field(default_factory=dict)
    client_token: str | None = None


@dataclass(frozen=True)
class UploadStatus:
    exists: bool
    size: int | None = None
    content_type: str | None = None


class UploadBackend(ABC):
    """Common interface for upload storage."""

    mode: str = ""

    def __init__(self, clock: Clock = utc_now):
        self._clock = clock

    async def request_slot(
        self,
        content_type: str,
        size_bytes: int,
        duration_sec: float | None = None,
    ) -> UploadSlot:
        """
        Validate the request and issue an upload slot.

        Raises:
            InvalidUploadError: If the request breaks the video contract
        """
        extension = validate_upload_request(content_type, size_bytes, duration_sec)
        now = self._clock()
        key = build_upload_key(extension, now)
        return await self._create_slot(key, content_type, size_bytes, now + SLOT_TTL)

    @abstractmethod
    async def _create_slot(
        self, key: str, content_type: str, size_bytes: int, expires_at: datetime
    ) -> UploadSlot: ...

    @abstractmethod
    def public_url_for(self, key: str) -> str:
        """Public URL at which ``key`` is (or will be) served."""

    @abstractmethod
    async def confirm(self, key: str) -> UploadStatus:
        """Check whether ``key`` exists in storage."""

    @abstractmethod
    async def release(self, key: str) -> None:
        """Delete ``key`` from storage. Deleting a missing key is not an error."""


class PresignedObjectStorageBackend(UploadBackend):
    """S3-compatible object storage (R2) with presigned PUT URLs."""

    mode = "presigned"

    def __init__(
        self,
        endpoint: str,
        access_key_id: str,
        secret_access_key: str,
        bucket: str,
        public_base_url: str,
        clock: Clock = utc_now,
        client=None,
    ):
        super().__init__(clock)
        self._bucket = bucket
        self._public_base_url = public_base_url.rstrip("/")
        self._client = client or boto3.client(
            "s3",
            endpoint_url=endpoint,
            aws_access_key_id=access_key_id,
            aws_secret_access_key=secret_access_key,
            region_name="auto",
            config=BotoConfig(signature_version="s3v4"),
        )

    def public_url_for(self, key: str) -> str:
        return f"{self._public_base_url}/{key}"

    async def _create_slot(
        self, key: str, content_type: str, size_bytes: int, expires_at: datetime
    ) -> UploadSlot:
        upload_url = await asyncio.to_thread(
            self._client.generate_presigned_url,
            "put_object",
            Params={
                "Bucket": self._bucket,
                "Key": key,
                "ContentType": content_type,
                "ContentLength": size_bytes,
            },
            ExpiresIn=int(SLOT_TTL.total_seconds()),
        )
        return UploadSlot(
            mode=self.mode,
            key=key,
            upload_url=upload_url,
            public_url=self.public_url_for(key),
            expires_at=expires_at,
            headers={"Content-Type": content_type},
        )

    async def confirm(self, key: str) -> UploadStatus:
        try:
            response = await asyncio.to_thread(
                self._client.head_object, Bucket=self._bucket, Key=key
            )
        except ClientError as e:
            code = str(e.response.get("Error", {}).get("Code", ""))
            if code in ("404", "NotFound", "NoSuchKey"):
                return UploadStatus(exists=False)
            raise

        return UploadStatus(
            exists=True,
            size=response.get("ContentLength"),
            content_type=response.get("ContentType"),
        )

    async def release(self, key: str) -> None:
        await asyncio.to_thread(self._client.delete_object, Bucket=self._bucket, Key=key)
        logger.info(f"Deleted object {key}")


class ClientTokenBlobBackend(UploadBackend):
    """
    Blob store with client-token uploads.

    The read-write token has the shape ``vercel_blob_rw_<storeId>_<secret>``.
    A client token embeds a base64 JSON payload (pathname, allowed content
    types, max size, validUntil in epoch ms) together with its HMAC-SHA256
    signature under the read-write token, so the store can authorize the
    upload without calling back into this service.
    """

    mode = "blob"

    def __init__(
        self,
        read_write_token: str,
        api_url: str,
        public_base_url: str | None = None,
        clock: Clock = utc_now,
        http_client: httpx.AsyncClient | None = None,
    ):
        super().__init__(clock)
        self._token = read_write_token
        self._api_url = api_url.rstrip("/")
        self._store_id = self._parse_store_id(read_write_token)
        self._public_base_url = (
            public_base_url or f"https://{self._store_id}.public.blob.vercel-storage.com"
        ).rstrip("/")
        self._http_client = http_client

    @staticmethod
    def _parse_store_id(token: str) -> str:
        parts = token.split("_")
        if len(parts) < 5 or not parts[3]:
            raise ValueError("Blob read-write token is malformed")
        return parts[3]

    def public_url_for(self, key: str) -> str:
        return f"{self._public_base_url}/{key}"

    def generate_client_token(self, pathname: str, valid_until: datetime) -> str:
        payload = base64.b64encode(
            json.dumps(
                {
                    "pathname": pathname,
                    "allowedContentTypes": list(ALLOWED_CONTENT_TYPES),
                    "maximumSizeInBytes": MAX_FILE_SIZE_BYTES,
                    "validUntil": int(valid_until.timestamp() * 1000),
                    "addRandomSuffix": False,
                }
            ).encode()
        ).decode()
        signature = hmac.new(self._token.encode(), payload.encode(), hashlib.sha256).hexdigest()
        signed = base64.b64encode(f"{signature}.{payload}".encode()).decode()
        return f"vercel_blob_client_{self._store_id}_{signed}"

    async def _create_slot(
        self, key: str, content_type: str, size_bytes: int, expires_at: datetime
    ) -> UploadSlot:
        client_token = self.generate_client_token(key, expires_at)
        return UploadSlot(
            mode=self.mode,
            key=key,
            upload_url=f"{self._api_url}/{key}",
            public_url=self.public_url_for(key),
            expires_at=expires_at,
            headers={
                "Authorization": f"Bearer {client_token}",
                "x-content-type": content_type,
            },
            client_token=client_token,
        )

    async def _request(self, method: str, url: str, **kwargs) -> httpx.Response:
        if self._http_client is not None:
            return await self._http_client.request(method, url, **kwargs)
        async with httpx.AsyncClient(timeout=15.0) as client:
            return await client.request(method, url, **kwargs)

    async def confirm(self, key: str) -> UploadStatus:
        response = await self._request("HEAD", self.public_url_for(key))
        if response.status_code == 404:
            return UploadStatus(exists=False)
        response.raise_for_status()

        length = response.headers.get("content-length")
        return UploadStatus(
            exists=True,
            size=int(length) if length else None,
            content_type=response.headers.get("content-type"),
        )

    async def release(self, key: str) -> None:
        response = await self._request(
            "POST",
            f"{self._api_url}/delete",
            json={"urls": [self.public_url_for(key)]},
            headers={"Authorization": f"Bearer {self._token}"},
        )
        response.raise_for_status()
        logger.info(f"Deleted blob {key}")


class LocalDiskBackend(UploadBackend):
    """
    Development backend writing uploads under a local directory.

    Files are served back from ``/uploads/<key>``.
    """

    mode = "local"
    chunk_size = 1024 * 1024

    def __init__(self, base_dir: str | Path, clock: Clock = utc_now):
        super().__init__(clock)
        self._base_dir = Path(base_dir).resolve()

    @property
    def base_dir(self) -> Path:
        return self._base_dir

    def _path_for(self, key: str) -> Path:
        if not is_valid_upload_key(key):
            raise InvalidUploadError("Invalid upload key.")
        path = (self._base_dir / key).resolve()
        if self._base_dir not in path.parents:
            raise InvalidUploadError("Invalid upload key.")
        return path

    def public_url_for(self, key: str) -> str:
        return f"{LOCAL_PUBLIC_PREFIX}/{key}"

    async def _create_slot(
        self, key: str, content_type: str, size_bytes: int, expires_at: datetime
    ) -> UploadSlot:
        return UploadSlot(
            mode=self.mode,
            key=key,
            upload_url=f"{LOCAL_UPLOAD_PATH}?key={key}",
            public_url=self.public_url_for(key),
            expires_at=expires_at,
            method="POST",
        )

    async def store(self, key: str, content_type: str, source: BinaryIO) -> UploadStatus:
        """
        Write an uploaded file to disk.

        Raises:
            InvalidUploadError: On a bad key, a content type that doesn't
                match the key, or a file outside the size limits
        """
        path = self._path_for(key)
        if content_type_for_key(key) != content_type:
            raise InvalidUploadError("Content type does not match the upload slot.")

        def _write() -> int:
            # Stops one chunk past the cap instead of draining the whole stream
            path.parent.mkdir(parents=True, exist_ok=True)
            written = 0
            with path.open("wb") as out:
                while True:
                    chunk = source.read(self.chunk_size)
                    if not chunk:
                        break
                    written += len(chunk)
                    if written > MAX_FILE_SIZE_BYTES:
                        break
                    out.write(chunk)
            return written

        size = await asyncio.to_thread(_write)
        if size < 1 or size > MAX_FILE_SIZE_BYTES:
            await self.release(key)
            raise InvalidUploadError(
                f"File must be between 1 byte and {MAX_FILE_SIZE_BYTES // (1024 * 1024)}MB."
            )

        logger.info(f"Stored local upload {key} ({size} bytes)")
        return UploadStatus(exists=True, size=size, content_type=content_type)

    async def confirm(self, key: str) -> UploadStatus:
        path = self._path_for(key)
        try:
            stat = await asyncio.to_thread(path.stat)
        except FileNotFoundError:
            return UploadStatus(exists=False)
        return UploadStatus(exists=True, size=stat.st_size, content_type=content_type_for_key(key))

    async def release(self, key: str) -> None:
        path = self._path_for(key)
        await asyncio.to_thread(path.unlink, True)
        logger.info(f"Deleted local upload {key}")
