"""Google Cloud Storage blob store for the training-data archive.

The ``google-cloud-storage`` client is synchronous, so every call is
pushed onto a worker thread.  Writes use ``if_generation_match=0`` so an
existing archive blob is never overwritten.
"""

from __future__ import annotations

import asyncio

import structlog
from google.api_core import exceptions as gcs_exceptions
from google.cloud import storage

from reporttuner.interfaces.blob_store import IBlobStore
from reporttuner.utils.errors import ProviderRejection, TransientIOError

logger = structlog.get_logger(logger_name=__name__)

# Errors worth another attempt; everything else from GCS is a rejection.
_TRANSIENT_ERRORS = (
    gcs_exceptions.ServiceUnavailable,
    gcs_exceptions.InternalServerError,
    gcs_exceptions.TooManyRequests,
    gcs_exceptions.GatewayTimeout,
    gcs_exceptions.RetryError,
    ConnectionError,
    TimeoutError,
)


class GCSBlobStore(IBlobStore):
    """Blob store backed by a single GCS bucket."""

    def __init__(
        self,
        bucket_name: str,
        project: str | None = None,
        client: storage.Client | None = None,
    ) -> None:
        self._bucket_name = bucket_name
        self._project = project or None
        self._client = client
        self._bucket: storage.Bucket | None = None

    def _get_bucket(self) -> storage.Bucket:
        """Lazily initialize the client and bucket reference."""
        if self._bucket is None:
            if self._client is None:
                self._client = storage.Client(project=self._project)
            self._bucket = self._client.bucket(self._bucket_name)
        return self._bucket

    async def put(self, key: str, data: bytes, content_type: str) -> None:
        def _upload() -> None:
            blob = self._get_bucket().blob(key)
            blob.upload_from_string(data, content_type=content_type, if_generation_match=0)

        try:
            await asyncio.to_thread(_upload)
        except gcs_exceptions.PreconditionFailed as exc:
            raise ProviderRejection(
                message=f"Blob {key} already exists in gs://{self._bucket_name}",
                provider_name=self.get_provider_name(),
            ) from exc
        except _TRANSIENT_ERRORS as exc:
            raise TransientIOError(
                message=f"GCS upload of {key} failed: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc
        except gcs_exceptions.GoogleAPICallError as exc:
            raise ProviderRejection(
                message=f"GCS rejected upload of {key}: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

        logger.info(
            "blob_written",
            key=key,
            bucket=self._bucket_name,
            bytes=len(data),
            content_type=content_type,
        )

    async def exists(self, key: str) -> bool:
        try:
            return await asyncio.to_thread(lambda: self._get_bucket().blob(key).exists())
        except _TRANSIENT_ERRORS as exc:
            raise TransientIOError(
                message=f"GCS exists check for {key} failed: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

    async def get(self, key: str) -> bytes | None:
        def _download() -> bytes | None:
            blob = self._get_bucket().blob(key)
            try:
                return blob.download_as_bytes()
            except gcs_exceptions.NotFound:
                return None

        try:
            return await asyncio.to_thread(_download)
        except _TRANSIENT_ERRORS as exc:
            raise TransientIOError(
                message=f"GCS download of {key} failed: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

    def get_provider_name(self) -> str:
        return "gcs_blob"
