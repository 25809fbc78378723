"""Async client for publishing rendered clips to Supabase Storage.

WHY: A finished clip has to end up at a public URL the caller can embed.
The worker only needs two operations from object storage (upload an object
and know its public URL), so a small client over the Storage REST API is
enough and keeps the HTTP details out of the pipeline.

HOW: Wraps httpx.AsyncClient with the service key as Bearer token and
``apikey`` header. upload() POSTs the bytes to
``/storage/v1/object/{bucket}/{name}`` with ``x-upsert: true``; public_url()
builds ``/storage/v1/object/public/{bucket}/{name}``. build_object_name()
produces the unique object key for one render.

RULES:
- Always use the async context manager (async with StorageClient(...) as s:)
- Non-2xx responses raise StorageError with the status and response text
- The service key comes from config.load_storage_credentials(), never a literal
- Object names are request-scoped: job id, millisecond timestamp, execution id
"""

from __future__ import annotations

import logging
import time
from typing import Optional
from urllib.parse import quote

import httpx

logger = logging.getLogger(__name__)


class StorageError(Exception):
    """Raised when the storage API rejects an upload.

    RULES:
    - Always include status_code and message
    """

    def __init__(self, status_code: int, message: str) -> None:
        self.status_code = status_code
        self.message = message
        super().__init__(f"Storage error {status_code}: {message}")


def build_object_name(
    job_id: str,
    execution_id: str,
    prefix: str = "cuts",
    now_ms: Optional[int] = None,
    extension: str = ".mp4",
) -> str:
    """Return the storage key for one render: ``cuts/{job}_{ms}_{exec5}.mp4``."""
    if now_ms is None:
        now_ms = int(time.time() * 1000)
    safe_job = "".join(c if c.isalnum() or c in "-_" else "_" for c in job_id) or "job"
    return "{}/{}_{}_{}{}".format(prefix, safe_job, now_ms, execution_id[:5], extension)


class StorageClient:
    """Async client for the Supabase Storage object API.

    RULES:
    - Use as: async with StorageClient(url, key, bucket) as storage: ...
    - transport is for tests (httpx.MockTransport); production leaves it None
    """

    def __init__(
        self,
        base_url: str,
        service_key: str,
        bucket: str = "videos",
        timeout_s: float = 300.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._service_key = service_key
        self.bucket = bucket
        self._timeout_s = timeout_s
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def __aenter__(self) -> StorageClient:
        self._client = httpx.AsyncClient(
            base_url=self._base_url,
            headers={
                "Authorization": f"Bearer {self._service_key}",
                "apikey": self._service_key,
            },
            timeout=httpx.Timeout(self._timeout_s, connect=30.0),
            transport=self._transport,
        )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:  # noqa: ANN001
        if self._client:
            await self._client.aclose()
            self._client = None

    def _ensure_client(self) -> httpx.AsyncClient:
        if self._client is None:
            raise RuntimeError(
                "StorageClient must be used as an async context manager: "
                "async with StorageClient(...) as storage: ..."
            )
        return self._client

    def public_url(self, object_name: str) -> str:
        """Public URL of an object in a public bucket."""
        return "{}/storage/v1/object/public/{}/{}".format(
            self._base_url, self.bucket, quote(object_name)
        )

    async def upload(
        self,
        object_name: str,
        data: bytes,
        content_type: str = "video/mp4",
    ) -> str:
        """Upload (upsert) an object and return its public URL.

        Raises:
            StorageError: On any non-2xx response.
        """
        client = self._ensure_client()
        resp = await client.post(
            "/storage/v1/object/{}/{}".format(self.bucket, quote(object_name)),
            content=data,
            headers={"Content-Type": content_type, "x-upsert": "true"},
        )
        if resp.status_code not in (200, 201):
            raise StorageError(resp.status_code, resp.text)

        logger.info("Uploaded %s (%d bytes) to bucket %s", object_name, len(data), self.bucket)
        return self.public_url(object_name)
