"""Tests for the Supabase Storage client and object naming.

WHY: The public URL handed back to callers is built, not returned by the
server, so the upload path and the public path have to agree exactly.

HOW: httpx.MockTransport records each request and answers with a scripted
response; no network access.
"""

from __future__ import annotations

import asyncio

import httpx
import pytest

from clip_worker.api.storage import StorageClient, StorageError, build_object_name


class TestBuildObjectName:

    def test_format(self):
        name = build_object_name("job-42", "3f2a1c9e", now_ms=1739959200000)
        assert name == "cuts/job-42_1739959200000_3f2a1.mp4"

    def test_custom_prefix(self):
        assert build_object_name("a", "bcdefg", prefix="clips", now_ms=1).startswith("clips/a_1_")

    def test_unsafe_characters_replaced(self):
        name = build_object_name("../etc/passwd x", "abcdef", now_ms=5)
        assert name == "cuts/___etc_passwd_x_5_abcde.mp4"

    def test_empty_job_id(self):
        assert build_object_name("", "abcdef", now_ms=5) == "cuts/job_5_abcde.mp4"

    def test_unique_per_execution(self):
        assert build_object_name("j", "aaaaa1", now_ms=1) != build_object_name("j", "bbbbb1", now_ms=1)


class TestStorageClient:

    def _client(self, handler):
        return StorageClient(
            "https://proj.supabase.co/",
            "service-key",
            bucket="videos",
            transport=httpx.MockTransport(handler),
        )

    def test_upload_returns_public_url(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json={"Key": "videos/cuts/a.mp4"})

        async def run():
            async with self._client(handler) as storage:
                return await storage.upload("cuts/a.mp4", b"clip")

        url = asyncio.run(run())
        assert url == "https://proj.supabase.co/storage/v1/object/public/videos/cuts/a.mp4"

        request = seen[0]
        assert request.method == "POST"
        assert request.url.path == "/storage/v1/object/videos/cuts/a.mp4"
        assert request.headers["Authorization"] == "Bearer service-key"
        assert request.headers["apikey"] == "service-key"
        assert request.headers["x-upsert"] == "true"
        assert request.headers["Content-Type"] == "video/mp4"
        assert request.content == b"clip"

    def test_error_response_raises(self):
        def handler(request):
            return httpx.Response(403, text="new row violates row-level security policy")

        async def run():
            async with self._client(handler) as storage:
                await storage.upload("cuts/a.mp4", b"clip")

        with pytest.raises(StorageError) as excinfo:
            asyncio.run(run())
        assert excinfo.value.status_code == 403
        assert "row-level security" in excinfo.value.message

    def test_requires_context_manager(self):
        storage = StorageClient("https://proj.supabase.co", "k")
        with pytest.raises(RuntimeError):
            asyncio.run(storage.upload("cuts/a.mp4", b"x"))

    def test_public_url_quotes_name(self):
        storage = StorageClient("https://proj.supabase.co", "k", bucket="media")
        assert storage.public_url("cuts/a b.mp4") == (
            "https://proj.supabase.co/storage/v1/object/public/media/cuts/a%20b.mp4"
        )
