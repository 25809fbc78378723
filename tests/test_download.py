"""Tests for the streaming source download.

HOW: httpx.MockTransport serves the body; files land in tmp_path.
"""

from __future__ import annotations

import asyncio

import httpx
import pytest

from clip_worker.api.download import DownloadError, download_media

URL = "https://cdn.example.com/source.mp4"


def _transport(handler):
    return httpx.MockTransport(handler)


class TestDownloadMedia:

    def test_writes_body_and_reports_fraction(self, tmp_path):
        body = b"v" * 3000
        fractions = []
        dest = tmp_path / "source"

        def handler(request):
            return httpx.Response(200, content=body)

        written = asyncio.run(download_media(
            URL, dest, on_fraction=fractions.append, transport=_transport(handler)
        ))
        assert written == 3000
        assert dest.read_bytes() == body
        assert fractions[-1] == 1.0
        assert all(0.0 <= f <= 1.0 for f in fractions)

    def test_no_fraction_without_length(self, tmp_path):
        fractions = []

        async def stream():
            yield b"abc"
            yield b"def"

        def handler(request):
            return httpx.Response(200, content=stream())

        asyncio.run(download_media(
            URL, tmp_path / "source", on_fraction=fractions.append, transport=_transport(handler)
        ))
        assert fractions == []
        assert (tmp_path / "source").read_bytes() == b"abcdef"

    def test_follows_redirects(self, tmp_path):
        def handler(request):
            if request.url.path == "/source.mp4":
                return httpx.Response(302, headers={"Location": "https://cdn.example.com/real.mp4"})
            return httpx.Response(200, content=b"real")

        asyncio.run(download_media(URL, tmp_path / "source", transport=_transport(handler)))
        assert (tmp_path / "source").read_bytes() == b"real"

    def test_http_error_status(self, tmp_path):
        def handler(request):
            return httpx.Response(404)

        dest = tmp_path / "source"
        with pytest.raises(DownloadError) as excinfo:
            asyncio.run(download_media(URL, dest, transport=_transport(handler)))
        assert "HTTP 404" in str(excinfo.value)
        assert excinfo.value.url == URL
        assert not dest.exists()

    def test_transport_error_wrapped(self, tmp_path):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        dest = tmp_path / "source"
        with pytest.raises(DownloadError):
            asyncio.run(download_media(URL, dest, transport=_transport(handler)))
        assert not dest.exists()
