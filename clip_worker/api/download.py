"""Streaming media download for the source video.

WHY: Source videos are hundreds of megabytes. Reading them into memory would
limit how many requests one worker can run; streaming to disk keeps memory
flat and lets the pipeline report download progress.

HOW: httpx.AsyncClient.stream() with redirects followed, written chunk by
chunk to the destination path. When the server sends Content-Length, the
byte fraction is passed to on_fraction after every chunk.

RULES:
- Non-2xx responses raise DownloadError before anything is written
- A partially written file is removed when the download fails
- on_fraction receives values in [0, 1]; it is never called without a
  known Content-Length
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from pathlib import Path
from typing import Optional

import httpx

logger = logging.getLogger(__name__)

_CHUNK_BYTES = 1024 * 1024


class DownloadError(Exception):
    """Raised when the source media cannot be fetched."""

    def __init__(self, url: str, message: str) -> None:
        self.url = url
        self.message = message
        super().__init__(f"Download failed for {url}: {message}")


async def download_media(
    url: str,
    dest: Path,
    on_fraction: Optional[Callable[[float], None]] = None,
    timeout_s: float = 300.0,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> int:
    """Stream url to dest and return the number of bytes written.

    Raises:
        DownloadError: On HTTP errors or non-2xx responses.
    """
    dest = Path(dest)
    written = 0
    try:
        async with httpx.AsyncClient(
            timeout=httpx.Timeout(timeout_s, connect=30.0),
            follow_redirects=True,
            transport=transport,
        ) as client:
            async with client.stream("GET", url) as resp:
                if resp.status_code < 200 or resp.status_code >= 300:
                    raise DownloadError(url, "HTTP {} {}".format(
                        resp.status_code, resp.reason_phrase
                    ))
                total = int(resp.headers.get("Content-Length") or 0)
                with open(dest, "wb") as f:
                    async for chunk in resp.aiter_bytes(_CHUNK_BYTES):
                        f.write(chunk)
                        written += len(chunk)
                        if total and on_fraction is not None:
                            on_fraction(min(1.0, written / total))
    except httpx.HTTPError as exc:
        if dest.exists():
            dest.unlink()
        raise DownloadError(url, str(exc)) from exc
    except DownloadError:
        if dest.exists():
            dest.unlink()
        raise

    logger.info("Downloaded %s (%d bytes)", url, written)
    return written
