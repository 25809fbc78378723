"""ffmpeg process runner: transcode, silence analysis, watermark pre-scaling.

WHY: The render plan is only text; something has to start ffmpeg, watch its
stderr for progress, enforce a time budget, and turn a non-zero exit into an
error a client can read. The same runner serves the optional silence-analysis
pass and the one-off watermark pre-scale.

HOW: run_engine() starts ffmpeg with asyncio.create_subprocess_exec, reads
stderr in chunks through an incremental UTF-8 decoder, forwards every chunk
to an optional ProgressTracker (publishing the events it returns), and keeps
a bounded tail of the text. asyncio.wait_for bounds the whole run; on expiry
the process is killed.

RULES:
- Exit code 0 is success; anything else raises EngineFailure with at most
  STDERR_TAIL_CHARS of trailing diagnostics, never the full log
- A timeout kills the process and raises EngineTimeoutError
- The silence pass is optional evidence: any failure yields an empty map
- Watermark pre-scaling is cached on disk and written atomically
"""

from __future__ import annotations

import asyncio
import codecs
import logging
import os
import shlex
import tempfile
from collections.abc import Callable
from pathlib import Path
from typing import List, Optional, Sequence

from clip_worker.core.ir import SilenceInterval
from clip_worker.core.progress import ProgressEvent, ProgressTracker
from clip_worker.core.silence import parse_silence_map, silence_detect_filter
from clip_worker.render.plan import WatermarkRef

logger = logging.getLogger(__name__)

STDERR_TAIL_CHARS = 1000
_READ_CHUNK_BYTES = 4096


class EngineFailure(RuntimeError):
    """Raised when ffmpeg cannot be started or exits non-zero.

    RULES:
    - returncode is None when the process never started or was killed
    - stderr_tail holds at most STDERR_TAIL_CHARS characters
    """

    def __init__(self, returncode: Optional[int], stderr_tail: str) -> None:
        self.returncode = returncode
        self.stderr_tail = stderr_tail
        super().__init__(
            "ffmpeg failed (exit code {}): {}".format(returncode, stderr_tail.strip())
        )


class EngineTimeoutError(EngineFailure):
    """Raised when ffmpeg exceeds its time budget and is killed."""


async def run_engine(
    args: Sequence[str],
    ffmpeg_path: str = "ffmpeg",
    timeout_s: float = 600.0,
    tracker: Optional[ProgressTracker] = None,
    on_event: Optional[Callable[[ProgressEvent], None]] = None,
    capture_all: bool = False,
) -> str:
    """Run ffmpeg to completion and return its diagnostic output.

    Args:
        args: Arguments after the executable (see RenderPlan.engine_args).
        ffmpeg_path: Executable name or path.
        timeout_s: Wall-clock budget for the whole run.
        tracker: Optional tracker fed with every stderr chunk.
        on_event: Called with each ProgressEvent the tracker emits.
        capture_all: Return the full stderr instead of its tail.

    Returns:
        The stderr tail (or full stderr when capture_all is set).

    Raises:
        EngineFailure: On start failure or non-zero exit.
        EngineTimeoutError: When timeout_s elapses first.
    """
    cmd = [ffmpeg_path] + list(args)
    logger.debug("Starting engine: %s", shlex.join(cmd))

    try:
        proc = await asyncio.create_subprocess_exec(
            *cmd,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.DEVNULL,
            stderr=asyncio.subprocess.PIPE,
        )
    except OSError as exc:
        raise EngineFailure(None, "could not start {}: {}".format(ffmpeg_path, exc)) from exc

    decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
    collected: List[str] = []
    tail = ""

    def consume(text: str) -> None:
        nonlocal tail
        if not text:
            return
        if capture_all:
            collected.append(text)
        tail = (tail + text)[-STDERR_TAIL_CHARS:]
        if tracker is not None:
            for event in tracker.feed(text):
                if on_event is not None:
                    on_event(event)

    async def pump() -> int:
        stream = proc.stderr
        if stream is None:
            return await proc.wait()
        while True:
            chunk = await stream.read(_READ_CHUNK_BYTES)
            if not chunk:
                break
            consume(decoder.decode(chunk))
        # Flush a multi-byte sequence cut off by EOF
        consume(decoder.decode(b"", final=True))
        return await proc.wait()

    try:
        returncode = await asyncio.wait_for(pump(), timeout=timeout_s)
    except asyncio.TimeoutError:
        logger.warning("Engine exceeded %.0fs budget; killing pid %s", timeout_s, proc.pid)
        proc.kill()
        await proc.wait()
        raise EngineTimeoutError(
            None, "timed out after {:.0f}s. {}".format(timeout_s, tail)[-STDERR_TAIL_CHARS:]
        )

    if returncode != 0:
        raise EngineFailure(returncode, tail)

    return "".join(collected) if capture_all else tail


async def analyze_silence(
    input_path: str,
    region_start: float = 0.0,
    region_duration: Optional[float] = None,
    ffmpeg_path: str = "ffmpeg",
    noise_db: float = -30.0,
    min_duration: float = 0.25,
    timeout_s: float = 120.0,
) -> List[SilenceInterval]:
    """Run silencedetect over a region of the input and return absolute intervals.

    WHY: Only the seconds around the requested boundaries matter, so the pass
    reads just that region instead of the whole file.

    HOW: Seeks to region_start, runs silencedetect into the null muxer,
    parses the stderr with parse_silence_map(), and shifts the relative
    timestamps back to absolute media time.

    RULES:
    - Never raises for engine or parse failures; logs and returns []
    """
    region_start = max(0.0, region_start)
    args = ["-hide_banner", "-nostats", "-ss", "{:.3f}".format(region_start)]
    if region_duration is not None:
        args.extend(["-t", "{:.3f}".format(region_duration)])
    args.extend([
        "-i", str(input_path),
        "-vn",
        "-af", silence_detect_filter(noise_db, min_duration),
        "-f", "null", "-",
    ])

    try:
        output = await run_engine(
            args, ffmpeg_path=ffmpeg_path, timeout_s=timeout_s, capture_all=True
        )
    except EngineFailure as exc:
        logger.warning("Silence analysis failed, continuing without it: %s", exc)
        return []

    relative = parse_silence_map(output, min_duration=min_duration, total_duration=region_duration)
    return [
        SilenceInterval(start=iv.start + region_start, end=iv.end + region_start)
        for iv in relative
    ]


def _cached_watermark_path(source: Path, cache_dir: Path, width: int) -> Path:
    mtime = int(source.stat().st_mtime)
    return cache_dir / "{}-{}w-{}.png".format(source.stem, width, mtime)


async def prescale_watermark(
    source: str,
    cache_dir: str,
    width: int,
    ffmpeg_path: str = "ffmpeg",
    threshold_bytes: int = 200_000,
    timeout_s: float = 60.0,
) -> WatermarkRef:
    """Return a watermark reference, pre-scaling large images once.

    WHY: Scaling a multi-megabyte logo inside every render's filter graph
    wastes time on every clip. A large image is scaled to the overlay width
    once and the copy reused until the source changes.

    HOW: Small images are returned as-is (scaled in-graph). Large ones map to
    a cache file keyed by stem, width and mtime; a missing cache file is
    produced by ffmpeg into a temp name and atomically renamed into place.

    RULES:
    - Any failure falls back to the original image with in-graph scaling
    """
    src = Path(source)
    if src.stat().st_size <= threshold_bytes:
        return WatermarkRef(path=str(src), prescaled=False)

    cache = Path(cache_dir)
    cache.mkdir(parents=True, exist_ok=True)
    target = _cached_watermark_path(src, cache, width)
    if target.exists():
        return WatermarkRef(path=str(target), prescaled=True)

    fd, tmp_name = tempfile.mkstemp(suffix=".png", dir=str(cache))
    os.close(fd)
    try:
        await run_engine(
            ["-y", "-hide_banner", "-i", str(src), "-vf", "scale={}:-1".format(width), tmp_name],
            ffmpeg_path=ffmpeg_path,
            timeout_s=timeout_s,
        )
        os.replace(tmp_name, target)
    except EngineFailure as exc:
        logger.warning("Watermark pre-scale failed, scaling in-graph: %s", exc)
        return WatermarkRef(path=str(src), prescaled=False)
    finally:
        if os.path.exists(tmp_name):
            os.unlink(tmp_name)

    logger.info("Pre-scaled watermark %s -> %s", src, target)
    return WatermarkRef(path=str(target), prescaled=True)
