"""Pipeline orchestrator: one clip request from source URL to public URL.

WHY: The core modules are pure and the outer collaborators (download,
ffmpeg, storage) each do one thing. Something has to run them in order,
keep the request's files in one place, publish progress, and guarantee
cleanup whatever happens. Both the HTTP API and the CLI go through here so
they render identical clips.

HOW: process_clip() runs the stages sequentially:
  download: stream the source into a request-scoped temp directory
  analyze: silence pass around both boundaries (silence-snap only)
  resolve: BoundaryResolver picks and validates the cut window
  caption: synthesize cues, serialize them, write the caption file
  render: build the RenderPlan and run ffmpeg under the tracker
  publish: upload to storage and return the public URL
render_local() runs the middle stages against a local file for the CLI.

RULES:
- One ProgressTracker and one temp directory per request, keyed by a
  UUID execution id; the directory is removed on every exit path
- Requests that cannot be satisfied fail before the download when the
  strategy does not need the media (degenerate windows, missing watermark)
- A cue-less caption track is not burned in (nothing to show)
- Errors propagate unchanged; the caller decides the response
"""

from __future__ import annotations

import enum
import logging
import shutil
import tempfile
import uuid
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Union

from clip_worker.api.download import download_media
from clip_worker.api.storage import StorageClient, build_object_name
from clip_worker.config import Settings, load_storage_credentials
from clip_worker.core.boundary import CutStrategy, resolve_cut
from clip_worker.core.captions import synthesize_cues
from clip_worker.core.ir import CaptionCue, CutWindow, SilenceInterval, Word
from clip_worker.core.progress import ProgressEvent, ProgressTracker, StageBounds
from clip_worker.formatters import FORMATTERS
from clip_worker.render.engine import analyze_silence, prescale_watermark, run_engine
from clip_worker.render.plan import (
    CaptionTrackRef,
    RenderPlan,
    RenderStyle,
    WatermarkRef,
    build_render_plan,
)

logger = logging.getLogger(__name__)

StatusCallback = Callable[[str], None]
ProgressCallback = Callable[[ProgressEvent], None]

# Local renders have no download or publish stage
LOCAL_STAGES = (
    StageBounds("captions", 0.0, 5.0),
    StageBounds("transcode", 5.0, 100.0),
)


class PipelineStage(str, enum.Enum):
    """Externally visible pipeline stages (reported through on_status)."""

    DOWNLOADING = "downloading"
    ANALYZING = "analyzing"
    CAPTIONING = "captioning"
    RENDERING = "rendering"
    PUBLISHING = "publishing"


class ClipRequestError(ValueError):
    """Raised when a request is well-formed but cannot be rendered as asked."""


@dataclass
class ClipRequest:
    """One clip to cut, caption and publish.

    RULES:
    - start/duration are the rough window in source seconds
    - words may be empty; captions are then omitted
    - caption_format is a FORMATTERS key or None for no captions
    - watermark=True uses Settings.watermark_path
    """

    video_url: str
    start: float
    duration: float
    job_id: str
    words: List[Word] = field(default_factory=list)
    strategy: CutStrategy = CutStrategy.LOOSE
    render_style: RenderStyle = RenderStyle.CROP
    caption_format: Optional[str] = "srt"
    title: Optional[str] = None
    watermark: bool = False

    @property
    def end(self) -> float:
        return self.start + self.duration


@dataclass(frozen=True)
class PreparedRender:
    """Everything decided before ffmpeg runs."""

    window: CutWindow
    cues: List[CaptionCue]
    plan: RenderPlan
    args: List[str]
    caption_path: Optional[Path] = None


@dataclass(frozen=True)
class ClipResult:
    """Outcome of a successful process_clip() call."""

    url: str
    object_name: str
    window: CutWindow
    execution_id: str
    cue_count: int


def _validate_request(request: ClipRequest, settings: Settings) -> None:
    if request.caption_format is not None and request.caption_format not in FORMATTERS:
        raise ClipRequestError(
            "Unknown caption format '{}'. Available: {}".format(
                request.caption_format, ", ".join(sorted(FORMATTERS))
            )
        )
    if request.watermark and not settings.watermark_path:
        raise ClipRequestError("Watermark requested but WATERMARK_PATH is not configured")
    if request.duration < 0:
        raise ClipRequestError("Duration must not be negative")


async def _analyze_boundaries(
    source: Path, request: ClipRequest, settings: Settings
) -> List[SilenceInterval]:
    """Silence pass over a region around each requested boundary."""
    reach = settings.policy.silence_search_radius + 1.0
    intervals: List[SilenceInterval] = []
    for center in (request.start, request.end):
        region_start = max(0.0, center - reach)
        intervals.extend(await analyze_silence(
            str(source),
            region_start=region_start,
            region_duration=center + reach - region_start,
            ffmpeg_path=settings.ffmpeg_path,
        ))
    return sorted(set(intervals), key=lambda iv: (iv.start, iv.end))


async def prepare_render(
    source: Path,
    output: Path,
    request: ClipRequest,
    settings: Settings,
    caption_dir: Path,
    on_status: Optional[StatusCallback] = None,
    window: Optional[CutWindow] = None,
) -> PreparedRender:
    """Resolve the cut, write the caption file and build the engine arguments.

    window may be passed in when it was already resolved (strategies that do
    not look at the media are resolved before the download).
    """
    if window is None:
        silences: Optional[List[SilenceInterval]] = None
        if request.strategy is CutStrategy.SILENCE_SNAP:
            if on_status:
                on_status(PipelineStage.ANALYZING.value)
            silences = await _analyze_boundaries(source, request, settings)
        window = resolve_cut(
            request.start, request.end, request.words, silences,
            request.strategy, settings.policy,
        )

    if on_status:
        on_status(PipelineStage.CAPTIONING.value)

    cues: List[CaptionCue] = []
    captions: Optional[CaptionTrackRef] = None
    caption_path: Optional[Path] = None
    if request.caption_format is not None:
        cues = synthesize_cues(
            request.words, window.cut_start, settings.caption_style, window.cut_end
        )
        if cues:
            formatter = FORMATTERS[request.caption_format](settings.caption_style)
            rendered = formatter.format(cues)
            caption_path = caption_dir / "{}{}".format(output.stem, rendered.suffix)
            caption_path.write_text(rendered.content, encoding="utf-8")
            captions = CaptionTrackRef(
                path=str(caption_path),
                force_style=None if formatter.embeds_style else settings.caption_style.force_style(),
            )
        else:
            logger.info("No words inside the cut; rendering without captions")

    watermark: Optional[WatermarkRef] = None
    if request.watermark and settings.watermark_path:
        watermark = await prescale_watermark(
            settings.watermark_path,
            settings.watermark_cache_dir,
            settings.render.watermark_width,
            ffmpeg_path=settings.ffmpeg_path,
        )

    plan = build_render_plan(
        request.render_style,
        window,
        settings.render,
        captions=captions,
        title=request.title,
        watermark=watermark,
        policy=settings.policy,
    )
    args = plan.engine_args(str(source), str(output), window, settings.encode)
    return PreparedRender(
        window=window, cues=cues, plan=plan, args=args, caption_path=caption_path
    )


async def _transcode(
    prepared: PreparedRender,
    settings: Settings,
    tracker: ProgressTracker,
    publish: ProgressCallback,
    on_status: Optional[StatusCallback],
) -> None:
    if on_status:
        on_status(PipelineStage.RENDERING.value)
    tracker.begin_stage("transcode", total_seconds=prepared.window.duration)
    await run_engine(
        prepared.args,
        ffmpeg_path=settings.ffmpeg_path,
        timeout_s=settings.engine_timeout_s,
        tracker=tracker,
        on_event=publish,
    )
    for event in tracker.report_fraction(1.0):
        publish(event)


def _publisher(on_progress: Optional[ProgressCallback]) -> ProgressCallback:
    def publish(event: ProgressEvent) -> None:
        logger.debug("Progress %s %.2f%%", event.stage, event.percent)
        if on_progress is not None:
            on_progress(event)

    return publish


async def process_clip(
    request: ClipRequest,
    settings: Optional[Settings] = None,
    storage: Optional[StorageClient] = None,
    on_progress: Optional[ProgressCallback] = None,
    on_status: Optional[StatusCallback] = None,
) -> ClipResult:
    """Download, cut, caption, render and publish one clip.

    Args:
        request: The clip to produce.
        settings: Service settings; defaults to Settings().
        storage: An already-entered StorageClient. When None, one is opened
            from load_storage_credentials() for the publish step.
        on_progress: Receives throttled ProgressEvents.
        on_status: Receives PipelineStage values as stages begin.

    Returns:
        ClipResult with the public URL of the published clip.

    Raises:
        ClipRequestError: If the request asks for something unavailable.
        BoundaryDegenerateError: If no valid cut window exists.
        DownloadError, EngineFailure, StorageError: From the stages.
        ValueError: If storage credentials are missing.
    """
    settings = settings or Settings()
    _validate_request(request, settings)
    credentials = load_storage_credentials() if storage is None else None

    # Strategies that ignore the media fail fast, before the download
    window: Optional[CutWindow] = None
    if request.strategy is not CutStrategy.SILENCE_SNAP:
        window = resolve_cut(
            request.start, request.end, request.words, None,
            request.strategy, settings.policy,
        )

    execution_id = uuid.uuid4().hex
    work_dir = Path(tempfile.mkdtemp(prefix="clip_{}_".format(execution_id[:8])))
    tracker = ProgressTracker()
    publish = _publisher(on_progress)
    logger.info("Job %s: execution %s started", request.job_id, execution_id)

    try:
        source = work_dir / "source"
        output = work_dir / "output.mp4"

        if on_status:
            on_status(PipelineStage.DOWNLOADING.value)
        tracker.begin_stage("download")

        def on_fraction(fraction: float) -> None:
            for event in tracker.report_fraction(fraction):
                publish(event)

        await download_media(
            request.video_url, source, on_fraction=on_fraction,
            timeout_s=settings.download_timeout_s,
        )

        tracker.begin_stage("captions")
        prepared = await prepare_render(
            source, output, request, settings, work_dir,
            on_status=on_status, window=window,
        )
        for event in tracker.report_fraction(1.0):
            publish(event)

        await _transcode(prepared, settings, tracker, publish, on_status)

        if on_status:
            on_status(PipelineStage.PUBLISHING.value)
        tracker.begin_stage("publish")
        object_name = build_object_name(
            request.job_id, execution_id, prefix=settings.storage_prefix
        )
        data = output.read_bytes()
        if storage is not None:
            url = await storage.upload(object_name, data)
        else:
            base_url, key = credentials
            async with StorageClient(base_url, key, settings.storage_bucket) as client:
                url = await client.upload(object_name, data)
        for event in tracker.report_fraction(1.0):
            publish(event)

        tracker.finish(True)
        logger.info("Job %s: published %s", request.job_id, url)
        return ClipResult(
            url=url,
            object_name=object_name,
            window=prepared.window,
            execution_id=execution_id,
            cue_count=len(prepared.cues),
        )
    except Exception:
        tracker.finish(False)
        raise
    finally:
        shutil.rmtree(work_dir, ignore_errors=True)


async def render_local(
    input_path: Union[str, Path],
    output_path: Union[str, Path],
    request: ClipRequest,
    settings: Optional[Settings] = None,
    on_progress: Optional[ProgressCallback] = None,
    on_status: Optional[StatusCallback] = None,
    dry_run: bool = False,
) -> PreparedRender:
    """Render a clip from a local file (no download, no publish).

    request.video_url and request.job_id are not used. With dry_run the
    engine is not started and the caption file is kept next to the output
    so the returned arguments stay runnable.
    """
    settings = settings or Settings()
    _validate_request(request, settings)
    source = Path(input_path)
    output = Path(output_path)

    tracker = ProgressTracker(stages=LOCAL_STAGES)
    publish = _publisher(on_progress)

    caption_dir = output.parent if dry_run else Path(tempfile.mkdtemp(prefix="clip_local_"))
    try:
        tracker.begin_stage("captions")
        prepared = await prepare_render(
            source, output, request, settings, caption_dir, on_status=on_status
        )
        if dry_run:
            return prepared
        await _transcode(prepared, settings, tracker, publish, on_status)
        tracker.finish(True)
        return prepared
    except Exception:
        tracker.finish(False)
        raise
    finally:
        if not dry_run:
            shutil.rmtree(caption_dir, ignore_errors=True)
