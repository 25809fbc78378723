"""FastAPI application exposing the clip pipeline over HTTP.

WHY: Upstream automation (the editor backend, n8n flows, curl) needs to
turn a transcript window into a published vertical clip. The historical
contract is a single synchronous POST /process-video; long renders are
better served by submitting a job and polling it, so both exist.

HOW: POST /process-video validates the body, awaits process_clip() and
answers {success, url}. POST /jobs stores a job, answers 202 with its id
and runs the same pipeline in a BackgroundTasks callable that publishes
status and progress into the JobStore. A lifespan task expires finished
jobs every five minutes.

RULES:
- Clip failures answer {success: false, error}: 422 when the request
  cannot be cut or rendered as asked, 500 for everything else
- The job store is a module-level singleton
- Background jobs never raise; failures are recorded on the job
- Python 3.9+ compatible (no match/case, no PEP 604 unions)
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import List, Optional

from fastapi import BackgroundTasks, FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response

from clip_worker import __version__
from clip_worker.config import CORS_ORIGIN_REGEX, PORT, load_settings
from clip_worker.core.boundary import BoundaryDegenerateError
from clip_worker.core.ir import words_from_dicts
from clip_worker.core.progress import ProgressEvent
from clip_worker.pipeline import ClipRequest, ClipRequestError, process_clip
from clip_worker.server.jobs import Job, JobStatus, JobStore
from clip_worker.server.models import (
    CaptionFormat,
    ErrorResponse,
    HealthResponse,
    JobCreatedResponse,
    JobResponse,
    ProcessVideoRequest,
    ProcessVideoResponse,
)

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# App and store setup
# ---------------------------------------------------------------------------

job_store = JobStore()


async def _periodic_cleanup() -> None:
    """Run job cleanup every 5 minutes."""
    while True:
        await asyncio.sleep(300)
        job_store.cleanup_expired()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Start periodic cleanup on startup, cancel on shutdown."""
    task = asyncio.create_task(_periodic_cleanup())
    yield
    task.cancel()
    try:
        await task
    except asyncio.CancelledError:
        pass


app = FastAPI(
    lifespan=lifespan,
    title="Clip Worker API",
    description=(
        "Cuts a spoken-word video into a captioned 9:16 clip: resolves "
        "audio-safe boundaries from the word timeline, burns in captions, "
        "renders with ffmpeg and publishes to object storage."
    ),
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
)

# Browser front ends call the API directly; the origin is reflected back
app.add_middleware(
    CORSMiddleware,
    allow_origin_regex=CORS_ORIGIN_REGEX,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _to_clip_request(body: ProcessVideoRequest) -> ClipRequest:
    words = words_from_dicts(
        {"start": w.start, "end": w.end, "word": w.word} for w in body.words
    )
    caption_format = None if body.caption_format is CaptionFormat.none else body.caption_format.value
    return ClipRequest(
        video_url=body.video_url,
        start=body.start_time,
        duration=body.duration,
        job_id=body.job_id,
        words=words,
        strategy=body.strategy,
        render_style=body.render_style,
        caption_format=caption_format,
        title=body.title,
        watermark=body.watermark,
    )


def _job_to_response(job: Job) -> JobResponse:
    return JobResponse(
        id=job.id,
        job_id=job.job_ref,
        status=job.status.value,
        progress=job.progress_percent,
        stage=job.progress_stage,
        created_at=job.created_at,
        url=job.url,
        error=job.error,
    )


def _failure(status_code: int, message: str) -> JSONResponse:
    body = ProcessVideoResponse(success=False, error=message)
    return JSONResponse(
        status_code=status_code,
        content=body.model_dump(by_alias=True, exclude_none=True),
    )


async def _run_clip_job(job_id: str, request: ClipRequest, store: JobStore) -> None:
    """Run the pipeline for a stored job, recording status and progress.

    RULES:
    - Catches all exceptions and marks the job failed
    """

    def on_status(stage: str) -> None:
        store.update_job(job_id, status=JobStatus(stage))

    def on_progress(event: ProgressEvent) -> None:
        store.update_job(job_id, progress_percent=event.percent, progress_stage=event.stage)

    try:
        result = await process_clip(
            request,
            settings=load_settings(),
            on_progress=on_progress,
            on_status=on_status,
        )
    except Exception as exc:
        logger.exception("Clip pipeline failed for job %s", job_id)
        store.update_job(job_id, status=JobStatus.FAILED, error=str(exc))
        return

    store.update_job(job_id, status=JobStatus.COMPLETED, url=result.url)


def _run_clip_job_sync(job_id: str, request: ClipRequest, store: JobStore) -> None:
    """Synchronous wrapper so BackgroundTasks runs the job in its threadpool."""
    asyncio.run(_run_clip_job(job_id, request, store))


# ---------------------------------------------------------------------------
# Endpoints: Clips
# ---------------------------------------------------------------------------


@app.post(
    "/process-video",
    response_model=ProcessVideoResponse,
    response_model_exclude_none=True,
    tags=["clips"],
    summary="Cut, caption, render and publish a clip",
    description=(
        "Synchronous clip render. Returns the public URL of the published "
        "clip once the whole pipeline has finished."
    ),
    responses={
        422: {"model": ProcessVideoResponse, "description": "Window cannot be cut as requested"},
        500: {"model": ProcessVideoResponse, "description": "Download, render or publish failed"},
    },
)
async def process_video(body: ProcessVideoRequest):
    request = _to_clip_request(body)
    try:
        result = await process_clip(request, settings=load_settings())
    except (BoundaryDegenerateError, ClipRequestError) as exc:
        logger.warning("Rejected clip for job %s: %s", body.job_id, exc)
        return _failure(422, str(exc))
    except Exception as exc:
        logger.exception("Clip failed for job %s", body.job_id)
        return _failure(500, str(exc))
    return ProcessVideoResponse(success=True, url=result.url)


# ---------------------------------------------------------------------------
# Endpoints: Jobs
# ---------------------------------------------------------------------------


@app.post(
    "/jobs",
    response_model=JobCreatedResponse,
    status_code=202,
    tags=["jobs"],
    summary="Submit a background clip job",
    description=(
        "Accepts the same body as /process-video and returns a job id "
        "immediately. Poll GET /jobs/{id} for status, progress and the URL."
    ),
    responses={
        429: {"model": ErrorResponse, "description": "Too many stored jobs"},
    },
)
async def create_job(body: ProcessVideoRequest, background_tasks: BackgroundTasks) -> JobCreatedResponse:
    request = _to_clip_request(body)
    try:
        job = job_store.create_job(
            job_ref=body.job_id,
            config=body.model_dump(mode="json", exclude={"words"}),
        )
    except ValueError as exc:
        raise HTTPException(status_code=429, detail=str(exc))

    background_tasks.add_task(_run_clip_job_sync, job.id, request, job_store)
    return JobCreatedResponse(id=job.id, status=job.status.value, job_id=job.job_ref)


@app.get(
    "/jobs",
    response_model=List[JobResponse],
    tags=["jobs"],
    summary="List clip jobs",
    description="All stored jobs, oldest first. Finished jobs expire after the TTL.",
)
async def list_jobs() -> List[JobResponse]:
    return [_job_to_response(job) for job in job_store.list_jobs()]


@app.get(
    "/jobs/{job_id}",
    response_model=JobResponse,
    tags=["jobs"],
    summary="Get clip job status",
    responses={404: {"model": ErrorResponse, "description": "Job not found"}},
)
async def get_job(job_id: str) -> JobResponse:
    job = job_store.get_job(job_id)
    if job is None:
        raise HTTPException(status_code=404, detail="Job not found: {}".format(job_id))
    return _job_to_response(job)


@app.delete(
    "/jobs/{job_id}",
    status_code=204,
    tags=["jobs"],
    summary="Forget a clip job",
    description="Removes the job record. A running render is not interrupted.",
    responses={404: {"model": ErrorResponse, "description": "Job not found"}},
)
async def delete_job(job_id: str) -> Response:
    if not job_store.delete_job(job_id):
        raise HTTPException(status_code=404, detail="Job not found: {}".format(job_id))
    return Response(status_code=204)


# ---------------------------------------------------------------------------
# Endpoints: Health
# ---------------------------------------------------------------------------


@app.get(
    "/health",
    response_model=HealthResponse,
    tags=["health"],
    summary="Health check",
    description="Liveness check for load balancers and orchestrators.",
)
async def health_check() -> HealthResponse:
    return HealthResponse(status="ok", version=__version__)


def run_api(port: Optional[int] = None):
    """Entry point for the clip-worker-api console script."""
    import uvicorn

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    uvicorn.run(app, host="0.0.0.0", port=port or PORT)
