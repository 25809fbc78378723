"""Pydantic request/response models for the HTTP API.

WHY: The endpoints need typed schemas for request validation, response
serialization and the generated OpenAPI docs. The clip contract predates
this service and uses camelCase keys (videoUrl, startTime, jobId), so every
model serializes by camelCase alias while Python code uses snake_case.

HOW: A shared _CamelModel base sets the alias generator. Enums for the
strategy and render style come from the core so the accepted values are
exactly the ones the pipeline understands.

RULES:
- All fields use Field(description=...) for OpenAPI documentation
- startTime accepts a number or a numeric string
- Words accept "word" or "text" for the token text
- Python 3.9+ compatible (no PEP 604 unions, use Optional from typing)
"""

from __future__ import annotations

from enum import Enum
from typing import List, Optional, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from clip_worker.core.boundary import CutStrategy
from clip_worker.render.plan import RenderStyle


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class CaptionFormat(str, Enum):
    """Caption track flavours; values match formatters.FORMATTERS keys."""

    srt = "srt"
    karaoke = "karaoke"
    none = "none"


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class WordIn(_CamelModel):
    """One timed word of the source transcript (seconds)."""

    start: float = Field(description="Word start in source seconds.")
    end: float = Field(description="Word end in source seconds.")
    word: str = Field(
        validation_alias=AliasChoices("word", "text"),
        description="Spoken text of the word.",
    )


class ProcessVideoRequest(_CamelModel):
    """A clip to cut from a remote video.

    RULES:
    - start_time/duration are the rough window; the strategy refines it
    - strategy defaults to loose, the historical behavior of this endpoint
    """

    video_url: str = Field(description="HTTP(S) URL of the source video.")
    start_time: float = Field(description="Requested start in seconds (number or string).")
    duration: float = Field(ge=0, description="Requested duration in seconds.")
    job_id: str = Field(description="Caller's job identifier, used in the object name.")
    words: List[WordIn] = Field(
        default_factory=list,
        description="Word timeline of the source, used for snapping and captions.",
    )
    strategy: CutStrategy = Field(
        default=CutStrategy.LOOSE,
        description="Boundary strategy: word_snap, silence_snap or loose.",
    )
    render_style: RenderStyle = Field(
        default=RenderStyle.CROP,
        description="Portrait reframing: crop (center crop) or blur (blurred fill).",
    )
    caption_format: CaptionFormat = Field(
        default=CaptionFormat.srt,
        description="Caption track: srt (styled plain), karaoke (word reveal) or none.",
    )
    title: Optional[str] = Field(default=None, description="Optional title drawn at the top.")
    watermark: bool = Field(default=False, description="Stamp the configured watermark.")

    @field_validator("start_time", mode="before")
    @classmethod
    def _parse_start_time(cls, value: Union[float, int, str]) -> float:
        if isinstance(value, str):
            return float(value.strip())
        return value


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class ProcessVideoResponse(_CamelModel):
    """Result of a synchronous clip request.

    RULES:
    - success=True carries url; success=False carries error
    """

    success: bool = Field(description="Whether the clip was published.")
    url: Optional[str] = Field(default=None, description="Public URL of the clip.")
    error: Optional[str] = Field(default=None, description="Error message on failure.")

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        json_schema_extra={"examples": [{
            "success": True,
            "url": "https://example.supabase.co/storage/v1/object/public/videos/cuts/job-42_1739959200000_3f2a1.mp4",
        }]},
    )


class JobCreatedResponse(_CamelModel):
    """Returned when a background clip job is accepted."""

    id: str = Field(description="Job identifier for polling.")
    status: str = Field(description="Initial job status (always 'pending').")
    job_id: str = Field(description="Caller's job identifier.")


class JobResponse(_CamelModel):
    """Background clip job status.

    RULES:
    - progress is a global percentage that only moves forward
    - url is only set when status is 'completed'
    - error is only set when status is 'failed'
    """

    id: str = Field(description="Job identifier.")
    job_id: str = Field(description="Caller's job identifier.")
    status: str = Field(description="Current job status.")
    progress: float = Field(description="Overall progress percentage (0-100).")
    stage: Optional[str] = Field(default=None, description="Progress stage last reported.")
    created_at: float = Field(description="Job creation timestamp (Unix epoch seconds).")
    url: Optional[str] = Field(default=None, description="Public URL once completed.")
    error: Optional[str] = Field(default=None, description="Error message when failed.")


class ErrorResponse(BaseModel):
    """Standard error response body for non-clip endpoints."""

    detail: str = Field(description="Human-readable error description.")


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = Field(description="Service health status.", json_schema_extra={"example": "ok"})
    version: str = Field(description="API version string.", json_schema_extra={"example": "0.1.0"})
