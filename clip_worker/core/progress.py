"""Incremental progress tracking for the multi-stage clip pipeline.

WHY: A clip request runs for tens of seconds to minutes: download, caption
synthesis, an ffmpeg transcode, and an upload. Clients polling the job want
one number from 0 to 100 that only moves forward and does not spam them with
an update for every line ffmpeg prints.

HOW: Each stage owns a slice of the global 0–100 range (StageBounds). While a
stage runs, the tracker is fed raw text chunks from the engine's stderr. It
buffers partial lines, pulls the latest ``time=HH:MM:SS.ff`` marker, divides
by the stage's total duration, clamps to [0, 1] and maps the fraction into
the stage's slice. A ProgressEvent is returned only when the global value has
risen by at least ``threshold`` since the last one. feed() returns the events
instead of calling back, so tests drive it with plain strings.

RULES:
- States: IDLE → RUNNING → COMPLETED | FAILED; the caller decides the end
- Emitted percentages always lie inside the current stage's [low, high]
- Consecutive emissions differ by at least threshold and never decrease
- A chunk with no recognizable marker is ignored, never an error
- One tracker per request; it is not safe to share between streams
"""

from __future__ import annotations

import enum
import re
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Union

_TIMECODE = r"(\d+):(\d{2}):(\d{2}(?:\.\d+)?)"
_TIME_RE = re.compile(r"time=\s*" + _TIMECODE)
_TIMECODE_RE = re.compile(r"^\s*" + _TIMECODE + r"\s*$")

# Longest partial line kept between chunks. ffmpeg progress lines are ~120
# characters; anything longer without a line break is not a progress line.
_MAX_PENDING_CHARS = 4096


class TrackerState(str, enum.Enum):
    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass(frozen=True)
class StageBounds:
    """A named pipeline stage and its slice of the global percentage."""

    name: str
    low: float
    high: float


@dataclass(frozen=True)
class ProgressEvent:
    """One throttled progress update."""

    stage: str
    percent: float


DEFAULT_STAGES = (
    StageBounds("download", 0.0, 25.0),
    StageBounds("captions", 25.0, 30.0),
    StageBounds("transcode", 30.0, 95.0),
    StageBounds("publish", 95.0, 100.0),
)


def _timecode_seconds(hours: str, minutes: str, seconds: str) -> float:
    return int(hours) * 3600 + int(minutes) * 60 + float(seconds)


def parse_timecode(value: str) -> Optional[float]:
    """Convert ``HH:MM:SS.ff`` to seconds, or None if it does not match."""
    match = _TIMECODE_RE.match(value)
    if match is None:
        return None
    return _timecode_seconds(*match.groups())


class ProgressTracker:
    """Pull-based progress state machine for one pipeline run.

    WHY: The engine's stderr arrives in arbitrary chunks that split lines in
    the middle. Parsing per chunk would lose markers and per-line callbacks
    would flood the job store. This object owns the buffering, mapping and
    throttling so callers only forward bytes and publish what comes back.

    HOW: begin_stage() selects the active StageBounds and its total duration.
    feed() appends text to a pending buffer, consumes every complete line
    (``\\r`` or ``\\n`` terminated), and converts the last time marker found
    into a candidate percentage. report_fraction() does the same for stages
    measured without a marker (download bytes, upload).

    RULES:
    - feed()/report_fraction() outside RUNNING return no events
    - total_seconds <= 0 or None means markers cannot be mapped; ignored
    - last_reported is global across stages, so a new stage never emits
      below a value already published
    """

    def __init__(
        self,
        stages: Sequence[StageBounds] = DEFAULT_STAGES,
        threshold: float = 5.0,
    ) -> None:
        if threshold <= 0:
            raise ValueError("threshold must be positive")
        self._stages: Dict[str, StageBounds] = {s.name: s for s in stages}
        self.stage_order: List[str] = [s.name for s in stages]
        self.threshold = threshold
        self.state = TrackerState.IDLE
        self.last_reported: Optional[float] = None
        self._current: Optional[StageBounds] = None
        self._total_seconds: Optional[float] = None
        self._pending = ""

    @property
    def current_stage(self) -> Optional[str]:
        return self._current.name if self._current else None

    def begin_stage(self, name: str, total_seconds: Optional[float] = None) -> None:
        """Enter a stage; raises KeyError for a stage that was not configured."""
        self._current = self._stages[name]
        self._total_seconds = total_seconds
        self._pending = ""
        self.state = TrackerState.RUNNING

    def feed(self, chunk: Union[str, bytes]) -> List[ProgressEvent]:
        """Consume a chunk of engine output and return any throttled events."""
        if self.state is not TrackerState.RUNNING or self._current is None:
            return []
        if isinstance(chunk, bytes):
            chunk = chunk.decode("utf-8", errors="replace")

        text = self._pending + chunk
        cut = max(text.rfind("\r"), text.rfind("\n"))
        if cut < 0:
            self._pending = text[-_MAX_PENDING_CHARS:]
            return []
        complete, self._pending = text[: cut + 1], text[cut + 1:][-_MAX_PENDING_CHARS:]

        matches = _TIME_RE.findall(complete)
        if not matches or not self._total_seconds or self._total_seconds <= 0:
            return []

        elapsed = _timecode_seconds(*matches[-1])
        return self._emit(elapsed / self._total_seconds)

    def report_fraction(self, fraction: float) -> List[ProgressEvent]:
        """Report a stage-local fraction directly (for non-engine stages)."""
        if self.state is not TrackerState.RUNNING or self._current is None:
            return []
        return self._emit(fraction)

    def finish(self, success: bool) -> None:
        """Move to the terminal state once the caller has seen the outcome."""
        self.state = TrackerState.COMPLETED if success else TrackerState.FAILED
        self._pending = ""

    def _emit(self, fraction: float) -> List[ProgressEvent]:
        stage = self._current
        if stage is None:
            return []
        fraction = min(1.0, max(0.0, fraction))
        percent = stage.low + fraction * (stage.high - stage.low)
        percent = round(min(stage.high, max(stage.low, percent)), 2)

        if self.last_reported is not None and percent - self.last_reported < self.threshold:
            return []
        self.last_reported = percent
        return [ProgressEvent(stage=stage.name, percent=percent)]
