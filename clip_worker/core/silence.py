"""Silence map parsing for ffmpeg ``silencedetect`` diagnostics.

WHY: The silence-snap cut strategy needs to know where the audio is quiet.
ffmpeg's silencedetect filter reports this as free-form log lines on stderr
(``[silencedetect @ 0x..] silence_start: 12.48`` / ``silence_end: 13.1 |
silence_duration: 0.62``). This module turns that text into an ordered list
of SilenceInterval values.

HOW: A regex pulls every start/end marker in stream order. Markers are paired
as they arrive: a start opens an interval, the next end closes it. An end
with no open start is ignored; a start left open at the end of the stream is
closed at the media duration when it is known.

RULES:
- Malformed or absent output yields an empty list, never an exception
- Intervals shorter than min_duration are discarded
- The result is sorted by start and contains no zero-length intervals
"""

from __future__ import annotations

import re
from typing import List, Optional

from clip_worker.core.ir import SilenceInterval

DEFAULT_NOISE_DB = -30.0
DEFAULT_MIN_SILENCE_S = 0.25

_MARKER_RE = re.compile(
    r"silence_(start|end):\s*(-?\d+(?:\.\d+)?(?:[eE][-+]?\d+)?)"
)


def silence_detect_filter(
    noise_db: float = DEFAULT_NOISE_DB,
    min_duration: float = DEFAULT_MIN_SILENCE_S,
) -> str:
    """Render the audio filter for the silence-analysis pass."""
    return "silencedetect=noise={:g}dB:d={:g}".format(noise_db, min_duration)


def parse_silence_map(
    text: Optional[str],
    min_duration: float = DEFAULT_MIN_SILENCE_S,
    total_duration: Optional[float] = None,
) -> List[SilenceInterval]:
    """Parse silencedetect stderr into an ordered list of silence intervals.

    Args:
        text: Raw diagnostic text from the analysis pass (may be None/empty).
        min_duration: Shortest interval worth keeping, in seconds.
        total_duration: Media duration used to close a trailing open start.

    Returns:
        SilenceInterval list sorted by start.
    """
    if not text:
        return []

    intervals: List[SilenceInterval] = []
    open_start: Optional[float] = None

    for match in _MARKER_RE.finditer(text):
        kind, raw_value = match.group(1), match.group(2)
        try:
            value = float(raw_value)
        except ValueError:
            continue

        if kind == "start":
            # A second start without an end replaces the first; ffmpeg only
            # does this when the stream was cut off mid-analysis.
            open_start = max(0.0, value)
        elif open_start is not None:
            if value > open_start:
                intervals.append(SilenceInterval(start=open_start, end=value))
            open_start = None

    if open_start is not None and total_duration is not None and total_duration > open_start:
        intervals.append(SilenceInterval(start=open_start, end=total_duration))

    kept = [iv for iv in intervals if iv.duration >= min_duration]
    kept.sort(key=lambda iv: (iv.start, iv.end))
    return kept
