"""Intermediate representation dataclasses shared by every clip component.

WHY: The boundary resolver, caption synthesizer, render planner and pipeline
all talk about the same few things: timed words, silent stretches, the final
cut window and caption cues. One set of small, typed dataclasses keeps them
decoupled: each component consumes and produces these, never each other's
internals.

HOW: Frozen dataclasses for values that must not change after creation
(Word, SilenceInterval, CutWindow, CaptionSegment, CaptionCue).
words_from_dicts() turns whatever the transcript source sent into a sorted
list of Word objects.

RULES:
- All times are float seconds
- Word.end >= Word.start (normalized at parse time, never rejected)
- A word timeline may arrive unsorted or empty; words_from_dicts sorts it
- CutWindow.cut_end > CutWindow.cut_start >= 0 once validated
- CaptionCue offsets are relative to the cut start and never negative
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Iterable, List, Optional, Tuple

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Word:
    """One transcribed word with absolute timing in the source media.

    RULES:
    - text is displayed as-is (the karaoke track upper-cases at render time)
    - start/end are seconds from the start of the source file
    """

    start: float
    end: float
    text: str

    @property
    def duration(self) -> float:
        return self.end - self.start


@dataclass(frozen=True)
class SilenceInterval:
    """A detected stretch of near-silence in the source audio."""

    start: float
    end: float

    @property
    def duration(self) -> float:
        return self.end - self.start


@dataclass(frozen=True)
class CutWindow:
    """The exact extraction window handed to the transcoding engine.

    WHY: Downstream stages need more than the two cut points. Audio fades must
    stay inside the margin that was actually added around the speech, and
    that margin differs per strategy and per request (a start clamped at 0
    has no lead-in at all).

    RULES:
    - cut_start >= 0 and cut_end > cut_start (see boundary.validate_cut_window)
    - lead_pad: seconds between cut_start and the first protected speech onset
    - tail_pad: seconds between the last protected speech end and cut_end
    - strategy: name of the strategy that produced the window, for logging
    """

    cut_start: float
    cut_end: float
    lead_pad: float = 0.0
    tail_pad: float = 0.0
    strategy: str = "loose"

    @property
    def duration(self) -> float:
        return self.cut_end - self.cut_start


@dataclass(frozen=True)
class CaptionSegment:
    """One word inside a cue, with the time it occupies in the reveal."""

    text: str
    duration: float


@dataclass(frozen=True)
class CaptionCue:
    """One caption display unit.

    RULES:
    - start_offset/end_offset are seconds relative to the cut start
    - end_offset > start_offset (degenerate cues are dropped upstream)
    - segment durations tile the cue: their sum equals end - start
    """

    start_offset: float
    end_offset: float
    segments: Tuple[CaptionSegment, ...] = field(default_factory=tuple)

    @property
    def text(self) -> str:
        return " ".join(seg.text for seg in self.segments)

    @property
    def duration(self) -> float:
        return self.end_offset - self.start_offset


def _first_present(item: dict, keys: Iterable[str]) -> Any:
    for key in keys:
        if key in item and item[key] is not None:
            return item[key]
    return None


def words_from_dicts(items: Optional[Iterable[Any]]) -> List[Word]:
    """Parse a transcript word list into sorted Word objects.

    WHY: Transcription services disagree on field names ("word" vs "text",
    "start" vs "s") and sometimes send timing as strings. The clip pipeline
    must accept all of them and never fail a request over one bad entry.

    HOW: For each dict, take the first present of word/text/t for the text
    and start/s, end/e for timing. Entries with empty text or unparseable
    timing are skipped with a debug log. A word whose end precedes its start
    gets end = start. The result is sorted by (start, end).

    Args:
        items: Iterable of dicts (or None).

    Returns:
        Words sorted by start time; empty list for empty/None input.
    """
    words: List[Word] = []
    if not items:
        return words

    for item in items:
        if not isinstance(item, dict):
            continue
        text = _first_present(item, ("word", "text", "t"))
        if text is None or not str(text).strip():
            continue
        try:
            start = float(_first_present(item, ("start", "s")))
            end_raw = _first_present(item, ("end", "e"))
            end = float(end_raw) if end_raw is not None else start
        except (TypeError, ValueError):
            logger.debug("Skipping word with unparseable timing: %r", item)
            continue
        if end < start:
            end = start
        words.append(Word(start=start, end=end, text=str(text).strip()))

    words.sort(key=lambda w: (w.start, w.end))
    return words


def sort_words(words: Iterable[Word]) -> List[Word]:
    """Return the words ordered by start time (input is never mutated)."""
    return sorted(words, key=lambda w: (w.start, w.end))
