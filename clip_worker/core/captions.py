"""Caption synthesis: group timed words into short, non-overlapping cues.

WHY: Vertical clips have room for one short caption line. Showing the whole
sentence is unreadable; showing one word at a time flickers. Grouping words
into cues of a few words, broken at natural pauses, reads like speech.

HOW: Walk the words in time order with an accumulating cue buffer. Flush the
buffer when the next word would push the line past max_chars, or when the gap
since the previous word exceeds pause_threshold. Each flushed buffer becomes
a CaptionCue with offsets relative to the cut start. Segment durations are
laid out so they tile the cue exactly; the karaoke serializer relies on that.

RULES:
- Words ending at or before cut_start are skipped entirely
- Words straddling cut_start are clamped to it (start offset 0)
- When cut_end is given, words starting at or after it are skipped and
  straddling words are clamped to it
- A cue never exceeds max_chars unless it holds a single over-long word
- Cues are start-ascending and non-overlapping; empty cues are dropped
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, List, Optional

from clip_worker.core.ir import CaptionCue, CaptionSegment, Word, sort_words


@dataclass(frozen=True)
class CaptionStyle:
    """Grouping policy plus the presentation fields the serializers use.

    RULES:
    - max_chars: visible characters per cue, spaces included (25 fits a
      1080px-wide frame at the default font size)
    - pause_threshold: a gap longer than this always starts a new cue
    - colours use ASS &HAABBGGRR notation
    """

    max_chars: int = 25
    pause_threshold: float = 0.5
    uppercase_karaoke: bool = True
    font_name: str = "Arial Bold"
    font_size: int = 24
    karaoke_font_size: int = 72
    primary_colour: str = "&H0000FFFF"
    secondary_colour: str = "&H00FFFFFF"
    outline_colour: str = "&H80000000"
    back_colour: str = "&H80000000"
    border_style: int = 3
    outline: int = 4
    shadow: int = 0
    margin_v: int = 70
    karaoke_margin_v: int = 420
    alignment: int = 2
    play_res_x: int = 1080
    play_res_y: int = 1920

    def force_style(self) -> str:
        """The libass override string for plain (SRT) tracks."""
        return (
            "Fontname={},FontSize={},PrimaryColour={},OutlineColour={},"
            "BorderStyle={},Outline={},Shadow={},MarginV={},Alignment={}"
        ).format(
            self.font_name, self.font_size, self.primary_colour,
            self.outline_colour, self.border_style, self.outline,
            self.shadow, self.margin_v, self.alignment,
        )


DEFAULT_STYLE = CaptionStyle()


@dataclass
class _TimedWord:
    text: str
    start: float
    end: float


def _visible_words(
    words: Iterable[Word], cut_start: float, cut_end: Optional[float]
) -> List[_TimedWord]:
    visible: List[_TimedWord] = []
    for w in sort_words(words):
        if w.end <= cut_start:
            continue
        if cut_end is not None and w.start >= cut_end:
            continue
        start = max(w.start, cut_start)
        end = w.end if cut_end is None else min(w.end, cut_end)
        visible.append(_TimedWord(text=w.text, start=start, end=end))
    return visible


def _build_cue(
    buffer: List[_TimedWord], cut_start: float, floor: float
) -> Optional[CaptionCue]:
    start = max(0.0, buffer[0].start - cut_start, floor)
    end = max(0.0, max(w.end for w in buffer) - cut_start)
    if end <= start:
        return None

    # Each word holds the screen until the next word starts; the last word
    # runs to the cue end. The durations therefore sum to end - start.
    segments: List[CaptionSegment] = []
    for i, w in enumerate(buffer):
        seg_start = max(start, w.start - cut_start)
        if i + 1 < len(buffer):
            seg_end = max(seg_start, min(end, buffer[i + 1].start - cut_start))
        else:
            seg_end = end
        segments.append(CaptionSegment(text=w.text, duration=seg_end - seg_start))
    return CaptionCue(start_offset=start, end_offset=end, segments=tuple(segments))


def synthesize_cues(
    words: Iterable[Word],
    cut_start: float,
    style: CaptionStyle = DEFAULT_STYLE,
    cut_end: Optional[float] = None,
) -> List[CaptionCue]:
    """Group a word timeline into caption cues relative to cut_start.

    Args:
        words: Word timeline, any order, may extend beyond the cut.
        cut_start: Absolute time that becomes offset 0.
        style: Grouping budget and pause threshold.
        cut_end: Optional absolute end of the visible window.

    Returns:
        Ordered, non-overlapping cues; empty list for no visible words.
    """
    visible = _visible_words(words, cut_start, cut_end)
    cues: List[CaptionCue] = []
    buffer: List[_TimedWord] = []
    buffer_chars = 0

    def flush() -> None:
        floor = cues[-1].end_offset if cues else 0.0
        cue = _build_cue(buffer, cut_start, floor)
        if cue is not None:
            cues.append(cue)

    for word in visible:
        if buffer:
            gap = word.start - buffer[-1].end
            projected = buffer_chars + 1 + len(word.text)
            if projected > style.max_chars or gap > style.pause_threshold:
                flush()
                buffer = []
                buffer_chars = 0

        buffer_chars = buffer_chars + (1 if buffer else 0) + len(word.text)
        buffer.append(word)

    if buffer:
        flush()

    return cues


def karaoke_centiseconds(cue: CaptionCue) -> List[int]:
    """Per-word reveal durations in centiseconds for one cue.

    HOW: Rounds the cumulative segment boundaries rather than each duration,
    so rounding error never accumulates: the tags sum to
    round(end * 100) - round(start * 100).
    """
    tags: List[int] = []
    elapsed = cue.start_offset
    previous = int(round(elapsed * 100))
    for seg in cue.segments:
        elapsed += seg.duration
        current = int(round(elapsed * 100))
        tags.append(max(0, current - previous))
        previous = max(previous, current)
    return tags
