"""Plain SRT caption formatter.

WHY: The subtitles filter renders SRT with a force_style override, which is
the simplest caption track that still looks deliberate on a vertical frame.

HOW: One numbered block per cue: index, ``HH:MM:SS,mmm --> HH:MM:SS,mmm``,
the literal cue text, blank line.

RULES:
- Indices are 1-based and contiguous
- Timestamps are rounded to the nearest millisecond
- Zero cues produce an empty string
"""

from typing import List, Sequence

from clip_worker.core.ir import CaptionCue
from clip_worker.formatters.base import BaseCaptionFormatter, FormatterOutput


def seconds_to_srt_time(seconds: float) -> str:
    """Convert seconds to SRT timestamp format: HH:MM:SS,mmm"""
    total_ms = max(0, int(round(seconds * 1000)))
    hours, remainder = divmod(total_ms, 3600 * 1000)
    minutes, remainder = divmod(remainder, 60 * 1000)
    secs, millis = divmod(remainder, 1000)
    return "{:02d}:{:02d}:{:02d},{:03d}".format(hours, minutes, secs, millis)


class SRTCaptionFormatter(BaseCaptionFormatter):
    """Formatter producing a plain time-coded SRT track."""

    @property
    def name(self) -> str:
        return "SRT Captions"

    def format(self, cues: Sequence[CaptionCue]) -> FormatterOutput:
        lines: List[str] = []
        for index, cue in enumerate(cues, 1):
            lines.append(str(index))
            lines.append("{} --> {}".format(
                seconds_to_srt_time(cue.start_offset),
                seconds_to_srt_time(cue.end_offset),
            ))
            lines.append(cue.text)
            lines.append("")

        content = "\n".join(lines) + ("\n" if lines else "")
        return FormatterOutput(
            suffix=".srt",
            content=content,
            media_type="application/x-subrip",
        )
