"""Caption track formatter registry.

WHY: The pipeline, CLI and API select the caption flavour by name
("srt" or "karaoke"). A central dict keeps that lookup in one place.

HOW: FORMATTERS maps string keys to formatter *classes*. Callers instantiate
with a CaptionStyle: ``FORMATTERS["karaoke"](style)``.

RULES:
- Keys are the values accepted by the ``captionFormat`` request field
- Every formatter listed here must be importable without side effects
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from clip_worker.formatters.karaoke_ass import KaraokeASSFormatter
from clip_worker.formatters.srt_captions import SRTCaptionFormatter

if TYPE_CHECKING:
    from clip_worker.formatters.base import BaseCaptionFormatter

FORMATTERS: dict[str, type[BaseCaptionFormatter]] = {
    "srt": SRTCaptionFormatter,
    "karaoke": KaraokeASSFormatter,
}
