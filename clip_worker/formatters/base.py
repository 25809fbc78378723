"""Abstract base caption formatter and output container.

WHY: The pipeline writes one caption file per render and the render plan
only needs its path and whether it carries its own styling. A shared
interface lets the pipeline pick a serializer by name without knowing the
format details.

HOW: BaseCaptionFormatter is an ABC with a ``name`` property, an
``embeds_style`` flag and a ``format()`` method turning cues into a
FormatterOutput (suffix, content, MIME type).

RULES:
- Subclasses MUST implement ``name`` and ``format()``
- ``format()`` is deterministic: identical cues give byte-identical content
- ``suffix`` includes the dot, e.g. ``".srt"``
- Formatters never touch the filesystem; the pipeline writes the content
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Sequence

from clip_worker.core.captions import DEFAULT_STYLE, CaptionStyle
from clip_worker.core.ir import CaptionCue


@dataclass
class FormatterOutput:
    """One serialized caption track.

    Attributes:
        suffix: File suffix including the dot, e.g. ``".ass"``.
        content: The track text.
        media_type: MIME type for the content.
    """

    suffix: str
    content: str
    media_type: str


class BaseCaptionFormatter(ABC):
    """Abstract base for caption track serializers.

    To add a new caption format:
    1. Create a new file in formatters/
    2. Subclass BaseCaptionFormatter
    3. Implement name and format()
    4. Register in FORMATTERS in formatters/__init__.py
    """

    #: True when the track carries its own styling, so the render plan must
    #: not append a force_style override.
    embeds_style = False

    def __init__(self, style: CaptionStyle = DEFAULT_STYLE) -> None:
        self.style = style

    @property
    @abstractmethod
    def name(self) -> str:
        """Human-readable format name, e.g. 'SRT Captions'."""

    @abstractmethod
    def format(self, cues: Sequence[CaptionCue]) -> FormatterOutput:
        """Serialize cues (offsets relative to the cut start) into a track."""
