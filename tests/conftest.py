"""Shared test fixtures for the clip_worker test suite.

WHY: Boundary, caption, render and pipeline tests all reason about the same
spoken sentence. Centralizing the timeline keeps the expected numbers in
each test traceable to one table.

HOW: SAMPLE_WORDS is a hand-timed transcript of two phrases separated by a
0.8s pause. Fixtures hand out copies so tests can reorder them freely.

RULES:
- Timings are in seconds and never overlap
- "hello" straddles 10.0 and "end" straddles 15.0, the usual request edges
- The pause between "sentence" (ends 12.8) and "after" (starts 13.6)
  is longer than the default caption pause threshold
"""

from typing import List

import pytest

from clip_worker.core.ir import SilenceInterval, Word

SAMPLE_WORDS: List[Word] = [
    Word(start=9.80, end=10.30, text="hello"),
    Word(start=10.30, end=10.90, text="world"),
    Word(start=11.00, end=11.30, text="this"),
    Word(start=11.35, end=11.50, text="is"),
    Word(start=11.55, end=11.60, text="a"),
    Word(start=11.70, end=12.10, text="longer"),
    Word(start=12.15, end=12.80, text="sentence"),
    Word(start=13.60, end=14.00, text="after"),
    Word(start=14.05, end=14.30, text="the"),
    Word(start=14.35, end=14.65, text="pause"),
    Word(start=14.70, end=15.20, text="end"),
]

SAMPLE_SILENCEDETECT_LOG = """\
Input #0, mov,mp4,m4a,3gp,3g2,mj2, from 'source.mp4':
  Duration: 00:00:20.00, start: 0.000000, bitrate: 1205 kb/s
[silencedetect @ 0x7f8e4c0] silence_start: 1.5
[silencedetect @ 0x7f8e4c0] silence_end: 2.25 | silence_duration: 0.75
[silencedetect @ 0x7f8e4c0] silence_start: 5
[silencedetect @ 0x7f8e4c0] silence_end: 5.1 | silence_duration: 0.1
size=N/A time=00:00:06.00 bitrate=N/A speed= 120x
[silencedetect @ 0x7f8e4c0] silence_start: 8.0
"""


@pytest.fixture
def sample_words() -> List[Word]:
    """The sample transcript, sorted by start."""
    return list(SAMPLE_WORDS)


@pytest.fixture
def shuffled_words() -> List[Word]:
    """The sample transcript in a scrambled order."""
    words = list(SAMPLE_WORDS)
    return words[5:] + words[:5][::-1]


@pytest.fixture
def sample_word_dicts():
    """The sample transcript as the API receives it."""
    return [{"start": w.start, "end": w.end, "word": w.text} for w in SAMPLE_WORDS]


@pytest.fixture
def lead_silence() -> List[SilenceInterval]:
    """A single silence ending just before "hello"."""
    return [SilenceInterval(start=9.0, end=9.6)]


@pytest.fixture
def silencedetect_log() -> str:
    """Stderr of a silencedetect pass with one short and one open interval."""
    return SAMPLE_SILENCEDETECT_LOG
