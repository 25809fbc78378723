"""Boundary resolution: turn a rough requested window into an audio-safe cut.

WHY: Clip requests come from people or LLMs picking timestamps by eye. Cutting
exactly at those timestamps chops the attack of the first word and the tail
of the last one. Each strategy here moves the boundaries to a place where a
cut is inaudible, then adds a small margin so fades never touch speech.

HOW: Three interchangeable strategies, selected by the CutStrategy enum:
  LOOSE: fixed padding around the raw request, no evidence needed
  WORD_SNAP: extend each boundary to the enclosing word, then pad
  SILENCE_SNAP: move each boundary into the nearest detected silence,
    falling back to word-snap per boundary
resolve_cut() dispatches, then validate_cut_window() rejects degenerate
results before anything downstream sees them.

RULES:
- Every strategy returns cut_start >= 0 and cut_end > cut_start
- Missing evidence (no words, no silences, no words inside the request)
  degrades to the next simpler strategy; it never raises
- Only a degenerate window raises BoundaryDegenerateError
- All magnitudes come from BoundaryPolicy; nothing is hard-coded at call sites
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from typing import Iterable, Optional, Sequence, Tuple, Union

from clip_worker.core.ir import CutWindow, SilenceInterval, Word, sort_words

logger = logging.getLogger(__name__)


class CutStrategy(str, enum.Enum):
    """Selectable boundary strategies. Values are the names used in requests."""

    WORD_SNAP = "word_snap"
    SILENCE_SNAP = "silence_snap"
    LOOSE = "loose"


class BoundaryDegenerateError(ValueError):
    """Raised when a window cannot be rendered (empty or inverted).

    WHY: A zero-length or inverted window makes the render definitionally
    impossible. Failing here, before the caption file and the engine process
    exist, gives the caller a validation error instead of an engine crash.
    """


@dataclass(frozen=True)
class BoundaryPolicy:
    """Tunable margins for every strategy, in seconds.

    RULES:
    - loose_pad_*: margins of the fixed-padding strategy
    - word_pad_*: margins added outside the snapped word boundaries
    - silence_buffer: how far from the speech edge a silence cut sits
    - silence_search_radius: max distance from the raw boundary to a silence
    - fade_in / fade_out: requested audio fades, capped by the applied pads
    """

    loose_pad_start: float = 0.10
    loose_pad_end: float = 0.25
    word_pad_start: float = 0.10
    word_pad_end: float = 0.15
    silence_buffer: float = 0.10
    silence_search_radius: float = 2.0
    fade_in: float = 0.10
    fade_out: float = 0.25


DEFAULT_POLICY = BoundaryPolicy()


# ---------------------------------------------------------------------------
# Strategy: loose cut
# ---------------------------------------------------------------------------


def loose_cut(
    raw_start: float,
    raw_end: float,
    policy: BoundaryPolicy = DEFAULT_POLICY,
) -> CutWindow:
    """Pad the raw request by fixed margins on both sides.

    The duration grows by exactly pad_start + pad_end unless the start pad is
    clamped at zero.
    """
    cut_start = max(0.0, raw_start - policy.loose_pad_start)
    cut_end = raw_end + policy.loose_pad_end
    return CutWindow(
        cut_start=cut_start,
        cut_end=cut_end,
        lead_pad=max(0.0, raw_start - cut_start),
        tail_pad=policy.loose_pad_end,
        strategy=CutStrategy.LOOSE.value,
    )


# ---------------------------------------------------------------------------
# Strategy: word snap
# ---------------------------------------------------------------------------


def _start_anchor(raw_start: float, words: Sequence[Word]) -> Optional[float]:
    # Half-open [start, end): a boundary exactly on a word's end belongs to
    # the next word, not the one that just finished.
    for w in words:
        if w.start <= raw_start < w.end:
            return w.start
    for w in words:
        if w.start >= raw_start:
            return w.start
    return None


def _end_anchor(raw_end: float, words: Sequence[Word]) -> Optional[float]:
    containing = [w.end for w in words if w.start < raw_end <= w.end]
    if containing:
        return max(containing)
    preceding = [w.end for w in words if w.end <= raw_end]
    if preceding:
        return max(preceding)
    return None


def snap_to_words(
    raw_start: float,
    raw_end: float,
    words: Iterable[Word],
    policy: BoundaryPolicy = DEFAULT_POLICY,
) -> CutWindow:
    """Extend the request to whole words, then pad.

    WHY: A cut inside a word is the most audible artifact a clip can have.
    Snapping to the transcript's word boundaries guarantees every word in the
    clip is complete.

    HOW: The start anchors to the word containing raw_start, else the first
    word starting after it. The end anchors to the word containing raw_end,
    else the latest word ending before it. word_pad_start/word_pad_end are
    then applied outside the anchors.

    RULES:
    - Empty timeline → loose_cut()
    - No words inside the request (anchors cross) → loose_cut()
    - Missing anchor on one side → the raw boundary is used for that side

    Args:
        raw_start: Requested start in seconds.
        raw_end: Requested end in seconds.
        words: Word timeline, any order.
        policy: Margins to apply.

    Returns:
        The resolved CutWindow.
    """
    ordered = sort_words(words)
    if not ordered:
        return loose_cut(raw_start, raw_end, policy)

    start_anchor = _start_anchor(raw_start, ordered)
    end_anchor = _end_anchor(raw_end, ordered)
    if start_anchor is None:
        start_anchor = raw_start
    if end_anchor is None:
        end_anchor = raw_end

    if end_anchor <= start_anchor:
        logger.debug(
            "No words inside [%.3f, %.3f]; using loose padding", raw_start, raw_end
        )
        return loose_cut(raw_start, raw_end, policy)

    cut_start = max(0.0, start_anchor - policy.word_pad_start)
    cut_end = end_anchor + policy.word_pad_end
    return CutWindow(
        cut_start=cut_start,
        cut_end=cut_end,
        lead_pad=max(0.0, start_anchor - cut_start),
        tail_pad=policy.word_pad_end,
        strategy=CutStrategy.WORD_SNAP.value,
    )


# ---------------------------------------------------------------------------
# Strategy: silence snap
# ---------------------------------------------------------------------------


def _silence_before(
    raw_start: float, silences: Iterable[SilenceInterval], radius: float
) -> Optional[SilenceInterval]:
    best: Optional[SilenceInterval] = None
    for iv in silences:
        if iv.start > raw_start or raw_start - iv.end > radius:
            continue
        if best is None or abs(iv.end - raw_start) < abs(best.end - raw_start):
            best = iv
    return best


def _silence_after(
    raw_end: float, silences: Iterable[SilenceInterval], radius: float
) -> Optional[SilenceInterval]:
    best: Optional[SilenceInterval] = None
    for iv in silences:
        if iv.end < raw_end or iv.start - raw_end > radius:
            continue
        if best is None or abs(iv.start - raw_end) < abs(best.start - raw_end):
            best = iv
    return best


def snap_to_silence(
    raw_start: float,
    raw_end: float,
    silences: Optional[Iterable[SilenceInterval]],
    words: Iterable[Word] = (),
    policy: BoundaryPolicy = DEFAULT_POLICY,
) -> CutWindow:
    """Move each boundary into the nearest qualifying silence.

    WHY: Even a word-accurate cut can land on breath noise or room tone that
    jumps audibly. Cutting inside a measured silence is the safest edit.

    HOW: For the start, consider silences that begin at or before raw_start
    and end no further than silence_search_radius before it; pick the one
    whose end is closest and cut silence_buffer before its end (never before
    its start). The end mirrors this with silences ending at or after raw_end.
    A boundary with no qualifying silence takes the word-snap result for that
    side, which itself degrades to fixed padding.

    RULES:
    - A boundary resolved from a silence always lies within that silence
    - An empty or None silence map behaves exactly like snap_to_words()
    """
    silence_list = list(silences or [])
    fallback = snap_to_words(raw_start, raw_end, words, policy)
    if not silence_list:
        return fallback

    radius = policy.silence_search_radius
    buffer = policy.silence_buffer

    cut_start, lead_pad = fallback.cut_start, fallback.lead_pad
    cut_end, tail_pad = fallback.cut_end, fallback.tail_pad
    used_silence = False

    before = _silence_before(raw_start, silence_list, radius)
    if before is not None:
        cut_start = max(before.start, before.end - buffer, 0.0)
        lead_pad = before.end - cut_start
        used_silence = True

    after = _silence_after(raw_end, silence_list, radius)
    if after is not None:
        cut_end = min(after.end, after.start + buffer)
        tail_pad = cut_end - after.start
        used_silence = True

    if not used_silence:
        return fallback
    if cut_end <= cut_start:
        logger.debug(
            "Silence snap crossed for [%.3f, %.3f]; using word snap", raw_start, raw_end
        )
        return fallback

    return CutWindow(
        cut_start=cut_start,
        cut_end=cut_end,
        lead_pad=max(0.0, lead_pad),
        tail_pad=max(0.0, tail_pad),
        strategy=CutStrategy.SILENCE_SNAP.value,
    )


# ---------------------------------------------------------------------------
# Entry points
# ---------------------------------------------------------------------------


def validate_cut_window(window: CutWindow) -> CutWindow:
    """Reject windows the engine cannot render.

    Raises:
        BoundaryDegenerateError: If cut_start < 0 or cut_end <= cut_start.
    """
    if window.cut_start < 0:
        raise BoundaryDegenerateError(
            "Cut starts before the media: {:.3f}s".format(window.cut_start)
        )
    if window.cut_end <= window.cut_start:
        raise BoundaryDegenerateError(
            "Cut window is empty: {:.3f}s -> {:.3f}s".format(
                window.cut_start, window.cut_end
            )
        )
    return window


def resolve_cut(
    raw_start: float,
    raw_end: float,
    words: Iterable[Word] = (),
    silences: Optional[Iterable[SilenceInterval]] = None,
    strategy: Union[CutStrategy, str] = CutStrategy.WORD_SNAP,
    policy: Optional[BoundaryPolicy] = None,
) -> CutWindow:
    """Resolve a requested window with the selected strategy and validate it.

    Args:
        raw_start: Requested start in seconds.
        raw_end: Requested end in seconds.
        words: Word timeline (may be empty or unsorted).
        silences: Silence map for SILENCE_SNAP (None/empty falls back).
        strategy: CutStrategy member or its string value.
        policy: Margins; DEFAULT_POLICY when None.

    Returns:
        A validated CutWindow.

    Raises:
        BoundaryDegenerateError: If the request is inverted or the result empty.
        ValueError: If the strategy name is unknown.
    """
    policy = policy or DEFAULT_POLICY
    strategy = CutStrategy(strategy)

    if raw_end < raw_start:
        raise BoundaryDegenerateError(
            "Requested window ends before it starts: {:.3f}s -> {:.3f}s".format(
                raw_start, raw_end
            )
        )

    if strategy is CutStrategy.LOOSE:
        window = loose_cut(raw_start, raw_end, policy)
    elif strategy is CutStrategy.WORD_SNAP:
        window = snap_to_words(raw_start, raw_end, words, policy)
    else:
        window = snap_to_silence(raw_start, raw_end, silences, words, policy)

    logger.info(
        "Resolved [%.3f, %.3f] -> [%.3f, %.3f] via %s",
        raw_start, raw_end, window.cut_start, window.cut_end, window.strategy,
    )
    return validate_cut_window(window)


def fade_durations(
    window: CutWindow, policy: Optional[BoundaryPolicy] = None
) -> Tuple[float, float]:
    """Return (fade_in, fade_out) capped by the pads actually applied.

    A fade longer than its pad would dim the first or last word, so each fade
    is limited to the margin on its side and to half the clip.
    """
    policy = policy or DEFAULT_POLICY
    half = window.duration / 2.0
    fade_in = max(0.0, min(policy.fade_in, window.lead_pad, half))
    fade_out = max(0.0, min(policy.fade_out, window.tail_pad, half))
    return fade_in, fade_out
