"""Tests for boundary resolution: loose, word-snap and silence-snap cuts.

WHY: The cut window decides whether a clip starts on half a syllable. Every
strategy has fallbacks that must kick in silently, and only a truly empty
window may raise. These tests pin the numbers for the sample sentence.

HOW: Tests are organized by class, one per strategy or entry point:
  - TestLooseCut: fixed padding arithmetic and clamping at zero
  - TestWordSnap: anchoring rules, gaps, fallbacks, word-boundary property
  - TestSilenceSnap: interval selection, buffer clamping, per-side fallback
  - TestResolveCut: dispatch and degenerate-window rejection
  - TestFadeDurations: fades never exceed the applied pads

RULES:
- Float comparisons use pytest.approx
- The sample timeline comes from conftest.SAMPLE_WORDS
"""

from __future__ import annotations

import pytest

from clip_worker.core.boundary import (
    BoundaryDegenerateError,
    BoundaryPolicy,
    CutStrategy,
    DEFAULT_POLICY,
    fade_durations,
    loose_cut,
    resolve_cut,
    snap_to_silence,
    snap_to_words,
    validate_cut_window,
)
from clip_worker.core.ir import CutWindow, SilenceInterval


# ---------------------------------------------------------------------------
# TestLooseCut
# ---------------------------------------------------------------------------


class TestLooseCut:
    """loose_cut() pads by fixed margins."""

    def test_pads_both_sides(self):
        window = loose_cut(10.0, 15.0)
        assert window.cut_start == pytest.approx(9.9)
        assert window.cut_end == pytest.approx(15.25)
        assert window.strategy == "loose"

    def test_duration_grows_by_both_pads(self):
        window = loose_cut(10.0, 15.0)
        expected = 5.0 + DEFAULT_POLICY.loose_pad_start + DEFAULT_POLICY.loose_pad_end
        assert window.duration == pytest.approx(expected)

    def test_start_clamped_at_zero(self):
        window = loose_cut(0.05, 3.0)
        assert window.cut_start == 0.0
        assert window.lead_pad == pytest.approx(0.05)

    def test_records_applied_pads(self):
        window = loose_cut(10.0, 15.0)
        assert window.lead_pad == pytest.approx(0.10)
        assert window.tail_pad == pytest.approx(0.25)

    def test_custom_policy(self):
        policy = BoundaryPolicy(loose_pad_start=0.4, loose_pad_end=0.4)
        window = loose_cut(10.0, 15.0, policy)
        assert window.cut_start == pytest.approx(9.6)
        assert window.cut_end == pytest.approx(15.4)


# ---------------------------------------------------------------------------
# TestWordSnap
# ---------------------------------------------------------------------------


class TestWordSnap:
    """snap_to_words() extends the request to whole words."""

    def test_start_inside_word_snaps_to_word_start(self, sample_words):
        # 10.0 falls inside "hello" (9.8-10.3); the whole word is kept
        # Deliberately 9.7, not 10.2: a cut never lands inside "hello"
        window = snap_to_words(10.0, 15.0, sample_words)
        assert window.cut_start == pytest.approx(9.7)

    def test_end_inside_word_snaps_to_word_end(self, sample_words):
        window = snap_to_words(10.0, 15.0, sample_words)
        assert window.cut_end == pytest.approx(15.35)
        assert window.strategy == "word_snap"

    def test_start_on_word_boundary_belongs_to_next_word(self, sample_words):
        window = snap_to_words(10.3, 15.0, sample_words)
        assert window.cut_start == pytest.approx(10.2)

    def test_start_in_gap_snaps_to_next_word(self, sample_words):
        window = snap_to_words(10.95, 15.0, sample_words)
        assert window.cut_start == pytest.approx(10.9)

    def test_end_in_gap_snaps_to_previous_word_end(self, sample_words):
        window = snap_to_words(10.0, 13.0, sample_words)
        assert window.cut_end == pytest.approx(12.95)

    def test_records_applied_pads(self, sample_words):
        window = snap_to_words(10.0, 15.0, sample_words)
        assert window.lead_pad == pytest.approx(0.10)
        assert window.tail_pad == pytest.approx(0.15)

    def test_unsorted_timeline_gives_same_result(self, sample_words, shuffled_words):
        assert snap_to_words(10.0, 15.0, shuffled_words) == snap_to_words(10.0, 15.0, sample_words)

    def test_empty_timeline_falls_back_to_loose(self):
        window = snap_to_words(10.0, 15.0, [])
        assert window == loose_cut(10.0, 15.0)

    def test_no_words_inside_request_falls_back_to_loose(self, sample_words):
        window = snap_to_words(12.9, 13.5, sample_words)
        assert window.strategy == "loose"
        assert window.cut_start == pytest.approx(12.8)
        assert window.cut_end == pytest.approx(13.75)

    def test_request_before_first_word(self, sample_words):
        window = snap_to_words(2.0, 11.2, sample_words)
        assert window.cut_start == pytest.approx(9.7)

    def test_start_clamped_at_zero(self):
        from clip_worker.core.ir import Word

        window = snap_to_words(0.0, 1.0, [Word(start=0.05, end=0.5, text="hi")])
        assert window.cut_start == 0.0
        assert window.lead_pad == pytest.approx(0.05)

    def test_start_never_inside_a_word(self, sample_words):
        for i in range(121):
            raw_start = 9.0 + i * 0.05
            window = snap_to_words(raw_start, raw_start + 2.0, sample_words)
            anchor = window.cut_start + window.lead_pad
            for w in sample_words:
                assert not (w.start < anchor - 1e-9 and anchor + 1e-9 < w.end), (
                    "start {:.2f} resolved inside '{}'".format(raw_start, w.text)
                )


# ---------------------------------------------------------------------------
# TestSilenceSnap
# ---------------------------------------------------------------------------


class TestSilenceSnap:
    """snap_to_silence() cuts inside nearby silences."""

    def test_start_cut_at_interval_end_minus_buffer(self, sample_words, lead_silence):
        window = snap_to_silence(9.55, 15.0, lead_silence, sample_words)
        assert window.cut_start == pytest.approx(9.5)
        assert window.strategy == "silence_snap"

    def test_start_not_before_interval_start(self, sample_words):
        silences = [SilenceInterval(start=9.0, end=9.05)]
        window = snap_to_silence(9.55, 15.0, silences, sample_words)
        assert window.cut_start == pytest.approx(9.0)

    def test_end_cut_at_interval_start_plus_buffer(self, sample_words):
        silences = [SilenceInterval(start=15.3, end=16.0)]
        window = snap_to_silence(10.0, 15.0, silences, sample_words)
        assert window.cut_end == pytest.approx(15.4)

    def test_end_not_after_interval_end(self, sample_words):
        silences = [SilenceInterval(start=15.3, end=15.35)]
        window = snap_to_silence(10.0, 15.0, silences, sample_words)
        assert window.cut_end == pytest.approx(15.35)

    def test_picks_closest_interval(self, sample_words):
        silences = [
            SilenceInterval(start=8.0, end=8.6),
            SilenceInterval(start=9.0, end=9.6),
        ]
        window = snap_to_silence(9.7, 15.0, silences, sample_words)
        assert window.cut_start == pytest.approx(9.5)

    def test_boundaries_lie_within_chosen_intervals(self, sample_words):
        before = SilenceInterval(start=9.2, end=9.7)
        after = SilenceInterval(start=15.25, end=15.9)
        window = snap_to_silence(9.75, 15.1, [before, after], sample_words)
        assert before.start <= window.cut_start <= before.end
        assert after.start <= window.cut_end <= after.end

    def test_far_interval_falls_back_to_word_snap(self, sample_words):
        silences = [SilenceInterval(start=5.0, end=6.0)]
        window = snap_to_silence(9.55, 15.0, silences, sample_words)
        assert window == snap_to_words(9.55, 15.0, sample_words)

    def test_one_side_falls_back_independently(self, sample_words, lead_silence):
        window = snap_to_silence(9.55, 15.0, lead_silence, sample_words)
        word_window = snap_to_words(9.55, 15.0, sample_words)
        assert window.cut_end == pytest.approx(word_window.cut_end)
        assert window.tail_pad == pytest.approx(word_window.tail_pad)

    def test_none_silences_behaves_like_word_snap(self, sample_words):
        assert snap_to_silence(10.0, 15.0, None, sample_words) == snap_to_words(
            10.0, 15.0, sample_words
        )

    def test_no_silences_and_no_words_is_loose(self):
        assert snap_to_silence(10.0, 15.0, [], []) == loose_cut(10.0, 15.0)

    def test_lead_pad_spans_cut_to_silence_end(self, sample_words, lead_silence):
        window = snap_to_silence(9.55, 15.0, lead_silence, sample_words)
        assert window.lead_pad == pytest.approx(0.1)


# ---------------------------------------------------------------------------
# TestResolveCut
# ---------------------------------------------------------------------------


class TestResolveCut:
    """resolve_cut() dispatches and validates."""

    def test_default_strategy_is_word_snap(self, sample_words):
        window = resolve_cut(10.0, 15.0, sample_words)
        assert window.strategy == "word_snap"

    def test_accepts_strategy_string(self, sample_words):
        window = resolve_cut(10.0, 15.0, sample_words, strategy="loose")
        assert window == loose_cut(10.0, 15.0)

    def test_silence_strategy_uses_silences(self, sample_words, lead_silence):
        window = resolve_cut(
            9.55, 15.0, sample_words, lead_silence, CutStrategy.SILENCE_SNAP
        )
        assert window.cut_start == pytest.approx(9.5)

    def test_unknown_strategy_raises(self):
        with pytest.raises(ValueError):
            resolve_cut(10.0, 15.0, strategy="nearest")

    def test_inverted_request_is_degenerate(self):
        with pytest.raises(BoundaryDegenerateError):
            resolve_cut(15.0, 10.0)

    def test_degenerate_error_is_value_error(self):
        assert issubclass(BoundaryDegenerateError, ValueError)

    def test_zero_length_request_still_gets_pads(self):
        window = resolve_cut(10.0, 10.0, strategy=CutStrategy.LOOSE)
        assert window.duration > 0

    def test_zero_pad_zero_length_request_is_degenerate(self):
        policy = BoundaryPolicy(loose_pad_start=0.0, loose_pad_end=0.0)
        with pytest.raises(BoundaryDegenerateError):
            resolve_cut(10.0, 10.0, strategy=CutStrategy.LOOSE, policy=policy)

    def test_never_raises_for_missing_evidence(self):
        for strategy in CutStrategy:
            window = resolve_cut(3.0, 4.0, [], None, strategy)
            assert window.cut_end > window.cut_start >= 0


class TestValidateCutWindow:
    """validate_cut_window() rejects windows the engine cannot render."""

    def test_accepts_valid_window(self):
        window = CutWindow(cut_start=1.0, cut_end=2.0)
        assert validate_cut_window(window) is window

    def test_rejects_empty_window(self):
        with pytest.raises(BoundaryDegenerateError):
            validate_cut_window(CutWindow(cut_start=2.0, cut_end=2.0))

    def test_rejects_negative_start(self):
        with pytest.raises(BoundaryDegenerateError):
            validate_cut_window(CutWindow(cut_start=-0.1, cut_end=2.0))


# ---------------------------------------------------------------------------
# TestFadeDurations
# ---------------------------------------------------------------------------


class TestFadeDurations:
    """fade_durations() keeps fades inside the applied pads."""

    def test_loose_window_uses_requested_fades(self):
        fade_in, fade_out = fade_durations(loose_cut(10.0, 15.0))
        assert fade_in == pytest.approx(0.10)
        assert fade_out == pytest.approx(0.25)

    def test_fade_out_capped_by_tail_pad(self, sample_words):
        window = snap_to_words(10.0, 15.0, sample_words)
        _, fade_out = fade_durations(window)
        assert fade_out == pytest.approx(0.15)

    def test_fade_in_capped_by_clamped_lead(self):
        fade_in, _ = fade_durations(loose_cut(0.05, 3.0))
        assert fade_in == pytest.approx(0.05)

    def test_capped_by_half_duration(self):
        window = CutWindow(cut_start=0.0, cut_end=0.2, lead_pad=0.1, tail_pad=0.25)
        fade_in, fade_out = fade_durations(window)
        assert fade_in == pytest.approx(0.1)
        assert fade_out == pytest.approx(0.1)

    def test_zero_pad_gives_zero_fade(self):
        window = CutWindow(cut_start=0.0, cut_end=5.0, lead_pad=0.0, tail_pad=0.0)
        assert fade_durations(window) == (0.0, 0.0)

    def test_fades_never_exceed_pads(self, sample_words, lead_silence):
        windows = [
            loose_cut(10.0, 15.0),
            snap_to_words(10.0, 15.0, sample_words),
            snap_to_silence(9.55, 15.0, lead_silence, sample_words),
        ]
        for window in windows:
            fade_in, fade_out = fade_durations(window)
            assert fade_in <= window.lead_pad + 1e-9
            assert fade_out <= window.tail_pad + 1e-9
