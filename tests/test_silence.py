"""Tests for silencedetect log parsing."""

from __future__ import annotations

import pytest

from clip_worker.core.ir import SilenceInterval
from clip_worker.core.silence import parse_silence_map, silence_detect_filter


class TestParseSilenceMap:
    """parse_silence_map() pairs markers and filters short intervals."""

    def test_pairs_start_and_end(self, silencedetect_log):
        intervals = parse_silence_map(silencedetect_log)
        assert intervals[0] == SilenceInterval(start=1.5, end=2.25)

    def test_drops_short_intervals(self, silencedetect_log):
        intervals = parse_silence_map(silencedetect_log)
        assert all(iv.duration >= 0.25 for iv in intervals)
        assert SilenceInterval(start=5.0, end=5.1) not in intervals

    def test_trailing_start_dropped_without_total(self, silencedetect_log):
        intervals = parse_silence_map(silencedetect_log)
        assert intervals == [SilenceInterval(start=1.5, end=2.25)]

    def test_trailing_start_closed_at_total_duration(self, silencedetect_log):
        intervals = parse_silence_map(silencedetect_log, total_duration=10.0)
        assert intervals[-1] == SilenceInterval(start=8.0, end=10.0)

    def test_custom_min_duration(self, silencedetect_log):
        intervals = parse_silence_map(silencedetect_log, min_duration=0.05)
        assert SilenceInterval(start=5.0, end=5.1) in intervals

    def test_result_sorted_by_start(self):
        text = (
            "silence_start: 1.0\nsilence_end: 2.0\n"
            "silence_start: 0.1\nsilence_end: 0.9\n"
        )
        intervals = parse_silence_map(text)
        assert [iv.start for iv in intervals] == [0.1, 1.0]

    def test_end_without_start_ignored(self):
        assert parse_silence_map("silence_end: 3.0 | silence_duration: 1.0") == []

    def test_negative_start_clamped_to_zero(self):
        intervals = parse_silence_map("silence_start: -0.02\nsilence_end: 0.8\n")
        assert intervals == [SilenceInterval(start=0.0, end=0.8)]

    @pytest.mark.parametrize("text", [None, "", "garbage output\nno markers here"])
    def test_empty_or_malformed_yields_empty(self, text):
        assert parse_silence_map(text) == []


class TestSilenceDetectFilter:

    def test_default_filter(self):
        assert silence_detect_filter() == "silencedetect=noise=-30dB:d=0.25"

    def test_custom_values(self):
        assert silence_detect_filter(-42.5, 0.4) == "silencedetect=noise=-42.5dB:d=0.4"
