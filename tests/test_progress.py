"""Tests for the pull-based progress tracker.

WHY: Pollers see only the numbers the tracker emits. They must stay inside
the running stage's range, never go backwards, and not flood the job store
with sub-threshold changes, no matter how ffmpeg splits its output.

HOW: The tracker is driven with literal stderr fragments; no subprocess.
"""

from __future__ import annotations

import pytest

from clip_worker.core.progress import (
    DEFAULT_STAGES,
    ProgressEvent,
    ProgressTracker,
    StageBounds,
    TrackerState,
    parse_timecode,
)
from clip_worker.pipeline import LOCAL_STAGES


def _line(seconds: float) -> str:
    minutes, secs = divmod(seconds, 60)
    return "frame=  100 fps= 30 q=28.0 size=    512kB time=00:{:02d}:{:05.2f} bitrate= 800kbits/s speed=2.0x\r".format(
        int(minutes), secs
    )


class TestParseTimecode:

    @pytest.mark.parametrize("value,expected", [
        ("00:00:05.50", 5.5),
        ("01:02:03.25", 3723.25),
        ("00:10:00", 600.0),
    ])
    def test_valid(self, value, expected):
        assert parse_timecode(value) == pytest.approx(expected)

    @pytest.mark.parametrize("value", ["", "5.5", "aa:bb:cc", "00:00"])
    def test_invalid(self, value):
        assert parse_timecode(value) is None


class TestStateMachine:

    def test_starts_idle(self):
        assert ProgressTracker().state is TrackerState.IDLE

    def test_begin_stage_runs(self):
        tracker = ProgressTracker()
        tracker.begin_stage("transcode", total_seconds=10.0)
        assert tracker.state is TrackerState.RUNNING
        assert tracker.current_stage == "transcode"

    def test_finish(self):
        tracker = ProgressTracker()
        tracker.begin_stage("download")
        tracker.finish(True)
        assert tracker.state is TrackerState.COMPLETED
        tracker.finish(False)
        assert tracker.state is TrackerState.FAILED

    def test_unknown_stage(self):
        with pytest.raises(KeyError):
            ProgressTracker().begin_stage("upload")

    def test_threshold_must_be_positive(self):
        with pytest.raises(ValueError):
            ProgressTracker(threshold=0)

    def test_idle_tracker_ignores_input(self):
        tracker = ProgressTracker()
        assert tracker.feed(_line(5.0)) == []
        assert tracker.report_fraction(0.5) == []

    def test_finished_tracker_ignores_input(self):
        tracker = ProgressTracker()
        tracker.begin_stage("transcode", total_seconds=10.0)
        tracker.finish(True)
        assert tracker.feed(_line(5.0)) == []

    def test_default_stage_order(self):
        assert ProgressTracker().stage_order == ["download", "captions", "transcode", "publish"]


class TestFeed:

    def test_maps_into_stage_range(self):
        tracker = ProgressTracker()
        tracker.begin_stage("transcode", total_seconds=10.0)
        events = tracker.feed(_line(5.0))
        assert events == [ProgressEvent(stage="transcode", percent=62.5)]

    def test_uses_last_marker_in_chunk(self):
        tracker = ProgressTracker()
        tracker.begin_stage("transcode", total_seconds=10.0)
        events = tracker.feed(_line(2.0) + _line(8.0))
        assert [e.percent for e in events] == [82.0]

    def test_partial_lines_are_buffered(self):
        tracker = ProgressTracker()
        tracker.begin_stage("transcode", total_seconds=10.0)
        line = _line(5.0)
        assert tracker.feed(line[:60]) == []
        assert tracker.feed(line[60:]) == [ProgressEvent(stage="transcode", percent=62.5)]

    def test_accepts_bytes(self):
        tracker = ProgressTracker()
        tracker.begin_stage("transcode", total_seconds=10.0)
        assert tracker.feed(_line(10.0).encode("utf-8"))[0].percent == 95.0

    def test_chunk_without_marker_ignored(self):
        tracker = ProgressTracker()
        tracker.begin_stage("transcode", total_seconds=10.0)
        assert tracker.feed("Stream mapping:\n  Stream #0:0 -> #0:0 (h264 -> libx264)\n") == []

    def test_overshoot_clamped_to_stage_high(self):
        tracker = ProgressTracker()
        tracker.begin_stage("transcode", total_seconds=10.0)
        assert tracker.feed(_line(30.0))[0].percent == 95.0

    def test_hours_in_marker(self):
        tracker = ProgressTracker()
        tracker.begin_stage("transcode", total_seconds=7200.0)
        line = "frame=1 time=01:00:00.00 bitrate=1\r"
        assert tracker.feed(line)[0].percent == 62.5
        assert parse_timecode("01:00:00.00") == 3600.0

    def test_unknown_total_ignored(self):
        tracker = ProgressTracker()
        tracker.begin_stage("transcode")
        assert tracker.feed(_line(5.0)) == []


class TestThrottling:

    def test_small_steps_suppressed(self):
        tracker = ProgressTracker()
        tracker.begin_stage("transcode", total_seconds=100.0)
        percents = []
        for second in range(0, 101):
            percents.extend(e.percent for e in tracker.feed(_line(float(second))))
        for prev, nxt in zip(percents, percents[1:]):
            assert nxt - prev >= 5.0

    def test_never_outside_stage_range(self):
        stages = (StageBounds("download", 0.0, 25.0), StageBounds("transcode", 25.0, 100.0))
        tracker = ProgressTracker(stages=stages, threshold=1.0)
        tracker.begin_stage("download")
        for i in range(11):
            for event in tracker.report_fraction(i / 10.0):
                assert 0.0 <= event.percent <= 25.0
        tracker.begin_stage("transcode", total_seconds=10.0)
        for second in range(0, 15):
            for event in tracker.feed(_line(float(second))):
                assert 25.0 <= event.percent <= 100.0

    def test_never_decreases_across_stages(self):
        tracker = ProgressTracker()
        tracker.begin_stage("download")
        tracker.report_fraction(1.0)
        tracker.begin_stage("download")
        assert tracker.report_fraction(0.1) == []

    def test_report_fraction_clamps(self):
        tracker = ProgressTracker()
        tracker.begin_stage("publish")
        assert tracker.report_fraction(7.0) == [ProgressEvent(stage="publish", percent=100.0)]

    def test_first_event_always_emitted(self):
        tracker = ProgressTracker()
        tracker.begin_stage("download")
        assert tracker.report_fraction(0.0) == [ProgressEvent(stage="download", percent=0.0)]

    def test_default_stages_cover_zero_to_hundred(self):
        assert DEFAULT_STAGES[0].low == 0.0
        assert DEFAULT_STAGES[-1].high == 100.0
        for prev, nxt in zip(DEFAULT_STAGES, DEFAULT_STAGES[1:]):
            assert prev.high == nxt.low

    def test_completion_report_respects_threshold(self):
        tracker = ProgressTracker(stages=LOCAL_STAGES)
        tracker.begin_stage("transcode", total_seconds=10.0)
        percents = []
        for tenth in range(0, 99, 2):
            percents.extend(e.percent for e in tracker.feed(_line(tenth / 10.0)))
        percents.extend(e.percent for e in tracker.report_fraction(1.0))
        for prev, nxt in zip(percents, percents[1:]):
            assert nxt - prev >= 5.0

    def test_completion_after_small_step_suppressed(self):
        tracker = ProgressTracker()
        tracker.begin_stage("publish")
        tracker.report_fraction(0.4)
        assert tracker.report_fraction(1.0) == []
