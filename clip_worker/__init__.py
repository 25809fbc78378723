"""Clip Worker: word-accurate vertical clip cutting with burned-in captions.

WHY: Clips requested from long spoken-word videos arrive as rough
``[start, start + duration]`` windows. Cutting exactly there clips the first
and last syllables, and captions drift from the audio. This package turns the
rough window into an audio-safe cut, writes a word-synchronized caption track,
and describes the whole render for ffmpeg as plain filter-graph text.

HOW: Four layers: core (pure timing logic: boundaries, silences, captions,
progress), formatters (caption track serialization), render (filter graph,
escaping, ffmpeg process), and the outer service (download, publish, HTTP API,
CLI) that sequences them per request.

RULES:
- Core modules never touch the network, the filesystem or subprocesses
- Every tunable (pads, budgets, thresholds) lives in a config dataclass
  passed in explicitly; nothing reads ambient state
- The filter graph is plain text; escaping is applied unconditionally
"""

__version__ = "0.1.0"
