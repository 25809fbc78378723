"""Core timing logic: word timelines, silences, cut boundaries, captions, progress.

WHY: These are the decisions that make a clip sound and read right. Keeping
them free of I/O means they can be tested with plain lists of numbers and
called from any number of concurrent requests.

HOW: ir.py defines the shared dataclasses; silence.py parses the silence
analysis pass; boundary.py resolves cut windows; captions.py groups words
into cues; progress.py maps engine output to a global percentage.

RULES:
- No module in this package performs network, disk or subprocess I/O
- Configuration arrives as dataclass arguments, never from the environment
"""
