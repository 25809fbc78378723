"""Render plan construction and the ffmpeg process runner.

WHY: The transcoding engine is driven entirely by text: a filter graph and
an argument list. This package owns producing that text correctly (plan.py,
escaping.py) and running the engine with progress and a time budget
(engine.py).

RULES:
- plan.py and escaping.py are pure; only engine.py starts processes
- No filter-graph text is built outside this package
"""

from clip_worker.render.plan import (
    CaptionTrackRef,
    RenderPlan,
    RenderSettings,
    RenderStyle,
    WatermarkRef,
    build_render_plan,
)

__all__ = [
    "CaptionTrackRef",
    "RenderPlan",
    "RenderSettings",
    "RenderStyle",
    "WatermarkRef",
    "build_render_plan",
]
