"""Render plan builder: the declarative ffmpeg description of one clip.

WHY: Every clip goes through the same transform: reframe to 9:16, burn in
captions, optionally draw a title and stamp a watermark, fade the audio
edges. Building this as plain text in one pure function makes the render
reproducible and testable without running ffmpeg, and keeps the escaping
rules in one place.

HOW: build_render_plan() composes labeled filter chains in a fixed order:
spatial transform (crop or blur) → captions → title → watermark. Each stage
assumes the 1080x1920 output of the previous one. The last stage
always writes the ``[vout]`` label. The audio graph holds the two fades sized
by boundary.fade_durations(). RenderPlan.engine_args() turns the plan plus a
cut window into the complete ffmpeg argument list.

RULES:
- Stage order is fixed and independent of which optional stages are present
- Every path and text value goes through render.escaping
- Auxiliary inputs are ordered: caption file, then watermark image
- Image inputs are numbered from 1 in auxiliary order (input 0 is the source)
- A RenderPlan is immutable; build a new one per render
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Callable, List, Optional, Tuple, Union

from clip_worker.core.boundary import DEFAULT_POLICY, BoundaryPolicy, fade_durations
from clip_worker.core.ir import CutWindow
from clip_worker.render.escaping import escape_drawtext_text, escape_filter_path, wrap_title

OUTPUT_LABEL = "vout"


class RenderStyle(str, enum.Enum):
    """How the source is reframed to portrait."""

    BLUR = "blur"
    CROP = "crop"


@dataclass(frozen=True)
class RenderSettings:
    """Target frame and overlay appearance.

    RULES:
    - width/height: output frame (portrait 1080x1920 by default)
    - blur_*: boxblur luma radius/power of the blurred background
    - background_dim: opacity of the black layer darkening the background
    - title_*: drawtext appearance; title_max_chars is the wrap budget
    - watermark_*: target width, corner margin, opacity
    """

    width: int = 1080
    height: int = 1920
    blur_radius: int = 20
    blur_power: int = 2
    background_dim: float = 0.35
    title_max_chars: int = 18
    title_font_size: int = 64
    title_font_file: Optional[str] = None
    title_y: int = 160
    title_line_spacing: int = 12
    title_border: int = 4
    watermark_width: int = 220
    watermark_margin: int = 40
    watermark_opacity: float = 0.6


@dataclass(frozen=True)
class EncodeSettings:
    """Output encoder flags passed through to ffmpeg."""

    video_codec: str = "libx264"
    preset: str = "fast"
    crf: int = 23
    pix_fmt: str = "yuv420p"
    audio_codec: str = "aac"
    audio_bitrate: str = "192k"


DEFAULT_RENDER = RenderSettings()
DEFAULT_ENCODE = EncodeSettings()


@dataclass(frozen=True)
class CaptionTrackRef:
    """A serialized caption file and the style override it needs, if any."""

    path: str
    force_style: Optional[str] = None


@dataclass(frozen=True)
class WatermarkRef:
    """A watermark image; prescaled=True means it is already target width."""

    path: str
    prescaled: bool = False


@dataclass(frozen=True)
class AuxiliaryInput:
    """A file the engine must open besides the source media."""

    path: str
    kind: str  # "captions" or "image"


@dataclass(frozen=True)
class RenderPlan:
    """Engine-ready description of one render.

    Attributes:
        video_filter_graph: Complete -filter_complex value ending in [vout].
        audio_filter_graph: -af value (empty string when no fades apply).
        auxiliary_inputs: Caption file and watermark image, in that order.
        output_label: The label of the final video stream.
    """

    video_filter_graph: str
    audio_filter_graph: str
    auxiliary_inputs: Tuple[AuxiliaryInput, ...] = ()
    output_label: str = OUTPUT_LABEL

    @property
    def image_inputs(self) -> List[str]:
        return [aux.path for aux in self.auxiliary_inputs if aux.kind == "image"]

    def engine_args(
        self,
        input_path: str,
        output_path: str,
        window: CutWindow,
        encode: EncodeSettings = DEFAULT_ENCODE,
    ) -> List[str]:
        """Build the full ffmpeg argument list (without the executable).

        The source is seeked with an input-side ``-ss`` so timestamps restart
        at zero, which is what the caption offsets are relative to.
        """
        args = [
            "-y",
            "-hide_banner",
            "-ss", "{:.3f}".format(window.cut_start),
            "-i", str(input_path),
        ]
        for image in self.image_inputs:
            args.extend(["-i", image])
        args.extend([
            "-t", "{:.3f}".format(window.duration),
            "-filter_complex", self.video_filter_graph,
            "-map", "[{}]".format(self.output_label),
            "-map", "0:a:0?",
        ])
        if self.audio_filter_graph:
            args.extend(["-af", self.audio_filter_graph])
        args.extend([
            "-c:v", encode.video_codec,
            "-preset", encode.preset,
            "-crf", str(encode.crf),
            "-pix_fmt", encode.pix_fmt,
            "-c:a", encode.audio_codec,
            "-b:a", encode.audio_bitrate,
            "-avoid_negative_ts", "make_zero",
            "-movflags", "+faststart",
            str(output_path),
        ])
        return args


# ---------------------------------------------------------------------------
# Stage builders. Each takes (src_label, dst_label) and returns graph text.
# ---------------------------------------------------------------------------

_Stage = Callable[[str, str], str]


def _crop_stage(settings: RenderSettings) -> _Stage:
    w, h = settings.width, settings.height

    def build(src: str, dst: str) -> str:
        return (
            "[{src}]scale={w}:{h}:force_original_aspect_ratio=increase,"
            "crop={w}:{h},setsar=1[{dst}]"
        ).format(src=src, dst=dst, w=w, h=h)

    return build


def _blur_stage(settings: RenderSettings) -> _Stage:
    w, h = settings.width, settings.height

    def build(src: str, dst: str) -> str:
        return ";".join([
            "[{src}]split=2[bgsrc][fgsrc]".format(src=src),
            (
                "[bgsrc]scale={w}:{h}:force_original_aspect_ratio=increase,"
                "crop={w}:{h},boxblur={r}:{p},"
                "drawbox=x=0:y=0:w=iw:h=ih:color=black@{dim:.2f}:t=fill[bg]"
            ).format(
                w=w, h=h, r=settings.blur_radius, p=settings.blur_power,
                dim=settings.background_dim,
            ),
            "[fgsrc]scale={w}:{h}:force_original_aspect_ratio=decrease[fg]".format(w=w, h=h),
            "[bg][fg]overlay=(W-w)/2:(H-h)/2,setsar=1[{dst}]".format(dst=dst),
        ])

    return build


def _caption_stage(captions: CaptionTrackRef) -> _Stage:
    def build(src: str, dst: str) -> str:
        value = "subtitles={}".format(escape_filter_path(captions.path))
        if captions.force_style:
            value += ":force_style='{}'".format(captions.force_style)
        return "[{}]{}[{}]".format(src, value, dst)

    return build


def _title_stage(title: str, settings: RenderSettings) -> _Stage:
    lines = wrap_title(title, settings.title_max_chars)
    text = "\n".join(escape_drawtext_text(line) for line in lines)

    def build(src: str, dst: str) -> str:
        options = [
            "text='{}'".format(text),
            "fontsize={}".format(settings.title_font_size),
            "fontcolor=white",
            "borderw={}".format(settings.title_border),
            "bordercolor=black",
            "line_spacing={}".format(settings.title_line_spacing),
            "x=(w-text_w)/2",
            "y={}".format(settings.title_y),
        ]
        if settings.title_font_file:
            options.append("fontfile={}".format(escape_filter_path(settings.title_font_file)))
        return "[{}]drawtext={}[{}]".format(src, ":".join(options), dst)

    return build


def _watermark_stage(
    watermark: WatermarkRef, input_index: int, settings: RenderSettings
) -> _Stage:
    prep = []
    if not watermark.prescaled:
        prep.append("scale={}:-1".format(settings.watermark_width))
    prep.append("format=rgba")
    prep.append("colorchannelmixer=aa={:.2f}".format(settings.watermark_opacity))
    margin = settings.watermark_margin

    def build(src: str, dst: str) -> str:
        return "[{idx}:v]{prep}[wm];[{src}][wm]overlay=W-w-{m}:{m}[{dst}]".format(
            idx=input_index, prep=",".join(prep), src=src, m=margin, dst=dst,
        )

    return build


def build_audio_graph(window: CutWindow, policy: BoundaryPolicy = DEFAULT_POLICY) -> str:
    """Fade in over the lead pad and out over the tail pad.

    The fade-out starts at duration - fade_out and ends at the cut end, so it
    only covers the margin added after the last word.
    """
    fade_in, fade_out = fade_durations(window, policy)
    parts = []
    if fade_in > 0:
        parts.append("afade=t=in:st=0:d={:.3f}".format(fade_in))
    if fade_out > 0:
        parts.append("afade=t=out:st={:.3f}:d={:.3f}".format(
            window.duration - fade_out, fade_out
        ))
    return ",".join(parts)


def build_render_plan(
    style: Union[RenderStyle, str],
    window: CutWindow,
    settings: RenderSettings = DEFAULT_RENDER,
    captions: Optional[CaptionTrackRef] = None,
    title: Optional[str] = None,
    watermark: Optional[WatermarkRef] = None,
    policy: BoundaryPolicy = DEFAULT_POLICY,
) -> RenderPlan:
    """Compose the video and audio filter graphs for one clip.

    Args:
        style: RenderStyle member or its string value ("blur" | "crop").
        window: The validated cut window (sizes the audio fades).
        settings: Target frame and overlay appearance.
        captions: Caption file reference, or None for no captions.
        title: Title text, or None/blank for no title.
        watermark: Watermark image reference, or None.
        policy: Boundary policy supplying the requested fade lengths.

    Returns:
        An immutable RenderPlan.

    Raises:
        ValueError: If the style name is unknown.
    """
    style = RenderStyle(style)

    stages: List[_Stage] = []
    aux: List[AuxiliaryInput] = []

    stages.append(_blur_stage(settings) if style is RenderStyle.BLUR else _crop_stage(settings))

    if captions is not None:
        stages.append(_caption_stage(captions))
        aux.append(AuxiliaryInput(path=captions.path, kind="captions"))

    if title and title.strip():
        stages.append(_title_stage(title, settings))

    if watermark is not None:
        input_index = 1 + sum(1 for a in aux if a.kind == "image")
        stages.append(_watermark_stage(watermark, input_index, settings))
        aux.append(AuxiliaryInput(path=watermark.path, kind="image"))

    chains = []
    src = "0:v"
    for i, stage in enumerate(stages):
        dst = OUTPUT_LABEL if i == len(stages) - 1 else "v{}".format(i)
        chains.append(stage(src, dst))
        src = dst

    return RenderPlan(
        video_filter_graph=";".join(chains),
        audio_filter_graph=build_audio_graph(window, policy),
        auxiliary_inputs=tuple(aux),
    )
