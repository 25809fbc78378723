"""Command-line interface for the clip worker.

WHY: Editors and developers need to try cuts locally: render a clip from a
file on disk, see the exact ffmpeg command a request would run, or inspect
the caption track for a window, all without storage credentials. The same
pipeline code as the HTTP API runs underneath, so what the CLI shows is
what the service renders.

HOW: argparse with four subcommands:
  render: resolve, caption and render a local file (progress to stderr)
  plan: print the ffmpeg command without running it
  captions: print the caption track for a window
  serve: start the HTTP API
Transcript files are validated against WORDS_SCHEMA with jsonschema before
they are parsed. Async work runs via asyncio.run().

RULES:
- Status output goes to stderr; stdout carries only command results
- A words file is either a JSON array of words or {"words": [...]}
- Invalid input exits with code 1 and an "Error:" line; Ctrl-C exits 130
- Python 3.9 compatible: no match/case, no X | Y unions
"""

from __future__ import annotations

import argparse
import asyncio
import dataclasses
import json
import logging
import shlex
import sys
from pathlib import Path
from typing import Any, List, Optional

import jsonschema

from clip_worker.config import load_settings
from clip_worker.core.boundary import CutStrategy, resolve_cut
from clip_worker.core.captions import synthesize_cues
from clip_worker.core.ir import Word, words_from_dicts
from clip_worker.core.progress import ProgressEvent
from clip_worker.formatters import FORMATTERS
from clip_worker.pipeline import ClipRequest, render_local
from clip_worker.render.plan import RenderStyle

_WORD_ITEM_SCHEMA = {
    "type": "object",
    "properties": {
        "start": {"type": ["number", "string"]},
        "end": {"type": ["number", "string"]},
        "word": {"type": "string"},
        "text": {"type": "string"},
    },
    "required": ["start"],
    "anyOf": [{"required": ["word"]}, {"required": ["text"]}],
}

WORDS_SCHEMA = {
    "$schema": "https://json-schema.org/draft/2020-12/schema",
    "oneOf": [
        {"type": "array", "items": _WORD_ITEM_SCHEMA},
        {
            "type": "object",
            "properties": {"words": {"type": "array", "items": _WORD_ITEM_SCHEMA}},
            "required": ["words"],
        },
    ],
}


def _status(msg: str) -> None:
    """Print a status message to stderr (stdout stays pipeable)."""
    print(msg, file=sys.stderr, flush=True)


def load_words_file(path: str) -> List[Word]:
    """Read, validate and parse a transcript words file.

    Raises:
        ValueError: If the file is not JSON or does not match WORDS_SCHEMA.
    """
    try:
        with open(path, encoding="utf-8") as f:
            data: Any = json.load(f)
    except json.JSONDecodeError as exc:
        raise ValueError("{} is not valid JSON: {}".format(path, exc))

    try:
        jsonschema.validate(instance=data, schema=WORDS_SCHEMA)
    except jsonschema.ValidationError as exc:
        raise ValueError("{} is not a words file: {}".format(path, exc.message))

    items = data["words"] if isinstance(data, dict) else data
    return words_from_dicts(items)


def _request_from_args(args: argparse.Namespace) -> ClipRequest:
    words = load_words_file(args.words) if args.words else []
    caption_format = None if args.captions == "none" else args.captions
    return ClipRequest(
        video_url=str(args.input),
        start=args.start,
        duration=args.duration,
        job_id="local",
        words=words,
        strategy=CutStrategy(args.strategy),
        render_style=RenderStyle(args.style),
        caption_format=caption_format,
        title=args.title,
        watermark=bool(args.watermark),
    )


def _settings_from_args(args: argparse.Namespace):
    settings = load_settings()
    changes = {}
    if args.watermark:
        changes["watermark_path"] = args.watermark
    if args.ffmpeg:
        changes["ffmpeg_path"] = args.ffmpeg
    return dataclasses.replace(settings, **changes) if changes else settings


def _default_output(input_path: str) -> Path:
    src = Path(input_path)
    return src.with_name("{}-clip.mp4".format(src.stem))


async def _run_render(args: argparse.Namespace, dry_run: bool) -> int:
    if not Path(args.input).is_file():
        raise ValueError("Input file not found: {}".format(args.input))
    request = _request_from_args(args)
    settings = _settings_from_args(args)
    output = Path(args.output) if args.output else _default_output(args.input)

    def on_progress(event: ProgressEvent) -> None:
        _status("  {} {:.0f}%".format(event.stage, event.percent))

    def on_stage(stage: str) -> None:
        _status("{}...".format(stage.capitalize()))

    prepared = await render_local(
        args.input,
        output,
        request,
        settings=settings,
        on_progress=on_progress,
        on_status=on_stage,
        dry_run=dry_run,
    )

    window = prepared.window
    _status("Cut: {:.3f}s -> {:.3f}s ({:.3f}s, {})".format(
        window.cut_start, window.cut_end, window.duration, window.strategy
    ))
    if dry_run:
        print(shlex.join([settings.ffmpeg_path] + prepared.args))
        if prepared.caption_path:
            _status("Caption file: {}".format(prepared.caption_path))
    else:
        _status("Done! Saved {}".format(output))
    return 0


def _run_captions(args: argparse.Namespace) -> int:
    settings = load_settings()
    words = load_words_file(args.words)
    window = resolve_cut(
        args.start, args.start + args.duration, words, None,
        CutStrategy(args.strategy), settings.policy,
    )
    cues = synthesize_cues(words, window.cut_start, settings.caption_style, window.cut_end)
    formatter = FORMATTERS[args.format](settings.caption_style)
    output = formatter.format(cues)
    _status("{} cue(s) for cut {:.3f}s -> {:.3f}s".format(
        len(cues), window.cut_start, window.cut_end
    ))
    sys.stdout.write(output.content)
    return 0


def _run_serve(args: argparse.Namespace) -> int:
    from clip_worker.server.app import run_api

    run_api(port=args.port)
    return 0


def _add_window_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--start", type=float, required=True,
                        help="Requested start in seconds.")
    parser.add_argument("--duration", type=float, required=True,
                        help="Requested duration in seconds.")
    parser.add_argument(
        "--strategy",
        choices=[s.value for s in CutStrategy],
        default=CutStrategy.WORD_SNAP.value,
        help="Boundary strategy (default: %(default)s).",
    )


def _add_render_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("input", help="Path to the source video.")
    parser.add_argument("-o", "--output", default=None,
                        help="Output path (default: {stem}-clip.mp4 next to the input).")
    _add_window_args(parser)
    parser.add_argument("--words", default=None,
                        help="Words JSON file for snapping and captions.")
    parser.add_argument("--style", choices=[s.value for s in RenderStyle],
                        default=RenderStyle.CROP.value,
                        help="Portrait reframing (default: %(default)s).")
    parser.add_argument("--captions", choices=sorted(FORMATTERS) + ["none"], default="srt",
                        help="Caption track (default: %(default)s).")
    parser.add_argument("--title", default=None, help="Title drawn at the top.")
    parser.add_argument("--watermark", default=None, help="Watermark image path.")
    parser.add_argument("--ffmpeg", default=None, help="ffmpeg executable (default: FFMPEG_PATH).")


def build_parser() -> argparse.ArgumentParser:
    """Build the argparse parser (separate from main() so tests can use it)."""
    parser = argparse.ArgumentParser(
        prog="clip-worker",
        description="Cut spoken-word video into captioned vertical clips.",
    )
    parser.add_argument("-v", "--verbose", action="store_true",
                        help="Enable debug logging.")
    sub = parser.add_subparsers(dest="command", required=True)

    render = sub.add_parser("render", help="Render a clip from a local file.")
    _add_render_args(render)

    plan = sub.add_parser("plan", help="Print the ffmpeg command without running it.")
    _add_render_args(plan)

    captions = sub.add_parser("captions", help="Print the caption track for a window.")
    captions.add_argument("--words", required=True, help="Words JSON file.")
    _add_window_args(captions)
    captions.add_argument("--format", choices=sorted(FORMATTERS), default="srt",
                          help="Caption format (default: %(default)s).")

    serve = sub.add_parser("serve", help="Start the HTTP API.")
    serve.add_argument("--port", type=int, default=None,
                       help="Port to listen on (default: PORT).")
    return parser


def main(argv: Optional[List[str]] = None) -> None:
    """Entry point for ``clip-worker`` and ``python -m clip_worker``.

    RULES:
    - argv=None means use sys.argv; explicit argv is for testing
    """
    parser = build_parser()
    args = parser.parse_args(argv)
    if args.verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        )

    try:
        if args.command in ("render", "plan"):
            code = asyncio.run(_run_render(args, dry_run=args.command == "plan"))
        elif args.command == "captions":
            code = _run_captions(args)
        else:
            code = _run_serve(args)
    except KeyboardInterrupt:
        _status("\nCancelled by user.")
        sys.exit(130)
    except Exception as exc:
        print("Error: {}".format(exc), file=sys.stderr)
        sys.exit(1)
    if code:
        sys.exit(code)


if __name__ == "__main__":
    main()
