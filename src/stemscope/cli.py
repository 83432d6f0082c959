"""
Command-line interface for analysis and rendering.
"""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Any

from stemscope.adjust import sanitize_adjust_settings
from stemscope.config import EngineConfig
from stemscope.core.buffers import load_audio
from stemscope.errors import StemscopeError
from stemscope.io.exporter import AnalysisExporter
from stemscope.logging_setup import configure_logging
from stemscope.pipeline import AnalysisPipeline
from stemscope.render import (
    DEFAULT_LAYER_VOLUME,
    Layer,
    LayerDecodeCache,
    RenderRequest,
    process_take,
    render_mixdown,
)
from stemscope.settings import sanitize_chain_settings

logger = logging.getLogger(__name__)


def _read_settings(path: Path | None) -> dict[str, Any] | None:
    """Read a JSON settings file; None when no path was given."""
    if path is None:
        return None
    try:
        with open(path, "r", encoding="utf-8") as f:
            return json.load(f)
    except (OSError, ValueError) as exc:
        raise StemscopeError(f"Cannot read settings file {path}: {exc}") from exc


def _add_render_options(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "-o", "--output",
        type=Path,
        required=True,
        help="Output WAV file path",
    )
    parser.add_argument(
        "--chain",
        type=Path,
        default=None,
        help="JSON file with effect chain settings",
    )
    parser.add_argument(
        "--adjust",
        type=Path,
        default=None,
        help="JSON file with varispeed/pitch/gain settings",
    )
    parser.add_argument(
        "--bpm",
        type=float,
        default=None,
        help="Project tempo for synced delay (default: STEMSCOPE_DEFAULT_BPM or 90)",
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="stemscope",
        description="Tempo/key analysis and effect rendering for recorded takes",
    )
    parser.add_argument(
        "-q", "--quiet",
        action="store_true",
        help="Suppress progress output",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    analyze = subparsers.add_parser("analyze", help="Estimate tempo and key of a file")
    analyze.add_argument(
        "input",
        type=Path,
        help="Input audio file (wav, mp3, flac)",
    )
    analyze.add_argument(
        "-o", "--output",
        type=Path,
        default=None,
        help="Output report path (default: <input>_analysis.json)",
    )
    analyze.add_argument(
        "--no-cache",
        action="store_true",
        help="Ignore and do not update the analysis cache",
    )
    analyze.add_argument(
        "--summary",
        action="store_true",
        help="Print the report to stdout",
    )

    fx = subparsers.add_parser("fx", help="Render one take through adjust and effects")
    fx.add_argument(
        "input",
        type=Path,
        help="Input audio file",
    )
    _add_render_options(fx)

    mix = subparsers.add_parser("mix", help="Mix several layers down to one WAV")
    mix.add_argument(
        "layers",
        type=Path,
        nargs="+",
        help="Layer audio files (WAV, FLAC or OGG)",
    )
    mix.add_argument(
        "--take",
        type=int,
        default=0,
        help="Index of the layer that gets adjust and effects (default: 0)",
    )
    mix.add_argument(
        "--volume",
        type=float,
        nargs="+",
        default=None,
        help="Per-layer volume in [0, 1] (default: 0.9 each)",
    )
    mix.add_argument(
        "--mute",
        type=int,
        nargs="+",
        default=(),
        help="Indices of muted layers",
    )
    _add_render_options(mix)

    return parser


def _print(args: argparse.Namespace, message: str) -> None:
    if not args.quiet:
        print(message)


def run_analyze(args: argparse.Namespace, config: EngineConfig) -> int:
    output_path = args.output
    if output_path is None:
        output_path = args.input.with_name(f"{args.input.stem}_analysis.json")

    _print(args, f"Analyzing: {args.input}")
    pipeline = AnalysisPipeline(config)
    result = pipeline.process(args.input, output_path=output_path, use_cache=not args.no_cache)
    analysis = result["analysis"]

    if analysis.bpm is not None:
        _print(args, f"BPM: {analysis.bpm} (confidence {analysis.bpm_confidence})")
    else:
        _print(args, "BPM: not detected")
    if analysis.key_root and analysis.key_mode:
        _print(args, f"Key: {analysis.key_root} {analysis.key_mode} (confidence {analysis.key_confidence})")
    else:
        _print(args, "Key: not detected")
    _print(args, f"Duration: {result['duration']:.2f}s")
    _print(args, f"Output: {result['output_path']}")

    if args.summary:
        print("\n--- Analysis Report ---")
        print(json.dumps(result["report"], indent=2))

    return 0


def run_fx(args: argparse.Namespace, config: EngineConfig) -> int:
    chain = sanitize_chain_settings(_read_settings(args.chain))
    adjust = sanitize_adjust_settings(_read_settings(args.adjust))
    bpm = args.bpm if args.bpm is not None else config.default_bpm

    _print(args, f"Processing: {args.input}")
    buffer = load_audio(args.input)
    rendered = process_take(buffer, chain, adjust, bpm)
    written = AnalysisExporter().export_wav(rendered, args.output)

    _print(args, f"Duration: {rendered.duration:.2f}s")
    _print(args, f"Output: {written}")
    return 0


def run_mix(args: argparse.Namespace, config: EngineConfig) -> int:
    n_layers = len(args.layers)
    if args.volume is not None and len(args.volume) != n_layers:
        raise StemscopeError(f"Got {len(args.volume)} volumes for {n_layers} layers")
    if not 0 <= args.take < n_layers:
        raise StemscopeError(f"Take index {args.take} out of range for {n_layers} layers")

    muted = set(args.mute)
    layers = []
    for index, path in enumerate(args.layers):
        try:
            blob = path.read_bytes()
        except OSError as exc:
            raise StemscopeError(f"Cannot read layer {path}: {exc}") from exc
        layers.append(
            Layer(
                id=str(index),
                blob=blob,
                muted=index in muted,
                volume=args.volume[index] if args.volume is not None else DEFAULT_LAYER_VOLUME,
                kind="imported",
            )
        )

    request = RenderRequest(
        layers=tuple(layers),
        take_id=str(args.take),
        chain=sanitize_chain_settings(_read_settings(args.chain)),
        adjust=sanitize_adjust_settings(_read_settings(args.adjust)),
        bpm=args.bpm if args.bpm is not None else config.default_bpm,
    )

    _print(args, f"Mixing {len(request.active_layers)} of {n_layers} layers")
    mixed = asyncio.run(render_mixdown(request, LayerDecodeCache()))
    args.output.write_bytes(mixed.wav)

    _print(args, f"Duration: {mixed.duration_sec}s")
    _print(args, f"Output: {args.output}")
    return 0


COMMANDS = {
    "analyze": run_analyze,
    "fx": run_fx,
    "mix": run_mix,
}


def main(argv: list[str] | None = None) -> int:
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging(quiet=args.quiet)
    config = EngineConfig.from_env()

    if getattr(args, "input", None) is not None and not args.input.exists():
        print(f"Error: Input file not found: {args.input}", file=sys.stderr)
        return 1

    try:
        return COMMANDS[args.command](args, config)
    except StemscopeError as exc:
        logger.debug("Command %s failed", args.command, exc_info=True)
        print(f"Error: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
