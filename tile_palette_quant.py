#!/usr/bin/env python3
"""
tile_palette_quant.py
Quantize images to tiles that each use one of a few small palettes.

Usage:
  python tile_palette_quant.py SRC [--outdir D] [--tile-width W] [--tile-height H]
      [--num-palettes P] [--colors-per-palette C] [--bits-per-channel B]
      [--dither off|fast|slow] [--dither-pattern NAME] [--color-zero POLICY]
      [--seed N] [--jobs J] [--workers W] [--debug]

Input:
  Any Pillow-readable image, or a folder of them. Width and height must be
  multiples of the tile size.

Output:
  <stem>_tiles.bmp (indexed) when palettes x colours <= 256, otherwise
  <stem>_tiles.png (RGBA). Written next to SRC unless --outdir is given.

Notes:
  Settings flags and their help text come from tile_palette.settings.FIELD_INFO.
  CPU bound. ThreadPoolExecutor is used for folder jobs and internal fan-out.
"""

from __future__ import annotations

import argparse
import io
import os
import sys
import time
from concurrent.futures import ThreadPoolExecutor
from contextlib import redirect_stdout
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional

import numpy as np

from tile_palette.engine import ProgressEvent, quantize
from tile_palette.errors import TileQuantError
from tile_palette.image_io import fits_indexed, is_image_file, load_image_rgba, save_indexed_image
from tile_palette.settings import FIELD_INFO, QuantizeSettings
from tile_palette.utils import (
    # formatting
    format_seconds_compact,
    format_total_duration_compact,
    # pretty logging
    print_banner,
    print_config_line,
    print_progress_line,
    log,
    debug_log,
    error,
    warn,
    enable_line_buffered_stdout,
    key_value_pairs_to_string,
)

OUTPUT_SUFFIX = "_tiles"
IMAGE_EXTS = {".png", ".bmp", ".gif", ".jpg", ".jpeg", ".webp", ".tif", ".tiff"}

# CLI args & small helpers


def _default_workers() -> int:
    """Leave a few cores free for the system; returns a sensible worker count."""
    n = os.cpu_count() or 4
    reserve = 1 if n <= 6 else 2 if n <= 12 else 3 if n <= 18 else 4
    return max(1, n - reserve)


def _flag(name: str) -> str:
    return "--" + name.replace("_", "-")


def _add_settings_arguments(parser: argparse.ArgumentParser) -> None:
    """One flag per FIELD_INFO entry; enums become choices, bounds go into the help."""
    group = parser.add_argument_group("quantizer settings")
    for name, info in FIELD_INFO.items():
        help_text = info.description
        if info.bounds is not None:
            lo, hi = info.bounds
            help_text += f" Range {lo}..{hi}."
        if isinstance(info.default, Enum):
            enum_type = type(info.default)
            group.add_argument(
                _flag(name),
                dest=name,
                type=enum_type,
                choices=list(enum_type),
                metavar="|".join(e.value for e in enum_type),
                default=None,
                help=f"{help_text} Default {info.default.value}.",
            )
            continue
        group.add_argument(
            _flag(name),
            dest=name,
            type=type(info.default),
            default=None,
            help=f"{help_text} Default {info.default}.",
        )


def parse_cli_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """
    Parse CLI arguments.

    Returns:
      argparse.Namespace with:
        src: Path to image or folder
        outdir: optional Path for outputs
        <settings fields>: None when not given (QuantizeSettings default applies)
        seed: optional int for a reproducible sample order
        jobs: parallel file workers
        workers: internal threads for error and assignment fan-out
        debug: bool for verbose optimiser details
    """
    parser = argparse.ArgumentParser(
        prog="tile_palette_quant",
        description="Quantize image(s) to tiles with a few small palettes.",
    )
    parser.add_argument("src", type=Path, help="Input image or folder")
    parser.add_argument(
        "--outdir", type=Path, default=None, help="Output directory (optional)"
    )
    _add_settings_arguments(parser)
    parser.add_argument("--seed", type=int, default=None, help="Sample order seed")
    parser.add_argument("--jobs", type=int, default=2, help="Files processed in parallel")
    parser.add_argument(
        "--workers", type=int, default=_default_workers(), help="Internal workers"
    )
    parser.add_argument("--debug", action="store_true", help="Verbose optimiser details")
    return parser.parse_args(argv)


def settings_from_args(args: argparse.Namespace) -> QuantizeSettings:
    """QuantizeSettings with every flag the user gave applied over the defaults."""
    given: Dict[str, Any] = {
        name: getattr(args, name)
        for name in FIELD_INFO
        if getattr(args, name, None) is not None
    }
    return QuantizeSettings(**given).validate()


def output_path_for(src_path: Path, outdir: Optional[Path], indexed: bool) -> Path:
    suffix = ".bmp" if indexed else ".png"
    folder = outdir if outdir is not None else src_path.parent
    return folder / f"{src_path.stem}{OUTPUT_SUFFIX}{suffix}"


# Per-file processing


def _process_single_image(
    src_path: Path,
    outdir: Optional[Path],
    settings: QuantizeSettings,
    seed: Optional[int],
    workers: int,
    debug: bool,
    live: bool,
) -> Path:
    """
    Process a single image end-to-end:
      load -> quantize -> save -> report.
    """
    t_start = time.perf_counter()
    print_banner(src_path.name)

    rgba = load_image_rgba(src_path)
    height, width = rgba.shape[:2]
    t_loaded = time.perf_counter()
    if debug:
        opaque = int(np.count_nonzero(rgba[..., 3] >= 128))
        debug_log(
            key_value_pairs_to_string(
                [("Loaded", f"{width}x{height}"), ("Opaque", opaque), ("Workers", workers)]
            )
        )

    def on_progress(event: ProgressEvent) -> None:
        print_progress_line(
            f"{event.percent:5.1f}%  {event.stage}", final=event.percent >= 100.0
        )

    result = quantize(
        rgba,
        settings,
        seed=seed,
        progress=on_progress if live and not debug else None,
        workers=workers,
        debug=debug,
    )
    t_quant = time.perf_counter()

    out_path = output_path_for(src_path, outdir, fits_indexed(result))
    out_path.parent.mkdir(parents=True, exist_ok=True)
    out_path = save_indexed_image(out_path, result)
    t_saved = time.perf_counter()

    used = np.unique(result.tile_palettes).shape[0]
    log(
        f"Wrote {out_path.name} | size={width}x{height} | "
        f"palettes={result.num_palettes}x{result.colors_per_palette} | used={used}"
    )
    log(f"MSE: {result.mse:.2f}")
    if debug:
        debug_log(
            f"Total {format_total_duration_compact(t_saved - t_start)}  "
            f"(load={format_seconds_compact(t_loaded - t_start)}, "
            f"quantize={format_seconds_compact(t_quant - t_loaded)}, "
            f"save={format_seconds_compact(t_saved - t_quant)})"
        )
    else:
        log(f"Total time {format_total_duration_compact(t_saved - t_start)}")
    return out_path


def _process_one_captured(
    path: Path,
    outdir: Optional[Path],
    settings: QuantizeSettings,
    seed: Optional[int],
    workers: int,
    debug: bool,
) -> str:
    """
    Process a single file with stdout capture.

    Useful for concurrent execution where output should be printed in order.
    Errors are reported and the file is skipped.
    """
    buf = io.StringIO()
    with redirect_stdout(buf):
        try:
            _process_single_image(path, outdir, settings, seed, workers, debug, live=False)
        except TileQuantError as exc:
            error(f"{path.name}: {exc}")
    return buf.getvalue()


def _collect_files(src: Path) -> List[Path]:
    files = [
        p
        for p in src.iterdir()
        if p.is_file()
        and p.suffix.lower() in IMAGE_EXTS
        and not p.stem.endswith(OUTPUT_SUFFIX)
        and is_image_file(p)
    ]
    files.sort(key=lambda p: p.name.lower())
    return files


# Entry point


def main(argv: Optional[List[str]] = None) -> int:
    """
    CLI entry point.

    Handles single file or folder. In folder mode supports --jobs parallelism
    while preserving readable output ordering. Returns the exit status.
    """
    enable_line_buffered_stdout()
    args = parse_cli_args(argv)

    src = args.src
    if not src.exists():
        error(f"not found: {src}")
        return 2

    try:
        settings = settings_from_args(args)
    except TileQuantError as exc:
        error(str(exc))
        return 2

    print_config_line(
        "run",
        [
            ("CPU cores", os.cpu_count() or 1),
            ("Workers", args.workers),
            ("Jobs", args.jobs),
            ("Tile", f"{settings.tile_width}x{settings.tile_height}"),
            ("Palettes", settings.num_palettes),
            ("Colours", settings.colors_per_palette),
            ("Bits", settings.bits_per_channel),
            ("Dither", settings.dither.value),
        ],
        debug=False,
    )

    if not src.is_dir():
        try:
            _process_single_image(
                src, args.outdir, settings, args.seed, args.workers, args.debug, live=True
            )
        except TileQuantError as exc:
            error(str(exc))
            return 2
        return 0

    files = _collect_files(src)
    if not files:
        warn(f"no images in {src}")
    if args.debug:
        debug_log(key_value_pairs_to_string([("Images", len(files)), ("Jobs", args.jobs)]))
    if args.jobs <= 1:
        for p in files:
            try:
                _process_single_image(
                    p, args.outdir, settings, args.seed, args.workers, args.debug, live=True
                )
            except TileQuantError as exc:
                error(f"{p.name}: {exc}")
        return 0

    with ThreadPoolExecutor(max_workers=args.jobs) as ex:
        futures = [
            ex.submit(
                _process_one_captured,
                p,
                args.outdir,
                settings,
                args.seed,
                args.workers,
                args.debug,
            )
            for p in files
        ]
        blocks = [f.result() for f in futures]
    print("".join(blocks), end="", flush=True)
    return 0


if __name__ == "__main__":
    sys.exit(main())
