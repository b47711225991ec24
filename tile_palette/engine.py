# tile_palette/engine.py
from __future__ import annotations

"""
quantize(): the end-to-end tiled palette quantizer.

Stages, each consuming the previous stage's complete output:
  extract tiles -> initialise -> grow -> replace/refine -> posterize
  -> final refine -> bit-depth correction -> compose

Progress runs 0..100 and never decreases. Cancellation is checked after
every progress report; a cancelled run composes the last reported set.
"""

import time
from dataclasses import dataclass
from typing import Any, Callable, Optional

import numpy as np

from .compose import Compositor, QuantizeResult
from .constants import FINAL_PHASE_BLOCKS, PROGRESS_DITHER_REDUCE_END, PROGRESS_STEPS
from .core_types import Dither, U8Image, coerce_to_rgba, pixel_type_of
from .dither_maps import dither_map_for
from .errors import CancelledError
from .metrics import DitherCost
from .optimize.bit_depth import BitDepthReducer, posterize_u8
from .optimize.grow import PaletteGrower
from .optimize.initialize import initialize_palettes
from .optimize.refine import LinearSchedule, RefinementEngine, count_blocks
from .optimize.replace import WeakColorReplacer
from .palette_set import PaletteSet
from .settings import QuantizeSettings
from .shuffle import SampleShuffler, SeedLike
from .tiles import check_tile_geometry, color_zero_mask, extract_tiles
from .utils import debug_log, format_seconds_compact, print_config_line


@dataclass
class ProgressEvent:
    """One progress report. palettes is a uint8 snapshot (P, K, 3)."""

    percent: float
    stage: str
    palettes: np.ndarray
    preview: Optional[QuantizeResult] = None


ProgressCallback = Callable[[ProgressEvent], None]


class _Progress:
    """Monotone progress reporter that also owns the cancellation check."""

    def __init__(
        self,
        callback: Optional[ProgressCallback],
        cancel: Optional[Any],
        preview: Optional[Callable[[PaletteSet], QuantizeResult]] = None,
    ):
        self.callback = callback
        self.cancel = cancel
        self.preview = preview
        self.percent = 0.0
        self.last: Optional[PaletteSet] = None

    def report(
        self, percent: float, stage: str, palettes: PaletteSet, check_cancel: bool = True
    ) -> None:
        self.percent = max(self.percent, min(100.0, float(percent)))
        self.last = palettes.copy()
        if self.callback is not None:
            shown = self.preview(self.last) if self.preview is not None else None
            self.callback(ProgressEvent(self.percent, stage, self.last.to_uint8(), shown))
        if check_cancel and self.cancel is not None and self.cancel.is_set():
            raise CancelledError(f"cancelled at {self.percent:.1f}% ({stage})")


def _lerp(lo: float, hi: float, frac: float) -> float:
    return lo + (hi - lo) * min(1.0, max(0.0, frac))


def quantize(
    image: U8Image,
    settings: QuantizeSettings,
    *,
    seed: SeedLike = None,
    progress: Optional[ProgressCallback] = None,
    cancel: Optional[Any] = None,
    preview: bool = False,
    workers: int = 1,
    debug: bool = False,
) -> QuantizeResult:
    """
    Quantize an RGBA (or RGB) uint8 buffer into tiles, palettes and indices.

    Args:
      image: (H, W, 4) or (H, W, 3) uint8; H and W multiples of the tile size.
      settings: QuantizeSettings; validated here.
      seed: sample-order seed. Same seed and inputs give identical output.
      progress: called with a ProgressEvent at every checkpoint.
      cancel: object with is_set() (e.g. threading.Event), polled after
        each progress report.
      preview: attach a composition of the reported set to each event.
      workers: threads for error and assignment fan-out.
      debug: log configuration, per-block MSE and timings.

    Raises:
      ConfigurationError, InvalidDimensions, InvalidColorZeroConfiguration,
      UnsupportedPattern before any work starts.
    """
    t_start = time.perf_counter()
    settings = settings.validate()
    if settings.use_dither:
        dither_map_for(settings.dither_pattern)
    rgba = coerce_to_rgba(image)
    height, width = rgba.shape[:2]
    check_tile_geometry(width, height, settings.tile_width, settings.tile_height)

    colors = settings.colors_per_palette
    use_dither = settings.use_dither
    reserved = color_zero_mask(rgba, settings.color_zero, settings.transparent_rgb)
    work = rgba[..., :3] if use_dither else posterize_u8(rgba[..., :3], settings.bits_per_channel)
    tiles = extract_tiles(work, settings.tile_width, settings.tile_height, reserved)
    t_tiles = time.perf_counter()

    alpha, final_alpha = settings.learning_rates()
    iterations = settings.block_iterations(tiles.num_samples)
    if debug:
        print_config_line(
            "quantize",
            [
                ("Size", f"{width}x{height}"),
                ("Tile", f"{settings.tile_width}x{settings.tile_height}"),
                ("Tiles", len(tiles)),
                ("Palettes", settings.num_palettes),
                ("Colours", colors),
                ("Bits", settings.bits_per_channel),
                ("Dither", settings.dither.value),
                ("Colour zero", settings.color_zero.value),
                ("Samples", tiles.num_samples),
                ("Block", iterations),
                ("Workers", workers),
            ],
            debug=True,
        )

    compositor = Compositor(settings, workers=workers)

    def compose(palettes: PaletteSet, cancelled: bool = False) -> QuantizeResult:
        return compositor.compose(
            work, reserved, tiles, palettes.padded(colors), cancelled=cancelled
        )

    reporter = _Progress(progress, cancel, compose if preview else None)
    reducer = BitDepthReducer(settings.bits_per_channel, workers=workers)
    palettes = initialize_palettes(tiles, settings)

    if tiles.num_samples == 0:
        # Every pixel is reserved for colour zero; nothing to optimise.
        palettes = reducer.reduce(palettes.padded(colors))
        result = compose(palettes)
        reporter.report(100.0, "done", palettes, check_cancel=False)
        return result

    grow_end, replace_end, final_end, done = PROGRESS_STEPS
    shuffler = SampleShuffler(tiles.num_samples, seed)
    checkpoint_dither = None
    if settings.dither is Dither.SLOW:
        checkpoint_dither = DitherCost(
            pixel_type_of(settings.dither_pattern).levels, settings.dither_weight
        )
    engine = RefinementEngine(
        tiles, shuffler, checkpoint_dither=checkpoint_dither, workers=workers, debug=debug
    )
    grower = PaletteGrower(tiles, engine, workers=workers)
    replacer = WeakColorReplacer(
        tiles,
        min_color_factor=settings.min_color_factor,
        min_palette_factor=settings.min_palette_factor,
        workers=workers,
    )

    try:
        reporter.report(0.0, "initialize", palettes)

        # Growth: 0 -> grow_end
        start_slots = palettes.num_slots
        steps = max(1, colors - start_slots)

        def on_slot(slots: int, current: PaletteSet) -> None:
            reporter.report(_lerp(0.0, grow_end, (slots - start_slots) / steps), "grow", current)

        palettes = grower.grow(palettes, colors, iterations, alpha, on_slot)
        reporter.report(grow_end, "grow", palettes)
        t_grow = time.perf_counter()
        if debug:
            debug_log(
                f"grow done  slots: {palettes.num_slots}  "
                f"rejected settles: {grower.rejected_settles}  "
                f"time: {format_seconds_compact(t_grow - t_tiles)}"
            )

        # Replace phase: grow_end -> replace_end
        blocks = settings.replace_iterations
        final_total = FINAL_PHASE_BLOCKS * iterations
        schedule = LinearSchedule(alpha, final_alpha, blocks * iterations + final_total)

        def on_replace(block: int, current: PaletteSet) -> None:
            reporter.report(
                _lerp(grow_end, replace_end, (block + 1) / blocks), "replace", engine.best
            )

        palettes = engine.replace_phase(palettes, replacer, blocks, iterations, schedule, on_replace)
        palettes = engine.best_or(palettes)
        if not use_dither:
            palettes = reducer.reduce(palettes)
        if debug:
            debug_log(
                f"replace done  colours: {replacer.replaced_colors}  "
                f"palettes: {replacer.replaced_palettes}  best: {engine.best_mse:.0f}"
            )

        # Final phase: replace_end -> final_end
        final_blocks = count_blocks(final_total, iterations)

        def on_final(index: int, current: PaletteSet) -> None:
            reporter.report(
                _lerp(replace_end, final_end, (index + 1) / final_blocks), "final", engine.best
            )

        engine.final_phase(
            palettes, final_total, iterations, schedule, blocks * iterations, on_final
        )
        best = engine.best_or(palettes)
        t_refine = time.perf_counter()

        # Bit depth: final_end -> done (or the dither reduce end)
        reduce_end = PROGRESS_DITHER_REDUCE_END if use_dither else done
        if use_dither:
            best = reducer.reduce(best)
            reporter.report(reduce_end, "bit-depth", best)
        else:
            passes = reducer.passes

            def on_pass(index: int, current: PaletteSet) -> None:
                reporter.report(
                    _lerp(final_end, reduce_end, (index + 1) / (passes + 1)), "bit-depth", current
                )

            best = reducer.correct(best, tiles, on_pass)
    except CancelledError as exc:
        if debug:
            debug_log(str(exc))
        return compose(reporter.last, cancelled=True)

    result = compose(best)
    reporter.report(done, "done", best, check_cancel=False)
    if debug:
        t_end = time.perf_counter()
        debug_log(
            f"MSE: {result.mse:.2f}  best checkpoint: {engine.best_mse:.2f}  "
            f"(tiles={format_seconds_compact(t_tiles - t_start)}, "
            f"refine={format_seconds_compact(t_refine - t_tiles)}, "
            f"finish={format_seconds_compact(t_end - t_refine)})"
        )
    return result


__all__ = ["ProgressEvent", "ProgressCallback", "quantize"]
