# tile_palette/optimize/refine.py
from __future__ import annotations

"""
Annealed competitive learning.

Each sample is a pixel drawn from the SampleShuffler. Only the palette that
currently fits the pixel's tile best is eligible; its nearest colour moves
towards the pixel by the current learning rate. Samples are applied strictly
in order.

Error is measured at block checkpoints; the lowest-error PaletteSet is kept
as an independent copy so later drift cannot lose it.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Callable, List, Optional

import numpy as np

from ..metrics import (
    BestPaletteCache,
    DitherCost,
    best_palette_for_tile,
    mean_square_error,
    nearest_color,
)
from ..palette_set import PaletteSet
from ..shuffle import SampleShuffler
from ..tiles import TileSet
from ..utils import debug_log
from .replace import WeakColorReplacer

BlockCallback = Callable[[int, PaletteSet], None]


class Phase(Enum):
    GROWING = "growing"
    ANNEALING = "annealing"
    CONVERGED = "converged"


@dataclass(frozen=True)
class LinearSchedule:
    """Learning rate falling linearly from start to end over total samples."""

    start: float
    end: float
    total: int

    def at(self, step: int) -> float:
        if self.total <= 0:
            return self.end
        frac = min(1.0, max(0.0, step / float(self.total)))
        return self.start + (self.end - self.start) * frac


class RefinementEngine:
    def __init__(
        self,
        tiles: TileSet,
        shuffler: SampleShuffler,
        *,
        checkpoint_dither: Optional[DitherCost] = None,
        workers: int = 1,
        debug: bool = False,
    ):
        self.tiles = tiles
        self.shuffler = shuffler
        self.checkpoint_dither = checkpoint_dither
        self.workers = workers
        self.debug = debug
        self.phase = Phase.GROWING
        self.best: Optional[PaletteSet] = None
        self.best_mse = float("inf")
        self.history: List[float] = []  # best error after each checkpoint

    # Sample updates

    def move_closer(
        self,
        palettes: PaletteSet,
        sample: int,
        alpha: float,
        cache: Optional[BestPaletteCache] = None,
    ) -> None:
        tiles = self.tiles
        color = tiles.sample_colors[sample]
        tile = int(tiles.sample_tile[sample])
        if cache is None:
            p = best_palette_for_tile(tiles, tile, palettes)
        else:
            p = cache.best(tile, palettes)
        slot, _ = nearest_color(color, palettes.candidates()[p])
        slot += palettes.first_candidate
        palettes.move_color(p, slot, color, alpha)
        if cache is not None:
            cache.touch(None if palettes.is_shared(slot) else p)

    def run(
        self,
        palettes: PaletteSet,
        iterations: int,
        alpha: float,
        final_alpha: Optional[float] = None,
    ) -> None:
        """Apply iterations samples with alpha decaying linearly to final_alpha."""
        schedule = LinearSchedule(alpha, alpha if final_alpha is None else final_alpha, iterations)
        self.run_scheduled(palettes, iterations, schedule, 0)

    def run_scheduled(
        self, palettes: PaletteSet, iterations: int, schedule: LinearSchedule, offset: int
    ) -> None:
        cache = BestPaletteCache(self.tiles, palettes.num_palettes)
        for i, sample in enumerate(self.shuffler.take(iterations)):
            self.move_closer(palettes, int(sample), schedule.at(offset + i), cache)

    # Error / best tracking

    def error(self, palettes: PaletteSet) -> float:
        return mean_square_error(
            self.tiles, palettes, dither=self.checkpoint_dither, workers=self.workers
        )

    def checkpoint(self, palettes: PaletteSet) -> float:
        """Measure palettes; keep a copy if they beat the best so far."""
        mse = self.error(palettes)
        if mse < self.best_mse or self.best is None:
            self.best_mse = mse
            self.best = palettes.copy()
        self.history.append(self.best_mse)
        return mse

    # Phases

    def replace_phase(
        self,
        palettes: PaletteSet,
        replacer: WeakColorReplacer,
        blocks: int,
        iterations: int,
        schedule: LinearSchedule,
        on_block: Optional[BlockCallback] = None,
    ) -> PaletteSet:
        """
        blocks x (replace weak colours, run iterations samples, checkpoint).
        Returns the working set; the best set is on self.best.
        """
        self.phase = Phase.ANNEALING
        for block in range(blocks):
            palettes = replacer.replace(palettes)
            self.run_scheduled(palettes, iterations, schedule, block * iterations)
            mse = self.checkpoint(palettes)
            if self.debug:
                debug_log(f"replace {block + 1}/{blocks}  MSE: {mse:.0f}  best: {self.best_mse:.0f}")
            if on_block is not None:
                on_block(block, palettes)
        return palettes

    def final_phase(
        self,
        palettes: PaletteSet,
        total: int,
        block: int,
        schedule: LinearSchedule,
        offset: int,
        on_block: Optional[BlockCallback] = None,
    ) -> PaletteSet:
        """total samples in blocks of block, checkpointing after each block."""
        self.phase = Phase.ANNEALING
        done = 0
        index = 0
        while done < total:
            step = min(block, total - done)
            self.run_scheduled(palettes, step, schedule, offset + done)
            done += step
            mse = self.checkpoint(palettes)
            if self.debug:
                debug_log(f"final {done:,}/{total:,}  MSE: {mse:.0f}  best: {self.best_mse:.0f}")
            if on_block is not None:
                on_block(index, palettes)
            index += 1
        self.phase = Phase.CONVERGED
        return palettes

    def best_or(self, palettes: PaletteSet) -> PaletteSet:
        """Copy of the best set, or of palettes if nothing was checkpointed."""
        return (self.best if self.best is not None else palettes).copy()


def count_blocks(total: int, block: int) -> int:
    return int(np.ceil(total / float(max(1, block))))


__all__ = ["Phase", "LinearSchedule", "RefinementEngine", "count_blocks"]
