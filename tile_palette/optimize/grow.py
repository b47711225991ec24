# tile_palette/optimize/grow.py
from __future__ import annotations

"""
Split-and-refine palette growth.

Every step adds one slot to each palette, seeded at the colour with the
largest weighted residual among the tiles that palette currently renders,
then settles the palettes with a short learning pass. A settle pass that
ends worse than the seeded state is discarded, so error never increases as
slots are added.
"""

from typing import Callable, Optional

import numpy as np

from ..metrics import assign_tiles, entry_residuals
from ..palette_set import PaletteSet
from ..tiles import TileSet
from ..utils import debug_log
from .refine import RefinementEngine

SlotCallback = Callable[[int, PaletteSet], None]


class PaletteGrower:
    def __init__(self, tiles: TileSet, engine: RefinementEngine, *, workers: int = 1):
        self.tiles = tiles
        self.engine = engine
        self.workers = workers
        self.rejected_settles = 0

    def seeds(self, palettes: PaletteSet) -> np.ndarray:
        """(P, 3) seed per palette; palettes without tiles repeat their last colour."""
        tiles = self.tiles
        out = palettes.colors[:, -1].copy()
        if tiles.entry_colors.shape[0] == 0:
            return out
        assignment, _ = assign_tiles(tiles, palettes, workers=self.workers)
        res = entry_residuals(tiles, palettes, assignment)
        score = res.error * tiles.entry_counts
        for p in range(palettes.num_palettes):
            idx = np.flatnonzero(res.palette == p)
            if idx.size == 0:
                continue
            worst = idx[int(np.argmax(score[idx]))]
            out[p] = tiles.entry_colors[worst]
        return out

    def grow_one(self, palettes: PaletteSet, iterations: int, alpha: float) -> PaletteSet:
        """Add one seeded slot to every palette and settle."""
        palettes = palettes.copy()
        palettes.add_slot(self.seeds(palettes))
        seeded = palettes.copy()
        before = self.engine.error(seeded)
        self.engine.run(palettes, iterations, alpha)
        after = self.engine.error(palettes)
        if after > before:
            self.rejected_settles += 1
            if self.engine.debug:
                debug_log(
                    f"grow {palettes.num_slots}: settle rejected ({after:.0f} > {before:.0f})"
                )
            return seeded
        return palettes

    def grow(
        self,
        palettes: PaletteSet,
        target_slots: int,
        iterations: int,
        alpha: float,
        on_slot: Optional[SlotCallback] = None,
    ) -> PaletteSet:
        """Grow until every palette has target_slots slots."""
        while palettes.num_slots < target_slots:
            palettes = self.grow_one(palettes, iterations, alpha)
            if on_slot is not None:
                on_slot(palettes.num_slots, palettes)
        return palettes


__all__ = ["PaletteGrower"]
