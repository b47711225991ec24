# tile_palette/optimize/bit_depth.py
from __future__ import annotations

"""
Bit-depth reduction.

posterize() snaps channel values to the 2^bits - 1 evenly spaced levels in
[0, 255]. BitDepthReducer applies it to palettes (fixed transparent slots
excepted) and runs the corrective k-means passes that recover placement lost
to rounding.
"""

from typing import Callable, Optional

import numpy as np

from ..constants import CORRECTIVE_PASSES
from ..core_types import U8Image
from ..metrics import assign_tiles, entry_residuals
from ..palette_set import PaletteSet
from ..tiles import TileSet


def level_step(bits: int) -> float:
    return 255.0 / float((1 << int(bits)) - 1)


def posterize(values: np.ndarray, bits: int) -> np.ndarray:
    """round(value / step) * step with step = 255 / (2^bits - 1); halves round up."""
    step = level_step(bits)
    arr = np.asarray(values, dtype=np.float64)
    return np.floor(arr / step + 0.5) * step


def posterize_u8(image: U8Image, bits: int) -> U8Image:
    """Posterize a uint8 buffer and round back to uint8."""
    if bits >= 8:
        return np.array(image, dtype=np.uint8, copy=True)
    return np.clip(np.rint(posterize(image, bits)), 0, 255).astype(np.uint8)


class BitDepthReducer:
    def __init__(self, bits: int, *, passes: int = CORRECTIVE_PASSES, workers: int = 1):
        self.bits = int(bits)
        self.passes = int(passes)
        self.workers = workers

    def reduce(self, palettes: PaletteSet) -> PaletteSet:
        """Posterized copy; a fixed colour-zero slot keeps its exact value."""
        out = palettes.copy()
        start = 1 if palettes.behavior.is_transparent else 0
        out.colors[:, start:] = posterize(out.colors[:, start:], self.bits)
        return out

    def kmeans_pass(self, palettes: PaletteSet, tiles: TileSet) -> PaletteSet:
        """
        One corrective pass: assign tiles, assign colours to their nearest slot,
        move every used slot to the count-weighted mean of its colours, posterize.
        Unused slots stay where they are.
        """
        out = palettes.copy()
        if tiles.entry_colors.shape[0] == 0:
            return self.reduce(out)
        assignment, _ = assign_tiles(tiles, out, workers=self.workers)
        res = entry_residuals(tiles, out, assignment)

        num_slots = out.num_slots
        weights = tiles.entry_counts.astype(np.float64)
        key = res.palette * num_slots + res.slot
        if out.is_shared(0):
            # Shared slot 0 pools its colours across palettes.
            key = np.where(res.slot == 0, 0, key)
        size = out.num_palettes * num_slots
        total_w = np.bincount(key, weights=weights, minlength=size)
        sums = np.stack(
            [
                np.bincount(key, weights=weights * tiles.entry_colors[:, c], minlength=size)
                for c in range(3)
            ],
            axis=1,
        )
        for flat in np.flatnonzero(total_w > 0):
            p, s = divmod(int(flat), num_slots)
            out.set_color(p, s, sums[flat] / total_w[flat])
        return self.reduce(out)

    def correct(
        self,
        palettes: PaletteSet,
        tiles: TileSet,
        on_pass: Optional[Callable[[int, PaletteSet], None]] = None,
    ) -> PaletteSet:
        """Posterize, then run the fixed number of corrective passes."""
        out = self.reduce(palettes)
        for i in range(self.passes):
            out = self.kmeans_pass(out, tiles)
            if on_pass is not None:
                on_pass(i, out)
        return out


__all__ = ["level_step", "posterize", "posterize_u8", "BitDepthReducer"]
