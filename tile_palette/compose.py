# tile_palette/compose.py
from __future__ import annotations

"""
Final composition: palettes in, index buffers out.

Tiles take the palette with the lowest summed error (ties to the lowest
index). Pixels take their nearest colour, or with ordered dithering the
better colour of the best two-colour mix at their 2x2 rank. Pixels reserved
for colour zero always take index 0.

Composition works on the uint8-rounded palettes, so the indices describe
exactly the colours an encoder will write.
"""

from dataclasses import dataclass
from typing import List, Optional

import numpy as np

from .constants import CHUNK_ROWS
from .core_types import IndexMap, U8Image, U8Mask, pixel_type_of
from .dither_maps import dither_map_for
from .errors import NoEligiblePalette
from .metrics import DitherCost, assign_tiles, dither_mix_search
from .palette_set import PaletteSet
from .settings import QuantizeSettings
from .tiles import TileSet, from_tile_blocks, to_tile_blocks
from .utils import map_spans, split_rows_by_size


@dataclass
class QuantizeResult:
    """
    Palette table plus index buffers.

    palettes       : (P, C, 3) uint8
    tile_palettes  : (rows, cols) palette per tile
    color_indices  : (H, W) colour index within the tile's palette
    """

    palettes: np.ndarray
    tile_palettes: IndexMap
    color_indices: IndexMap
    tile_width: int
    tile_height: int
    mse: float
    cancelled: bool = False
    transparent_index: Optional[int] = None

    @property
    def num_palettes(self) -> int:
        return int(self.palettes.shape[0])

    @property
    def colors_per_palette(self) -> int:
        return int(self.palettes.shape[1])

    @property
    def size(self) -> tuple:
        """(width, height)"""
        return (int(self.color_indices.shape[1]), int(self.color_indices.shape[0]))

    def palette_index_map(self) -> IndexMap:
        """(H, W) palette index of every pixel."""
        return np.repeat(
            np.repeat(self.tile_palettes, self.tile_height, axis=0), self.tile_width, axis=1
        )

    def global_indices(self) -> IndexMap:
        """(H, W) index into the flattened palette table: palette * C + colour."""
        return self.palette_index_map() * self.colors_per_palette + self.color_indices

    def flat_palette(self) -> np.ndarray:
        """(P * C, 3) uint8 palette table in global index order."""
        return self.palettes.reshape(-1, 3)

    def render(self) -> U8Image:
        """(H, W, 3) uint8 reconstruction."""
        return self.palettes[self.palette_index_map(), self.color_indices]

    def render_rgba(self) -> U8Image:
        """(H, W, 4) reconstruction; the transparent index gets alpha 0."""
        rgb = self.render()
        out = np.full(rgb.shape[:2] + (4,), 255, dtype=np.uint8)
        out[..., :3] = rgb
        if self.transparent_index is not None:
            out[self.color_indices == self.transparent_index, 3] = 0
        return out


class Compositor:
    def __init__(self, settings: QuantizeSettings, *, workers: int = 1):
        self.settings = settings
        self.workers = workers
        self.dither: Optional[DitherCost] = None
        self.dither_map = None
        if settings.use_dither:
            self.dither_map = dither_map_for(settings.dither_pattern)
            self.dither = DitherCost(
                pixel_type_of(settings.dither_pattern).levels, settings.dither_weight
            )

    def compose(
        self,
        work: U8Image,
        reserved: Optional[U8Mask],
        tiles: TileSet,
        palettes: PaletteSet,
        *,
        cancelled: bool = False,
    ) -> QuantizeResult:
        """
        Assign palettes and colour indices for the (H, W, 3) work buffer.
        Raises NoEligiblePalette for an empty PaletteSet.
        """
        if palettes.num_palettes == 0 or palettes.candidates().shape[1] == 0:
            raise NoEligiblePalette("no palette colours to compose with")

        snapped = PaletteSet(palettes.to_uint8(), palettes.behavior)
        tw, th = tiles.tile_width, tiles.tile_height
        assignment, _ = assign_tiles(tiles, snapped, dither=self.dither, workers=self.workers)

        rgb = np.ascontiguousarray(work[..., :3]).astype(np.float64)
        pixels = to_tile_blocks(rgb, tw, th).reshape(-1, 3)
        pixel_pal = np.repeat(assignment, tw * th)
        ranks = None
        if self.dither_map is not None:
            plane = self.dither_map.tiled(rgb.shape[0], rgb.shape[1])
            ranks = to_tile_blocks(plane, tw, th).reshape(-1)

        indices = self._pixel_indices(pixels, pixel_pal, snapped, ranks)
        if reserved is not None:
            keep = to_tile_blocks(reserved == 0, tw, th).reshape(-1)
            indices[~keep] = 0
        else:
            keep = np.ones(indices.shape[0], dtype=bool)

        recon = snapped.colors[pixel_pal, indices]
        diff = (recon - pixels)[keep]
        kept = int(keep.sum())
        mse = float(np.einsum("ni,ni->", diff, diff)) / kept if kept else 0.0

        color_indices = from_tile_blocks(
            indices.reshape(len(tiles), th * tw), tiles.rows, tiles.cols, tw, th
        )
        return QuantizeResult(
            palettes=snapped.to_uint8(),
            tile_palettes=assignment.reshape(tiles.rows, tiles.cols).astype(np.int32),
            color_indices=color_indices.astype(np.int32),
            tile_width=tw,
            tile_height=th,
            mse=mse,
            cancelled=cancelled,
            transparent_index=0 if palettes.behavior.is_transparent else None,
        )

    def _pixel_indices(
        self,
        pixels: np.ndarray,
        pixel_pal: np.ndarray,
        palettes: PaletteSet,
        ranks: Optional[np.ndarray],
    ) -> np.ndarray:
        candidates = palettes.candidates()
        first = palettes.first_candidate
        dither = self.dither

        def run_span(start: int, end: int) -> np.ndarray:
            pts = pixels[start:end]
            pal = pixel_pal[start:end]
            if dither is None or ranks is None:
                diff = pts[:, None, :] - candidates[pal]
                dist = np.einsum("nki,nki->nk", diff, diff)
                return np.argmin(dist, axis=1) + first
            out = np.empty(end - start, dtype=np.int64)
            for p in np.unique(pal):
                rows = np.flatnonzero(pal == p)
                mix = dither_mix_search(pts[rows], candidates[p], dither)
                take_j = ranks[start:end][rows] < mix.level
                out[rows] = np.where(take_j, mix.slot_j, mix.slot_i) + first
            return out

        spans = split_rows_by_size(pixels.shape[0], CHUNK_ROWS)
        parts: List[np.ndarray] = map_spans(run_span, spans, self.workers)
        if not parts:
            return np.zeros(0, dtype=np.int64)
        return np.concatenate(parts).astype(np.int64)


__all__ = ["QuantizeResult", "Compositor"]
