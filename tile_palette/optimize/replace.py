# tile_palette/optimize/replace.py
from __future__ import annotations

"""
Weak colour and weak palette replacement.

A colour's contribution is the error its palette would gain without it:
the count-weighted gap between its colours' nearest and runner-up distances.
A palette's contribution is the error the image would gain if its tiles had
to move to their second-best palette. Units far below their peers' mean are
reseeded at the worst-fitting pixels. A shared colour zero is judged on its
contribution pooled over every palette.
"""

from typing import Iterable, List, Optional, Set, Tuple

import numpy as np

from ..constants import MIN_COLOR_FACTOR, MIN_PALETTE_FACTOR
from ..core_types import ColorZeroBehavior
from ..metrics import EntryResiduals, entry_residuals, tile_palette_errors
from ..palette_set import PaletteSet
from ..tiles import TileSet


class WeakColorReplacer:
    def __init__(
        self,
        tiles: TileSet,
        *,
        min_color_factor: float = MIN_COLOR_FACTOR,
        min_palette_factor: float = MIN_PALETTE_FACTOR,
        workers: int = 1,
    ):
        self.tiles = tiles
        self.min_color_factor = float(min_color_factor)
        self.min_palette_factor = float(min_palette_factor)
        self.workers = workers
        self.replaced_colors = 0
        self.replaced_palettes = 0

    def replace(self, palettes: PaletteSet) -> PaletteSet:
        """Return palettes with weak colours and the weakest palette reseeded (in place)."""
        tiles = self.tiles
        if tiles.entry_colors.shape[0] == 0:
            return palettes
        errors = tile_palette_errors(tiles, palettes, workers=self.workers)
        assignment = np.argmin(errors, axis=1)
        self._replace_colors(palettes, assignment)
        if palettes.num_palettes > 1:
            self._replace_palette(palettes, errors, assignment)
        return palettes

    def color_contributions(self, palettes: PaletteSet, res: EntryResiduals) -> np.ndarray:
        """(P, K) error increase if each slot were removed; 0 for unused slots."""
        tiles = self.tiles
        weights = tiles.entry_counts.astype(np.float64)
        gap = np.where(np.isfinite(res.second_error), res.second_error - res.error, 0.0)
        key = res.palette * palettes.num_slots + res.slot
        size = palettes.num_palettes * palettes.num_slots
        contrib = np.bincount(key, weights=gap * weights, minlength=size)
        return contrib.reshape(palettes.num_palettes, palettes.num_slots)

    def _worst_entries(
        self,
        res: EntryResiduals,
        palette: Optional[int] = None,
        exclude: Iterable[Tuple[float, ...]] = (),
    ) -> List[np.ndarray]:
        """Distinct colours of a palette's tiles (all tiles for None), worst weighted residual first."""
        tiles = self.tiles
        mask = res.error > 0.0
        if palette is not None:
            mask &= res.palette == palette
        idx = np.flatnonzero(mask)
        if idx.size == 0:
            return []
        score = res.error[idx] * tiles.entry_counts[idx]
        idx = idx[np.argsort(-score, kind="stable")]
        seen = set(exclude)
        out: List[np.ndarray] = []
        for i in idx.tolist():
            key = tuple(tiles.entry_colors[i].tolist())
            if key in seen:
                continue
            seen.add(key)
            out.append(tiles.entry_colors[i])
        return out

    def _replace_shared(
        self, palettes: PaletteSet, res: EntryResiduals, contrib: np.ndarray
    ) -> Set[Tuple[float, ...]]:
        """Reseed the shared slot at the image's worst residual if its pooled contribution is weak."""
        others = contrib[:, 1:].sum(axis=0)
        if others.size == 0:
            return set()
        mean = float(others.mean())
        if mean <= 0.0 or float(contrib[:, 0].sum()) >= self.min_color_factor * mean:
            return set()
        seeds = self._worst_entries(res)
        if not seeds:
            return set()
        palettes.set_color(0, 0, seeds[0])
        self.replaced_colors += 1
        return {tuple(seeds[0].tolist())}

    def _replace_colors(self, palettes: PaletteSet, assignment: np.ndarray) -> None:
        first = palettes.first_free
        shared = palettes.behavior is ColorZeroBehavior.SHARED
        if palettes.num_slots - first < 2 and not shared:
            return
        res = entry_residuals(self.tiles, palettes, assignment)
        contrib = self.color_contributions(palettes, res)
        taken: Set[Tuple[float, ...]] = set()
        if shared:
            taken = self._replace_shared(palettes, res, contrib)
        if palettes.num_slots - first < 2:
            return
        for p in range(palettes.num_palettes):
            row = contrib[p, first:]
            mean = float(row.mean())
            if mean <= 0.0:
                continue
            weak = np.flatnonzero(row < self.min_color_factor * mean)
            if weak.size == 0:
                continue
            # Weakest slot takes the worst residual.
            weak = [first + int(s) for s in weak[np.argsort(row[weak], kind="stable")]]
            seeds = self._worst_entries(res, p, taken)
            for slot, seed in zip(weak, seeds):
                palettes.set_color(p, slot, seed)
                self.replaced_colors += 1

    def _replace_palette(
        self, palettes: PaletteSet, errors: np.ndarray, assignment: np.ndarray
    ) -> None:
        num_tiles = errors.shape[0]
        rows = np.arange(num_tiles)
        best = errors[rows, assignment]
        masked = errors.copy()
        masked[rows, assignment] = np.inf
        runner_up = masked.min(axis=1)
        gain = np.where(np.isfinite(runner_up), runner_up - best, 0.0)
        contrib = np.bincount(assignment, weights=gain, minlength=palettes.num_palettes)

        mean = float(contrib.mean())
        weakest = int(np.argmin(contrib))
        if mean <= 0.0 or contrib[weakest] >= self.min_palette_factor * mean:
            return

        # Reseed from the tile that fits worst outside the weakest palette.
        candidates = np.where(assignment != weakest, best, -1.0)
        worst_tile = int(np.argmax(candidates))
        if candidates[worst_tile] <= 0.0:
            return
        tile = self.tiles[worst_tile]
        order = np.argsort(-tile.counts, kind="stable")
        colors = tile.colors[order]
        first = palettes.first_free
        for i, slot in enumerate(range(first, palettes.num_slots)):
            palettes.set_color(weakest, slot, colors[i % colors.shape[0]])
        self.replaced_palettes += 1


__all__ = ["WeakColorReplacer"]
