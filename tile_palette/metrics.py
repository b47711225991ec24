# tile_palette/metrics.py
from __future__ import annotations

"""
Error metrics and derived tile assignments.

All distances are squared Euclidean RGB. Per-tile errors are count-weighted
sums over the tile's distinct colours. Work over tile entries is chunked and
can fan out across threads; chunks are merged in order, so results do not
depend on the worker count.

Hot spots:
  - _nearest_sq over (rows, P, K) in tile_palette_errors
  - dither_mix_search when dithering (pairs x levels per palette)
"""

from typing import List, NamedTuple, Optional, Tuple

import numpy as np

from .constants import CHUNK_ROWS, DITHER_CANDIDATES, DITHER_PENALTY_SCALE
from .palette_set import PaletteSet
from .tiles import TileSet
from .utils import map_spans, split_rows_by_size


class DitherCost(NamedTuple):
    """Parameters of the ordered-dither mix cost."""

    levels: int  # 2 or 4
    weight: float  # DitherWeight in (0, 1]


class MixChoice(NamedTuple):
    """Best two-colour mix per point: take slot_j when rank < level, else slot_i."""

    cost: np.ndarray  # (n,)
    slot_i: np.ndarray  # (n,)
    slot_j: np.ndarray  # (n,)
    level: np.ndarray  # (n,) 0..levels-1


# Point-to-palette distances


def squared_distances(points: np.ndarray, colors: np.ndarray) -> np.ndarray:
    """(n,3) x (..., K, 3) -> (n, ..., K) squared distances."""
    diff = points.reshape((points.shape[0],) + (1,) * (colors.ndim - 1) + (3,)) - colors
    return np.einsum("...i,...i->...", diff, diff)


def nearest_color(point: np.ndarray, colors: np.ndarray) -> Tuple[int, float]:
    """Index and squared distance of the nearest row of colors (K,3) to point."""
    diff = colors - point
    dist = np.einsum("ki,ki->k", diff, diff)
    idx = int(np.argmin(dist))
    return idx, float(dist[idx])


def dither_mix_search(
    points: np.ndarray, colors: np.ndarray, cost: DitherCost
) -> MixChoice:
    """
    For each point (n,3) find the pair of colours (K,3) and the mix level k/levels
    minimising |x - mix|^2 + s * (1 - weight) * t * (1 - t) * |Ci - Cj|^2
    with s = DITHER_PENALTY_SCALE.

    Only the DITHER_CANDIDATES nearest colours are paired. Level 0 means the
    nearest colour alone.
    """
    n = points.shape[0]
    dist = squared_distances(points, colors)  # (n, K)
    order = np.argsort(dist, axis=1, kind="stable")[:, : min(DITHER_CANDIDATES, colors.shape[0])]
    rows = np.arange(n)

    best_cost = dist[rows, order[:, 0]].copy()
    best_i = order[:, 0].copy()
    best_j = order[:, 0].copy()
    best_k = np.zeros(n, dtype=np.int64)

    penalty_scale = DITHER_PENALTY_SCALE * (1.0 - float(cost.weight))
    m = order.shape[1]
    for a in range(m):
        ci = colors[order[:, a]]
        for b in range(a + 1, m):
            cj = colors[order[:, b]]
            span = cj - ci
            span2 = np.einsum("ni,ni->n", span, span)
            for k in range(1, cost.levels):
                t = k / float(cost.levels)
                resid = points - (ci + t * span)
                trial = np.einsum("ni,ni->n", resid, resid) + penalty_scale * t * (1.0 - t) * span2
                better = trial < best_cost
                if not np.any(better):
                    continue
                best_cost[better] = trial[better]
                best_i[better] = order[better, a]
                best_j[better] = order[better, b]
                best_k[better] = k
    return MixChoice(best_cost, best_i, best_j, best_k)


def _nearest_sq(points: np.ndarray, candidates: np.ndarray) -> np.ndarray:
    """(n,3) x (P,K,3) -> (n,P) squared distance to the nearest colour of each palette."""
    if candidates.shape[1] == 0:
        return np.full((points.shape[0], candidates.shape[0]), np.inf)
    return squared_distances(points, candidates).min(axis=2)


def _mix_sq(points: np.ndarray, candidates: np.ndarray, cost: DitherCost) -> np.ndarray:
    out = np.empty((points.shape[0], candidates.shape[0]), dtype=np.float64)
    for p in range(candidates.shape[0]):
        out[:, p] = dither_mix_search(points, candidates[p], cost).cost
    return out


# Tile-level errors


def tile_palette_errors(
    tiles: TileSet,
    palettes: PaletteSet,
    *,
    dither: Optional[DitherCost] = None,
    workers: int = 1,
) -> np.ndarray:
    """
    (T, P) count-weighted error of rendering each tile with each palette.
    With dither, the per-colour cost is the best two-colour mix cost.
    """
    num_tiles = len(tiles)
    candidates = palettes.candidates()
    num_pal = palettes.num_palettes
    colors = tiles.entry_colors
    weights = tiles.entry_counts.astype(np.float64)

    def run_span(start: int, end: int) -> np.ndarray:
        pts = colors[start:end]
        if dither is None:
            per = _nearest_sq(pts, candidates)
        else:
            per = _mix_sq(pts, candidates, dither)
        return per * weights[start:end, None]

    spans = split_rows_by_size(colors.shape[0], CHUNK_ROWS)
    parts: List[np.ndarray] = map_spans(run_span, spans, workers)
    weighted = np.concatenate(parts, axis=0) if parts else np.zeros((0, num_pal))

    out = np.zeros((num_tiles, num_pal), dtype=np.float64)
    for p in range(num_pal):
        out[:, p] = np.bincount(tiles.entry_tile, weights=weighted[:, p], minlength=num_tiles)
    return out


def assign_tiles(
    tiles: TileSet,
    palettes: PaletteSet,
    *,
    dither: Optional[DitherCost] = None,
    workers: int = 1,
) -> Tuple[np.ndarray, np.ndarray]:
    """
    Best palette per tile (ties to the lowest index) and its error.
    Returns (assignment (T,), error (T,)).
    """
    errors = tile_palette_errors(tiles, palettes, dither=dither, workers=workers)
    if errors.shape[1] == 0:
        return np.zeros(len(tiles), dtype=np.int64), np.zeros(len(tiles))
    assignment = np.argmin(errors, axis=1)
    return assignment, errors[np.arange(len(tiles)), assignment]


def mean_square_error(
    tiles: TileSet,
    palettes: PaletteSet,
    *,
    dither: Optional[DitherCost] = None,
    workers: int = 1,
) -> float:
    """Mean over optimised pixels of the squared error under the best tile assignment."""
    total = tiles.total_weight
    if total == 0:
        return 0.0
    _, err = assign_tiles(tiles, palettes, dither=dither, workers=workers)
    return float(err.sum()) / float(total)


def best_palette_for_tile(tiles: TileSet, tile_index: int, palettes: PaletteSet) -> int:
    """Lowest-error palette for one tile (ties to the lowest index)."""
    if palettes.num_palettes == 1:
        return 0
    sl = tiles.entry_slice(tile_index)
    pts = tiles.entry_colors[sl]
    if pts.shape[0] == 0:
        return 0
    per = _nearest_sq(pts, palettes.candidates()) * tiles.entry_counts[sl, None]
    return int(np.argmin(per.sum(axis=0)))


class BestPaletteCache:
    """
    best_palette_for_tile with memory: a tile's error against a palette is
    recomputed only when that palette moved since the tile was last asked for.
    Valid while the palette count stays fixed.
    """

    def __init__(self, tiles: TileSet, num_palettes: int):
        self.tiles = tiles
        self.errors = np.zeros((len(tiles), num_palettes), dtype=np.float64)
        self.stamp = np.full((len(tiles), num_palettes), -1, dtype=np.int64)
        self.version = np.zeros(num_palettes, dtype=np.int64)

    def touch(self, palette: Optional[int] = None) -> None:
        """Mark one palette as moved; None marks them all."""
        if palette is None:
            self.version += 1
        else:
            self.version[palette] += 1

    def best(self, tile_index: int, palettes: PaletteSet) -> int:
        if palettes.num_palettes == 1:
            return 0
        stale = np.flatnonzero(self.stamp[tile_index] != self.version)
        if stale.size:
            tiles = self.tiles
            sl = tiles.entry_slice(tile_index)
            per = _nearest_sq(tiles.entry_colors[sl], palettes.candidates()[stale])
            self.errors[tile_index, stale] = (per * tiles.entry_counts[sl, None]).sum(axis=0)
            self.stamp[tile_index, stale] = self.version[stale]
        return int(np.argmin(self.errors[tile_index]))


# Per-entry residuals under a fixed assignment


class EntryResiduals(NamedTuple):
    palette: np.ndarray  # (M,) palette of the entry's tile
    slot: np.ndarray  # (M,) nearest absolute slot
    error: np.ndarray  # (M,) squared distance to that slot
    second_error: np.ndarray  # (M,) squared distance to the runner-up (inf if none)


def entry_residuals(
    tiles: TileSet, palettes: PaletteSet, assignment: np.ndarray
) -> EntryResiduals:
    """Nearest and runner-up slot distance of every tile entry under its tile's palette."""
    colors = tiles.entry_colors
    entry_pal = assignment[tiles.entry_tile] if colors.shape[0] else np.zeros(0, dtype=np.int64)
    candidates = palettes.candidates()
    first = palettes.first_candidate
    num = colors.shape[0]

    slot = np.zeros(num, dtype=np.int64)
    error = np.zeros(num, dtype=np.float64)
    second = np.full(num, np.inf, dtype=np.float64)
    for start, end in split_rows_by_size(num, CHUNK_ROWS):
        pts = colors[start:end]
        diff = pts[:, None, :] - candidates[entry_pal[start:end]]
        dist = np.einsum("nki,nki->nk", diff, diff)  # row r against its own palette
        order = np.argsort(dist, axis=1, kind="stable")
        rows = np.arange(end - start)
        slot[start:end] = order[:, 0] + first
        error[start:end] = dist[rows, order[:, 0]]
        if dist.shape[1] > 1:
            second[start:end] = dist[rows, order[:, 1]]
    return EntryResiduals(entry_pal, slot, error, second)


__all__ = [
    "DitherCost",
    "MixChoice",
    "EntryResiduals",
    "squared_distances",
    "nearest_color",
    "dither_mix_search",
    "tile_palette_errors",
    "assign_tiles",
    "mean_square_error",
    "best_palette_for_tile",
    "BestPaletteCache",
    "entry_residuals",
]
