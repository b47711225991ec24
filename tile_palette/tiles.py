# tile_palette/tiles.py
from __future__ import annotations

"""
Tile extraction.

Splits an RGBA buffer into fixed-size tiles in row-major order and records the
distinct colours of each tile with their counts. Pixels reserved for colour
zero (transparent policies) are left out of every colour set.
"""

from dataclasses import dataclass
from typing import Iterator, List, Optional, Tuple

import numpy as np

from .constants import ALPHA_THRESHOLD
from .core_types import ColorRows, ColorZeroBehavior, RGBTuple, U8Image, U8Mask
from .errors import ConfigurationError, InvalidDimensions

MAX_TILE_SIZE = 32


@dataclass(frozen=True)
class Tile:
    """One tile: its pixel rectangle and the colours it contains."""

    index: int
    x: int
    y: int
    width: int
    height: int
    colors: ColorRows  # (U, 3) float64 distinct colours
    counts: np.ndarray  # (U,) int64 occurrences

    @property
    def pixel_count(self) -> int:
        return int(self.counts.sum())

    @property
    def bounds(self) -> Tuple[int, int, int, int]:
        """(x0, y0, x1, y1), end-exclusive."""
        return (self.x, self.y, self.x + self.width, self.y + self.height)

    def mean_color(self) -> np.ndarray:
        """Count-weighted mean colour; zeros for an empty tile."""
        total = self.counts.sum()
        if total == 0:
            return np.zeros(3, dtype=np.float64)
        return (self.colors * self.counts[:, None]).sum(axis=0) / float(total)


@dataclass
class TileSet:
    """
    Ordered tiles plus flattened views for vectorised work.

    entry_*  : one row per (tile, distinct colour)
    sample_* : one row per non-reserved pixel, tile-major
    """

    tiles: List[Tile]
    rows: int
    cols: int
    tile_width: int
    tile_height: int
    entry_colors: ColorRows
    entry_counts: np.ndarray
    entry_tile: np.ndarray
    sample_colors: ColorRows
    sample_tile: np.ndarray

    def __len__(self) -> int:
        return len(self.tiles)

    def __iter__(self) -> Iterator[Tile]:
        return iter(self.tiles)

    def __getitem__(self, index: int) -> Tile:
        return self.tiles[index]

    @property
    def num_samples(self) -> int:
        return int(self.sample_tile.shape[0])

    @property
    def total_weight(self) -> int:
        return int(self.entry_counts.sum())

    def entry_slice(self, tile_index: int) -> slice:
        start = int(self._entry_starts[tile_index])
        return slice(start, start + len(self.tiles[tile_index].counts))

    def __post_init__(self) -> None:
        sizes = np.array([len(t.counts) for t in self.tiles], dtype=np.int64)
        self._entry_starts = np.concatenate([[0], np.cumsum(sizes)[:-1]]).astype(
            np.int64
        )


def color_zero_mask(
    image: U8Image, behavior: ColorZeroBehavior, transparent_rgb: RGBTuple
) -> U8Mask:
    """
    Mask (H,W) of pixels that map straight to colour zero.

    TransparentFromTransparent: alpha below ALPHA_THRESHOLD.
    TransparentFromColor: RGB equal to transparent_rgb.
    Other policies reserve nothing.
    """
    height, width = image.shape[:2]
    if behavior is ColorZeroBehavior.TRANSPARENT_FROM_TRANSPARENT:
        return (image[..., 3] < ALPHA_THRESHOLD).astype(np.uint8)
    if behavior is ColorZeroBehavior.TRANSPARENT_FROM_COLOR:
        key = np.array(transparent_rgb, dtype=np.uint8)
        return np.all(image[..., :3] == key, axis=-1).astype(np.uint8)
    return np.zeros((height, width), dtype=np.uint8)


def check_tile_geometry(width: int, height: int, tile_width: int, tile_height: int) -> None:
    """Raise unless tile sizes are in range and divide the image exactly."""
    for name, size in (("tile_width", tile_width), ("tile_height", tile_height)):
        if not (1 <= int(size) <= MAX_TILE_SIZE):
            raise ConfigurationError(f"{name}={size} outside [1, {MAX_TILE_SIZE}]")
    if width <= 0 or height <= 0:
        raise InvalidDimensions(f"empty image {width}x{height}")
    if width % tile_width or height % tile_height:
        raise InvalidDimensions(
            f"image {width}x{height} is not a multiple of tile {tile_width}x{tile_height}"
        )


def to_tile_blocks(arr: np.ndarray, tile_width: int, tile_height: int) -> np.ndarray:
    """(H, W, ...) -> (tiles, tile_height * tile_width, ...) in row-major tile order."""
    height, width = arr.shape[:2]
    rows, cols = height // tile_height, width // tile_width
    tail = arr.shape[2:]
    blocks = arr.reshape((rows, tile_height, cols, tile_width) + tail)
    blocks = blocks.swapaxes(1, 2)
    return blocks.reshape((rows * cols, tile_height * tile_width) + tail)


def from_tile_blocks(
    blocks: np.ndarray, rows: int, cols: int, tile_width: int, tile_height: int
) -> np.ndarray:
    """Inverse of to_tile_blocks: (tiles, tile_height * tile_width, ...) -> (H, W, ...)."""
    tail = blocks.shape[2:]
    arr = blocks.reshape((rows, cols, tile_height, tile_width) + tail).swapaxes(1, 2)
    return arr.reshape((rows * tile_height, cols * tile_width) + tail)


def extract_tiles(
    image: U8Image,
    tile_width: int,
    tile_height: int,
    reserved: Optional[U8Mask] = None,
) -> TileSet:
    """
    Partition image (H,W,3/4) into tiles and collect per-tile colour multisets.
    reserved marks pixels excluded from the colour sets.
    """
    height, width = image.shape[:2]
    check_tile_geometry(width, height, tile_width, tile_height)
    rows, cols = height // tile_height, width // tile_width

    rgb_blocks = to_tile_blocks(np.ascontiguousarray(image[..., :3]), tile_width, tile_height)
    if reserved is None:
        keep_blocks = np.ones(rgb_blocks.shape[:2], dtype=bool)
    else:
        keep_blocks = to_tile_blocks(reserved == 0, tile_width, tile_height)

    tiles: List[Tile] = []
    entry_colors: List[np.ndarray] = []
    entry_counts: List[np.ndarray] = []
    entry_tile: List[np.ndarray] = []
    for index in range(rows * cols):
        kept = rgb_blocks[index][keep_blocks[index]]
        if kept.shape[0]:
            uniques, counts = np.unique(kept, axis=0, return_counts=True)
        else:
            uniques = np.zeros((0, 3), dtype=rgb_blocks.dtype)
            counts = np.zeros((0,), dtype=np.int64)
        colors = uniques.astype(np.float64)
        counts = counts.astype(np.int64, copy=False)
        ty, tx = divmod(index, cols)
        tiles.append(
            Tile(
                index=index,
                x=tx * tile_width,
                y=ty * tile_height,
                width=tile_width,
                height=tile_height,
                colors=colors,
                counts=counts,
            )
        )
        entry_colors.append(colors)
        entry_counts.append(counts)
        entry_tile.append(np.full(counts.shape[0], index, dtype=np.int64))

    keep_flat = keep_blocks.reshape(-1)
    sample_colors = rgb_blocks.reshape(-1, 3)[keep_flat].astype(np.float64)
    sample_tile = np.repeat(
        np.arange(rows * cols, dtype=np.int64), tile_width * tile_height
    )[keep_flat]

    return TileSet(
        tiles=tiles,
        rows=rows,
        cols=cols,
        tile_width=tile_width,
        tile_height=tile_height,
        entry_colors=np.concatenate(entry_colors, axis=0),
        entry_counts=np.concatenate(entry_counts),
        entry_tile=np.concatenate(entry_tile),
        sample_colors=sample_colors,
        sample_tile=sample_tile,
    )


__all__ = [
    "MAX_TILE_SIZE",
    "Tile",
    "TileSet",
    "color_zero_mask",
    "check_tile_geometry",
    "to_tile_blocks",
    "from_tile_blocks",
    "extract_tiles",
]
