# tile_palette/dither_maps.py
from __future__ import annotations

"""
Fixed 2x2 ordered-dither rank matrices.

A DitherMap holds the rank (0..levels-1) of each position in a 2x2 cell,
indexed map[y % 2][x % 2]. A DitherMapSet registers the patterns that belong
to one DitherPixelType and refuses the others.
"""

from typing import Dict, Tuple

import numpy as np

from .core_types import DitherPattern, DitherPixelType, pixel_type_of
from .errors import UnsupportedPattern

_RANKS: Dict[DitherPattern, Tuple[Tuple[int, int], Tuple[int, int]]] = {
    DitherPattern.DIAGONAL4: ((0, 2), (3, 1)),
    DitherPattern.HORIZONTAL4: ((0, 3), (1, 2)),
    DitherPattern.VERTICAL4: ((0, 1), (3, 2)),
    DitherPattern.DIAGONAL2: ((0, 1), (1, 0)),
    DitherPattern.HORIZONTAL2: ((0, 1), (0, 1)),
    DitherPattern.VERTICAL2: ((0, 0), (1, 1)),
}

# Patterns registered per symmetry class.
_MEMBERS: Dict[DitherPixelType, Tuple[DitherPattern, ...]] = {
    DitherPixelType.TYPE2: (
        DitherPattern.DIAGONAL2,
        DitherPattern.HORIZONTAL2,
        DitherPattern.VERTICAL2,
    ),
    DitherPixelType.TYPE4: (
        DitherPattern.DIAGONAL4,
        DitherPattern.HORIZONTAL4,
    ),
}


class DitherMap:
    """Immutable 2x2 rank matrix for one pattern."""

    __slots__ = ("pattern", "_ranks")

    def __init__(self, pattern: DitherPattern):
        if pattern not in _RANKS:
            raise UnsupportedPattern(f"unhandled dither pattern: {pattern!r}")
        self.pattern = pattern
        ranks = np.array(_RANKS[pattern], dtype=np.int32)
        ranks.setflags(write=False)
        self._ranks = ranks

    @property
    def ranks(self) -> np.ndarray:
        return self._ranks

    @property
    def levels(self) -> int:
        return pixel_type_of(self.pattern).levels

    def rank_at(self, x: int, y: int) -> int:
        return int(self._ranks[y % 2, x % 2])

    def tiled(self, height: int, width: int, x0: int = 0, y0: int = 0) -> np.ndarray:
        """Rank plane (height, width) for a region whose top-left is (x0, y0)."""
        ys = (np.arange(height) + y0) % 2
        xs = (np.arange(width) + x0) % 2
        return self._ranks[ys[:, None], xs[None, :]]

    def __repr__(self) -> str:
        return f"DitherMap({self.pattern.name}, {self._ranks.tolist()})"


class DitherMapSet:
    """Lookup of the DitherMaps belonging to one DitherPixelType."""

    def __init__(self, pixel_type: DitherPixelType):
        if pixel_type not in _MEMBERS:
            raise UnsupportedPattern(f"unhandled dither pixel type: {pixel_type!r}")
        self.pixel_type = pixel_type
        self.maps: Dict[DitherPattern, DitherMap] = {
            pattern: DitherMap(pattern) for pattern in _MEMBERS[pixel_type]
        }

    def __contains__(self, pattern: object) -> bool:
        return pattern in self.maps

    def lookup(self, pattern: DitherPattern) -> DitherMap:
        try:
            return self.maps[pattern]
        except KeyError:
            raise UnsupportedPattern(
                f"{pattern.name} is not a {self.pixel_type.name} pattern"
            ) from None


_SETS: Dict[DitherPixelType, DitherMapSet] = {}


def dither_map_for(pattern: DitherPattern) -> DitherMap:
    """DitherMap for pattern via the set of its derived pixel type."""
    pixel_type = pixel_type_of(pattern)
    if pixel_type not in _SETS:
        _SETS[pixel_type] = DitherMapSet(pixel_type)
    return _SETS[pixel_type].lookup(pattern)


__all__ = ["DitherMap", "DitherMapSet", "dither_map_for"]
