from __future__ import annotations

"""
Core type aliases, enums, and lightweight helpers.
"""

from enum import Enum
from typing import Sequence, Tuple, Union

import numpy as np
from numpy.typing import NDArray

from .errors import ConfigurationError

# Basic aliases

RGBTuple = Tuple[int, int, int]
HexStr = str

U8Image = NDArray[np.uint8]  # (H, W, 4) RGBA
U8Mask = NDArray[np.uint8]  # (H, W)
ColorRows = NDArray[np.float64]  # (N, 3) working RGB
PaletteArray = NDArray[np.float64]  # (P, K, 3)
IndexMap = NDArray[np.int32]  # (H, W) or (rows, cols)


# Enums


class Dither(Enum):
    OFF = "off"
    FAST = "fast"
    SLOW = "slow"


class DitherPattern(Enum):
    DIAGONAL4 = "diagonal4"
    HORIZONTAL4 = "horizontal4"
    VERTICAL4 = "vertical4"
    DIAGONAL2 = "diagonal2"
    HORIZONTAL2 = "horizontal2"
    VERTICAL2 = "vertical2"


class DitherPixelType(Enum):
    """Symmetry class of a dither pattern: 2 or 4 threshold levels."""

    TYPE2 = 2
    TYPE4 = 4

    @property
    def levels(self) -> int:
        return int(self.value)


class ColorZeroBehavior(Enum):
    UNIQUE = "unique"
    SHARED = "shared"
    TRANSPARENT_FROM_TRANSPARENT = "transparent-from-transparent"
    TRANSPARENT_FROM_COLOR = "transparent-from-color"

    @property
    def is_transparent(self) -> bool:
        return self in (
            ColorZeroBehavior.TRANSPARENT_FROM_TRANSPARENT,
            ColorZeroBehavior.TRANSPARENT_FROM_COLOR,
        )

    @property
    def reserved_slots(self) -> int:
        """Slots per palette that opaque pixels never use."""
        return 1 if self.is_transparent else 0

    @property
    def initial_slots(self) -> int:
        """Slot count right after initialisation (one optimised colour)."""
        return 1 if self is ColorZeroBehavior.UNIQUE else 2


def pixel_type_of(pattern: DitherPattern) -> DitherPixelType:
    """Derive the symmetry class of a pattern from its level suffix."""
    return DitherPixelType.TYPE4 if pattern.value.endswith("4") else DitherPixelType.TYPE2


# Small helpers


def rgb_to_hex(rgb: Sequence[int]) -> HexStr:
    """RGB triple to lowercase hex string '#rrggbb'."""
    return f"#{int(rgb[0]):02x}{int(rgb[1]):02x}{int(rgb[2]):02x}"


def hex_to_rgb(hex_str: str) -> RGBTuple:
    """Parse '#rgb' or '#rrggbb' (case-insensitive, '#' optional) into an RGB tuple."""
    s = hex_str.strip().lower()
    if s.startswith("#"):
        s = s[1:]
    if len(s) == 3:
        s = "".join(ch * 2 for ch in s)
    if len(s) != 6:
        raise ConfigurationError(f"hex colour must be '#rrggbb' or '#rgb': {hex_str!r}")
    try:
        return (int(s[0:2], 16), int(s[2:4], 16), int(s[4:6], 16))
    except ValueError:
        raise ConfigurationError(f"invalid hex colour: {hex_str!r}") from None


def coerce_to_rgba(image: Union[np.ndarray, Sequence]) -> U8Image:
    """
    Validate a uint8 (H,W,3) or (H,W,4) buffer and return it as RGBA.
    RGB input is treated as fully opaque.
    """
    arr = np.asarray(image)
    if arr.dtype != np.uint8 or arr.ndim != 3 or arr.shape[-1] not in (3, 4):
        raise ConfigurationError("expected uint8 (H,W,3/4) pixel buffer")
    if arr.shape[-1] == 4:
        return arr
    out = np.full(arr.shape[:2] + (4,), 255, dtype=np.uint8)
    out[..., :3] = arr
    return out


__all__ = [
    # aliases / types
    "RGBTuple",
    "HexStr",
    "U8Image",
    "U8Mask",
    "ColorRows",
    "PaletteArray",
    "IndexMap",
    # enums
    "Dither",
    "DitherPattern",
    "DitherPixelType",
    "ColorZeroBehavior",
    "pixel_type_of",
    # helpers
    "rgb_to_hex",
    "hex_to_rgb",
    "coerce_to_rgba",
]
