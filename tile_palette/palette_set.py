# tile_palette/palette_set.py
from __future__ import annotations

"""
PaletteSet: the palettes being optimised.

colors has shape (P, K, 3) in float64; slot 0 is the colour-zero slot.
- Unique: every slot is free per palette.
- Shared: slot 0 holds one colour common to all palettes.
- Transparent*: slot 0 is fixed and never offered to opaque pixels.
"""

from typing import Optional

import numpy as np

from .core_types import ColorZeroBehavior, PaletteArray, RGBTuple


class PaletteSet:
    __slots__ = ("colors", "behavior")

    def __init__(self, colors: PaletteArray, behavior: ColorZeroBehavior):
        arr = np.array(colors, dtype=np.float64, copy=True)
        if arr.ndim != 3 or arr.shape[-1] != 3:
            raise ValueError(f"palette colours must be (P, K, 3), got {arr.shape}")
        self.colors = arr
        self.behavior = behavior

    @classmethod
    def from_seeds(
        cls,
        seeds: np.ndarray,
        behavior: ColorZeroBehavior,
        shared_rgb: RGBTuple = (0, 0, 0),
        transparent_rgb: RGBTuple = (0, 0, 0),
    ) -> "PaletteSet":
        """One optimised colour per palette, plus the colour-zero slot if any."""
        seeds = np.asarray(seeds, dtype=np.float64).reshape(-1, 1, 3)
        if behavior is ColorZeroBehavior.UNIQUE:
            return cls(seeds, behavior)
        zero_rgb = shared_rgb if behavior is ColorZeroBehavior.SHARED else transparent_rgb
        zero = np.broadcast_to(
            np.asarray(zero_rgb, dtype=np.float64), (seeds.shape[0], 1, 3)
        )
        return cls(np.concatenate([zero, seeds], axis=1), behavior)

    # Shape

    @property
    def num_palettes(self) -> int:
        return int(self.colors.shape[0])

    @property
    def num_slots(self) -> int:
        return int(self.colors.shape[1])

    @property
    def first_candidate(self) -> int:
        """First slot opaque pixels may map to."""
        return self.behavior.reserved_slots

    @property
    def first_free(self) -> int:
        """First slot optimised independently per palette."""
        return 0 if self.behavior is ColorZeroBehavior.UNIQUE else 1

    def candidates(self) -> PaletteArray:
        """View (P, K - first_candidate, 3) of the slots opaque pixels can use."""
        return self.colors[:, self.first_candidate :]

    def is_fixed(self, slot: int) -> bool:
        return self.behavior.is_transparent and slot == 0

    def is_shared(self, slot: int) -> bool:
        return self.behavior is ColorZeroBehavior.SHARED and slot == 0

    # Mutation

    def move_color(self, palette: int, slot: int, target: np.ndarray, alpha: float) -> None:
        """color += alpha * (target - color); shared slot moves for every palette."""
        if self.is_fixed(slot):
            return
        if self.is_shared(slot):
            current = self.colors[0, 0]
            self.colors[:, 0] = current + alpha * (target - current)
            return
        color = self.colors[palette, slot]
        color += alpha * (target - color)

    def set_color(self, palette: int, slot: int, value: np.ndarray) -> None:
        if self.is_fixed(slot):
            return
        if self.is_shared(slot):
            self.colors[:, 0] = value
            return
        self.colors[palette, slot] = value

    def add_slot(self, seeds: np.ndarray) -> None:
        """Append one slot to every palette, seeded with seeds (P, 3)."""
        seeds = np.asarray(seeds, dtype=np.float64).reshape(self.num_palettes, 1, 3)
        self.colors = np.concatenate([self.colors, seeds], axis=1)

    # Copies / views

    def copy(self) -> "PaletteSet":
        return PaletteSet(self.colors, self.behavior)

    def padded(self, num_slots: int) -> "PaletteSet":
        """Copy grown to num_slots by repeating the last slot (error unchanged)."""
        out = self.copy()
        missing = int(num_slots) - out.num_slots
        if missing > 0:
            tail = np.repeat(out.colors[:, -1:], missing, axis=1)
            out.colors = np.concatenate([out.colors, tail], axis=1)
        return out

    def to_uint8(self) -> np.ndarray:
        return np.clip(np.rint(self.colors), 0, 255).astype(np.uint8)

    def same_as(self, other: Optional["PaletteSet"]) -> bool:
        return (
            other is not None
            and other.behavior is self.behavior
            and other.colors.shape == self.colors.shape
            and bool(np.array_equal(other.colors, self.colors))
        )

    def __repr__(self) -> str:
        return (
            f"PaletteSet(palettes={self.num_palettes}, slots={self.num_slots}, "
            f"zero={self.behavior.value})"
        )


__all__ = ["PaletteSet"]
