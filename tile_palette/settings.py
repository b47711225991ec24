# tile_palette/settings.py
from __future__ import annotations

"""
Quantizer settings and their display metadata.

QuantizeSettings is a plain value object handed to the engine. FIELD_INFO is
a separate table (name, description, bounds, default) that only the CLI and
other front ends read.
"""

from dataclasses import dataclass, fields, replace
from typing import Any, Dict, Optional, Tuple, Union

from . import constants as C
from .core_types import (
    ColorZeroBehavior,
    Dither,
    DitherPattern,
    RGBTuple,
    hex_to_rgb,
)
from .errors import ConfigurationError, InvalidColorZeroConfiguration

Number = Union[int, float]


@dataclass(frozen=True)
class FieldInfo:
    """Display metadata for one settings field."""

    name: str
    description: str
    default: Any
    bounds: Optional[Tuple[Number, Number]] = None


FIELD_INFO: Dict[str, FieldInfo] = {
    info.name: info
    for info in (
        FieldInfo("tile_width", "Tile width in pixels.", 8, (1, 32)),
        FieldInfo("tile_height", "Tile height in pixels.", 8, (1, 32)),
        FieldInfo("num_palettes", "Number of palettes.", 8, (1, 16)),
        FieldInfo(
            "colors_per_palette",
            "Colours per palette, including colour zero.",
            4,
            (2, 256),
        ),
        FieldInfo("bits_per_channel", "Output bits per RGB channel.", 5, (2, 8)),
        FieldInfo(
            "fraction_of_pixels",
            "Samples per refinement block as a fraction of the pixel count.",
            0.1,
            (0.01, 10.0),
        ),
        FieldInfo(
            "dither_weight",
            "How readily distant colour pairs are mixed when dithering.",
            0.5,
            (0.01, 1.0),
        ),
        FieldInfo("dither", "Ordered dithering mode.", Dither.OFF),
        FieldInfo(
            "dither_pattern", "2x2 ordered dither pattern.", DitherPattern.DIAGONAL4
        ),
        FieldInfo(
            "color_zero",
            "Meaning of palette index zero.",
            ColorZeroBehavior.UNIQUE,
        ),
        FieldInfo("shared_color", "Initial shared colour zero (hex).", "#000000"),
        FieldInfo(
            "transparent_color",
            "Colour zero for the transparent policies (hex).",
            "#000000",
        ),
        FieldInfo("alpha", "Initial learning rate.", C.ALPHA, (0.0, 1.0)),
        FieldInfo("final_alpha", "Learning rate at the end of the run.", C.FINAL_ALPHA, (0.0, 1.0)),
        FieldInfo(
            "min_color_factor",
            "Colours below this share of their palette's mean contribution are replaced.",
            C.MIN_COLOR_FACTOR,
            (0.0, 1.0),
        ),
        FieldInfo(
            "min_palette_factor",
            "Palettes below this share of the mean palette contribution are reseeded.",
            C.MIN_PALETTE_FACTOR,
            (0.0, 1.0),
        ),
        FieldInfo(
            "replace_iterations",
            "Refinement blocks with weak-colour replacement.",
            C.REPLACE_ITERATIONS,
            (1, 1000),
        ),
    )
}


@dataclass(frozen=True)
class QuantizeSettings:
    tile_width: int = 8
    tile_height: int = 8
    num_palettes: int = 8
    colors_per_palette: int = 4
    bits_per_channel: int = 5
    fraction_of_pixels: float = 0.1
    dither_weight: float = 0.5
    dither: Dither = Dither.OFF
    dither_pattern: DitherPattern = DitherPattern.DIAGONAL4
    color_zero: ColorZeroBehavior = ColorZeroBehavior.UNIQUE
    shared_color: str = "#000000"
    transparent_color: str = "#000000"
    # Schedule tunables. None means "derive from the dither mode".
    alpha: Optional[float] = None
    final_alpha: Optional[float] = None
    min_color_factor: float = C.MIN_COLOR_FACTOR
    min_palette_factor: float = C.MIN_PALETTE_FACTOR
    replace_iterations: int = C.REPLACE_ITERATIONS

    @property
    def use_dither(self) -> bool:
        return self.dither is not Dither.OFF

    @property
    def shared_rgb(self) -> RGBTuple:
        return hex_to_rgb(self.shared_color)

    @property
    def transparent_rgb(self) -> RGBTuple:
        return hex_to_rgb(self.transparent_color)

    @property
    def optimised_slots(self) -> int:
        """Slots per palette the optimiser controls."""
        return self.colors_per_palette - self.color_zero.reserved_slots

    def learning_rates(self) -> Tuple[float, float]:
        """(alpha, final_alpha) with the Dither=Slow defaults applied."""
        slow = self.dither is Dither.SLOW
        alpha = self.alpha
        if alpha is None:
            alpha = C.SLOW_ALPHA if slow else C.ALPHA
        final_alpha = self.final_alpha
        if final_alpha is None:
            final_alpha = C.SLOW_FINAL_ALPHA if slow else C.FINAL_ALPHA
        return float(alpha), float(final_alpha)

    def block_iterations(self, num_samples: int) -> int:
        """Samples per refinement block."""
        iterations = self.fraction_of_pixels * num_samples
        if self.dither is Dither.SLOW:
            iterations /= C.SLOW_ITERATION_DIVISOR
        return max(1, int(iterations))

    def with_overrides(self, **changes: Any) -> "QuantizeSettings":
        return replace(self, **changes)

    def validate(self) -> "QuantizeSettings":
        """
        Check every bounded field and the colour-zero policy.
        Raises ConfigurationError (or a subclass). Returns self for chaining.
        """
        for f in fields(self):
            info = FIELD_INFO.get(f.name)
            value = getattr(self, f.name)
            if info is None or info.bounds is None or value is None:
                continue
            lo, hi = info.bounds
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise ConfigurationError(f"{f.name} must be a number, got {value!r}")
            if isinstance(info.default, int) and not isinstance(value, int):
                raise ConfigurationError(f"{f.name} must be an integer, got {value!r}")
            if not (lo <= value <= hi):
                raise ConfigurationError(f"{f.name}={value} outside [{lo}, {hi}]")

        for name, enum_type in (
            ("dither", Dither),
            ("dither_pattern", DitherPattern),
            ("color_zero", ColorZeroBehavior),
        ):
            if not isinstance(getattr(self, name), enum_type):
                raise ConfigurationError(
                    f"{name} must be a {enum_type.__name__}, got {getattr(self, name)!r}"
                )

        hex_to_rgb(self.shared_color)
        hex_to_rgb(self.transparent_color)

        if self.optimised_slots < 2:
            raise InvalidColorZeroConfiguration(
                f"colors_per_palette={self.colors_per_palette} leaves "
                f"{self.optimised_slots} optimisable slot(s) under "
                f"{self.color_zero.value}; at least 2 are required"
            )
        return self


__all__ = ["FieldInfo", "FIELD_INFO", "QuantizeSettings"]
