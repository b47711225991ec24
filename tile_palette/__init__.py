# tile_palette/__init__.py
"""
tile_palette package.

Purpose:
  Reduce a full-colour image to tiles that each use one of a few small
  palettes. See tile_palette_quant.py for the CLI.

Public API:
  quantize          : end-to-end entry point (RGBA buffer in, QuantizeResult out).
  QuantizeSettings  : validated settings value object; FIELD_INFO holds display metadata.
  QuantizeResult    : palettes (P, C, 3) uint8 plus tile and pixel index buffers.
  ProgressEvent     : payload of the progress callback.
  core_types        : enums (Dither, DitherPattern, ColorZeroBehavior) and aliases.
  errors            : TileQuantError hierarchy.
  image_io          : Pillow helpers to load RGBA and save indexed output.

Quick start:
  from tile_palette import QuantizeSettings, quantize
  result = quantize(rgba, QuantizeSettings(num_palettes=4, colors_per_palette=16), seed=1)
"""

__version__ = "0.1.0"

from . import core_types
from . import errors
from . import utils

from .compose import QuantizeResult  # noqa: E402,F401
from .core_types import ColorZeroBehavior, Dither, DitherPattern  # noqa: E402,F401
from .engine import ProgressEvent, quantize  # noqa: E402,F401
from .errors import (  # noqa: E402,F401
    CancelledError,
    ConfigurationError,
    InvalidColorZeroConfiguration,
    InvalidDimensions,
    NoEligiblePalette,
    TileQuantError,
    UnsupportedPattern,
)
from .settings import FIELD_INFO, QuantizeSettings  # noqa: E402,F401

__all__ = [
    "__version__",
    "core_types",
    "errors",
    "utils",
    "quantize",
    "QuantizeSettings",
    "FIELD_INFO",
    "QuantizeResult",
    "ProgressEvent",
    "Dither",
    "DitherPattern",
    "ColorZeroBehavior",
    "TileQuantError",
    "ConfigurationError",
    "InvalidDimensions",
    "InvalidColorZeroConfiguration",
    "UnsupportedPattern",
    "NoEligiblePalette",
    "CancelledError",
]
