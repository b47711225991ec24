"""Exception types raised by the tile quantizer."""
from __future__ import annotations


class TileQuantError(Exception):
    """Base class for quantizer errors."""


class ConfigurationError(TileQuantError, ValueError):
    """Raised before any work starts when settings or inputs are invalid."""


class InvalidDimensions(ConfigurationError):
    """Image size is not an exact multiple of the tile size."""


class InvalidColorZeroConfiguration(ConfigurationError):
    """ColorsPerPalette is too small for the selected colour-zero policy."""


class UnsupportedPattern(TileQuantError, ValueError):
    """Dither pattern is not registered for the requested pixel type."""


class NoEligiblePalette(TileQuantError, RuntimeError):
    """Compositor was given an empty palette set."""


class CancelledError(TileQuantError):
    """Cooperative cancellation was observed at a checkpoint."""


__all__ = [
    "TileQuantError",
    "ConfigurationError",
    "InvalidDimensions",
    "InvalidColorZeroConfiguration",
    "UnsupportedPattern",
    "NoEligiblePalette",
    "CancelledError",
]
