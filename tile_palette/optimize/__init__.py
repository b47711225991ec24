# tile_palette/optimize/__init__.py
"""
Palette optimisation stages.

Provides:
  initialize_palettes(tiles, settings) -> PaletteSet
    One colour per palette from a weighted k-means over tile mean colours.

  PaletteGrower(tiles, engine, workers=1)
    Adds one slot per palette at a time, seeded at the worst residual.

  RefinementEngine(tiles, shuffler, checkpoint_dither=None, workers=1, debug=False)
    Sequential competitive learning with best-so-far checkpoints.

  WeakColorReplacer(tiles, min_color_factor=0.5, min_palette_factor=0.5, workers=1)
    Reseeds colours and palettes that contribute little.

  BitDepthReducer(bits, passes=3, workers=1)
    Posterization plus corrective k-means passes.
"""

from .bit_depth import BitDepthReducer, posterize
from .grow import PaletteGrower
from .initialize import initialize_palettes
from .refine import LinearSchedule, Phase, RefinementEngine
from .replace import WeakColorReplacer

__all__ = [
    "initialize_palettes",
    "PaletteGrower",
    "RefinementEngine",
    "LinearSchedule",
    "Phase",
    "WeakColorReplacer",
    "BitDepthReducer",
    "posterize",
]
