"""
Tunables used across the quantizer.

- Learning-rate schedule and replace-phase defaults
- Progress checkpoints
- Dither and chunking constants
"""
from __future__ import annotations

from typing import Tuple

# =========================
# Learning-rate schedule
# =========================

# Replace phase starts here; the final phase decays towards FINAL_ALPHA.
ALPHA = 0.3
FINAL_ALPHA = 0.05

# Dither=Slow runs fewer, gentler updates.
SLOW_ALPHA = 0.1
SLOW_FINAL_ALPHA = 0.02
SLOW_ITERATION_DIVISOR = 5

# Final phase length as a multiple of one replace block.
FINAL_PHASE_BLOCKS = 10

# =========================
# Weak colour replacement
# =========================

MIN_COLOR_FACTOR = 0.5
MIN_PALETTE_FACTOR = 0.5
REPLACE_ITERATIONS = 10

# Corrective k-means passes after posterization.
CORRECTIVE_PASSES = 3

# =========================
# Initialisation
# =========================

# max_iter for the per-tile KMeans that seeds the palettes.
INIT_KMEANS_ITERATIONS = 12

# =========================
# Progress checkpoints (percent)
# =========================

# growth end, replace end, final end, done
PROGRESS_STEPS: Tuple[float, float, float, float] = (25.0, 65.0, 90.0, 100.0)

# When dithering, the compositor reports the last stretch.
PROGRESS_DITHER_REDUCE_END = 94.0

# =========================
# Pixels / dithering
# =========================

# Alpha below this counts as transparent for TransparentFromTransparent.
ALPHA_THRESHOLD = 128

# Pair search for ordered dithering only looks at this many nearest colours.
DITHER_CANDIDATES = 4

# Mix penalty is DITHER_PENALTY_SCALE * (1 - weight) * t(1 - t) * |Ci - Cj|^2.
# Must stay below 1/3 so quarter levels beat the nearest colour alone.
DITHER_PENALTY_SCALE = 0.25

# Rows per chunk in vectorised distance work. Bounds the (rows, P*K) buffer.
CHUNK_ROWS = 4_096

__all__ = [
    "ALPHA",
    "FINAL_ALPHA",
    "SLOW_ALPHA",
    "SLOW_FINAL_ALPHA",
    "SLOW_ITERATION_DIVISOR",
    "FINAL_PHASE_BLOCKS",
    "MIN_COLOR_FACTOR",
    "MIN_PALETTE_FACTOR",
    "REPLACE_ITERATIONS",
    "CORRECTIVE_PASSES",
    "INIT_KMEANS_ITERATIONS",
    "PROGRESS_STEPS",
    "PROGRESS_DITHER_REDUCE_END",
    "ALPHA_THRESHOLD",
    "DITHER_CANDIDATES",
    "DITHER_PENALTY_SCALE",
    "CHUNK_ROWS",
]
