# tile_palette/shuffle.py
from __future__ import annotations

"""Restartable, non-repeating random order over sample indices."""

from typing import Iterator, Union

import numpy as np

SeedLike = Union[None, int, np.random.Generator]


def make_rng(seed: SeedLike = None) -> np.random.Generator:
    """Generator from a seed, an existing Generator, or process entropy."""
    if isinstance(seed, np.random.Generator):
        return seed
    return np.random.default_rng(seed)


class SampleShuffler:
    """
    Walks a random permutation of 0..n-1; reshuffles when a pass is exhausted.
    Each pass visits every index exactly once.
    """

    def __init__(self, n: int, seed: SeedLike = None):
        if n <= 0:
            raise ValueError("SampleShuffler needs at least one sample")
        self.n = int(n)
        self._rng = make_rng(seed)
        self._order = self._rng.permutation(self.n)
        self._cursor = 0
        self.passes = 0

    def next(self) -> int:
        if self._cursor >= self.n:
            self.restart()
        value = int(self._order[self._cursor])
        self._cursor += 1
        return value

    __next__ = next

    def __iter__(self) -> Iterator[int]:
        return self

    def take(self, count: int) -> np.ndarray:
        """Next count indices as an array, crossing pass boundaries as needed."""
        out = np.empty(max(0, int(count)), dtype=np.int64)
        filled = 0
        while filled < out.shape[0]:
            if self._cursor >= self.n:
                self.restart()
            step = min(out.shape[0] - filled, self.n - self._cursor)
            out[filled : filled + step] = self._order[self._cursor : self._cursor + step]
            self._cursor += step
            filled += step
        return out

    def restart(self) -> None:
        """Start a fresh pass with a new permutation."""
        self._order = self._rng.permutation(self.n)
        self._cursor = 0
        self.passes += 1

    @property
    def remaining(self) -> int:
        return self.n - self._cursor

    @property
    def rng(self) -> np.random.Generator:
        return self._rng


__all__ = ["SeedLike", "make_rng", "SampleShuffler"]
