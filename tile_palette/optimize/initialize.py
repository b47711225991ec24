# tile_palette/optimize/initialize.py
from __future__ import annotations

"""
Palette initialisation: one colour per palette.

Tiles are clustered into NumberOfPalettes groups by their count-weighted mean
colour with scikit-learn KMeans, started from farthest-point seeds (heaviest
tile first). Each palette starts at its cluster centroid.
"""

from typing import Tuple

import numpy as np
from sklearn.cluster import KMeans

from ..constants import INIT_KMEANS_ITERATIONS
from ..metrics import squared_distances
from ..palette_set import PaletteSet
from ..settings import QuantizeSettings
from ..tiles import TileSet


def farthest_point_seeds(points: np.ndarray, weights: np.ndarray, k: int) -> np.ndarray:
    """k seed indices: heaviest point first, then the point farthest from all chosen."""
    chosen = [int(np.argmax(weights))]
    nearest = squared_distances(points, points[chosen[0]][None, :])[:, 0]
    while len(chosen) < min(k, points.shape[0]):
        nxt = int(np.argmax(nearest))
        chosen.append(nxt)
        nearest = np.minimum(nearest, squared_distances(points, points[nxt][None, :])[:, 0])
    return np.asarray(chosen, dtype=np.int64)


def _fill_empty_clusters(labels: np.ndarray, own_dist: np.ndarray, k: int) -> np.ndarray:
    """Hand each empty cluster the worst-fitting point of a cluster that can spare one."""
    labels = labels.copy()
    counts = np.bincount(labels, minlength=k)
    for c in np.flatnonzero(counts == 0):
        donors = counts[labels] > 1
        if not np.any(donors):
            break
        i = int(np.argmax(np.where(donors, own_dist, -1.0)))
        counts[labels[i]] -= 1
        labels[i] = c
        counts[c] = 1
        own_dist[i] = 0.0
    return labels


def cluster_tiles(
    points: np.ndarray,
    weights: np.ndarray,
    k: int,
    iterations: int = INIT_KMEANS_ITERATIONS,
) -> Tuple[np.ndarray, np.ndarray]:
    """
    Weighted k-means over representative tile colours.
    Returns (labels (N,), centroids (k,3)). With no more distinct points than
    clusters, every distinct point is its own centroid and the leftover
    clusters reuse points round-robin.
    """
    n = points.shape[0]
    seeds = farthest_point_seeds(points, weights, k)
    if np.unique(points, axis=0).shape[0] <= k:
        centroids = np.empty((k, 3), dtype=np.float64)
        centroids[: seeds.shape[0]] = points[seeds]
        for c in range(seeds.shape[0], k):
            centroids[c] = points[c % n]
        labels = np.argmin(squared_distances(points, centroids), axis=1)
        return labels, centroids

    km = KMeans(
        n_clusters=k,
        init=points[seeds],
        n_init=1,
        max_iter=max(1, iterations),
        random_state=0,
    ).fit(points, sample_weight=weights)
    labels = km.labels_.astype(np.int64)
    centroids = np.asarray(km.cluster_centers_, dtype=np.float64).copy()

    own_dist = squared_distances(points, centroids)[np.arange(n), labels]
    repaired = _fill_empty_clusters(labels, own_dist, k)
    if not np.array_equal(repaired, labels):
        labels = repaired
        total = np.bincount(labels, weights=weights, minlength=k)
        for ch in range(3):
            sums = np.bincount(labels, weights=weights * points[:, ch], minlength=k)
            filled = total > 0
            centroids[filled, ch] = sums[filled] / total[filled]
    return labels, centroids


def initialize_palettes(tiles: TileSet, settings: QuantizeSettings) -> PaletteSet:
    """First PaletteSet: colour zero slot (if any) plus one centroid colour per palette."""
    k = settings.num_palettes
    used = [t for t in tiles if t.pixel_count > 0]
    if not used:
        seeds = np.zeros((k, 3), dtype=np.float64)
    else:
        points = np.stack([t.mean_color() for t in used])
        weights = np.array([t.pixel_count for t in used], dtype=np.float64)
        _, seeds = cluster_tiles(points, weights, k)
    return PaletteSet.from_seeds(
        seeds,
        settings.color_zero,
        shared_rgb=settings.shared_rgb,
        transparent_rgb=settings.transparent_rgb,
    )


__all__ = ["farthest_point_seeds", "cluster_tiles", "initialize_palettes"]
