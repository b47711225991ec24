import numpy as np
import pytest

from tile_palette.core_types import ColorZeroBehavior
from tile_palette.metrics import mean_square_error
from tile_palette.optimize import (
    LinearSchedule,
    PaletteGrower,
    Phase,
    RefinementEngine,
    WeakColorReplacer,
    initialize_palettes,
)
from tile_palette.optimize.initialize import cluster_tiles
from tile_palette.palette_set import PaletteSet
from tile_palette.settings import QuantizeSettings
from tile_palette.shuffle import SampleShuffler
from tile_palette.tiles import extract_tiles


def _engine(tiles, seed=0):
    return RefinementEngine(tiles, SampleShuffler(tiles.num_samples, seed=seed))


def test_cluster_tiles_separates_far_groups():
    points = np.array([[0.0, 0, 0], [2.0, 0, 0], [250.0, 250, 250], [252.0, 250, 250]])
    weights = np.ones(4)
    labels, centroids = cluster_tiles(points, weights, 2)

    assert labels[0] == labels[1]
    assert labels[2] == labels[3]
    assert labels[0] != labels[2]
    assert sorted(centroids[:, 0].tolist()) == pytest.approx([1.0, 251.0])


def test_cluster_tiles_weights_pull_the_centroid():
    points = np.array([[0.0, 0, 0], [4.0, 0, 0], [250.0, 250, 250], [254.0, 250, 250]])
    weights = np.array([3.0, 1.0, 1.0, 1.0])
    labels, centroids = cluster_tiles(points, weights, 2)

    assert labels[0] == labels[1] != labels[2] == labels[3]
    assert centroids[labels[0]][0] == pytest.approx(1.0)
    assert centroids[labels[2]][0] == pytest.approx(252.0)


def test_cluster_tiles_with_fewer_points_than_clusters():
    points = np.array([[10.0, 10, 10]])
    labels, centroids = cluster_tiles(points, np.ones(1), 3)
    assert labels.tolist() == [0]
    assert centroids.shape == (3, 3)
    assert np.allclose(centroids, 10.0)


@pytest.mark.parametrize(
    "behavior, colors", [(ColorZeroBehavior.UNIQUE, 4), (ColorZeroBehavior.SHARED, 4)]
)
def test_initialize_gives_one_colour_per_palette(noisy_rgba, behavior, colors):
    tiles = extract_tiles(noisy_rgba, 8, 8)
    settings = QuantizeSettings(num_palettes=4, colors_per_palette=colors, color_zero=behavior)
    ps = initialize_palettes(tiles, settings)

    assert ps.num_palettes == 4
    assert ps.num_slots == behavior.initial_slots
    assert len({tuple(c) for c in np.rint(ps.colors[:, -1]).tolist()}) == 4


def test_linear_schedule():
    schedule = LinearSchedule(0.3, 0.05, 100)
    assert schedule.at(0) == 0.3
    assert schedule.at(100) == pytest.approx(0.05)
    assert schedule.at(50) == pytest.approx(0.175)
    assert schedule.at(1000) == pytest.approx(0.05)


def test_best_so_far_never_gets_worse(noisy_rgba):
    tiles = extract_tiles(noisy_rgba, 8, 8)
    settings = QuantizeSettings(num_palettes=2, colors_per_palette=4)
    engine = _engine(tiles)
    ps = initialize_palettes(tiles, settings).padded(4)
    replacer = WeakColorReplacer(tiles)
    schedule = LinearSchedule(0.3, 0.05, 10 * 25)

    engine.replace_phase(ps, replacer, 5, 25, schedule)
    engine.final_phase(ps, 100, 25, schedule, 5 * 25)

    assert len(engine.history) == 5 + 4
    assert all(b <= a for a, b in zip(engine.history, engine.history[1:]))
    assert engine.best_mse == engine.history[-1]
    assert engine.phase is Phase.CONVERGED


def test_best_is_an_independent_copy(noisy_rgba):
    tiles = extract_tiles(noisy_rgba, 8, 8)
    engine = _engine(tiles)
    ps = PaletteSet(np.full((1, 2, 3), 128.0), ColorZeroBehavior.UNIQUE)

    engine.checkpoint(ps)
    ps.set_color(0, 0, np.array([0.0, 0.0, 0.0]))

    assert engine.best.colors[0, 0].tolist() == [128.0, 128.0, 128.0]
    assert engine.best_or(ps).colors is not engine.best.colors


def test_learning_moves_towards_the_samples():
    img = np.zeros((4, 4, 4), dtype=np.uint8)
    img[..., 0] = 200
    img[..., 3] = 255
    tiles = extract_tiles(img, 4, 4)
    engine = _engine(tiles)
    ps = PaletteSet(np.zeros((1, 1, 3)), ColorZeroBehavior.UNIQUE)

    engine.run(ps, 16, 0.5)
    assert 190.0 < ps.colors[0, 0, 0] <= 200.0
    assert ps.colors[0, 0, 1] == 0.0


def test_growth_never_increases_error(noisy_rgba):
    tiles = extract_tiles(noisy_rgba, 8, 8)
    settings = QuantizeSettings(num_palettes=2, colors_per_palette=6)
    engine = _engine(tiles, seed=5)
    grower = PaletteGrower(tiles, engine)
    ps = initialize_palettes(tiles, settings)

    errors = [mean_square_error(tiles, ps)]
    slots = []

    def on_slot(count, current):
        slots.append(count)
        errors.append(mean_square_error(tiles, current))

    grown = grower.grow(ps, 6, 25, 0.3, on_slot)

    assert grown.num_slots == 6
    assert slots == [2, 3, 4, 5, 6]
    assert all(b <= a for a, b in zip(errors, errors[1:]))


def test_grow_seeds_at_the_worst_residual():
    img = np.zeros((4, 4, 4), dtype=np.uint8)
    img[..., 3] = 255
    img[0, 0, :3] = (0, 0, 255)
    tiles = extract_tiles(img, 4, 4)
    grower = PaletteGrower(tiles, _engine(tiles))
    ps = PaletteSet(np.zeros((1, 1, 3)), ColorZeroBehavior.UNIQUE)

    assert grower.seeds(ps).tolist() == [[0.0, 0.0, 255.0]]


def test_weak_duplicate_colour_is_reseeded():
    img = np.zeros((4, 6, 4), dtype=np.uint8)
    img[..., 3] = 255
    img[:, 0:2, :3] = (255, 0, 0)
    img[:, 2:4, :3] = (0, 0, 255)
    img[:, 4:6, :3] = (0, 255, 0)
    tiles = extract_tiles(img, 6, 4)
    ps = PaletteSet(
        np.array([[[255.0, 0, 0], [0.0, 0, 255], [255.0, 0, 10]]]), ColorZeroBehavior.UNIQUE
    )
    replacer = WeakColorReplacer(tiles)
    replacer.replace(ps)

    assert ps.colors[0, 2].tolist() == [0.0, 255.0, 0.0]
    assert ps.colors[0, 0].tolist() == [255.0, 0.0, 0.0]
    assert replacer.replaced_colors == 1


def test_unused_palette_is_reseeded_from_the_worst_tile():
    img = np.zeros((4, 8, 4), dtype=np.uint8)
    img[..., 3] = 255
    img[:, :4, :3] = (250, 10, 10)
    img[:, 4:, :3] = (10, 10, 250)
    img[0, 4, :3] = (10, 250, 10)
    tiles = extract_tiles(img, 4, 4)
    ps = PaletteSet(
        np.array(
            [
                [[250.0, 10, 10], [10.0, 10, 250]],
                [[128.0, 128, 128], [128.0, 128, 128]],
            ]
        ),
        ColorZeroBehavior.UNIQUE,
    )
    replacer = WeakColorReplacer(tiles)
    replacer.replace(ps)

    assert replacer.replaced_palettes == 1
    assert ps.colors[1].tolist() == [[10.0, 10.0, 250.0], [10.0, 250.0, 10.0]]


def test_unused_shared_colour_is_reseeded_for_every_palette():
    img = np.zeros((4, 8, 4), dtype=np.uint8)
    img[..., 3] = 255
    img[:, 0:2, 1] = 200
    img[:, 2:4, 1] = 240
    img[:, 4:6, 1] = 100
    img[:, 6:8, 1] = 140
    tiles = extract_tiles(img, 4, 4)
    ps = PaletteSet(
        np.array(
            [
                [[255.0, 0, 255], [0.0, 200, 0], [0.0, 240, 0]],
                [[255.0, 0, 255], [0.0, 100, 0], [0.0, 130, 0]],
            ]
        ),
        ColorZeroBehavior.SHARED,
    )
    replacer = WeakColorReplacer(tiles)
    replacer.replace(ps)

    assert ps.colors[:, 0].tolist() == [[0.0, 140.0, 0.0], [0.0, 140.0, 0.0]]
    assert ps.colors[1, 1:].tolist() == [[0.0, 100.0, 0.0], [0.0, 130.0, 0.0]]
    assert replacer.replaced_colors == 1
    assert replacer.replaced_palettes == 0
