import numpy as np
import pytest

from tile_palette.core_types import ColorZeroBehavior
from tile_palette.errors import ConfigurationError, InvalidDimensions
from tile_palette.tiles import (
    color_zero_mask,
    extract_tiles,
    from_tile_blocks,
    to_tile_blocks,
)


def _random_rgba(width, height, seed=0):
    rng = np.random.default_rng(seed)
    img = rng.integers(0, 256, size=(height, width, 4), dtype=np.uint8)
    img[..., 3] = 255
    return img


def test_tiles_partition_the_image():
    img = _random_rgba(24, 16)
    tiles = extract_tiles(img, 8, 8)

    assert len(tiles) == 3 * 2
    assert (tiles.rows, tiles.cols) == (2, 3)

    coverage = np.zeros((16, 24), dtype=np.int32)
    for tile in tiles:
        x0, y0, x1, y1 = tile.bounds
        coverage[y0:y1, x0:x1] += 1
        assert tile.pixel_count == 64
    assert np.all(coverage == 1)
    assert tiles.num_samples == 16 * 24
    assert tiles.total_weight == 16 * 24


def test_tiles_are_row_major():
    img = _random_rgba(16, 16)
    tiles = extract_tiles(img, 8, 4)
    assert [(t.x, t.y) for t in tiles][:3] == [(0, 0), (8, 0), (0, 4)]


def test_tile_colours_are_distinct_with_counts():
    img = np.zeros((4, 4, 4), dtype=np.uint8)
    img[..., 3] = 255
    img[:, :2, 0] = 255
    tiles = extract_tiles(img, 4, 4)

    tile = tiles[0]
    assert tile.colors.shape == (2, 3)
    assert sorted(tile.counts.tolist()) == [8, 8]
    assert np.allclose(tile.mean_color(), [127.5, 0.0, 0.0])


def test_block_views_invert():
    img = _random_rgba(12, 8)
    blocks = to_tile_blocks(img, 4, 2)
    assert blocks.shape == (12, 8, 4)
    assert np.array_equal(from_tile_blocks(blocks, 4, 3, 4, 2), img)


@pytest.mark.parametrize("size", [(10, 16), (16, 12), (0, 8)])
def test_non_multiple_sizes_raise_invalid_dimensions(size):
    width, height = size
    img = np.zeros((height, width, 4), dtype=np.uint8)
    with pytest.raises(InvalidDimensions):
        extract_tiles(img, 8, 8)


def test_tile_size_out_of_range():
    img = np.zeros((66, 66, 4), dtype=np.uint8)
    with pytest.raises(ConfigurationError):
        extract_tiles(img, 33, 33)


def test_transparent_pixels_are_left_out():
    img = _random_rgba(8, 8)
    img[:4, :, 3] = 0
    img[4, 0, 3] = 127
    img[4, 1, 3] = 128

    mask = color_zero_mask(img, ColorZeroBehavior.TRANSPARENT_FROM_TRANSPARENT, (0, 0, 0))
    assert int(mask.sum()) == 32 + 1

    tiles = extract_tiles(img, 8, 8, reserved=mask)
    assert tiles.num_samples == 64 - 33
    assert tiles[0].pixel_count == 64 - 33


def test_transparent_colour_is_an_exact_match():
    img = np.zeros((2, 2, 4), dtype=np.uint8)
    img[..., 3] = 255
    img[0, 0, :3] = (0, 255, 0)
    img[0, 1, :3] = (1, 255, 0)

    mask = color_zero_mask(img, ColorZeroBehavior.TRANSPARENT_FROM_COLOR, (0, 255, 0))
    assert mask.tolist() == [[1, 0], [0, 0]]


@pytest.mark.parametrize("behavior", [ColorZeroBehavior.UNIQUE, ColorZeroBehavior.SHARED])
def test_opaque_policies_reserve_nothing(behavior):
    img = np.zeros((4, 4, 4), dtype=np.uint8)
    assert not color_zero_mask(img, behavior, (0, 0, 0)).any()
