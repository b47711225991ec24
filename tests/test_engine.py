import threading

import numpy as np
import pytest

from tile_palette import (
    ColorZeroBehavior,
    Dither,
    DitherPattern,
    InvalidColorZeroConfiguration,
    InvalidDimensions,
    QuantizeSettings,
    UnsupportedPattern,
    quantize,
)


def _solid(width, height, rgb, alpha=255):
    img = np.zeros((height, width, 4), dtype=np.uint8)
    img[..., :3] = rgb
    img[..., 3] = alpha
    return img


def test_solid_red_uses_one_colour_everywhere():
    img = _solid(16, 16, (255, 0, 0))
    settings = QuantizeSettings(tile_width=8, tile_height=8, num_palettes=1, colors_per_palette=2)
    result = quantize(img, settings, seed=1)

    assert result.palettes.shape == (1, 2, 3)
    assert result.tile_palettes.shape == (2, 2)
    assert (result.tile_palettes == 0).all()
    assert (result.color_indices == 0).all()
    assert np.abs(result.palettes[0, 0].astype(int) - [255, 0, 0]).max() <= 8
    assert not result.cancelled
    assert result.transparent_index is None


def test_transparent_colour_is_kept_exactly(noisy_rgba):
    settings = QuantizeSettings(
        num_palettes=2,
        colors_per_palette=4,
        color_zero=ColorZeroBehavior.TRANSPARENT_FROM_COLOR,
        transparent_color="#00FF00",
    )
    result = quantize(noisy_rgba, settings, seed=3)

    assert (result.palettes[:, 0] == [0, 255, 0]).all()
    assert result.transparent_index == 0
    assert (result.color_indices != 0).all()


def test_transparent_pixels_map_to_index_zero(noisy_rgba):
    img = noisy_rgba.copy()
    img[:8, :8, 3] = 0
    img[10, 10, 3] = 0
    settings = QuantizeSettings(
        num_palettes=2,
        colors_per_palette=4,
        color_zero=ColorZeroBehavior.TRANSPARENT_FROM_TRANSPARENT,
        transparent_color="#ff00ff",
    )
    result = quantize(img, settings, seed=3)

    transparent = img[..., 3] < 128
    assert (result.color_indices[transparent] == 0).all()
    assert (result.color_indices[~transparent] != 0).all()
    assert (result.render_rgba()[..., 3] == np.where(transparent, 0, 255)).all()


def test_fully_transparent_image():
    img = _solid(8, 8, (1, 2, 3), alpha=0)
    settings = QuantizeSettings(
        num_palettes=1, colors_per_palette=3, color_zero=ColorZeroBehavior.TRANSPARENT_FROM_TRANSPARENT
    )
    result = quantize(img, settings, seed=0)
    assert (result.color_indices == 0).all()
    assert result.mse == 0.0


def test_shared_colour_is_common_to_every_palette(noisy_rgba):
    settings = QuantizeSettings(
        num_palettes=3, colors_per_palette=3, color_zero=ColorZeroBehavior.SHARED
    )
    result = quantize(noisy_rgba, settings, seed=4)
    assert (result.palettes[:, 0] == result.palettes[0, 0]).all()


def test_same_seed_is_bit_identical(noisy_rgba):
    settings = QuantizeSettings(num_palettes=2, colors_per_palette=4)
    a = quantize(noisy_rgba, settings, seed=11)
    b = quantize(noisy_rgba, settings, seed=11, workers=3)

    assert np.array_equal(a.palettes, b.palettes)
    assert np.array_equal(a.tile_palettes, b.tile_palettes)
    assert np.array_equal(a.color_indices, b.color_indices)
    assert a.mse == b.mse


def test_output_respects_bit_depth(noisy_rgba):
    settings = QuantizeSettings(num_palettes=2, colors_per_palette=4, bits_per_channel=3)
    result = quantize(noisy_rgba, settings, seed=2)
    step = 255.0 / 7.0
    levels = {int(round(k * step)) for k in range(8)}
    assert set(np.unique(result.palettes).tolist()) <= levels


def test_more_colours_fit_better(noisy_rgba):
    few = quantize(noisy_rgba, QuantizeSettings(num_palettes=1, colors_per_palette=2), seed=5)
    many = quantize(noisy_rgba, QuantizeSettings(num_palettes=4, colors_per_palette=8), seed=5)
    assert many.mse < few.mse


@pytest.mark.parametrize("dither", [Dither.FAST, Dither.SLOW])
def test_dithered_runs_produce_valid_indices(noisy_rgba, dither):
    settings = QuantizeSettings(
        num_palettes=2,
        colors_per_palette=4,
        dither=dither,
        dither_pattern=DitherPattern.DIAGONAL4,
    )
    result = quantize(noisy_rgba, settings, seed=6)
    assert result.color_indices.shape == (16, 16)
    assert result.color_indices.min() >= 0
    assert result.color_indices.max() < 4
    assert result.global_indices().max() < 8


def test_progress_is_monotone_and_finishes(noisy_rgba):
    events = []
    settings = QuantizeSettings(num_palettes=2, colors_per_palette=4)
    quantize(noisy_rgba, settings, seed=1, progress=events.append)

    percents = [e.percent for e in events]
    assert percents[0] == 0.0
    assert percents[-1] == 100.0
    assert all(b >= a for a, b in zip(percents, percents[1:]))
    assert {"grow", "replace", "final", "bit-depth", "done"} <= {e.stage for e in events}
    assert all(e.palettes.dtype == np.uint8 for e in events)


def test_preview_is_attached_when_asked(noisy_rgba):
    events = []
    settings = QuantizeSettings(num_palettes=2, colors_per_palette=4)
    quantize(noisy_rgba, settings, seed=1, progress=events.append, preview=True)
    assert all(e.preview is not None for e in events)
    assert events[0].preview.color_indices.shape == (16, 16)


def test_cancel_returns_the_last_reported_set(noisy_rgba):
    cancel = threading.Event()
    events = []

    def on_progress(event):
        events.append(event)
        if event.percent >= 30.0:
            cancel.set()

    settings = QuantizeSettings(num_palettes=2, colors_per_palette=4)
    result = quantize(noisy_rgba, settings, seed=1, progress=on_progress, cancel=cancel)

    last = events[-1]
    assert result.cancelled
    assert last.stage == "replace"
    assert result.palettes.shape == (2, 4, 3)
    assert np.array_equal(result.palettes[:, : last.palettes.shape[1]], last.palettes)


def test_cancel_before_start_still_returns_palettes(noisy_rgba):
    cancel = threading.Event()
    cancel.set()
    settings = QuantizeSettings(num_palettes=2, colors_per_palette=4)
    result = quantize(noisy_rgba, settings, seed=1, cancel=cancel)

    assert result.cancelled
    assert result.palettes.shape == (2, 4, 3)


def test_configuration_errors_fail_fast(noisy_rgba):
    with pytest.raises(InvalidDimensions):
        quantize(noisy_rgba[:, :10], QuantizeSettings())
    with pytest.raises(InvalidColorZeroConfiguration):
        quantize(
            noisy_rgba,
            QuantizeSettings(
                colors_per_palette=2, color_zero=ColorZeroBehavior.TRANSPARENT_FROM_COLOR
            ),
        )
    with pytest.raises(UnsupportedPattern):
        quantize(
            noisy_rgba,
            QuantizeSettings(dither=Dither.FAST, dither_pattern=DitherPattern.VERTICAL4),
        )


def test_vertical4_is_ignored_without_dither(noisy_rgba):
    settings = QuantizeSettings(
        num_palettes=1, colors_per_palette=2, dither_pattern=DitherPattern.VERTICAL4
    )
    assert not quantize(noisy_rgba, settings, seed=0).cancelled


def test_far_shared_colour_does_not_stay_unused():
    rng = np.random.default_rng(21)
    img = np.zeros((16, 16, 4), dtype=np.uint8)
    img[..., 1] = rng.integers(100, 251, size=(16, 16))
    img[..., 3] = 255
    settings = QuantizeSettings(
        num_palettes=2,
        colors_per_palette=3,
        color_zero=ColorZeroBehavior.SHARED,
        shared_color="#ff00ff",
    )
    result = quantize(img, settings, seed=2)

    assert (result.palettes[:, 0] == result.palettes[0, 0]).all()
    assert result.palettes[0, 0].tolist() != [255, 0, 255]
