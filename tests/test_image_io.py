import numpy as np
from PIL import Image

from tile_palette import ColorZeroBehavior, QuantizeSettings, quantize
from tile_palette.compose import QuantizeResult
from tile_palette.image_io import (
    fits_indexed,
    is_image_file,
    load_image_rgba,
    save_indexed_image,
)


def _result(num_palettes, colors, transparent_index=None):
    rng = np.random.default_rng(0)
    tile_palettes = np.arange(4, dtype=np.int32).reshape(2, 2) % num_palettes
    color_indices = rng.integers(0, colors, size=(8, 8)).astype(np.int32)
    return QuantizeResult(
        palettes=rng.integers(0, 256, size=(num_palettes, colors, 3), dtype=np.uint8),
        tile_palettes=tile_palettes,
        color_indices=color_indices,
        tile_width=4,
        tile_height=4,
        mse=0.0,
        transparent_index=transparent_index,
    )


def test_load_rgb_png_as_opaque_rgba(tmp_path):
    src = tmp_path / "rgb.png"
    Image.fromarray(np.full((6, 4, 3), 77, dtype=np.uint8)).save(src)

    rgba = load_image_rgba(src)
    assert rgba.shape == (6, 4, 4)
    assert rgba.dtype == np.uint8
    assert (rgba[..., 3] == 255).all()
    assert (rgba[..., :3] == 77).all()
    assert is_image_file(src)


def test_text_file_is_not_an_image(tmp_path):
    path = tmp_path / "notes.png"
    path.write_text("not an image")
    assert not is_image_file(path)


def test_indexed_bmp_keeps_global_indices(tmp_path, noisy_rgba):
    settings = QuantizeSettings(num_palettes=2, colors_per_palette=4)
    result = quantize(noisy_rgba, settings, seed=1)
    out = save_indexed_image(tmp_path / "out_tiles.bmp", result)

    assert out.suffix == ".bmp"
    with Image.open(out) as im:
        assert im.mode == "P"
        assert im.size == (16, 16)
        indices = np.array(im)
        flat = np.array(im.getpalette()[: 8 * 3], dtype=np.uint8).reshape(-1, 3)
    assert np.array_equal(indices, result.global_indices())
    assert np.array_equal(flat, result.flat_palette())


def test_render_matches_the_saved_image(tmp_path):
    result = _result(2, 4)
    out = save_indexed_image(tmp_path / "out.png", result)
    with Image.open(out) as im:
        rgb = np.array(im.convert("RGB"))
    assert np.array_equal(rgb, result.render())


def test_transparent_index_is_written_to_png(tmp_path):
    result = _result(2, 4, transparent_index=0)
    out = save_indexed_image(tmp_path / "t.png", result)
    with Image.open(out) as im:
        alpha = np.array(im.convert("RGBA"))[..., 3]
    assert np.array_equal(alpha == 0, result.color_indices == 0)


def test_large_palette_tables_fall_back_to_rgba_png(tmp_path):
    result = _result(16, 17)
    assert not fits_indexed(result)

    out = save_indexed_image(tmp_path / "big.bmp", result)
    assert out.suffix == ".png"
    with Image.open(out) as im:
        assert im.mode == "RGBA"
        assert np.array_equal(np.array(im)[..., :3], result.render())


def test_transparent_policy_round_trip(tmp_path):
    img = np.zeros((8, 8, 4), dtype=np.uint8)
    img[..., :3] = (200, 30, 30)
    img[..., 3] = 255
    img[:4, :4, 3] = 0
    src = tmp_path / "sprite.png"
    Image.fromarray(img).save(src)

    settings = QuantizeSettings(
        tile_width=4,
        tile_height=4,
        num_palettes=1,
        colors_per_palette=3,
        color_zero=ColorZeroBehavior.TRANSPARENT_FROM_TRANSPARENT,
    )
    result = quantize(load_image_rgba(src), settings, seed=0)
    out = save_indexed_image(tmp_path / "sprite_tiles.png", result)
    with Image.open(out) as im:
        alpha = np.array(im.convert("RGBA"))[..., 3]
    assert (alpha[:4, :4] == 0).all()
    assert (alpha[4:, 4:] == 255).all()
