# tile_palette/image_io.py
from __future__ import annotations

import io
from pathlib import Path
from typing import List, Union

import numpy as np
from PIL import Image, ImageOps, UnidentifiedImageError

from .compose import QuantizeResult
from .core_types import U8Image

"""
Image I/O helpers: load any Pillow-readable image as sRGB RGBA, save the
quantizer's output as an indexed bitmap.
"""

try:
    from PIL import ImageCms  # ICC conversion if profile present
except ImportError:  # pragma: no cover
    ImageCms = None  # type: ignore[assignment]

PathLike = Union[str, Path]

# Largest palette table an indexed PNG/BMP can hold.
MAX_INDEXED_COLORS = 256


def _convert_to_srgb_rgba(im: Image.Image) -> Image.Image:
    im = ImageOps.exif_transpose(im)
    icc_bytes = im.info.get("icc_profile")
    if not icc_bytes or ImageCms is None:
        return im.convert("RGBA")
    try:
        src_prof = ImageCms.ImageCmsProfile(io.BytesIO(icc_bytes))
        dst_prof = ImageCms.createProfile("sRGB")
        converted = ImageCms.profileToProfile(
            im.convert("RGBA"),
            src_prof,
            dst_prof,
            renderingIntent=ImageCms.Intent.PERCEPTUAL,
            outputMode="RGBA",
        )
    except (ImageCms.PyCMSError, OSError, ValueError):
        return im.convert("RGBA")
    return converted if converted is not None else im.convert("RGBA")


def load_image_rgba(path: PathLike) -> U8Image:
    """(H, W, 4) uint8 RGBA; EXIF orientation applied, ICC profiles converted to sRGB."""
    with Image.open(path) as im0:
        im = _convert_to_srgb_rgba(im0)
    return np.array(im, dtype=np.uint8)


def fits_indexed(result: QuantizeResult) -> bool:
    return result.num_palettes * result.colors_per_palette <= MAX_INDEXED_COLORS


def indexed_image(result: QuantizeResult) -> Image.Image:
    """'P' mode image over the flattened palette table (P * C <= 256)."""
    if not fits_indexed(result):
        raise ValueError(
            f"{result.num_palettes * result.colors_per_palette} colours do not fit an indexed image"
        )
    width, height = result.size
    indices = result.global_indices().astype(np.uint8)
    im = Image.frombytes("P", (width, height), np.ascontiguousarray(indices).tobytes())
    im.putpalette(result.flat_palette().astype(np.uint8).reshape(-1).tolist())
    return im


def _transparency_table(result: QuantizeResult) -> bytes:
    """Per-index alpha: 0 for every palette's transparent slot, 255 elsewhere."""
    alpha: List[int] = [255] * (result.num_palettes * result.colors_per_palette)
    for p in range(result.num_palettes):
        alpha[p * result.colors_per_palette + int(result.transparent_index or 0)] = 0
    return bytes(alpha)


def save_indexed_image(path: PathLike, result: QuantizeResult) -> Path:
    """
    Write result next to path and return the path actually written.

    Indexed ('P') PNG or BMP when the palette table fits 256 entries,
    otherwise an RGBA PNG (the suffix is switched to .png).
    """
    path = Path(path)
    if not fits_indexed(result):
        if path.suffix.lower() != ".png":
            path = path.with_suffix(".png")
        Image.fromarray(result.render_rgba()).save(path)
        return path

    im = indexed_image(result)
    if path.suffix.lower() == ".png" and result.transparent_index is not None:
        im.save(path, transparency=_transparency_table(result))
    else:
        im.save(path)
    return path


def is_image_file(path: Path) -> bool:
    try:
        with Image.open(path) as im:
            im.seek(0)
            im.load()
        return True
    except (UnidentifiedImageError, OSError):
        return False


__all__ = [
    "MAX_INDEXED_COLORS",
    "load_image_rgba",
    "fits_indexed",
    "indexed_image",
    "save_indexed_image",
    "is_image_file",
]
