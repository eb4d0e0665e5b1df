"""Tile encoding and decoding using Pillow.

All pixel buffers crossing this module are ``(H, W, 4)`` uint8 RGBA numpy
arrays. PNG tiles keep their alpha channel; JPEG tiles are flattened onto
:data:`~zoomstack.config.BACKGROUND_COLOR` because JPEG has no alpha.

Usage:
    from zoomstack.preprocess.codec import TileFormat, load_source_image, write_tile

    source = load_source_image(Path("input.png"))
    write_tile(Path("0_0.jpg"), source.pixels[:258, :258], TileFormat.JPEG)
"""

from __future__ import annotations

import io
import logging
from enum import Enum
from pathlib import Path

import numpy as np
from PIL import Image

from zoomstack.config import (
    BACKGROUND_COLOR,
    JPEG_QUALITY,
    MAX_SOURCE_PIXELS,
    PNG_COMPRESS_LEVEL,
)
from zoomstack.core.types import RasterImage, TileCoord
from zoomstack.errors import DecodeError, EncodeError, InvalidDimensionError, PyramidIOError

logger = logging.getLogger(__name__)

# 0 disables Pillow's decompression bomb check
Image.MAX_IMAGE_PIXELS = MAX_SOURCE_PIXELS or None


class TileFormat(Enum):
    """Output encoding for tiles. The value is the manifest ``Format`` string."""

    PNG = "png"
    JPEG = "jpg"

    @property
    def extension(self) -> str:
        return self.value

    @property
    def pil_format(self) -> str:
        return "PNG" if self is TileFormat.PNG else "JPEG"

    @classmethod
    def parse(cls, value: str | TileFormat) -> TileFormat:
        """Parse ``png``, ``jpg`` or ``jpeg`` (case-insensitive)."""
        if isinstance(value, TileFormat):
            return value
        normalized = value.strip().lower().lstrip(".")
        if normalized == "jpeg":
            normalized = "jpg"
        try:
            return cls(normalized)
        except ValueError:
            raise ValueError(f"Unsupported tile format: {value!r}") from None


def _to_rgba_array(img: Image.Image) -> np.ndarray:
    if img.mode != "RGBA":
        img = img.convert("RGBA")
    return np.asarray(img, dtype=np.uint8)


def encode_tile(pixels: np.ndarray, fmt: TileFormat) -> bytes:
    """Encode an RGBA tile canvas.

    Args:
        pixels: (H, W, 4) uint8 array
        fmt: Output format

    Returns:
        Encoded file contents

    Raises:
        EncodeError: If Pillow cannot encode the buffer
    """
    try:
        img = Image.fromarray(np.ascontiguousarray(pixels, dtype=np.uint8))
        if img.mode != "RGBA":
            raise ValueError(f"Expected RGBA pixels, got mode {img.mode}")

        buffer = io.BytesIO()
        if fmt is TileFormat.JPEG:
            flat = Image.new("RGB", img.size, BACKGROUND_COLOR)
            flat.paste(img, mask=img.getchannel("A"))
            flat.save(buffer, format="JPEG", quality=JPEG_QUALITY)
        else:
            img.save(buffer, format="PNG", compress_level=PNG_COMPRESS_LEVEL)
        return buffer.getvalue()
    except (OSError, ValueError, TypeError) as e:
        raise EncodeError(f"Failed to encode {fmt.value} tile: {e}") from e


def decode_tile(path: Path) -> RasterImage:
    """Decode a tile file into RGBA pixels.

    Raises:
        DecodeError: If the file is absent or malformed
    """
    path = Path(path)
    try:
        with Image.open(path) as img:
            img.load()
            arr = _to_rgba_array(img)
    except FileNotFoundError as e:
        raise DecodeError("Tile file does not exist", path=path) from e
    except (OSError, ValueError, SyntaxError) as e:
        raise DecodeError(f"Cannot decode tile: {e}", path=path) from e
    return RasterImage.from_array(arr)


def write_tile(
    path: Path,
    pixels: np.ndarray,
    fmt: TileFormat,
    coord: TileCoord | None = None,
) -> int:
    """Encode and persist a tile, overwriting any existing file.

    Returns:
        Number of bytes written

    Raises:
        EncodeError: If encoding fails
        PyramidIOError: If the file cannot be written
    """
    try:
        data = encode_tile(pixels, fmt)
    except EncodeError as e:
        raise EncodeError(str(e), coord=coord, path=path) from e.__cause__

    try:
        path.write_bytes(data)
    except OSError as e:
        raise PyramidIOError(f"Cannot write tile: {e}", coord=coord, path=path) from e
    return len(data)


def load_source_image(path: Path) -> RasterImage:
    """Decode the full-resolution source image (PNG or JPEG) to RGBA.

    Raises:
        DecodeError: If the image cannot be read
        InvalidDimensionError: If the decoded image is empty
    """
    path = Path(path)
    try:
        with Image.open(path) as img:
            logger.info("Loading %s (%s, %d x %d px)", path.name, img.format, img.width, img.height)
            img.load()
            arr = _to_rgba_array(img)
    except FileNotFoundError as e:
        raise DecodeError("Source image does not exist", path=path) from e
    except Image.DecompressionBombError as e:
        raise DecodeError(
            f"{e} (raise ZOOMSTACK_MAX_SOURCE_PIXELS to allow larger images)", path=path
        ) from e
    except (OSError, ValueError, SyntaxError) as e:
        raise DecodeError(f"Cannot decode source image: {e}", path=path) from e

    height, width = arr.shape[:2]
    if width == 0 or height == 0:
        raise InvalidDimensionError(f"Source image has no pixels ({width} x {height})", path=path)
    return RasterImage.from_array(arr)
