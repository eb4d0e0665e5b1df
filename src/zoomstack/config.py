"""Centralized configuration for ZoomStack.

The pyramid geometry (tile size, overlap) and the JPEG quality are fixed by
the Deep Zoom layout this package produces. Parallelism settings can be
overridden via environment variables.

Environment Variables:
    ZOOMSTACK_TILE_WORKERS: Threads encoding/compositing tiles within a level (default: 4)
    ZOOMSTACK_PARALLEL_IMAGES: Images processed in parallel by the batch CLI (default: 2)
    ZOOMSTACK_DEFAULT_FORMAT: Default tile format, "jpg" or "png" (default: jpg)
    ZOOMSTACK_MAX_SOURCE_PIXELS: Pillow decompression bomb limit, 0 disables (default: 0)
"""

from __future__ import annotations

import logging
import os

logger = logging.getLogger(__name__)


def _get_env_int(name: str, default: int) -> int:
    """Get an integer from environment variable with fallback."""
    value = os.environ.get(name)
    if value is not None:
        try:
            return int(value)
        except ValueError:
            logger.warning(
                "Invalid integer for %s: %r, using default %d", name, value, default
            )
    return default


def _get_env_str(name: str, default: str) -> str:
    """Get a string from environment variable with fallback."""
    return os.environ.get(name, default)


# =============================================================================
# Pyramid Geometry
# =============================================================================

#: Tile edge length in pixels (excluding overlap)
TILE_SIZE: int = 256

#: Pixels shared with each neighbouring tile on interior edges
TILE_OVERLAP: int = 1

#: Lowest level advertised in the manifest's DisplayRect
MANIFEST_MIN_LEVEL: int = 1


# =============================================================================
# Encoding
# =============================================================================

#: JPEG quality for tiles
JPEG_QUALITY: int = 95

#: PNG zlib compression level (0-9)
PNG_COMPRESS_LEVEL: int = 6

#: Default tile format when none is requested
DEFAULT_TILE_FORMAT: str = _get_env_str("ZOOMSTACK_DEFAULT_FORMAT", "jpg")

#: Background color used when flattening transparent tiles to JPEG (white)
BACKGROUND_COLOR: tuple[int, int, int] = (255, 255, 255)


# =============================================================================
# Processing
# =============================================================================

#: Worker threads per level
TILE_WORKERS: int = _get_env_int("ZOOMSTACK_TILE_WORKERS", 4)

#: Default parallel images for batch processing
DEFAULT_PARALLEL_IMAGES: int = _get_env_int("ZOOMSTACK_PARALLEL_IMAGES", 2)

#: Largest source image in pixels Pillow may decode (0 = unlimited)
MAX_SOURCE_PIXELS: int = _get_env_int("ZOOMSTACK_MAX_SOURCE_PIXELS", 0)

#: Supported source image extensions
IMAGE_EXTENSIONS: frozenset[str] = frozenset({".png", ".jpg", ".jpeg"})

#: Accepted manifest extensions, first one is the default
MANIFEST_EXTENSIONS: tuple[str, ...] = (".dzi", ".xml")


# =============================================================================
# Validation
# =============================================================================


def _validate_config() -> None:
    """Validate configuration values and log warnings for out-of-range settings."""
    global TILE_WORKERS, DEFAULT_PARALLEL_IMAGES, DEFAULT_TILE_FORMAT, MAX_SOURCE_PIXELS

    if TILE_WORKERS < 1:
        logger.warning("TILE_WORKERS=%d is too low, clamping to 1", TILE_WORKERS)
        TILE_WORKERS = 1

    if DEFAULT_PARALLEL_IMAGES < 1:
        logger.warning(
            "DEFAULT_PARALLEL_IMAGES=%d is too low, clamping to 1",
            DEFAULT_PARALLEL_IMAGES,
        )
        DEFAULT_PARALLEL_IMAGES = 1

    if MAX_SOURCE_PIXELS < 0:
        logger.warning(
            "MAX_SOURCE_PIXELS=%d is negative, disabling the limit", MAX_SOURCE_PIXELS
        )
        MAX_SOURCE_PIXELS = 0

    if DEFAULT_TILE_FORMAT.lower() not in ("jpg", "jpeg", "png"):
        logger.warning(
            "DEFAULT_TILE_FORMAT=%r is not supported, using 'jpg'", DEFAULT_TILE_FORMAT
        )
        DEFAULT_TILE_FORMAT = "jpg"


_validate_config()
