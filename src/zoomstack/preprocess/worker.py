"""Worker function for parallel pyramid builds.

This module exists separately from __main__.py to support Windows multiprocessing,
which requires worker functions to be importable (not defined in __main__).
"""

from __future__ import annotations

import logging
from pathlib import Path

from zoomstack.errors import PyramidError

from .pyramid import PyramidBuilder

logger = logging.getLogger(__name__)


def process_single_image(
    image_path: Path,
    manifest_path: Path,
    tile_format: str,
    workers: int,
    force: bool = False,
) -> tuple[Path | None, str | None, bool, int]:
    """Build the pyramid for one image.

    Args:
        image_path: Path to the PNG/JPEG source
        manifest_path: Destination ``.dzi``/``.xml`` path
        tile_format: ``"jpg"`` or ``"png"``
        workers: Worker threads per level
        force: Force rebuild

    Returns:
        Tuple of (manifest_path, error_message, was_skipped, warning_count)
        - manifest_path: Written manifest, or None if skipped/error
        - error_message: Error string if failed, None otherwise
        - was_skipped: True if the pyramid was already complete
        - warning_count: Upper-level tiles skipped while compositing
    """
    logger.info("Processing %s", image_path.name)
    try:
        builder = PyramidBuilder(tile_format=tile_format, workers=workers)
        result = builder.build(image_path, manifest_path, force=force)
        if result is None:
            return None, None, True, 0
        return result.manifest_path, None, False, len(result.warnings)
    except (PyramidError, ValueError) as e:
        logger.error("Failed to process %s: %s", image_path.name, e)
        return None, str(e), False, 0
