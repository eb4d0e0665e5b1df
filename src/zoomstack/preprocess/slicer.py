"""Cut the full-resolution source into the top pyramid level."""

from __future__ import annotations

import logging
from pathlib import Path

from zoomstack.config import TILE_OVERLAP, TILE_SIZE
from zoomstack.core.paths import tile_path
from zoomstack.core.types import RasterImage, TileCoord

from .codec import TileFormat, write_tile
from .geometry import Rect, iter_tile_coords, max_level, tile_grid, tile_source_rect

logger = logging.getLogger(__name__)


class TopLevelSlicer:
    """Writes the tiles of level ``max_level`` straight from the source pixels.

    Tiles are independent of each other, so :meth:`render` may be called
    concurrently for distinct coordinates. Call :meth:`release` once the level
    is complete to drop the reference to the source buffer.

    Args:
        source: Decoded full-resolution image
        files_dir: The ``<name>_files`` directory
        tile_format: Output encoding
    """

    def __init__(
        self,
        source: RasterImage,
        files_dir: Path,
        tile_format: TileFormat,
        tile_size: int = TILE_SIZE,
        overlap: int = TILE_OVERLAP,
    ) -> None:
        self.files_dir = Path(files_dir)
        self.tile_format = tile_format
        self.tile_size = tile_size
        self.overlap = overlap
        self.level = max_level(source.width, source.height)
        self.bounds = Rect(0, 0, source.width, source.height)
        self.grid = tile_grid(source.width, source.height, tile_size)
        self._source: RasterImage | None = source

    def tile_coords(self) -> list[TileCoord]:
        max_col, max_row = self.grid
        return list(iter_tile_coords(self.level, max_col, max_row))

    def tile_rect(self, col: int, row: int) -> Rect:
        return tile_source_rect(col, row, self.bounds, self.tile_size, self.overlap)

    def render(self, coord: TileCoord) -> int:
        """Crop one tile from the source and persist it.

        Returns:
            Number of bytes written
        """
        source = self._source
        if source is None:
            raise RuntimeError(f"Source image was already released before tile {coord.stem}")

        rect = self.tile_rect(coord.col, coord.row)
        # Slicing keeps the canvas origin at the rect's top-left corner
        canvas = source.pixels[rect.y:rect.bottom, rect.x:rect.right]
        path = tile_path(self.files_dir, coord.level, coord.col, coord.row, self.tile_format.extension)
        size = write_tile(path, canvas, self.tile_format, coord)
        logger.debug("Sliced %s (%d x %d px, %d bytes)", path.name, rect.width, rect.height, size)
        return size

    def release(self) -> None:
        """Drop the source buffer; lower levels are derived from persisted tiles."""
        self._source = None
