"""Derive coarser pyramid levels from the persisted tiles of the level above.

A target tile at level ``l`` covers rect ``R`` in level-``l`` pixels. The same
area is rect ``2R`` at level ``l + 1``. The compositor pastes every finer tile
that intersects ``2R`` onto a ``2R``-sized canvas at its offset relative to
``2R``'s origin, then halves the canvas with a 2x2 box filter. Each finer tile
therefore lands at half its offset and half its size, and adjacent target
tiles read their shared overlap band from the same finer pixels. When the
finer level has an odd size, the last canvas column/row lies outside the
image and is left out of the alpha average.
"""

from __future__ import annotations

import logging
import threading
from pathlib import Path

import numpy as np

from zoomstack.config import TILE_OVERLAP, TILE_SIZE
from zoomstack.core.paths import tile_path
from zoomstack.core.types import RasterImage, TileCoord
from zoomstack.errors import DecodeError

from .codec import TileFormat, decode_tile, write_tile
from .geometry import (
    Rect,
    iter_tile_coords,
    level_bounds,
    max_level,
    tile_grid,
    tile_source_rect,
    upper_tile_candidates,
)

logger = logging.getLogger(__name__)


def paste_clipped(canvas: np.ndarray, pixels: np.ndarray, x: int, y: int) -> None:
    """Copy ``pixels`` into ``canvas`` with its top-left at ``(x, y)``.

    Parts falling outside the canvas are dropped.
    """
    src_h, src_w = pixels.shape[:2]
    dst_h, dst_w = canvas.shape[:2]
    x0, y0 = max(x, 0), max(y, 0)
    x1, y1 = min(x + src_w, dst_w), min(y + src_h, dst_h)
    if x1 <= x0 or y1 <= y0:
        return
    canvas[y0:y1, x0:x1] = pixels[y0 - y:y1 - y, x0 - x:x1 - x]


def downsample_half(canvas: np.ndarray, coverage: np.ndarray | None = None) -> np.ndarray:
    """Halve an RGBA canvas with a 2x2 box filter.

    Color channels are averaged weighted by alpha, so transparent (blank)
    pixels dilute coverage but never darken the color. Rounds half up.

    Args:
        canvas: (H, W, 4) uint8 array with even H and W
        coverage: Optional (H, W) mask of pixels inside the image. Alpha is
            averaged over covered pixels only, so a block cut by the image
            edge keeps the opacity of its real pixels. Defaults to all covered.

    Returns:
        (H/2, W/2, 4) uint8 array
    """
    height, width = canvas.shape[:2]
    if height % 2 or width % 2:
        raise ValueError(f"Canvas dimensions must be even, got {width}x{height}")

    blocks = canvas.reshape(height // 2, 2, width // 2, 2, 4).astype(np.uint32)
    alpha = blocks[..., 3]
    alpha_sum = alpha.sum(axis=(1, 3))
    weighted = (blocks[..., :3] * alpha[..., np.newaxis]).sum(axis=(1, 3))

    if coverage is None:
        count = np.full(alpha_sum.shape, 4, dtype=np.uint32)
    else:
        if coverage.shape != (height, width):
            raise ValueError(
                f"Coverage shape {coverage.shape} does not match canvas {width}x{height}"
            )
        mask = (coverage != 0).reshape(height // 2, 2, width // 2, 2)
        count = mask.sum(axis=(1, 3), dtype=np.uint32)
        # Uncovered blocks have no alpha either
        count = np.maximum(count, 1)

    out = np.zeros((height // 2, width // 2, 4), dtype=np.uint8)
    out[..., 3] = (alpha_sum + count // 2) // count
    covered = alpha_sum > 0
    divisor = alpha_sum[covered][:, np.newaxis]
    out[..., :3][covered] = (weighted[covered] + divisor // 2) // divisor
    return out


class LevelCompositor:
    """Builds the tiles of one level from the level above.

    The finer level must be fully persisted before :meth:`render` is called.
    Distinct tiles may be rendered concurrently; unreadable finer tiles are
    recorded in :attr:`warnings` and leave their area blank.

    Args:
        files_dir: The ``<name>_files`` directory
        width: Source image width
        height: Source image height
        level: Level to build (must be below the top level)
        tile_format: Encoding of both the finer tiles and the output tiles
    """

    def __init__(
        self,
        files_dir: Path,
        width: int,
        height: int,
        level: int,
        tile_format: TileFormat,
        tile_size: int = TILE_SIZE,
        overlap: int = TILE_OVERLAP,
    ) -> None:
        top = max_level(width, height)
        if not 0 <= level < top:
            raise ValueError(f"Cannot composite level {level}: expected 0 <= level < {top}")

        self.files_dir = Path(files_dir)
        self.level = level
        self.tile_format = tile_format
        self.tile_size = tile_size
        self.overlap = overlap
        self.bounds = level_bounds(width, height, top, level)
        self.upper_bounds = level_bounds(width, height, top, level + 1)
        self.grid = tile_grid(self.bounds.width, self.bounds.height, tile_size)
        self.upper_grid = tile_grid(self.upper_bounds.width, self.upper_bounds.height, tile_size)
        self.warnings: list[str] = []
        self._lock = threading.Lock()

    def tile_coords(self) -> list[TileCoord]:
        max_col, max_row = self.grid
        return list(iter_tile_coords(self.level, max_col, max_row))

    def tile_rect(self, col: int, row: int) -> Rect:
        return tile_source_rect(col, row, self.bounds, self.tile_size, self.overlap)

    def upper_tile_rect(self, col: int, row: int) -> Rect:
        return tile_source_rect(col, row, self.upper_bounds, self.tile_size, self.overlap)

    def sources_for(self, col: int, row: int) -> list[tuple[TileCoord, Rect]]:
        """Finer tiles that intersect tile ``(col, row)`` doubled into their space."""
        mapped = self.tile_rect(col, row).scaled(2)
        cols, rows = upper_tile_candidates(col, row, self.upper_grid)
        sources = []
        for ty in rows:
            for tx in cols:
                upper_rect = self.upper_tile_rect(tx, ty)
                if upper_rect.intersects(mapped):
                    sources.append((TileCoord(self.level + 1, tx, ty), upper_rect))
        return sources

    def composite(self, col: int, row: int) -> np.ndarray:
        """Assemble and downsample the pixels of tile ``(col, row)``."""
        mapped = self.tile_rect(col, row).scaled(2)
        canvas = np.zeros((mapped.height, mapped.width, 4), dtype=np.uint8)

        for upper, upper_rect in self.sources_for(col, row):
            tile = self._load_upper_tile(upper)
            if tile is None:
                continue
            paste_clipped(canvas, tile.pixels, upper_rect.x - mapped.x, upper_rect.y - mapped.y)

        # An odd finer level leaves the last canvas column/row outside the image
        inside = mapped.intersect(self.upper_bounds).translated(-mapped.x, -mapped.y)
        coverage = np.zeros((mapped.height, mapped.width), dtype=bool)
        coverage[inside.y:inside.bottom, inside.x:inside.right] = True
        return downsample_half(canvas, coverage)

    def render(self, coord: TileCoord) -> int:
        """Composite one tile and persist it.

        Returns:
            Number of bytes written
        """
        canvas = self.composite(coord.col, coord.row)
        path = tile_path(self.files_dir, coord.level, coord.col, coord.row, self.tile_format.extension)
        size = write_tile(path, canvas, self.tile_format, coord)
        logger.debug(
            "Composited %s/%s (%d x %d px)", coord.level, path.name, canvas.shape[1], canvas.shape[0]
        )
        return size

    def _load_upper_tile(self, coord: TileCoord) -> RasterImage | None:
        path = tile_path(self.files_dir, coord.level, coord.col, coord.row, self.tile_format.extension)
        try:
            return decode_tile(path)
        except DecodeError as e:
            logger.warning("Skipping tile %d/%s: %s", coord.level, coord.stem, e)
            with self._lock:
                self.warnings.append(f"Skipping tile {coord.level}/{coord.stem}: {e}")
            return None
