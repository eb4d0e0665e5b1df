"""Tile geometry for Deep Zoom pyramids.

Pure integer arithmetic shared by the slicer and the compositor. All
rectangles live in the pixel space of a single level, whose bounds always
start at the origin.

Conventions:
    - Level ``max_level`` is the source resolution, level 0 the coarsest.
    - Tile ``(col, row)`` nominally spans ``[col*T - overlap, col*T + T + overlap)``
      horizontally (``T`` = tile size), clipped to the level bounds. Clipping
      removes the overlap on the left/top edges of the level and truncates the
      last column/row.
    - Tile grids use inclusive bounds ``0..floor(size / T)``. When a level
      dimension is an exact multiple of ``T`` the final column/row is 1px wide
      and holds only the overlap band.
"""

from __future__ import annotations

from typing import Iterator, NamedTuple

from zoomstack.core.types import LevelInfo, TileCoord
from zoomstack.errors import InvalidDimensionError


class Rect(NamedTuple):
    """Integer axis-aligned rectangle."""

    x: int
    y: int
    width: int
    height: int

    @property
    def right(self) -> int:
        return self.x + self.width

    @property
    def bottom(self) -> int:
        return self.y + self.height

    @property
    def is_empty(self) -> bool:
        return self.width <= 0 or self.height <= 0

    def intersect(self, other: Rect) -> Rect:
        """Return the overlapping region, or an empty rect at the origin."""
        x0 = max(self.x, other.x)
        y0 = max(self.y, other.y)
        x1 = min(self.right, other.right)
        y1 = min(self.bottom, other.bottom)
        if x1 <= x0 or y1 <= y0:
            return Rect(0, 0, 0, 0)
        return Rect(x0, y0, x1 - x0, y1 - y0)

    def intersects(self, other: Rect) -> bool:
        """True if the rectangles share at least one pixel."""
        return not self.intersect(other).is_empty

    def scaled(self, factor: int) -> Rect:
        return Rect(self.x * factor, self.y * factor, self.width * factor, self.height * factor)

    def translated(self, dx: int, dy: int) -> Rect:
        return Rect(self.x + dx, self.y + dy, self.width, self.height)


def max_level(width: int, height: int) -> int:
    """Index of the full-resolution level: ``ceil(log2(max(width, height)))``.

    Raises:
        InvalidDimensionError: If width or height is not positive
    """
    if width <= 0 or height <= 0:
        raise InvalidDimensionError(f"Image dimensions must be positive, got {width}x{height}")
    # (n - 1).bit_length() == ceil(log2(n)) for n >= 1, without float rounding
    return (max(width, height) - 1).bit_length()


def level_scale_factor(max_level: int, level: int) -> int:
    """Downsample factor of ``level`` relative to the source: ``2 ** (max_level - level)``."""
    if not 0 <= level <= max_level:
        raise ValueError(f"Level {level} outside [0, {max_level}]")
    return 2 ** (max_level - level)


def level_bounds(width: int, height: int, max_level: int, level: int) -> Rect:
    """Bounds of ``level``: the source size divided by the scale factor, rounded up."""
    factor = level_scale_factor(max_level, level)
    return Rect(0, 0, -(-width // factor), -(-height // factor))


def tile_grid(level_width: int, level_height: int, tile_size: int) -> tuple[int, int]:
    """Inclusive ``(max_col, max_row)`` of a level's tile grid."""
    return level_width // tile_size, level_height // tile_size


def tile_source_rect(
    col: int,
    row: int,
    bounds: Rect,
    tile_size: int,
    overlap: int,
) -> Rect:
    """Rectangle covered by tile ``(col, row)``, clipped to ``bounds``."""
    rect = Rect(
        col * tile_size - overlap,
        row * tile_size - overlap,
        tile_size + 2 * overlap,
        tile_size + 2 * overlap,
    )
    return rect.intersect(bounds)


def iter_tile_coords(level: int, max_col: int, max_row: int) -> Iterator[TileCoord]:
    """Yield every tile of a level in row-major order."""
    for row in range(max_row + 1):
        for col in range(max_col + 1):
            yield TileCoord(level, col, row)


def upper_tile_candidates(
    col: int,
    row: int,
    upper_grid: tuple[int, int],
) -> tuple[range, range]:
    """Columns and rows of the next-finer level that may feed tile ``(col, row)``.

    The target tile doubled into the finer level spans at most
    ``[2*col*T - 2, 2*col*T + 2*T + 2)``; with ``T >= 3`` only finer tiles
    ``2*col - 1`` through ``2*col + 2`` can reach that span. Each candidate
    still has to pass an intersection test.
    """
    max_col, max_row = upper_grid
    cols = range(max(0, 2 * col - 1), min(max_col, 2 * col + 2) + 1)
    rows = range(max(0, 2 * row - 1), min(max_row, 2 * row + 2) + 1)
    return cols, rows


def describe_levels(width: int, height: int, tile_size: int) -> list[LevelInfo]:
    """Compute every level of the pyramid, level 0 (coarsest) first."""
    top = max_level(width, height)
    levels = []
    for level in range(top + 1):
        bounds = level_bounds(width, height, top, level)
        max_col, max_row = tile_grid(bounds.width, bounds.height, tile_size)
        levels.append(LevelInfo(
            level=level,
            downsample=level_scale_factor(top, level),
            width=bounds.width,
            height=bounds.height,
            cols=max_col + 1,
            rows=max_row + 1,
        ))
    return levels
