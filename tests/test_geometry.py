"""Tests for pyramid tile geometry."""

from __future__ import annotations

import numpy as np
import pytest

from zoomstack.core.types import LevelInfo
from zoomstack.errors import InvalidDimensionError
from zoomstack.preprocess.codec import TileFormat
from zoomstack.preprocess.compositor import LevelCompositor
from zoomstack.preprocess.geometry import (
    Rect,
    describe_levels,
    iter_tile_coords,
    level_bounds,
    level_scale_factor,
    max_level,
    tile_grid,
    tile_source_rect,
)


class TestRect:
    """Tests for the integer rectangle helpers."""

    def test_intersect_overlapping(self):
        assert Rect(-1, -1, 258, 258).intersect(Rect(0, 0, 300, 200)) == Rect(0, 0, 257, 200)

    def test_intersect_disjoint_is_empty(self):
        result = Rect(0, 0, 10, 10).intersect(Rect(20, 20, 5, 5))
        assert result.is_empty

    def test_touching_edges_do_not_intersect(self):
        assert not Rect(0, 0, 10, 10).intersects(Rect(10, 0, 10, 10))

    def test_scaled_and_translated(self):
        rect = Rect(255, 0, 45, 200)
        assert rect.scaled(2) == Rect(510, 0, 90, 400)
        assert rect.translated(-255, 5) == Rect(0, 5, 45, 200)
        assert rect.right == 300
        assert rect.bottom == 200


class TestMaxLevel:
    """Tests for level count computation."""

    @pytest.mark.parametrize(
        "width, height, expected",
        [
            (1, 1, 0),
            (2, 1, 1),
            (256, 256, 8),
            (257, 10, 9),
            (300, 200, 9),
            (512, 512, 9),
            (513, 512, 10),
            (200, 4097, 13),
        ],
        ids=["1x1", "2x1", "256", "257", "300x200", "512", "513", "tall"],
    )
    def test_ceil_log2_of_max_dimension(self, width: int, height: int, expected: int):
        assert max_level(width, height) == expected

    @pytest.mark.parametrize("width, height", [(0, 10), (10, 0), (-5, 10)])
    def test_non_positive_dimensions_rejected(self, width: int, height: int):
        with pytest.raises(InvalidDimensionError):
            max_level(width, height)

    def test_invalid_dimension_is_value_error(self):
        with pytest.raises(ValueError):
            max_level(0, 0)


class TestLevelBounds:
    """Tests for per-level scaling."""

    def test_scale_factor(self):
        assert level_scale_factor(9, 9) == 1
        assert level_scale_factor(9, 8) == 2
        assert level_scale_factor(9, 0) == 512

    def test_scale_factor_rejects_out_of_range_level(self):
        with pytest.raises(ValueError):
            level_scale_factor(9, 10)

    def test_bounds_round_up(self):
        # 300x200: 150x100, 75x50, 38x25, 19x13, ...
        assert level_bounds(300, 200, 9, 9) == Rect(0, 0, 300, 200)
        assert level_bounds(300, 200, 9, 7) == Rect(0, 0, 75, 50)
        assert level_bounds(300, 200, 9, 6) == Rect(0, 0, 38, 25)
        assert level_bounds(300, 200, 9, 0) == Rect(0, 0, 1, 1)


class TestTileRects:
    """Tests for tile grid and tile rectangles."""

    def test_grid_is_inclusive_floor(self):
        assert tile_grid(300, 200, 256) == (1, 0)
        assert tile_grid(512, 512, 256) == (2, 2)
        assert tile_grid(1, 1, 256) == (0, 0)

    def test_origin_tile_has_no_left_or_top_overlap(self):
        bounds = Rect(0, 0, 300, 200)
        rect = tile_source_rect(0, 0, bounds, 256, 1)
        assert rect == Rect(0, 0, 257, 200)

    def test_last_column_is_clipped(self):
        bounds = Rect(0, 0, 300, 200)
        assert tile_source_rect(1, 0, bounds, 256, 1) == Rect(255, 0, 45, 200)

    def test_interior_tile_overlaps_both_sides(self):
        bounds = Rect(0, 0, 1000, 1000)
        assert tile_source_rect(1, 2, bounds, 256, 1) == Rect(255, 511, 258, 258)

    def test_exact_multiple_leaves_one_pixel_trailing_tile(self):
        bounds = Rect(0, 0, 512, 512)
        assert tile_source_rect(2, 0, bounds, 256, 1) == Rect(511, 0, 1, 257)
        assert tile_source_rect(2, 2, bounds, 256, 1) == Rect(511, 511, 1, 1)

    @pytest.mark.parametrize(
        "width, height",
        [(300, 200), (512, 512), (513, 257), (1, 1), (1000, 37)],
    )
    def test_top_level_grid_covers_image_without_gaps(self, width: int, height: int):
        bounds = Rect(0, 0, width, height)
        max_col, max_row = tile_grid(width, height, 256)
        covered = np.zeros((height, width), dtype=bool)
        for coord in iter_tile_coords(0, max_col, max_row):
            rect = tile_source_rect(coord.col, coord.row, bounds, 256, 1)
            assert not rect.is_empty
            assert rect.x >= 0 and rect.y >= 0
            assert rect.right <= width and rect.bottom <= height
            covered[rect.y:rect.bottom, rect.x:rect.right] = True
        assert covered.all()

    def test_iter_tile_coords_row_major(self):
        coords = list(iter_tile_coords(3, 1, 1))
        assert [(c.col, c.row) for c in coords] == [(0, 0), (1, 0), (0, 1), (1, 1)]
        assert all(c.level == 3 for c in coords)


class TestUpperTileCandidates:
    """The neighbourhood scan must find the same tiles as a full-grid scan."""

    @pytest.mark.parametrize(
        "width, height",
        [(300, 200), (1100, 700), (513, 1025), (2048, 2048)],
    )
    def test_matches_full_grid_scan(self, temp_dir, width: int, height: int):
        top = max_level(width, height)
        for level in range(top):
            compositor = LevelCompositor(temp_dir, width, height, level, TileFormat.PNG)
            upper_max_col, upper_max_row = compositor.upper_grid
            max_col, max_row = compositor.grid
            for coord in iter_tile_coords(level, max_col, max_row):
                mapped = compositor.tile_rect(coord.col, coord.row).scaled(2)
                expected = {
                    (tx, ty)
                    for ty in range(upper_max_row + 1)
                    for tx in range(upper_max_col + 1)
                    if compositor.upper_tile_rect(tx, ty).intersects(mapped)
                }
                found = {(c.col, c.row) for c, _ in compositor.sources_for(coord.col, coord.row)}
                assert found == expected, f"level {level} tile {coord.stem}"


class TestDescribeLevels:
    """Tests for whole-pyramid level descriptions."""

    def test_512_square(self):
        levels = describe_levels(512, 512, 256)
        assert len(levels) == 10
        assert levels[-1] == LevelInfo(level=9, downsample=1, width=512, height=512, cols=3, rows=3)
        assert levels[8] == LevelInfo(level=8, downsample=2, width=256, height=256, cols=2, rows=2)
        assert levels[0] == LevelInfo(level=0, downsample=512, width=1, height=1, cols=1, rows=1)

    def test_300x200(self):
        levels = describe_levels(300, 200, 256)
        top = levels[-1]
        assert top.level == 9
        assert (top.cols, top.rows) == (2, 1)
        assert all(info.tile_count == 1 for info in levels[:-1])
