"""Shared type definitions for ZoomStack core module."""

from __future__ import annotations

from dataclasses import dataclass
from typing import NamedTuple

import numpy as np


class TileCoord(NamedTuple):
    """Coordinate of a tile in the pyramid.

    Attributes:
        level: Pyramid level (0 = lowest resolution)
        col: Column index (0-based)
        row: Row index (0-based)
    """

    level: int
    col: int
    row: int

    @property
    def stem(self) -> str:
        return f"{self.col}_{self.row}"


@dataclass
class LevelInfo:
    """Information about a pyramid level.

    Attributes:
        level: Level index (0 = lowest resolution)
        downsample: Downsample factor relative to highest resolution (1 = full res)
        width: Level width in pixels
        height: Level height in pixels
        cols: Number of tile columns at this level
        rows: Number of tile rows at this level
    """

    level: int
    downsample: int
    width: int
    height: int
    cols: int
    rows: int

    @property
    def tile_count(self) -> int:
        return self.cols * self.rows


@dataclass(frozen=True)
class RasterImage:
    """Decoded RGBA pixels.

    Attributes:
        pixels: Read-only array of shape (height, width, 4), uint8
        width: Width in pixels
        height: Height in pixels
    """

    pixels: np.ndarray
    width: int
    height: int

    @classmethod
    def from_array(cls, arr: np.ndarray) -> RasterImage:
        """Wrap an (H, W, 4) uint8 array, freezing it against writes."""
        if arr.ndim != 3 or arr.shape[2] != 4:
            raise ValueError(f"Expected an (H, W, 4) array, got shape {arr.shape}")
        pixels = np.ascontiguousarray(arr, dtype=np.uint8)
        pixels.flags.writeable = False
        return cls(pixels=pixels, width=pixels.shape[1], height=pixels.shape[0])
