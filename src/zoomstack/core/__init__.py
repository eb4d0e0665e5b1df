"""Core types and path helpers for ZoomStack."""

from .types import LevelInfo, RasterImage, TileCoord

__all__ = [
    "LevelInfo",
    "RasterImage",
    "TileCoord",
]
