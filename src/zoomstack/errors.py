"""Exception types raised while building a tile pyramid."""

from __future__ import annotations

from pathlib import Path

from zoomstack.core.types import TileCoord


class PyramidError(Exception):
    """Base class for pyramid build failures.

    Attributes:
        coord: Tile the failure relates to, if any
        path: File or directory involved, if any
    """

    def __init__(
        self,
        message: str,
        *,
        coord: TileCoord | None = None,
        path: Path | None = None,
    ) -> None:
        self.coord = coord
        self.path = path
        parts = [message]
        if coord is not None:
            parts.append(f"tile level={coord.level} col={coord.col} row={coord.row}")
        if path is not None:
            parts.append(f"path={path}")
        super().__init__(" | ".join(parts))


class InvalidDimensionError(PyramidError, ValueError):
    """Source width or height is not positive."""


class DecodeError(PyramidError):
    """An image file is missing, unreadable or malformed."""


class EncodeError(PyramidError):
    """The codec failed to encode a tile."""


class PyramidIOError(PyramidError):
    """A directory or tile file could not be created."""


class ManifestWriteError(PyramidError):
    """The Deep Zoom descriptor could not be written."""
