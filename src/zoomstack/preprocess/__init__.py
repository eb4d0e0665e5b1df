"""Pyramid construction: geometry, tile codec, slicing, compositing and manifests."""

from .codec import TileFormat
from .metadata import (
    DeepZoomManifest,
    PyramidStatus,
    check_pyramid_status,
    read_manifest,
)
from .pyramid import (
    BuildResult,
    PyramidBuilder,
    build_pyramid,
)

__all__ = [
    "BuildResult",
    "DeepZoomManifest",
    "PyramidBuilder",
    "PyramidStatus",
    "TileFormat",
    "build_pyramid",
    "check_pyramid_status",
    "read_manifest",
]
