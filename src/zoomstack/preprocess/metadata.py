"""Deep Zoom manifest (``.dzi``) writing, parsing and pyramid validation."""

from __future__ import annotations

import logging
import xml.etree.ElementTree as ET
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from zoomstack.config import MANIFEST_MIN_LEVEL, TILE_OVERLAP, TILE_SIZE
from zoomstack.core.paths import atomic_write_text, files_dir_for_manifest, level_dir
from zoomstack.errors import ManifestWriteError

from .geometry import describe_levels

logger = logging.getLogger(__name__)

_XML_DECLARATION = '<?xml version="1.0" encoding="utf-8"?>\n'


class PyramidStatus(Enum):
    """Status of an existing pyramid destination."""

    NOT_EXISTS = "not_exists"  # Neither manifest nor tiles directory
    COMPLETE = "complete"  # Valid manifest and every level's tiles
    INCOMPLETE = "incomplete"  # Missing manifest, level directory or tiles
    CORRUPTED = "corrupted"  # Manifest present but unreadable
    STALE = "stale"  # Valid pyramid, but built from a different source or format


@dataclass(frozen=True)
class DeepZoomManifest:
    """Geometry of a tile pyramid as advertised to viewers."""

    width: int
    height: int
    max_level: int
    tile_format: str
    tile_size: int = TILE_SIZE
    overlap: int = TILE_OVERLAP
    min_level: int = MANIFEST_MIN_LEVEL

    def to_element(self) -> ET.Element:
        image = ET.Element("Image", {
            "TileSize": str(self.tile_size),
            "Overlap": str(self.overlap),
            "Format": self.tile_format,
        })
        ET.SubElement(image, "Size", {
            "Width": str(self.width),
            "Height": str(self.height),
        })
        display_rects = ET.SubElement(image, "DisplayRects")
        display_rect = ET.SubElement(display_rects, "DisplayRect", {
            "MinLevel": str(self.min_level),
            "MaxLevel": str(self.max_level),
        })
        ET.SubElement(display_rect, "Rect", {
            "X": "0",
            "Y": "0",
            "Width": str(self.width),
            "Height": str(self.height),
        })
        return image

    def matches(self, other: DeepZoomManifest) -> bool:
        """True if both describe the same pyramid layout and tile encoding."""
        return (
            self.width == other.width
            and self.height == other.height
            and self.max_level == other.max_level
            and self.tile_format == other.tile_format
            and self.tile_size == other.tile_size
            and self.overlap == other.overlap
        )

    def to_xml(self) -> str:
        root = self.to_element()
        ET.indent(root, space="  ")
        return _XML_DECLARATION + ET.tostring(root, encoding="unicode") + "\n"

    @classmethod
    def from_xml(cls, text: str) -> DeepZoomManifest:
        """Parse a manifest document.

        Namespaced documents (``xmlns="http://schemas.microsoft.com/deepzoom/2008"``)
        are accepted as well.

        Raises:
            ValueError: If the document is not a well-formed Deep Zoom manifest
        """
        try:
            root = ET.fromstring(text)
        except ET.ParseError as e:
            raise ValueError(f"Malformed manifest XML: {e}") from e

        for elem in root.iter():
            if isinstance(elem.tag, str) and "}" in elem.tag:
                elem.tag = elem.tag.split("}", 1)[1]

        if root.tag != "Image":
            raise ValueError(f"Expected <Image> root element, got <{root.tag}>")

        size = root.find("Size")
        if size is None:
            raise ValueError("Manifest has no <Size> element")

        try:
            width = int(size.attrib["Width"])
            height = int(size.attrib["Height"])
            tile_size = int(root.attrib["TileSize"])
            overlap = int(root.attrib["Overlap"])
            tile_format = root.attrib["Format"]
        except (KeyError, ValueError) as e:
            raise ValueError(f"Manifest attribute missing or invalid: {e}") from e

        display_rect = root.find("DisplayRects/DisplayRect")
        if display_rect is not None:
            try:
                min_level = int(display_rect.attrib["MinLevel"])
                max_level = int(display_rect.attrib["MaxLevel"])
            except (KeyError, ValueError) as e:
                raise ValueError(f"DisplayRect attribute missing or invalid: {e}") from e
        else:
            min_level = MANIFEST_MIN_LEVEL
            max_level = (max(width, height) - 1).bit_length()

        return cls(
            width=width,
            height=height,
            max_level=max_level,
            tile_format=tile_format,
            tile_size=tile_size,
            overlap=overlap,
            min_level=min_level,
        )


def write_manifest(manifest: DeepZoomManifest, path: Path) -> None:
    """Write the manifest atomically.

    Raises:
        ManifestWriteError: If the document cannot be written
    """
    try:
        atomic_write_text(Path(path), manifest.to_xml())
    except OSError as e:
        raise ManifestWriteError(f"Cannot write manifest: {e}", path=Path(path)) from e
    logger.info("Wrote manifest %s (MaxLevel=%d)", path, manifest.max_level)


def read_manifest(path: Path) -> DeepZoomManifest:
    """Read and parse a manifest file.

    Raises:
        OSError: If the file cannot be read
        ValueError: If the document is malformed
    """
    return DeepZoomManifest.from_xml(Path(path).read_text(encoding="utf-8"))


def check_pyramid_status(
    manifest_path: Path, expected: DeepZoomManifest | None = None
) -> PyramidStatus:
    """Check the status of an existing pyramid at ``manifest_path``.

    Args:
        manifest_path: Path to the ``.dzi``/``.xml`` manifest
        expected: Manifest the caller is about to build. If given, a pyramid
            whose geometry or tile format differs is reported as STALE.

    Returns:
        PyramidStatus indicating the state
    """
    manifest_path = Path(manifest_path)
    files_dir = files_dir_for_manifest(manifest_path)

    if not manifest_path.exists():
        if files_dir.exists():
            return PyramidStatus.INCOMPLETE
        return PyramidStatus.NOT_EXISTS

    try:
        manifest = read_manifest(manifest_path)
    except (OSError, ValueError, UnicodeDecodeError):
        return PyramidStatus.CORRUPTED

    if not files_dir.exists():
        return PyramidStatus.INCOMPLETE

    if manifest.width <= 0 or manifest.height <= 0 or manifest.tile_size <= 0:
        return PyramidStatus.CORRUPTED

    if expected is not None and not manifest.matches(expected):
        return PyramidStatus.STALE

    # Every level must hold at least its expected number of tiles
    for info in describe_levels(manifest.width, manifest.height, manifest.tile_size):
        directory = level_dir(files_dir, info.level)
        if not directory.is_dir():
            return PyramidStatus.INCOMPLETE
        tiles = list(directory.glob(f"*.{manifest.tile_format}"))
        if len(tiles) < info.tile_count:
            return PyramidStatus.INCOMPLETE

    return PyramidStatus.COMPLETE
