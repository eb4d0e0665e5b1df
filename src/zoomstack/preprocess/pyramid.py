"""Deep Zoom pyramid generation for large raster images."""

from __future__ import annotations

import logging
import shutil
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable

from zoomstack.config import DEFAULT_TILE_FORMAT, TILE_OVERLAP, TILE_SIZE, TILE_WORKERS
from zoomstack.core.paths import files_dir_for_manifest, level_dir, resolve_manifest_path
from zoomstack.core.types import LevelInfo, TileCoord
from zoomstack.errors import PyramidIOError

from .codec import TileFormat, load_source_image
from .compositor import LevelCompositor
from .geometry import describe_levels
from .metadata import DeepZoomManifest, PyramidStatus, check_pyramid_status, write_manifest
from .slicer import TopLevelSlicer

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[str, int, int], None]


@dataclass
class BuildResult:
    """Outcome of a completed pyramid build.

    Attributes:
        manifest_path: Path of the written ``.dzi``/``.xml`` manifest
        files_dir: The ``<name>_files`` tile directory
        max_level: Index of the full-resolution level
        tile_format: Encoding used for every tile
        levels: Geometry of every level, level 0 first
        warnings: Upper-level tiles that were skipped while compositing
    """

    manifest_path: Path
    files_dir: Path
    max_level: int
    tile_format: TileFormat
    levels: list[LevelInfo]
    warnings: list[str] = field(default_factory=list)

    @property
    def tile_count(self) -> int:
        return sum(info.tile_count for info in self.levels)


class _TileProgress:
    """Counts persisted tiles across the whole pyramid for the progress callback."""

    def __init__(self, callback: ProgressCallback | None, total: int) -> None:
        self.callback = callback
        self.total = total
        self.done = 0

    def start(self) -> None:
        if self.callback:
            self.callback("tiles", 0, self.total)

    def advance(self) -> None:
        self.done += 1
        if self.callback:
            self.callback("tiles", self.done, self.total)


class PyramidBuilder:
    """Builds a Deep Zoom pyramid from a single PNG or JPEG image.

    The top level is sliced directly from the decoded source. Every coarser
    level is then composited from the persisted tiles of the level above, one
    level at a time; tiles within a level are rendered on a thread pool.
    The manifest is written only after level 0 is complete.

    Output layout for destination ``name.dzi``:
        - ``name.dzi`` manifest
        - ``name_files/<level>/<col>_<row>.<png|jpg>`` tiles

    Args:
        tile_format: Tile encoding (``TileFormat`` or ``"png"``/``"jpg"``)
        workers: Worker threads per level
    """

    def __init__(
        self,
        tile_format: TileFormat | str = DEFAULT_TILE_FORMAT,
        workers: int = TILE_WORKERS,
    ) -> None:
        if workers < 1:
            raise ValueError(f"workers must be >= 1, got {workers}")
        self.tile_format = TileFormat.parse(tile_format)
        self.workers = workers
        self.tile_size = TILE_SIZE
        self.overlap = TILE_OVERLAP

    def build(
        self,
        source_path: Path,
        destination: Path,
        progress_callback: ProgressCallback | None = None,
        force: bool = False,
    ) -> BuildResult | None:
        """Build the pyramid.

        Args:
            source_path: Path to the source PNG/JPEG image
            destination: Manifest path (``.dzi`` or ``.xml``; no suffix means ``.dzi``)
            progress_callback: Optional callback(stage, current, total). Raising
                ``InterruptedError`` from it cancels the build between tiles.
            force: If True, rebuild even if a complete pyramid exists

        Returns:
            BuildResult, or None if skipped because a matching pyramid is complete

        Raises:
            ValueError: If the destination extension is not supported
            PyramidError: On the first fatal decode, encode, I/O or manifest failure
            InterruptedError: If the progress callback cancelled the build
        """
        source_path = Path(source_path)
        manifest_path = resolve_manifest_path(destination)
        files_dir = files_dir_for_manifest(manifest_path)

        # Decode first: an unreadable source must not cost the existing pyramid
        if progress_callback:
            progress_callback("load", 0, 1)
        source = load_source_image(source_path)
        width, height = source.width, source.height
        if progress_callback:
            progress_callback("load", 1, 1)

        levels = describe_levels(width, height, self.tile_size)
        top = levels[-1].level
        manifest = DeepZoomManifest(
            width=width,
            height=height,
            max_level=top,
            tile_format=self.tile_format.value,
            tile_size=self.tile_size,
            overlap=self.overlap,
        )

        if self._handle_existing_pyramid(
            manifest_path, files_dir, source_path.name, manifest, force
        ):
            return None
        self._prepare_files_dir(files_dir)

        logger.info(
            "Building %d levels for %s (%d x %d px, %s tiles)",
            len(levels), source_path.name, width, height, self.tile_format.value,
        )

        progress = _TileProgress(progress_callback, sum(info.tile_count for info in levels))
        progress.start()

        slicer = TopLevelSlicer(source, files_dir, self.tile_format, self.tile_size, self.overlap)
        del source
        try:
            self._run_level(files_dir, top, slicer.tile_coords(), slicer.render, progress)
        finally:
            slicer.release()

        warnings: list[str] = []
        for level in range(top - 1, -1, -1):
            compositor = LevelCompositor(
                files_dir, width, height, level, self.tile_format, self.tile_size, self.overlap
            )
            self._run_level(files_dir, level, compositor.tile_coords(), compositor.render, progress)
            warnings.extend(compositor.warnings)

        if progress_callback:
            progress_callback("manifest", 0, 1)
        write_manifest(manifest, manifest_path)
        if progress_callback:
            progress_callback("manifest", 1, 1)

        if warnings:
            logger.warning(
                "Built %s with %d skipped source tile(s)", manifest_path.name, len(warnings)
            )
        logger.info("Generated %d pyramid levels for %s", len(levels), source_path.name)
        return BuildResult(
            manifest_path=manifest_path,
            files_dir=files_dir,
            max_level=top,
            tile_format=self.tile_format,
            levels=levels,
            warnings=warnings,
        )

    def _handle_existing_pyramid(
        self,
        manifest_path: Path,
        files_dir: Path,
        image_name: str,
        manifest: DeepZoomManifest,
        force: bool,
    ) -> bool:
        """Check existing pyramid status and clean up if needed.

        A complete pyramid is only reused if it matches ``manifest``, the
        pyramid this build would produce. The old manifest is removed before
        any tile so an interrupted rebuild is never presented as valid.

        Returns:
            True if the build should be skipped (already complete and not forced)
        """
        status = check_pyramid_status(manifest_path, expected=manifest)

        if status == PyramidStatus.COMPLETE and not force:
            logger.info("Skipping %s: already built (use --force to rebuild)", image_name)
            return True

        if status == PyramidStatus.NOT_EXISTS:
            return False

        if status == PyramidStatus.INCOMPLETE:
            logger.info("Found incomplete pyramid for %s, cleaning up...", image_name)
        elif status == PyramidStatus.CORRUPTED:
            logger.warning("Found corrupted manifest for %s, cleaning up...", image_name)
        elif status == PyramidStatus.STALE:
            logger.info(
                "Existing pyramid for %s differs (size or %s format), rebuilding...",
                image_name, manifest.tile_format,
            )
        else:
            logger.info("Force rebuild for %s, removing existing...", image_name)

        try:
            manifest_path.unlink(missing_ok=True)
            if files_dir.exists():
                shutil.rmtree(files_dir)
        except OSError as e:
            raise PyramidIOError(f"Cannot remove previous pyramid: {e}", path=files_dir) from e
        return False

    def _prepare_files_dir(self, files_dir: Path) -> None:
        try:
            files_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise PyramidIOError(f"Cannot create tiles directory: {e}", path=files_dir) from e

    def _run_level(
        self,
        files_dir: Path,
        level: int,
        coords: list[TileCoord],
        render: Callable[[TileCoord], int],
        progress: _TileProgress,
    ) -> None:
        """Render every tile of one level and wait until all are persisted.

        The first failure (or an ``InterruptedError`` from the progress
        callback) cancels tiles not yet started and propagates.
        """
        directory = level_dir(files_dir, level)
        try:
            directory.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise PyramidIOError(f"Cannot create level directory: {e}", path=directory) from e

        total_bytes = 0
        with ThreadPoolExecutor(
            max_workers=self.workers, thread_name_prefix=f"zoomstack-level{level}"
        ) as executor:
            futures = {executor.submit(render, coord): coord for coord in coords}
            try:
                for future in as_completed(futures):
                    total_bytes += future.result()
                    progress.advance()
            except BaseException:
                for pending in futures:
                    pending.cancel()
                raise

        logger.info(
            "Level %d: %d tile(s), %.1f KB", level, len(coords), total_bytes / 1024
        )


def build_pyramid(
    source_path: Path,
    destination: Path,
    tile_format: TileFormat | str = DEFAULT_TILE_FORMAT,
    workers: int = TILE_WORKERS,
    progress_callback: ProgressCallback | None = None,
    force: bool = False,
) -> BuildResult | None:
    """Build a Deep Zoom pyramid using PyramidBuilder.

    Args:
        source_path: Path to the source PNG/JPEG image
        destination: Manifest path (``.dzi`` or ``.xml``)
        tile_format: ``"jpg"`` or ``"png"``
        workers: Worker threads per level
        progress_callback: Progress callback function
        force: Force rebuild even if already complete

    Returns:
        BuildResult, or None if skipped
    """
    builder = PyramidBuilder(tile_format=tile_format, workers=workers)
    return builder.build(source_path, destination, progress_callback, force=force)
