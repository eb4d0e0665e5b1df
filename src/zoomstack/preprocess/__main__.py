"""CLI entry point for ZoomStack pyramid building."""

from __future__ import annotations

import logging
import sys
from concurrent.futures import ProcessPoolExecutor, as_completed
from pathlib import Path

import click
from tqdm import tqdm

from zoomstack.config import (
    DEFAULT_PARALLEL_IMAGES,
    DEFAULT_TILE_FORMAT,
    IMAGE_EXTENSIONS,
    JPEG_QUALITY,
    MANIFEST_EXTENSIONS,
    TILE_OVERLAP,
    TILE_SIZE,
    TILE_WORKERS,
)
from zoomstack.core.paths import resolve_manifest_path
from zoomstack.errors import PyramidError

from .codec import TileFormat
from .pyramid import PyramidBuilder
from .worker import process_single_image

logger = logging.getLogger(__name__)


def is_image_file(path: Path) -> bool:
    """Check if a file is a supported source image."""
    return path.suffix.lower() in IMAGE_EXTENSIONS


def find_image_files(path: Path) -> list[Path]:
    """Find all source images in a path (file or directory)."""
    path = Path(path)
    if path.is_file():
        if is_image_file(path):
            return [path]
        return []
    elif path.is_dir():
        # Use set to avoid duplicates on case-insensitive filesystems (Windows)
        files = set()
        for ext in IMAGE_EXTENSIONS:
            files.update(path.glob(f"*{ext}"))
            files.update(path.glob(f"*{ext.upper()}"))
        return sorted(files)
    return []


def manifest_path_for(image_path: Path, output: Path | None, batch: bool) -> Path:
    """Destination manifest for ``image_path``.

    In batch mode ``output`` is a directory. For a single image it is the
    manifest path itself, or a directory to place ``<stem>.dzi`` in.
    """
    default_name = image_path.stem + MANIFEST_EXTENSIONS[0]
    if output is None:
        return image_path.with_name(default_name)
    if batch or output.is_dir():
        return output / default_name
    return resolve_manifest_path(output)


def _print_header(
    image_files: list[Path], output: Path | None, tile_format: TileFormat, force: bool
) -> None:
    """Print the CLI banner with processing parameters."""
    click.echo(click.style("ZoomStack Pyramid Builder", fg="cyan", bold=True))
    click.echo(click.style("=" * 40, fg="cyan"))
    click.echo(f"Found {len(image_files)} image(s)")
    click.echo(f"Output: {output if output is not None else 'beside source'}")
    quality = f" Q{JPEG_QUALITY}" if tile_format is TileFormat.JPEG else ""
    click.echo(
        f"Tile size: {TILE_SIZE}px | Overlap: {TILE_OVERLAP}px | "
        f"{tile_format.value.upper()}{quality}"
    )
    if force:
        click.echo(click.style("Force mode: will rebuild existing pyramids", fg="yellow"))
    click.echo()


def _process_single(
    image_path: Path,
    manifest_path: Path,
    tile_format: TileFormat,
    workers: int,
    force: bool,
) -> tuple[int, int, int, list[tuple[Path, str]]]:
    """Build one pyramid in-process with a per-tile progress bar."""
    builder = PyramidBuilder(tile_format=tile_format, workers=workers)

    with tqdm(desc=image_path.name, unit="tile") as pbar:

        def progress_callback(stage: str, current: int, total: int) -> None:
            if stage == "tiles":
                pbar.total = total
                pbar.n = current
                pbar.refresh()

        try:
            result = builder.build(
                image_path, manifest_path, progress_callback=progress_callback, force=force
            )
        except (PyramidError, ValueError) as e:
            click.echo(f"\nError processing {image_path.name}: {e}", err=True)
            return 0, 0, 1, [(image_path, str(e))]

    if result is None:
        return 0, 1, 0, []
    if result.warnings:
        click.echo(click.style(
            f"{len(result.warnings)} source tile(s) could not be read; "
            "affected areas were left blank", fg="yellow"
        ))
    click.echo(f"Wrote {result.manifest_path} ({result.tile_count} tiles)")
    return 1, 0, 0, []


def _process_images(
    image_files: list[Path],
    output_dir: Path,
    tile_format: TileFormat,
    workers: int,
    parallel_images: int,
    force: bool,
) -> tuple[int, int, int, list[tuple[Path, str]]]:
    """Build pyramids in parallel using ProcessPoolExecutor.

    Returns:
        Tuple of (success_count, skipped_count, error_count, errors)
    """
    success_count = 0
    skipped_count = 0
    error_count = 0
    errors: list[tuple[Path, str]] = []

    with ProcessPoolExecutor(max_workers=parallel_images) as executor:
        futures = {
            executor.submit(
                process_single_image,
                f,
                manifest_path_for(f, output_dir, batch=True),
                tile_format.value,
                workers,
                force,
            ): f
            for f in image_files
        }

        with tqdm(total=len(image_files), desc="Building pyramids") as pbar:
            for future in as_completed(futures):
                image_path = futures[future]
                try:
                    result, error, was_skipped, warning_count = future.result()
                except Exception as e:
                    # Worker crashed; tiles already written are left for the next run
                    logger.error("Worker crashed processing %s: %s", image_path, e)
                    error_count += 1
                    errors.append((image_path, str(e)))
                    click.echo(f"\nWorker crashed processing {image_path.name}: {e}", err=True)
                    pbar.update(1)
                    continue

                if error:
                    error_count += 1
                    errors.append((image_path, error))
                    click.echo(f"\nError processing {image_path.name}: {error}", err=True)
                elif was_skipped:
                    skipped_count += 1
                else:
                    success_count += 1
                    if warning_count:
                        click.echo(
                            f"\n{image_path.name}: {warning_count} source tile(s) skipped",
                            err=True,
                        )
                pbar.update(1)

    return success_count, skipped_count, error_count, errors


def _print_summary(
    success_count: int,
    skipped_count: int,
    error_count: int,
    errors: list[tuple[Path, str]],
    force: bool,
) -> None:
    """Print the colored processing summary and exit with error if any failures."""
    click.echo()
    click.echo(click.style("=" * 40, fg="cyan"))

    parts = []
    if success_count > 0:
        parts.append(click.style(f"{success_count} built", fg="green"))
    if skipped_count > 0:
        parts.append(click.style(f"{skipped_count} skipped", fg="cyan"))
    if error_count > 0:
        parts.append(click.style(f"{error_count} failed", fg="red"))

    summary = ", ".join(parts) if parts else "Nothing to process"
    click.echo(click.style("Completed: ", bold=True) + summary)

    if skipped_count > 0 and not force:
        click.echo(click.style("  (use --force to rebuild skipped images)", fg="cyan"))

    if errors:
        click.echo()
        click.echo(click.style("Failed images:", fg="red"))
        for path, error in errors:
            click.echo(f"  {path.name}: {error}")
        sys.exit(1)


@click.command()
@click.argument("input_path", type=click.Path(exists=True))
@click.option(
    "-o",
    "--output",
    type=click.Path(),
    default=None,
    help="Manifest path (.dzi/.xml) for a single image, or output directory for a folder",
)
@click.option(
    "--format",
    "-f",
    "tile_format",
    type=click.Choice(["jpg", "png"], case_sensitive=False),
    default=TileFormat.parse(DEFAULT_TILE_FORMAT).value,
    show_default=True,
    help="Tile encoding",
)
@click.option(
    "--workers",
    "-w",
    type=click.IntRange(1, 64),
    default=TILE_WORKERS,
    help=f"Worker threads per pyramid level (default: {TILE_WORKERS})",
)
@click.option(
    "--parallel-images",
    "-p",
    type=click.IntRange(1, 32),
    default=DEFAULT_PARALLEL_IMAGES,
    help=f"Build multiple images in parallel (default: {DEFAULT_PARALLEL_IMAGES})",
)
@click.option(
    "--force",
    is_flag=True,
    help="Rebuild even if a complete pyramid already exists",
)
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
def main(
    input_path: str,
    output: str | None,
    tile_format: str,
    workers: int,
    parallel_images: int,
    force: bool,
    verbose: bool,
) -> None:
    """Build Deep Zoom tile pyramids from PNG/JPEG images.

    INPUT_PATH can be a single image or a directory containing images.
    Each image NAME produces NAME.dzi plus a NAME_files/ tile directory.

    Examples:

        # Build next to the source: photo.dzi + photo_files/
        python -m zoomstack.preprocess photo.jpg

        # Choose the manifest path and PNG tiles
        python -m zoomstack.preprocess photo.png -o out/photo.xml --format png

        # Build every image in a directory
        python -m zoomstack.preprocess ./images/ -o ./pyramids/
    """
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    input_path = Path(input_path)
    output_dir = Path(output) if output else None
    fmt = TileFormat.parse(tile_format)

    image_files = find_image_files(input_path)
    if not image_files:
        click.echo(f"No PNG/JPEG images found in {input_path}", err=True)
        sys.exit(1)

    if input_path.is_dir() and output_dir is None:
        output_dir = Path("./output")

    _print_header(image_files, output_dir, fmt, force)

    if input_path.is_file():
        try:
            manifest_path = manifest_path_for(input_path, output_dir, batch=False)
        except ValueError as e:
            raise click.BadParameter(str(e), param_hint="--output") from e
        success, skipped, error_count, errors = _process_single(
            input_path, manifest_path, fmt, workers, force
        )
    else:
        output_dir.mkdir(parents=True, exist_ok=True)
        success, skipped, error_count, errors = _process_images(
            image_files, output_dir, fmt, workers, parallel_images, force
        )

    _print_summary(success, skipped, error_count, errors, force)


if __name__ == "__main__":
    main()
