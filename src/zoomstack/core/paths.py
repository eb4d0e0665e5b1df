"""Path helpers for Deep Zoom output layouts."""

from __future__ import annotations

import os
import tempfile
from pathlib import Path

from zoomstack.config import MANIFEST_EXTENSIONS


def resolve_manifest_path(destination: str | Path) -> Path:
    """Normalize a destination into a manifest path.

    A destination without a suffix gets the default ``.dzi`` extension.

    Raises:
        ValueError: If the destination has a suffix other than ``.dzi``/``.xml``
    """
    path = Path(destination)
    if not path.suffix:
        return path.with_suffix(MANIFEST_EXTENSIONS[0])
    if path.suffix.lower() not in MANIFEST_EXTENSIONS:
        raise ValueError(
            f"Destination must end in {' or '.join(MANIFEST_EXTENSIONS)}: {path}"
        )
    return path


def files_dir_for_manifest(manifest_path: Path) -> Path:
    """Return the ``<name>_files`` directory that sits beside a manifest."""
    return manifest_path.with_name(manifest_path.stem + "_files")


def level_dir(files_dir: Path, level: int) -> Path:
    return files_dir / str(level)


def tile_path(files_dir: Path, level: int, col: int, row: int, extension: str) -> Path:
    """Path of the tile file ``<files_dir>/<level>/<col>_<row>.<extension>``."""
    return files_dir / str(level) / f"{col}_{row}.{extension}"


def atomic_write_text(path: Path, text: str) -> None:
    """Atomically write text to a file.

    Writes to a temp file in the same directory, then replaces the target.
    ``os.replace()`` is atomic on both POSIX and Windows (same filesystem).
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_path = tempfile.mkstemp(
        dir=path.parent, suffix=".tmp", prefix=path.stem
    )
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(text)
        os.replace(tmp_path, path)
    except BaseException:
        try:
            os.unlink(tmp_path)
        except OSError:
            pass
        raise
