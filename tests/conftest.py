"""Test fixtures for ZoomStack tests."""

from __future__ import annotations

import tempfile
from pathlib import Path
from typing import Callable, Generator

import numpy as np
import pytest
from PIL import Image


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Provide a temporary directory that's cleaned up after tests."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


def noise_rgba(width: int, height: int, seed: int = 0) -> np.ndarray:
    """Opaque random RGBA pixels; every pixel differs from its neighbours."""
    rng = np.random.default_rng(seed)
    arr = rng.integers(0, 256, size=(height, width, 4), dtype=np.uint8)
    arr[..., 3] = 255
    return arr


def gradient_rgba(width: int, height: int) -> np.ndarray:
    """Opaque smooth gradient, suited for resampling comparisons."""
    xs = np.linspace(0, 255, width, dtype=np.float64)
    ys = np.linspace(0, 255, height, dtype=np.float64)
    arr = np.empty((height, width, 4), dtype=np.uint8)
    arr[..., 0] = xs[np.newaxis, :].astype(np.uint8)
    arr[..., 1] = ys[:, np.newaxis].astype(np.uint8)
    arr[..., 2] = ((xs[np.newaxis, :] + ys[:, np.newaxis]) / 2).astype(np.uint8)
    arr[..., 3] = 255
    return arr


@pytest.fixture
def sample_rgba_array() -> np.ndarray:
    """Create a 512x512 RGBA image with colored quadrants."""
    img = np.full((512, 512, 4), 255, dtype=np.uint8)

    # Top-left: red
    img[0:256, 0:256, :3] = [200, 50, 50]

    # Top-right: green
    img[0:256, 256:512, :3] = [50, 200, 50]

    # Bottom-left: blue
    img[256:512, 0:256, :3] = [50, 50, 200]

    # Bottom-right: purple
    img[256:512, 256:512, :3] = [150, 50, 150]

    return img


@pytest.fixture
def write_image(temp_dir: Path) -> Callable[..., Path]:
    """Factory writing an RGBA array to ``temp_dir/<name>`` (format from suffix)."""

    def _write(arr: np.ndarray, name: str = "source.png") -> Path:
        path = temp_dir / name
        img = Image.fromarray(np.ascontiguousarray(arr))
        if path.suffix.lower() in (".jpg", ".jpeg"):
            img = img.convert("RGB")
        img.save(path)
        return path

    return _write
