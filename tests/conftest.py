from __future__ import annotations

import sys
from pathlib import Path

import numpy as np
import pytest


def pytest_configure() -> None:
    """
    Ensure `src/` is on sys.path so tests can import `kitbash`
    without requiring an editable install.
    """
    repo_root = Path(__file__).resolve().parents[1]
    src_root = repo_root / "src"
    sys.path.insert(0, str(src_root))


def solid(width: int, height: int, rgba=(255, 0, 0, 255)) -> np.ndarray:
    """An (H, W, 4) uint8 array filled with one color."""
    arr = np.empty((height, width, 4), dtype=np.uint8)
    arr[...] = rgba
    return arr


@pytest.fixture
def make_image():
    """Factory for single-color ImageData."""
    from kitbash.core.data_types import ImageData

    def factory(width: int, height: int, rgba=(255, 0, 0, 255)):
        return ImageData.from_numpy(solid(width, height, rgba))

    return factory
