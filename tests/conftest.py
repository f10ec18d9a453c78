"""
Shared fixtures for the raster effects tests.
"""

import numpy as np
import pytest

from raster import Raster


@pytest.fixture
def random_raster() -> Raster:
    """9x7 raster of reproducible random colours in [0, 1)."""
    rng = np.random.default_rng(7)
    return Raster.from_array(rng.random((7, 9, 3), dtype=np.float32))


@pytest.fixture
def uniform_raster() -> Raster:
    """8x6 raster filled with a single colour."""
    arr = np.empty((6, 8, 3), dtype=np.float32)
    arr[...] = (0.2, 0.5, 0.8)
    return Raster.from_array(arr)


@pytest.fixture
def center_dot_raster() -> Raster:
    """3x3 black raster with a white centre pixel."""
    raster = Raster(3, 3)
    raster.set_pixel(1, 1, (1.0, 1.0, 1.0))
    return raster


@pytest.fixture
def step_edge_raster() -> Raster:
    """6x6 raster, black for x < 3 and white for x >= 3."""
    arr = np.zeros((6, 6, 3), dtype=np.float32)
    arr[:, 3:, :] = 1.0
    return Raster.from_array(arr)
