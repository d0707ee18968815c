import itertools
import os

import numpy as np
import pytest

os.environ.setdefault("MPLBACKEND", "Agg")


def make_grid(n, spacing=1.0):
    """n x n x n grid of points with the given spacing."""
    axis = np.arange(n) * spacing
    return np.array(list(itertools.product(axis, axis, axis)), dtype=np.float64)


@pytest.fixture
def grid_points():
    return make_grid(6)


@pytest.fixture
def random_points():
    rng = np.random.default_rng(42)
    return rng.uniform(0.0, 10.0, size=(300, 3))
