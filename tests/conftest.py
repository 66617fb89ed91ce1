import matplotlib

matplotlib.use("Agg")

import numpy as np
import pytest
from scipy.spatial.distance import pdist, squareform


@pytest.fixture
def rng():
    return np.random.default_rng(42)


@pytest.fixture
def toy_distances():
    """Five points in the plane, as a distance matrix."""
    points = np.array([[0.0, 0.0], [1.0, 0.0], [0.0, 2.0], [3.0, 1.0], [1.5, 2.5]])
    return squareform(pdist(points))
