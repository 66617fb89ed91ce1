import numpy as np
import pytest
from scipy.spatial.distance import pdist, squareform

from snembed.datasets import lift, make_ball, make_gaussian_clusters, make_helix, make_swiss_roll
from snembed.perplexity import d_to_p_perp_bisect


def test_lift_preserves_distances():
    X, _ = make_swiss_roll(n_samples=50)
    Z = lift(X, n_features=12)
    assert Z.shape == (50, 12)
    assert np.allclose(pdist(X), pdist(Z))


def test_lifted_data_has_the_same_probabilities():
    X, _ = make_ball(n_samples=40)
    p_low = d_to_p_perp_bisect(squareform(pdist(X)), perplexity=6.0)
    p_high = d_to_p_perp_bisect(squareform(pdist(lift(X, n_features=20))), perplexity=6.0)
    assert np.allclose(p_low.pm, p_high.pm, atol=1e-4)


def test_lift_cannot_drop_features():
    with pytest.raises(ValueError):
        lift(np.zeros((5, 3)), n_features=2)


def test_cluster_sizes_differ_by_at_most_one():
    X, labels = make_gaussian_clusters(n_samples=32, n_features=6, n_clusters=3)
    assert X.shape == (32, 6)
    counts = np.bincount(labels)
    assert counts.max() - counts.min() <= 1


def test_datasets_are_reproducible():
    for make in (make_gaussian_clusters, make_swiss_roll, make_ball, make_helix):
        X1, _ = make(n_samples=20, random_state=3)
        X2, _ = make(n_samples=20, random_state=3)
        assert np.array_equal(X1, X2)


def test_ball_points_are_inside():
    X, radii = make_ball(n_samples=100, n_features=4)
    assert np.all(np.linalg.norm(X, axis=1) <= 1 + 1e-12)
    assert np.allclose(np.linalg.norm(X, axis=1), radii)
