"""
Synthetic datasets for trying out embeddings.

Each returns (X, labels): labels are cluster ids, or a continuous
coordinate along the manifold for color maps. The manifolds have a known
intrinsic dimension, so they double as checks for the dimensionality
estimate of the perplexity search. lift() puts any of them into more
features without changing a single distance.
"""

import numpy as np


def lift(X, n_features, random_state=42):
    """
    Rotate X into n_features dimensions with a random orthonormal map.

    Pairwise distances (and so every input probability) are unchanged.
    """
    X = np.asarray(X, dtype=float)
    if n_features < X.shape[1]:
        raise ValueError(f"Cannot lift {X.shape[1]} features into {n_features}")
    rng = np.random.default_rng(random_state)
    Q, _ = np.linalg.qr(rng.normal(size=(n_features, X.shape[1])))
    return X @ Q.T


def make_gaussian_clusters(n_samples=300, n_features=50, n_clusters=5,
                           separation=5.0, random_state=42):
    """
    Isotropic Gaussian clusters with centers on a sphere of radius `separation`.

    Sizes differ by at most one point when n_clusters doesn't divide n_samples.
    """
    rng = np.random.default_rng(random_state)
    centers = rng.normal(size=(n_clusters, n_features))
    centers *= separation / np.linalg.norm(centers, axis=1, keepdims=True)
    labels = np.arange(n_samples) % n_clusters
    X = centers[labels] + rng.normal(size=(n_samples, n_features))
    return X, labels


def make_swiss_roll(n_samples=500, height=21.0, noise=0.0, random_state=42):
    """
    Swiss roll in 3D (intrinsic dimension 2), labelled by the roll angle.

    Angles are uniform on [1.5π, 4.5π], heights on [0, height].
    """
    rng = np.random.default_rng(random_state)
    t = np.pi * rng.uniform(1.5, 4.5, size=n_samples)
    h = rng.uniform(0, height, size=n_samples)
    X = np.column_stack([t * np.cos(t), h, t * np.sin(t)])
    X += rng.normal(scale=noise, size=X.shape)
    return X, t


def make_ball(n_samples=300, n_features=3, random_state=42):
    """Uniform points in the unit ball: intrinsic dimension = n_features."""
    rng = np.random.default_rng(random_state)
    directions = rng.normal(size=(n_samples, n_features))
    directions /= np.linalg.norm(directions, axis=1, keepdims=True)
    radii = rng.uniform(size=n_samples) ** (1.0 / n_features)
    X = directions * radii[:, np.newaxis]
    return X, radii


def make_helix(n_samples=300, n_turns=3, noise=0.0, random_state=42):
    """A helix in 3D: intrinsic dimension 1."""
    rng = np.random.default_rng(random_state)
    t = np.sort(rng.uniform(size=n_samples)) * 2 * np.pi * n_turns
    X = np.column_stack([np.cos(t), np.sin(t), t / (2 * np.pi)])
    X += rng.normal(scale=noise, size=X.shape)
    return X, t
