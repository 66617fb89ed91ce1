"""
DISTANCE AND PROBABILITY MATRICES

===============================================================
WHAT LIVES HERE
===============================================================

Plain numpy arrays, plus the handful of conversions every embedding needs:

    coordinates  →  squared distances  →  distances (immutable)
    weights      →  row probabilities  (each row sums to 1)
    weights      →  joint probability  (whole matrix sums to 1)
    row probs    →  joint probability  (average with transpose, renormalize)

A probability matrix is tagged by its TYPE:
    "row"   : p(j|i), row-stochastic, self-entry excluded
    "joint" : p_ij, symmetric, grand sum = 1

NUMERIC HYGIENE: a mass is divided by its actual sum, however small. Only a
mass that is exactly zero is left as it is (all zeros).

===============================================================
"""

import numpy as np
from scipy.spatial.distance import pdist, squareform

from .exceptions import ConfigurationError

EPS = np.finfo(float).eps

PROB_TYPES = ("row", "joint")


# ============================================================
# DISTANCES
# ============================================================

def squared_distances(X):
    """Pairwise squared Euclidean distances, diagonal forced to zero."""
    X = np.asarray(X, dtype=float)
    sum_X = np.sum(X ** 2, axis=1)
    D2 = sum_X[:, np.newaxis] + sum_X[np.newaxis, :] - 2 * X @ X.T
    np.fill_diagonal(D2, 0)
    D2 = np.maximum(D2, 0)  # Numerical stability
    return D2


def coords_to_dist(X, metric="euclidean"):
    """
    Input distance matrix from a coordinate matrix.

    Any metric understood by scipy.spatial.distance.pdist can be used.
    The result is read-only.
    """
    X = np.asarray(X, dtype=float)
    if X.ndim != 2:
        raise ConfigurationError(f"Coordinates must be 2D, got shape {X.shape}")
    dm = squareform(pdist(X, metric=metric))
    dm.setflags(write=False)
    return dm


def as_distance_matrix(dm, tol=1e-8):
    """
    Validate a user-supplied distance matrix and freeze it.

    Must be square, symmetric, non-negative with a zero diagonal.
    """
    dm = np.array(dm, dtype=float)
    if dm.ndim != 2 or dm.shape[0] != dm.shape[1]:
        raise ConfigurationError(f"Distance matrix must be square, got shape {dm.shape}")
    if not np.allclose(dm, dm.T, atol=tol):
        raise ConfigurationError("Distance matrix must be symmetric")
    if np.any(np.abs(np.diag(dm)) > tol):
        raise ConfigurationError("Distance matrix must have a zero diagonal")
    if np.any(dm < 0):
        raise ConfigurationError("Distances must be non-negative")
    np.fill_diagonal(dm, 0)
    dm.setflags(write=False)
    return dm


def upper_tri(M):
    """Strictly upper triangular entries of a square matrix, as a 1D array."""
    return M[np.triu_indices(M.shape[0], k=1)]


# ============================================================
# PROBABILITIES
# ============================================================

def weights_to_prow(wm):
    """Row-normalize a weight matrix: p(j|i) = w_ij / Σ_k w_ik."""
    row_sums = np.sum(wm, axis=1, keepdims=True)
    return wm / np.where(row_sums > 0, row_sums, 1.0)


def weights_to_pjoint(wm):
    """Normalize a weight matrix over its grand sum."""
    total = np.sum(wm)
    return wm / total if total > 0 else np.zeros_like(wm, dtype=float)


def prow_to_pjoint(pm):
    """
    Symmetrize a row-stochastic matrix into a joint distribution.

        p_ij = (p(j|i) + p(i|j)) / 2, then divided by the total mass
    """
    pm = 0.5 * (pm + pm.T)
    return weights_to_pjoint(pm)


def handle_prob(pm, prob_type):
    """Convert a row probability matrix into the type a method consumes."""
    if prob_type == "row":
        return pm
    if prob_type == "joint":
        return prow_to_pjoint(pm)
    raise ConfigurationError(f"Unknown probability type: {prob_type}")


def is_normalized(pm, prob_type, tol=1e-6):
    """Check the normalization invariant of a probability matrix of a given type."""
    if np.any(pm < 0):
        return False
    if prob_type == "row":
        return bool(np.all(np.abs(np.sum(pm, axis=1) - 1.0) < tol))
    if prob_type == "joint":
        return bool(abs(np.sum(pm) - 1.0) < tol and np.allclose(pm, pm.T, atol=tol))
    raise ConfigurationError(f"Unknown probability type: {prob_type}")
