"""
WEIGHTING FUNCTIONS, ENTROPY, PERPLEXITY

===============================================================
WEIGHTS
===============================================================

A weighting function maps SQUARED distances to similarities:

    w(d², β)

β is the PRECISION. For the Gaussian kernel:

    w = exp(-β d²)        with bandwidth σ = 1 / √(2β)

Larger β → tighter kernel → fewer effective neighbors → lower entropy.
The perplexity search relies on that monotonicity but never checks it:
any weighting function you plug in must honor it.

===============================================================
ENTROPY & PERPLEXITY
===============================================================

    H(P_i) = -Σ_j p(j|i) log_b p(j|i)
    Perp(P_i) = b^H(P_i)

Perplexity ≈ effective number of neighbors.

===============================================================
"""

import numpy as np

from .matrices import EPS


# ============================================================
# WEIGHTING FUNCTIONS  (signature: fn(d2m, beta))
# ============================================================

def exp_weight(d2m, beta=1.0):
    """Gaussian (exponential in squared distance) weights: exp(-β d²)."""
    return np.exp(-beta * d2m)


def sqrt_exp_weight(d2m, beta=1.0):
    """Exponential in the (unsquared) distance: exp(-β d)."""
    return np.exp(-beta * np.sqrt(d2m))


def tdist_weight(d2m, beta=1.0):
    """
    Student-t (Cauchy) weights: 1 / (1 + β d²).

    With β = 1 this is the t-SNE output kernel. Heavy tails push
    moderately distant points apart (the crowding problem fix).
    """
    return 1.0 / (1.0 + beta * d2m)


def heavy_tail_weight(d2m, beta=1.0, alpha=1.5e-8):
    """
    Heavy-tailed kernel of HSSNE:

        w = (1 + α β d²)^(-1/α)

    α → 0 recovers exp(-β d²), α = 1 gives Student-t.
    """
    return np.power(alpha * beta * d2m + 1.0, -1.0 / alpha)


def prec_to_bandwidth(beta):
    """Convert precision β to the Gaussian bandwidth σ = 1/√(2β)."""
    return 1.0 / np.sqrt(2.0 * np.asarray(beta, dtype=float))


# ============================================================
# INFORMATION THEORY
# ============================================================

def shannon_entropy_rows(pm, base=2.0):
    """
    Shannon entropy of every row of a row-probability matrix.

    Args:
        pm: Row probability matrix (each row sums to 1)
        base: Logarithm base (2 = bits)

    Returns:
        1D array of entropies, one per row
    """
    pm = np.atleast_2d(pm)
    return -np.sum(pm * np.log(pm + EPS), axis=1) / np.log(base)


def perplexity_rows(pm):
    """Perplexity (antilog of the entropy) of every row."""
    return np.exp(shannon_entropy_rows(pm, base=np.e))
