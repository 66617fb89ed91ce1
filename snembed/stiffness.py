"""
STIFFNESS — Paradigm: POINTS ON SPRINGS

===============================================================
THE ONE IDENTITY
===============================================================

Every cost in this package depends on the coordinates only through the
squared output distances d²_ij. Write

    K_ij = ∂C / ∂d²_ij

and the chain rule gives, for every method at once:

    ∂C/∂y_i = 2 Σ_j (K_ij + K_ji) (y_i - y_j)

Point i is tied to every j by a spring of stiffness 2(K_ij + K_ji):
positive pulls together, negative pushes apart.

The functions here return that SYMMETRIZED matrix 2(K + Kᵗ), which is
all the gradient engine consumes. Signature:

    stiffness(method, inp, out) → (n, n) ndarray

===============================================================
RAW K PER METHOD
===============================================================

    ASNE   β_i (p_ij - q_ij)            (β may be one value per row)
    SSNE   β (p_ij - q_ij)
    t-SNE  (p_ij - q_ij) w_ij
    t-ASNE (p_ij - q_ij) w_ij            (row-normalized)
    HSSNE  β (p_ij - q_ij) w_ij^α
    reverse KL variants: β q_ij (log(p_ij/q_ij) + KL(Q||P))

    STRESS   (d_ij - r_ij) / 2d_ij
    SSTRESS  (d²_ij - r²_ij)
    Sammon   (d_ij - r_ij) / (2 c r_ij d_ij),  c = Σ_{i<j} r_ij

===============================================================
"""

import numpy as np

from .costs import kl_divergence, kl_divergence_rows
from .matrices import upper_tri


def symmetrize(km):
    """2(K + Kᵗ): the coefficient matrix the gradient engine consumes."""
    return 2 * (km + km.T)


def _row_beta(beta):
    beta = np.asarray(beta, dtype=float)
    if beta.ndim == 1:
        return beta[:, np.newaxis]
    return beta


# ============================================================
# PROBABILITY-BASED
# ============================================================

def asne_stiffness(pm, qm, beta=1.0):
    """Works with a scalar β or one β per row (NeRV uses the latter)."""
    return symmetrize(_row_beta(beta) * (pm - qm))


def ssne_stiffness(pm, qm, beta=1.0):
    """Joint probabilities: the raw matrix is already symmetric, so this is 4β(P - Q)."""
    return symmetrize(beta * (pm - qm))


def tsne_stiffness(pm, qm, wm):
    return symmetrize((pm - qm) * wm)


def tasne_stiffness(pm, qm, wm):
    return symmetrize((pm - qm) * wm)


def hssne_stiffness(pm, qm, wm, alpha=1.5e-8, beta=1.0):
    return symmetrize(beta * (pm - qm) * (wm ** alpha))


def reverse_asne_stiffness(pm, qm, beta=1.0, eps=np.finfo(float).eps):
    rev_kl = kl_divergence_rows(qm, pm, eps)
    km = _row_beta(beta) * qm * (np.log((pm + eps) / (qm + eps)) + rev_kl)
    return symmetrize(km)


def reverse_ssne_stiffness(pm, qm, beta=1.0, eps=np.finfo(float).eps):
    rev_kl = kl_divergence(qm, pm, eps)
    return symmetrize(beta * qm * (np.log((pm + eps) / (qm + eps)) + rev_kl))


# ============================================================
# DISTANCE-BASED
# ============================================================

def mmds_stiffness(dxm, dym, eps=np.finfo(float).eps):
    km = 2 * (dym - dxm) / (dym + eps)
    np.fill_diagonal(km, 0)
    return km


def smmds_stiffness(dxm, dym):
    km = 4 * (dym ** 2 - dxm ** 2)
    np.fill_diagonal(km, 0)
    return km


def sammon_stiffness(dxm, dym, eps=np.finfo(float).eps):
    c = np.sum(upper_tri(dxm + eps))
    km = 2 * (dym - dxm) / (c * (dxm + eps) * (dym + eps))
    np.fill_diagonal(km, 0)
    return km
