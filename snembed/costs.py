"""
COST FUNCTIONS

Two families share one signature, cost(inp, out, method) → float:

PROBABILITY-BASED (SNE family):
    KL(P || Q) = Σ p_ij log(p_ij / q_ij)          forward: keeps neighbors near
    KL(Q || P) = Σ q_ij log(q_ij / p_ij)          reverse: keeps non-neighbors apart
    NeRV       = λ KL(P||Q) + (1 - λ) KL(Q||P)

DISTANCE-BASED (metric MDS family), r = input distance, d = output distance:
    STRESS   = Σ_{i<j} (r_ij - d_ij)²
    SSTRESS  = Σ_{i<j} (r_ij² - d_ij²)²
    Sammon   = Σ_{i<j} (r_ij - d_ij)² / r_ij  /  Σ_{i<j} r_ij

Plus a few normalized stresses used only for reporting.

Every log and ratio is floored by eps.
"""

import numpy as np

from .matrices import EPS, upper_tri


# ============================================================
# DIVERGENCES
# ============================================================

def kl_divergence(pm, qm, eps=EPS):
    """KL(P || Q) over every entry of the matrices."""
    return float(np.sum(pm * np.log((pm + eps) / (qm + eps))))


def kl_divergence_rows(pm, qm, eps=EPS):
    """Per-row KL(P_i || Q_i), as a column vector."""
    return np.sum(pm * np.log((pm + eps) / (qm + eps)), axis=1, keepdims=True)


def kl_cost(inp, out, method):
    return kl_divergence(inp.pm, out.qm, method.eps)


def reverse_kl_cost(inp, out, method):
    return kl_divergence(out.qm, inp.pm, method.eps)


def nerv_cost(inp, out, method):
    lambda_ = method.params.get("lambda_", 0.5)
    return (lambda_ * kl_divergence(inp.pm, out.qm, method.eps) +
            (1 - lambda_) * kl_divergence(out.qm, inp.pm, method.eps))


# ============================================================
# STRESSES
# ============================================================

def metric_stress(dxm, dym):
    """Residual sum of squares between two distance matrices."""
    return float(np.sum(upper_tri((dxm - dym) ** 2)))


def metric_sstress(dxm, dym):
    return float(np.sum(upper_tri((dxm ** 2 - dym ** 2) ** 2)))


def rms_metric_stress(dxm, dym):
    n = dxm.shape[0]
    return float(np.sqrt(metric_stress(dxm, dym) / (0.5 * n * (n - 1))))


def normalized_stress(dxm, dym, eps=EPS):
    """STRESS as a fraction of the input sum of squares (Borg & Groenen)."""
    return metric_stress(dxm, dym) / float(np.sum(upper_tri((dxm + eps) ** 2)))


def kruskal_stress(dxm, dym, eps=EPS):
    """Kruskal stress type-1: sqrt(STRESS / Σ d²) over OUTPUT distances."""
    return float(np.sqrt(metric_stress(dxm, dym) / np.sum(upper_tri((dym + eps) ** 2))))


def mean_relative_error(dxm, dym, eps=EPS):
    n = dxm.shape[0]
    return float(np.sum(upper_tri(np.abs((dxm - dym) / (dxm + eps)))) / (0.5 * n * (n - 1)))


def sammon_stress(dxm, dym, eps=EPS):
    return float(np.sum(upper_tri((dxm - dym) ** 2 / (dxm + eps))) /
                 np.sum(upper_tri(dxm + eps)))


def metric_stress_cost(inp, out, method):
    return metric_stress(inp.dm, out.dm)


def metric_sstress_cost(inp, out, method):
    return metric_sstress(inp.dm, out.dm)


def sammon_stress_cost(inp, out, method):
    return sammon_stress(inp.dm, out.dm, method.eps)
