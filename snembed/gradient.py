"""
GRADIENTS — from springs to forces

===============================================================
THE ENGINE
===============================================================

Given the symmetrized stiffness matrix K (see stiffness.py) and the
coordinates Y (n × d):

    g_i = Σ_j K_ij (y_i - y_j)

That's it. Every method, every cost: the method supplies K, this
module turns it into an n × d gradient. O(n² d).

===============================================================
WHERE TO EVALUATE IT
===============================================================

CLASSICAL: at the current (accepted) solution.

NESTEROV (Sutskever et al., 2013 formulation):
    at the solution ADVANCED BY THE PENDING MOMENTUM TERM,

        y_look = y + μ × previous_update

    then the usual momentum update from y. This makes classical momentum
    equivalent to Nesterov's accelerated gradient.

"Where will I be if I keep going? Compute gradient THERE."

===============================================================
CHECKING IT
===============================================================

gradient_fd perturbs every coordinate by ±diff and takes central
differences of the cost. O(n d) cost evaluations of O(n²) each: for
tests only.

===============================================================
"""

import numpy as np

from .exceptions import ConfigurationError
from .strategy import OptimizerStrategy


# ============================================================
# STIFFNESS → GRADIENT
# ============================================================

def stiffness_to_gradient(ym, km):
    """
    Convert a symmetrized stiffness matrix into a gradient matrix.

    Args:
        ym: Coordinates, shape (n, d)
        km: Symmetrized stiffness, shape (n, n)

    Returns:
        Gradient, shape (n, d)
    """
    n = ym.shape[0]
    if km.shape != (n, n):
        raise ConfigurationError(f"Stiffness matrix shape {km.shape} does not match "
                                 f"{n} points")
    gm = np.zeros_like(ym)
    for i in range(n):
        disp = ym[i] - ym  # (n, d)
        gm[i] = np.sum(km[:, i, np.newaxis] * disp, axis=0)
    return gm


def gradient(inp, out, method):
    """
    Stiffness and gradient of the method's cost at out.ym.

    Returns:
        (km, gm)
    """
    km = method.stiffness(inp, out)
    gm = stiffness_to_gradient(out.ym, km)
    if gm.shape != out.ym.shape:
        raise ConfigurationError(f"Gradient shape {gm.shape} does not match "
                                 f"coordinates {out.ym.shape}")
    return km, gm


def gradient_fd(inp, out, method, diff=1e-4):
    """Central finite-difference gradient of the method's cost. Tests only."""
    ym = np.array(out.ym, dtype=float)
    grad = np.zeros_like(ym)
    for i in range(ym.shape[0]):
        for j in range(ym.shape[1]):
            old = ym[i, j]

            ym[i, j] = old + diff
            cost_fwd = method.cost(inp, method.set_solution(inp, ym))

            ym[i, j] = old - diff
            cost_back = method.cost(inp, method.set_solution(inp, ym))

            grad[i, j] = (cost_fwd - cost_back) / (2 * diff)
            ym[i, j] = old
    return grad


# ============================================================
# GRADIENT STRATEGIES
# ============================================================

class ClassicalGradient(OptimizerStrategy):
    """
    Gradient at the current solution.

    The position only changes when a step is accepted, so after a rejected
    step (or any other no-op) the cached stiffness and gradient are reused.
    """

    def is_dirty(self, opt, inp, out, method, iteration):
        return not opt.gradient_cache_valid

    def position(self, opt, inp, out, method, iteration):
        return out

    def calculate(self, opt, inp, out, method, iteration):
        if not self.is_dirty(opt, inp, out, method, iteration):
            return opt.km, opt.gm
        pos = self.position(opt, inp, out, method, iteration)
        km, gm = gradient(inp, pos, method)
        # Only a gradient taken at the solution itself can be reused
        opt.store_gradient(km, gm, valid=pos is out)
        self.value = gm
        return km, gm


class NesterovGradient(ClassicalGradient):
    """
    Gradient at the momentum look-ahead position.

    Needs an update strategy that exposes momentum_term(); with one that
    doesn't, it degenerates to the classical gradient.
    """

    def is_dirty(self, opt, inp, out, method, iteration):
        return True

    def position(self, opt, inp, out, method, iteration):
        momentum = opt.update.momentum_term(opt, iteration)
        if not np.any(momentum):
            return out
        return method.set_solution(inp, out.ym + momentum)
