"""
PERPLEXITY CALIBRATION — Paradigm: ROOT FINDING

===============================================================
WHAT IT IS (THE CORE IDEA)
===============================================================

Every point gets its OWN kernel width.

Dense regions need a tight kernel, sparse regions a wide one, so that
every point "sees" roughly the same number of neighbors. That number is
the PERPLEXITY:

    Perp(P_i) = 2^{H(P_i)}

For each row i we solve ONE scalar equation in the precision β_i:

    f(β) = H(β) - log₂(Perp*) = 0

===============================================================
THE SEARCH
===============================================================

Bisection on the bracket (0, ∞), starting at β = 1 for EVERY row:

    sign of f(0) = reference sign
    f(mid) has the reference sign → lower = mid
        upper is ∞ ?  mid *= 2  :  mid = (mid + upper) / 2
    otherwise → upper = mid
        lower is ∞ ?  mid /= 2  :  mid = (mid + lower) / 2

Stops when |f(mid)| < tol, or after max_iters (a SOFT failure: the row is
still filled in, the failure is only counted).

===============================================================
INTRINSIC DIMENSIONALITY (for free)
===============================================================

The search visits several (β, H) pairs anyway. The last two give a finite
difference estimate of the local dimension:

    dim = -2 ΔH / Δlog₂(β)

Only meaningful for a Gaussian kernel (exp(-β d²)).

Reference: Lee, Peluffo-Ordóñez & Verleysen (2015), Multi-scale
similarities in stochastic neighbour embedding.

===============================================================
"""

import warnings
from dataclasses import dataclass, field
from typing import Any, List

import numpy as np

from .exceptions import ConfigurationError, ConvergenceWarning
from .matrices import weights_to_prow
from .weights import exp_weight, prec_to_bandwidth, shannon_entropy_rows

# Below this a row's total weight is denormal and cannot be normalized reliably
MIN_MASS = np.finfo(float).tiny


# ============================================================
# GENERIC BISECTION
# ============================================================

@dataclass
class BisectionResult:
    """Outcome of a root_bisect search."""
    x: float
    value: float
    best: Any
    iter: int
    xs: List[float] = field(default_factory=list)
    ys: List[float] = field(default_factory=list)


def improve_guess(lower, upper, mid, lower_equal_signs):
    """
    Narrow (or widen) the bracket around the root.

    Returns:
        (lower, upper, mid) for the next evaluation
    """
    if lower_equal_signs:
        lower = mid
        if np.isinf(upper):
            mid = mid * 2
        else:
            mid = (mid + upper) / 2
    else:
        upper = mid
        if np.isinf(lower):
            mid = mid / 2
        else:
            mid = (mid + lower) / 2
    return lower, upper, mid


def root_bisect(fn, tol=1e-5, max_iters=50, x_lower=0.0, x_upper=np.inf,
                x_init=None, keep_search=False, verbose=False):
    """
    Find a root of fn by bisection.

    Args:
        fn: Callable x → (value, payload). The payload is handed back for
            the final x, so callers can return extra results without
            recomputing them.
        tol: Stop when |value| < tol
        max_iters: Hard bound on the number of narrowing steps
        x_lower, x_upper: Bracket (the upper bound may be infinite)
        x_init: First guess (defaults to the bracket midpoint)
        keep_search: Record every (x, value) visited
        verbose: Print every step

    Returns:
        BisectionResult
    """
    if x_init is None:
        x_init = (x_lower + x_upper) / 2

    sign_lower = np.sign(fn(x_lower)[0])

    value, best = fn(x_init)
    lower, upper = min(x_lower, x_upper), max(x_lower, x_upper)
    mid = x_init
    iteration = 0
    xs, ys = ([x_init], [value]) if keep_search else ([], [])

    while abs(value) > tol and iteration < max_iters:
        lower, upper, mid = improve_guess(lower, upper, mid,
                                          np.sign(value) == sign_lower)
        value, best = fn(mid)
        iteration += 1
        if keep_search:
            xs.append(mid)
            ys.append(value)
        if verbose:
            print(f"   iter {iteration} x {mid:.6g} y {value:.6g}")

    return BisectionResult(x=mid, value=value, best=best, iter=iteration,
                           xs=xs, ys=ys)


# ============================================================
# PER-ROW PERPLEXITY SEARCH
# ============================================================

@dataclass
class RowResult:
    """Calibrated row: probabilities, precision, status, local dimension."""
    pr: np.ndarray
    beta: float
    perplexity: float
    d_intr: float
    ok: bool


def make_objective(d2r, i, weight_fn, perplexity, h_base=2.0):
    """
    Objective for the search on row i.

    A row whose weights all underflow has no distribution at all. It scores
    -inf (β is too large) with no payload, so the search backs off instead
    of mistaking the empty row for a zero-entropy one.

    Returns:
        Callable β → (H(β) - log_b(Perp*), (probabilities, H) or None)
    """
    h_target = np.log(perplexity) / np.log(h_base)

    def objective(beta):
        wr = np.array(weight_fn(d2r, beta), dtype=float)
        wr[i] = 0  # exclude self
        if np.sum(wr) < MIN_MASS:
            return -np.inf, None
        pr = weights_to_prow(wr[np.newaxis, :])[0]
        h = shannon_entropy_rows(pr, base=h_base)[0]
        return h - h_target, (pr, h)

    return objective


def intrinsic_dimensionality(result, objective):
    """
    Finite-difference estimate -2 ΔH / Δlog₂β from the last two samples.

    If the search converged on its first guess there is only one sample,
    so a second one is made at the smaller of β·1.01 and β + 1e-3.
    Samples where the row underflowed are skipped; nan if fewer than two remain.
    """
    samples = [(b, h) for b, h in zip(result.xs, result.ys) if np.isfinite(h)]

    if len(samples) == 1:
        beta_fwd = min(samples[0][0] * 1.01, samples[0][0] + 1e-3)
        samples.append((beta_fwd, objective(beta_fwd)[0]))

    if len(samples) < 2 or not np.isfinite(samples[-1][1]):
        return np.nan
    betas, hs = zip(*samples)
    dh = hs[-1] - hs[-2]
    dlog2b = np.log2(betas[-1]) - np.log2(betas[-2])
    return (-2 * dh) / dlog2b


def find_beta(d2r, i, perplexity, beta_init=1.0, weight_fn=exp_weight,
              tol=1e-5, max_iters=50, h_base=2.0):
    """
    Calibrate the precision of one row.

    Args:
        d2r: Row of squared distances (full length, self included)
        i: Index of the self entry in the row
        perplexity: Target perplexity
        beta_init: Starting precision
        weight_fn: fn(d2, beta) → weights, decreasing bandwidth as β grows
        tol: Entropy tolerance
        max_iters: Bisection bound

    Returns:
        RowResult; ok is False when the target was not reached. If the
        search ended on an underflowed row, the row comes from the last β
        that still had mass (β = 0, uniform, if none had).
    """
    objective = make_objective(d2r, i, weight_fn, perplexity, h_base=h_base)
    result = root_bisect(objective, tol=tol, max_iters=max_iters,
                         x_lower=0.0, x_upper=np.inf, x_init=beta_init,
                         keep_search=True)
    beta = result.x
    if result.best is None:
        finite = [b for b, h in zip(result.xs, result.ys) if np.isfinite(h)]
        beta = finite[-1] if finite else 0.0
        result.best = objective(beta)[1]
    pr, h = result.best
    return RowResult(
        pr=pr,
        beta=beta,
        perplexity=h_base ** h,
        d_intr=intrinsic_dimensionality(result, objective),
        ok=bool(abs(result.value) <= tol),
    )


# ============================================================
# FULL MATRIX
# ============================================================

@dataclass
class PerplexityResult:
    """Row probability matrix with its precisions and local dimensions."""
    pm: np.ndarray
    beta: np.ndarray
    dims: np.ndarray
    n_failures: int = 0
    prob_type: str = "row"


def summarize(values, name):
    """One-line min/median/max summary."""
    values = np.asarray(values, dtype=float)
    print(f"   {name}: min={np.min(values):.4g}  median={np.median(values):.4g}  "
          f"max={np.max(values):.4g}")


def summarize_betas(beta):
    summarize(prec_to_bandwidth(beta), "sigma")
    summarize(beta, "beta")


def d_to_p_perp_bisect(dm, perplexity=15.0, weight_fn=exp_weight, tol=1e-5,
                       max_iters=50, verbose=False):
    """
    Row probabilities with a target perplexity for every point.

    Every row starts from β = 1 (no warm start from the previous row).
    Rows that hit max_iters are counted and reported in ONE warning after
    the whole matrix is built.

    Parameters:
    -----------
    dm : ndarray (n, n)
        Distance matrix (NOT squared).
    perplexity : float
        Target perplexity, must be below n.
    weight_fn : callable
        fn(d2, beta) → weights.
    tol : float
        Entropy tolerance in bits.
    max_iters : int
        Per-row bisection bound.
    verbose : bool
        Print beta/sigma/dimension summaries.

    Returns:
    --------
    PerplexityResult
    """
    dm = np.asarray(dm, dtype=float)
    n = dm.shape[0]
    if perplexity < 1:
        raise ConfigurationError(f"Perplexity ({perplexity}) must be at least 1")
    if perplexity >= n:
        raise ConfigurationError(f"Perplexity ({perplexity}) must be less than "
                                 f"n_samples ({n})")
    if not callable(weight_fn):
        raise ConfigurationError("weight_fn must be callable as fn(d2, beta)")

    d2m = dm ** 2
    pm = np.zeros((n, n))
    beta = np.ones(n)
    dims = np.zeros(n)
    n_failures = 0

    for i in range(n):
        row = find_beta(d2m[i], i, perplexity, beta_init=1.0,
                        weight_fn=weight_fn, tol=tol, max_iters=max_iters)
        pm[i] = row.pr
        beta[i] = row.beta
        dims[i] = row.d_intr
        if not row.ok:
            n_failures += 1

    if verbose:
        summarize_betas(beta)
        summarize(pm, "P")
        summarize(dims, "dims")

    if n_failures > 0:
        warnings.warn(f"{n_failures} failures to find the target perplexity "
                      f"{perplexity:g}", ConvergenceWarning, stacklevel=2)

    return PerplexityResult(pm=pm, beta=beta, dims=dims, n_failures=n_failures)
