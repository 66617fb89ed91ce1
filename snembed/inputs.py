"""
INPUT PROBABILITIES — building P, and rebuilding it on a schedule

===============================================================
WHAT HAPPENS ON A (RE)BUILD
===============================================================

    1. Perplexity search → row-stochastic P, precisions β, local dims
    2. Convert to the method's type  (row, or joint = (P + Pᵗ)/2 renormalized)
    3. Replay the method's input-update callbacks (in registration order)
    4. Refresh the output (the kernel may have just changed)
    5. Tell the optimizer its cached gradient and cost are stale

A plain build runs once, at iteration 0. A MULTISCALE build adds one
perplexity every `scale_iters` iterations and averages the per-scale
probabilities (Lee et al., 2015): large neighborhoods first for global
layout, then smaller ones for local detail.

Callbacks are registered ONCE, when a builder first runs. Rebuilds
replay them; they never register them again.

===============================================================
"""

from dataclasses import dataclass
from typing import List, Optional

import numpy as np

from .matrices import as_distance_matrix, coords_to_dist, handle_prob
from .perplexity import d_to_p_perp_bisect
from .weights import exp_weight


@dataclass
class InputData:
    """Input distances plus whatever probability data has been built from them."""
    dm: np.ndarray
    xm: Optional[np.ndarray] = None
    pm: Optional[np.ndarray] = None
    prob_type: Optional[str] = None
    beta: Optional[np.ndarray] = None
    dims: Optional[np.ndarray] = None
    d_hat: Optional[float] = None
    perplexity: Optional[float] = None
    dirty: bool = False
    n_builds: int = 0

    @property
    def n(self):
        return self.dm.shape[0]

    @classmethod
    def from_coords(cls, xm, metric="euclidean"):
        xm = np.asarray(xm, dtype=float)
        return cls(dm=coords_to_dist(xm, metric=metric), xm=xm)

    @classmethod
    def from_distances(cls, dm):
        return cls(dm=as_distance_matrix(dm))


# ============================================================
# PRECISION-TRANSFER POLICIES  (input-update callbacks)
# ============================================================

def transfer_precisions(inp, out, method):
    """NeRV: the output kernel reuses each point's input precision."""
    return {"method": {"kernel_beta": np.array(inp.beta, dtype=float)}}


def scale_precisions(inp, out, method):
    """
    Multiscale: one output precision for the current scale.

    Mean input precision, corrected for the gap between the intrinsic
    dimensionality of the input and the output dimensionality.
    """
    n_components = out.ym.shape[1] if out is not None else 2
    d_hat = inp.d_hat if inp.d_hat is not None else n_components
    return {"method": {"kernel_beta": float(np.mean(inp.beta)) * d_hat / n_components}}


# ============================================================
# BUILDERS
# ============================================================

def inp_updated(inp, out, method, opt=None):
    """
    Finish a rebuild: normalize, replay callbacks, invalidate caches.

    Only does anything if inp.dirty is set.
    """
    if not inp.dirty:
        return False
    inp.pm = handle_prob(inp.pm, method.prob_type)
    inp.prob_type = method.prob_type
    method.registry.replay(inp, out, method)
    if out is not None:
        out.dirty = True
        method.update_out(inp, out)
    if opt is not None:
        opt.invalidate_caches()
    inp.dirty = False
    inp.n_builds += 1
    return True


class ProbabilityBuilder:
    """
    Input probabilities from a single target perplexity.

    Parameters:
    -----------
    perplexity : float
        Target effective number of neighbors.
    weight_fn : callable
        Input kernel fn(d2, beta). Must get tighter as beta grows.
    tol : float
        Entropy tolerance of the search (bits).
    max_iters : int
        Bisection bound per row.
    modify_kernel_fn : callable or None
        fn(inp, out, method) → new value for method.kernel_beta, re-run on
        every rebuild.
    init_only : bool
        Build at iteration 0 only. If False, rebuild on every call.
    verbose : bool
        Print search summaries.
    """

    def __init__(self, perplexity=30.0, weight_fn=exp_weight, tol=1e-5,
                 max_iters=50, modify_kernel_fn=None, init_only=True,
                 verbose=False):
        self.perplexity = perplexity
        self.weight_fn = weight_fn
        self.tol = tol
        self.max_iters = max_iters
        self.modify_kernel_fn = modify_kernel_fn
        self.init_only = init_only
        self.verbose = verbose

    def modify_kernel(self, inp, out, method):
        return {"method": {"kernel_beta": self.modify_kernel_fn(inp, out, method)}}

    def callbacks(self):
        """Input-update callbacks this builder needs on every method it feeds."""
        return [self.modify_kernel] if self.modify_kernel_fn is not None else []

    def register(self, method):
        """Attach this builder's callbacks to the method, once per method."""
        for fn in self.callbacks():
            if fn not in method.registry:
                method.on_inp_updated(fn)

    def should_build(self, iteration):
        return not self.init_only or iteration == 0

    def build(self, inp, perplexity):
        if self.verbose:
            print(f"   Parameter search for perplexity = {perplexity:g}")
        return d_to_p_perp_bisect(inp.dm, perplexity=perplexity,
                                  weight_fn=self.weight_fn, tol=self.tol,
                                  max_iters=self.max_iters, verbose=self.verbose)

    def __call__(self, inp, out, method, opt=None, iteration=0):
        """Build (if scheduled) and finish the rebuild. Returns True if P changed."""
        if not self.should_build(iteration):
            return False
        self.register(method)
        result = self.build(inp, self.perplexity)
        inp.pm = result.pm
        inp.beta = result.beta
        inp.dims = result.dims
        inp.d_hat = float(np.nanmedian(result.dims))
        inp.perplexity = self.perplexity
        inp.dirty = True
        return inp_updated(inp, out, method, opt)


class MultiscaleProbabilityBuilder(ProbabilityBuilder):
    """
    Multiscale input probabilities.

    Scale k (perplexity perplexities[k]) is added at iteration
    k * scale_iters; P is the mean of the row probabilities of every scale
    added so far.

    Parameters:
    -----------
    perplexities : sequence of float or None
        Defaults to powers of two from n/4 down to 2.
    scale_iters : int
        Iterations between scales.
    precision_policy : callable or None
        Input-update callback setting the output precision for each scale.
    """

    def __init__(self, perplexities=None, scale_iters=100, weight_fn=exp_weight,
                 tol=1e-5, max_iters=50, precision_policy=scale_precisions,
                 modify_kernel_fn=None, verbose=False):
        super().__init__(perplexity=None, weight_fn=weight_fn, tol=tol,
                         max_iters=max_iters, modify_kernel_fn=modify_kernel_fn,
                         init_only=False, verbose=verbose)
        self.precision_policy = precision_policy
        self.default_scales = perplexities is None
        self.perplexities = None if perplexities is None else sorted(perplexities, reverse=True)
        self.scale_iters = scale_iters
        self.row_pms: List[np.ndarray] = []

    def callbacks(self):
        policy = [self.precision_policy] if self.precision_policy is not None else []
        return policy + super().callbacks()

    @staticmethod
    def default_perplexities(n):
        max_exp = int(np.floor(np.log2(n / 4.0)))
        return [2.0 ** k for k in range(max(max_exp, 1), 0, -1)]

    def should_build(self, iteration):
        if iteration % self.scale_iters != 0:
            return False
        return iteration // self.scale_iters < len(self.perplexities)

    def __call__(self, inp, out, method, opt=None, iteration=0):
        if iteration == 0:
            self.row_pms = []
            if self.default_scales:
                self.perplexities = self.default_perplexities(inp.n)
        if not self.should_build(iteration):
            return False
        self.register(method)
        perplexity = self.perplexities[iteration // self.scale_iters]
        result = self.build(inp, perplexity)
        self.row_pms.append(result.pm)
        inp.pm = np.mean(self.row_pms, axis=0)
        inp.beta = result.beta
        inp.dims = result.dims
        inp.d_hat = float(np.nanmedian(result.dims))
        inp.perplexity = perplexity
        inp.dirty = True
        return inp_updated(inp, out, method, opt)


class DistanceInput:
    """Distance-based methods need no probabilities: nothing is built."""

    def __call__(self, inp, out, method, opt=None, iteration=0):
        return False
