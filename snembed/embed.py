"""
THE CONTROL LOOP

    setup       distances, method + optimizer checks, initial layout,
                first probability build                (errors raised HERE)
    iterate     rebuild P if scheduled → one optimizer step → report
    finish      EmbeddingResult

NeighborEmbedding wraps it all in the familiar fit_transform interface.
"""

from dataclasses import dataclass
from typing import Any, List, Optional

import numpy as np

from .exceptions import ConfigurationError
from .inputs import (DistanceInput, InputData, MultiscaleProbabilityBuilder,
                     ProbabilityBuilder, scale_precisions)
from .methods import EmbeddingMethod, get_method, tsne
from .optimizer import Optimizer, bold_nag_opt, tsne_opt
from .weights import exp_weight


@dataclass
class EmbeddingResult:
    """Final coordinates and what it took to get there."""
    ym: np.ndarray
    costs: List[float]
    cost_iters: List[int]
    n_accepted: int
    n_rejected: int
    inp: InputData
    method: EmbeddingMethod
    out: Any = None
    stopped_early: bool = False


# ============================================================
# INITIALIZATION
# ============================================================

def pca_init(xm, n_components, scale=1e-4):
    """Top principal components, scaled so the first has standard deviation `scale`."""
    X = np.asarray(xm, dtype=float)
    X = X - X.mean(axis=0)
    U, S, Vt = np.linalg.svd(X, full_matrices=False)
    return _scale_first_sd(X @ Vt[:n_components].T, scale)


def mds_init(dm, n_components, scale=1e-4):
    """Classical MDS: eigendecomposition of the double-centered squared distances."""
    d2m = np.asarray(dm, dtype=float) ** 2
    n = d2m.shape[0]
    centering = np.eye(n) - np.ones((n, n)) / n
    B = -0.5 * centering @ d2m @ centering
    eigenvalues, eigenvectors = np.linalg.eigh(B)
    order = np.argsort(eigenvalues)[::-1][:n_components]
    ym = eigenvectors[:, order] * np.sqrt(np.maximum(eigenvalues[order], 0))
    return _scale_first_sd(ym, scale)


def _scale_first_sd(ym, scale):
    sd = np.std(ym[:, 0])
    if sd > 0:
        ym = ym * (scale / sd)
    return ym


def random_init(n, n_components, scale=1e-4):
    return np.random.randn(n, n_components) * scale


def initial_layout(inp, n_components, init="random"):
    if init == "random":
        return random_init(inp.n, n_components)
    if init == "pca":
        if inp.xm is not None:
            return pca_init(inp.xm, n_components)
        return mds_init(inp.dm, n_components)
    raise ConfigurationError(f"Unknown init: {init}. Choose 'random' or 'pca'")


# ============================================================
# EMBED
# ============================================================

def embed(xm=None, dm=None, method=None, init_inp=None, opt=None, n_iter=1000,
          ym=None, n_components=2, init="random", metric="euclidean",
          report_every=100, reltol=None, random_state=None, callback=None,
          verbose=False):
    """
    Embed data with a neighbor-embedding or distance-based method.

    Parameters:
    -----------
    xm : ndarray (n, p) or None
        Input coordinates. Either xm or dm is required.
    dm : ndarray (n, n) or None
        Input distances. Takes precedence over xm.
    method : EmbeddingMethod or None
        What to optimize (default: t-SNE).
    init_inp : callable or None
        Input probability builder (default: ProbabilityBuilder for
        probability-based methods, DistanceInput otherwise).
    opt : Optimizer or None
        How to optimize (default: Nesterov + bold driver).
    n_iter : int
        Number of optimizer steps.
    ym : ndarray (n, n_components) or None
        Initial coordinates, overriding init.
    init : str
        'random' (small Gaussian) or 'pca' (scaled PCA, or classical MDS when
        only distances are given).
    report_every : int
        Record (and print, if verbose) the cost this often.
    reltol : float or None
        Stop when the relative cost change between two reports drops below
        this.
    random_state : int or None
        Seed for the random initialization.
    callback : callable or None
        fn(iteration, out) after every step.

    Returns:
    --------
    EmbeddingResult
    """
    # ---------------- setup ----------------
    if dm is not None:
        inp = InputData.from_distances(dm)
    elif xm is not None:
        inp = InputData.from_coords(xm, metric=metric)
    else:
        raise ConfigurationError("Either input coordinates (xm) or distances (dm) are required")

    if method is None:
        method = tsne()
    method.check()

    if init_inp is None:
        init_inp = ProbabilityBuilder() if method.is_probability_based else DistanceInput()
    if not callable(init_inp):
        raise ConfigurationError(f"init_inp must be callable, got {init_inp!r}")

    if opt is None:
        opt = bold_nag_opt()
    opt.check()

    if report_every < 1:
        raise ConfigurationError(f"report_every must be positive, got {report_every}")

    if random_state is not None:
        np.random.seed(random_state)
    if ym is None:
        ym = initial_layout(inp, n_components, init=init)
    ym = np.array(ym, dtype=float)
    if ym.ndim != 2 or ym.shape[0] != inp.n:
        raise ConfigurationError(f"Initial coordinates shape {ym.shape} does not match "
                                 f"{inp.n} points")

    out = method.set_solution(inp, ym)
    opt.init(inp, out, method)

    init_inp(inp, out, method, opt, iteration=0)
    if method.is_probability_based and inp.pm is None:
        raise ConfigurationError(f"{method.name} needs input probabilities, but "
                                 f"{init_inp!r} built none")

    if verbose:
        print(f"   Embedding {inp.n} points with {method.name} ({n_iter} iterations)")

    # ---------------- iterate ----------------
    costs, cost_iters = [], []
    stopped_early = False

    for iteration in range(n_iter):
        if iteration > 0:
            init_inp(inp, out, method, opt, iteration=iteration)

        out, ok = opt.step(inp, out, method)

        if callback is not None:
            callback(iteration, out)

        if (iteration + 1) % report_every == 0 or iteration == n_iter - 1:
            cost = float(opt.current_cost(inp, out, method))
            costs.append(cost)
            cost_iters.append(iteration + 1)
            if verbose:
                print(f"   Iteration {iteration+1}/{n_iter}, cost={cost:.4f}")

            if reltol is not None and len(costs) > 1:
                rel = abs(costs[-2] - cost) / max(abs(costs[-2]), np.finfo(float).eps)
                if rel < reltol:
                    stopped_early = True
                    if verbose:
                        print(f"   Relative tolerance reached ({rel:.3g} < {reltol:g})")
                    break

    if verbose:
        print(f"   Accepted {opt.n_accepted} steps, rejected {opt.n_rejected}")

    return EmbeddingResult(ym=out.ym, costs=costs, cost_iters=cost_iters,
                           n_accepted=opt.n_accepted, n_rejected=opt.n_rejected,
                           inp=inp, method=method, out=out,
                           stopped_early=stopped_early)


# ============================================================
# ESTIMATOR
# ============================================================

class NeighborEmbedding:
    """
    Neighbor embedding with a fit_transform interface.

    Parameters:
    -----------
    n_components : int
        Dimension of the embedding.
    perplexity : float
        Effective number of neighbors. Ignored by distance-based methods and
        by multiscale builds.
    method : str or EmbeddingMethod
        One of snembed.methods.METHODS, or a ready-made method.
    n_iter : int
        Number of optimization iterations.
    optimizer : str or Optimizer
        'bold_nag' (Nesterov + bold driver) or 'tsne' (gains + switched
        momentum), or a ready-made Optimizer.
    learning_rate : float
        Only used by the 'tsne' optimizer.
    multiscale : bool
        Average probabilities over a decreasing series of perplexities.
    init : str
        'random' or 'pca'.
    metric : str
        Input distance metric (any scipy.spatial.distance metric).
    report_every : int
        Cost recording interval.
    random_state : int or None
        Random seed.
    verbose : bool
        Print progress.
    """

    def __init__(self, n_components=2, perplexity=30.0, method="tsne", n_iter=1000,
                 optimizer="bold_nag", learning_rate=200.0, multiscale=False,
                 init="random", metric="euclidean", report_every=50,
                 random_state=None, verbose=False):
        self.n_components = n_components
        self.perplexity = perplexity
        self.method = method
        self.n_iter = n_iter
        self.optimizer = optimizer
        self.learning_rate = learning_rate
        self.multiscale = multiscale
        self.init = init
        self.metric = metric
        self.report_every = report_every
        self.random_state = random_state
        self.verbose = verbose

        # Diagnostics
        self.cost_ = None
        self.cost_history_ = []
        self.embedding_history_ = []
        self.n_rejected_ = None
        self.result_: Optional[EmbeddingResult] = None

    def _make_method(self):
        if isinstance(self.method, str):
            return get_method(self.method)
        return self.method

    def _make_optimizer(self):
        if isinstance(self.optimizer, Optimizer):
            return self.optimizer
        if self.optimizer == "bold_nag":
            return bold_nag_opt()
        if self.optimizer == "tsne":
            return tsne_opt(learning_rate=self.learning_rate)
        raise ConfigurationError(f"Unknown optimizer: {self.optimizer}. "
                                 f"Choose 'bold_nag' or 'tsne'")

    def _make_builder(self, method):
        if not method.is_probability_based:
            return DistanceInput()
        if self.multiscale:
            # Per-scale output precisions only make sense for a Gaussian output
            # kernel the method doesn't already manage itself
            policy = None
            if method.weight_fn is exp_weight and len(method.registry) == 0:
                policy = scale_precisions
            return MultiscaleProbabilityBuilder(scale_iters=max(self.n_iter // 10, 1),
                                                precision_policy=policy,
                                                verbose=self.verbose)
        return ProbabilityBuilder(perplexity=self.perplexity, verbose=self.verbose)

    def fit_transform(self, X):
        """
        Compute the embedding.

        Args:
            X: Data, shape (n_samples, n_features)

        Returns:
            Y: Embedding, shape (n_samples, n_components)
        """
        X = np.asarray(X, dtype=float)
        n = X.shape[0]
        method = self._make_method()

        if method.is_probability_based and not self.multiscale and self.perplexity >= n:
            raise ConfigurationError(f"Perplexity ({self.perplexity}) must be less than "
                                     f"n_samples ({n}). Try perplexity <= {n // 3} "
                                     f"for best results.")

        self.embedding_history_ = []

        def record(iteration, out):
            if (iteration + 1) % self.report_every == 0:
                self.embedding_history_.append(out.ym.copy())

        result = embed(xm=X, method=method, init_inp=self._make_builder(method),
                       opt=self._make_optimizer(), n_iter=self.n_iter,
                       n_components=self.n_components, init=self.init,
                       metric=self.metric, report_every=self.report_every,
                       random_state=self.random_state, callback=record,
                       verbose=self.verbose)

        self.result_ = result
        self.cost_history_ = list(result.costs)
        self.cost_ = result.costs[-1] if result.costs else None
        self.n_rejected_ = result.n_rejected
        return result.ym
