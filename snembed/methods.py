"""
EMBEDDING METHODS

A method bundles the plug-ins that define WHAT is optimized:

    output kernel    w(d², β)          how output distances become weights
    prob_type        "row" | "joint"   how weights become Q (None for MDS)
    cost             C(inp, out)       what is minimized
    stiffness        K(inp, out)       ∂C/∂d², symmetrized

The optimizer never looks inside these; it only calls them.

    Method   Input P   Output Q   Kernel            Cost
    ------   -------   --------   ---------------   -------------
    ASNE     row       row        exp(-β d²)        KL(P||Q)
    SSNE     joint     joint      exp(-β d²)        KL(P||Q)
    t-SNE    joint     joint      1/(1 + d²)        KL(P||Q)
    t-ASNE   row       row        1/(1 + d²)        KL(P||Q)
    HSSNE    joint     joint      heavy tail (α)    KL(P||Q)
    RASNE    row       row        exp(-β d²)        KL(Q||P)
    RSSNE    joint     joint      exp(-β d²)        KL(Q||P)
    NeRV     row       row        exp(-β_i d²)      λ KL(P||Q) + (1-λ) KL(Q||P)
    MMDS     -         -          -                 STRESS
    SMMDS    -         -          -                 SSTRESS
    Sammon   -         -          -                 Sammon stress
"""

import inspect
from dataclasses import dataclass, field
from functools import partial
from typing import Any, Callable, Dict, Optional

import numpy as np

from . import costs
from . import stiffness as stiff
from .exceptions import ConfigurationError
from .inputs import transfer_precisions
from .matrices import EPS, PROB_TYPES, squared_distances, weights_to_pjoint, weights_to_prow
from .registry import UpdateRegistry
from .weights import exp_weight, heavy_tail_weight, tdist_weight


# ============================================================
# CONTEXTS
# ============================================================

@dataclass
class OutputData:
    """
    The current solution and everything derived from it.

    Never modified in place by the optimizer: a step produces a new
    OutputData, so the previous one doubles as the rollback snapshot.
    """
    ym: np.ndarray
    d2m: Optional[np.ndarray] = None
    dm: Optional[np.ndarray] = None
    wm: Optional[np.ndarray] = None
    qm: Optional[np.ndarray] = None
    dirty: bool = False


@dataclass
class EmbeddingMethod:
    """Cost, kernel and stiffness plug-ins for one embedding method."""
    name: str
    cost_fn: Callable
    stiffness_fn: Callable
    weight_fn: Optional[Callable] = None
    prob_type: Optional[str] = None
    kernel_beta: Any = 1.0
    eps: float = EPS
    params: Dict[str, Any] = field(default_factory=dict)
    registry: UpdateRegistry = field(default_factory=UpdateRegistry)

    @property
    def is_probability_based(self):
        return self.prob_type is not None

    def on_inp_updated(self, fn):
        """Register a callback to run whenever the input probabilities change."""
        self.registry.register(fn)
        return self

    def check(self):
        """Fail fast on plug-ins that can't be called the way the optimizer calls them."""
        if self.prob_type is not None and self.prob_type not in PROB_TYPES:
            raise ConfigurationError(f"Unknown probability type: {self.prob_type}")
        _check_arity(self.cost_fn, 3, "cost_fn(inp, out, method)")
        _check_arity(self.stiffness_fn, 3, "stiffness_fn(method, inp, out)")
        if self.is_probability_based:
            if self.weight_fn is None:
                raise ConfigurationError(f"{self.name}: probability-based methods "
                                         f"need an output weight_fn")
            _check_arity(self.weight_fn, 2, "weight_fn(d2, beta)")

    def update_out(self, inp, out):
        """Recompute distances, weights and probabilities from out.ym."""
        out.d2m = squared_distances(out.ym)
        if self.is_probability_based:
            wm = np.asarray(self.weight_fn(out.d2m, _as_row_param(self.kernel_beta)),
                            dtype=float)
            np.fill_diagonal(wm, 0)
            out.wm = wm
            if self.prob_type == "row":
                out.qm = weights_to_prow(wm)
            else:
                out.qm = weights_to_pjoint(wm)
        else:
            out.dm = np.sqrt(out.d2m)
        out.dirty = False
        return out

    def set_solution(self, inp, ym):
        """A fresh OutputData at the coordinates ym."""
        return self.update_out(inp, OutputData(ym=np.array(ym, dtype=float)))

    def cost(self, inp, out):
        return self.cost_fn(inp, out, self)

    def stiffness(self, inp, out):
        return self.stiffness_fn(self, inp, out)


def _as_row_param(beta):
    beta = np.asarray(beta, dtype=float)
    if beta.ndim == 1:
        return beta[:, np.newaxis]
    return beta


def _check_arity(fn, n_args, signature):
    if not callable(fn):
        raise ConfigurationError(f"Expected a callable {signature}, got {fn!r}")
    try:
        params = inspect.signature(fn).parameters.values()
    except (TypeError, ValueError):
        return  # builtins without introspectable signatures
    positional = [p for p in params
                  if p.kind in (p.POSITIONAL_ONLY, p.POSITIONAL_OR_KEYWORD)]
    required = [p for p in positional if p.default is p.empty]
    variadic = any(p.kind == p.VAR_POSITIONAL for p in params)
    if len(required) > n_args or (len(positional) < n_args and not variadic):
        raise ConfigurationError(f"Expected a callable {signature}, got {fn!r}")


# ============================================================
# PROBABILITY-BASED METHODS
# ============================================================

def asne(beta=1.0):
    """Asymmetric SNE (Hinton & Roweis, 2002)."""
    return EmbeddingMethod(
        name="ASNE",
        cost_fn=costs.kl_cost,
        stiffness_fn=lambda method, inp, out: stiff.asne_stiffness(
            inp.pm, out.qm, beta=method.kernel_beta),
        weight_fn=exp_weight,
        prob_type="row",
        kernel_beta=beta,
    )


def ssne(beta=1.0):
    """Symmetric SNE (Cook et al., 2007)."""
    return EmbeddingMethod(
        name="SSNE",
        cost_fn=costs.kl_cost,
        stiffness_fn=lambda method, inp, out: stiff.ssne_stiffness(
            inp.pm, out.qm, beta=method.kernel_beta),
        weight_fn=exp_weight,
        prob_type="joint",
        kernel_beta=beta,
    )


def tsne():
    """t-distributed SNE (van der Maaten & Hinton, 2008)."""
    return EmbeddingMethod(
        name="t-SNE",
        cost_fn=costs.kl_cost,
        stiffness_fn=lambda method, inp, out: stiff.tsne_stiffness(
            inp.pm, out.qm, out.wm),
        weight_fn=tdist_weight,
        prob_type="joint",
    )


def tasne():
    """t-SNE kernel with ASNE's row normalization."""
    return EmbeddingMethod(
        name="t-ASNE",
        cost_fn=costs.kl_cost,
        stiffness_fn=lambda method, inp, out: stiff.tasne_stiffness(
            inp.pm, out.qm, out.wm),
        weight_fn=tdist_weight,
        prob_type="row",
    )


def hssne(alpha=0.5, beta=1.0):
    """
    Heavy-tailed SSNE (Yang et al., 2009).

    alpha → 0 behaves like SSNE, alpha = 1 like t-SNE.
    """
    return EmbeddingMethod(
        name="HSSNE",
        cost_fn=costs.kl_cost,
        stiffness_fn=lambda method, inp, out: stiff.hssne_stiffness(
            inp.pm, out.qm, out.wm, alpha=method.params["alpha"],
            beta=method.kernel_beta),
        weight_fn=partial(heavy_tail_weight, alpha=alpha),
        prob_type="joint",
        kernel_beta=beta,
        params={"alpha": alpha},
    )


def rasne(beta=1.0):
    """ASNE with the reverse KL divergence KL(Q||P)."""
    return EmbeddingMethod(
        name="RASNE",
        cost_fn=costs.reverse_kl_cost,
        stiffness_fn=lambda method, inp, out: stiff.reverse_asne_stiffness(
            inp.pm, out.qm, beta=method.kernel_beta, eps=method.eps),
        weight_fn=exp_weight,
        prob_type="row",
        kernel_beta=beta,
    )


def rssne(beta=1.0):
    """SSNE with the reverse KL divergence KL(Q||P)."""
    return EmbeddingMethod(
        name="RSSNE",
        cost_fn=costs.reverse_kl_cost,
        stiffness_fn=lambda method, inp, out: stiff.reverse_ssne_stiffness(
            inp.pm, out.qm, beta=method.kernel_beta, eps=method.eps),
        weight_fn=exp_weight,
        prob_type="joint",
        kernel_beta=beta,
    )


def _nerv_stiffness(method, inp, out):
    lambda_ = method.params["lambda_"]
    return (lambda_ * stiff.asne_stiffness(inp.pm, out.qm, beta=method.kernel_beta) +
            (1 - lambda_) * stiff.reverse_asne_stiffness(
                inp.pm, out.qm, beta=method.kernel_beta, eps=method.eps))


def nerv(lambda_=0.5):
    """
    Neighbor Retrieval Visualizer (Venna et al., 2010).

    Balances precision (reverse KL) against recall (forward KL). The output
    kernel uses the INPUT precisions, copied over every time the input
    probabilities are rebuilt.
    """
    method = EmbeddingMethod(
        name="NeRV",
        cost_fn=costs.nerv_cost,
        stiffness_fn=_nerv_stiffness,
        weight_fn=exp_weight,
        prob_type="row",
        params={"lambda_": lambda_},
    )
    return method.on_inp_updated(transfer_precisions)


# ============================================================
# DISTANCE-BASED METHODS
# ============================================================

def mmds():
    """Metric MDS by gradient descent on STRESS."""
    return EmbeddingMethod(
        name="MMDS",
        cost_fn=costs.metric_stress_cost,
        stiffness_fn=lambda method, inp, out: stiff.mmds_stiffness(
            inp.dm, out.dm, eps=method.eps),
    )


def smmds():
    """Metric MDS on squared distances (SSTRESS)."""
    return EmbeddingMethod(
        name="SMMDS",
        cost_fn=costs.metric_sstress_cost,
        stiffness_fn=lambda method, inp, out: stiff.smmds_stiffness(inp.dm, out.dm),
    )


def sammon_map():
    """Sammon mapping: STRESS weighted towards short input distances."""
    return EmbeddingMethod(
        name="Sammon",
        cost_fn=costs.sammon_stress_cost,
        stiffness_fn=lambda method, inp, out: stiff.sammon_stiffness(
            inp.dm, out.dm, eps=method.eps),
    )


METHODS = {
    "asne": asne,
    "ssne": ssne,
    "tsne": tsne,
    "tasne": tasne,
    "hssne": hssne,
    "rasne": rasne,
    "rssne": rssne,
    "nerv": nerv,
    "mmds": mmds,
    "smmds": smmds,
    "sammon": sammon_map,
}


def get_method(name, **kwargs):
    """Look up a method factory by name."""
    if name not in METHODS:
        raise ConfigurationError(f"Unknown method: {name}. "
                                 f"Choose from {sorted(METHODS)}")
    return METHODS[name](**kwargs)
