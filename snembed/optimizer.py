"""
OPTIMIZER — one step = gradient, direction, step size, update, verdict

===============================================================
THE PIPELINE
===============================================================

    1. gradient     g  at the position chosen by the gradient strategy
    2. direction    p  (steepest descent: p = -g)
    3. step size    η  (scalar or per-coordinate)
    4. update       Δ = η ⊙ p  (+ μ × previous Δ with momentum)
    5. propose      y' = y + Δ
    6. validate     EVERY strategy votes; all votes are collected
    7. commit       all True  → y'   (accepted)
                    any False → y    (rejected, the pre-step snapshot)
    8. after_step   every strategy sees the single final verdict

Rejection is normal control flow, not an error: the bold driver REJECTS
uphill steps on purpose and retries with a smaller step.

===============================================================
HISTORY ONLY FROM ACCEPTED STEPS
===============================================================

    momentum      restarts (previous update zeroed) after a REJECTED step
    gains         keep their last ACCEPTED values
    step size     bold driver shrinks on reject, grows on accept

A rejected proposal never leaks into the next step.

===============================================================
CACHES
===============================================================

    gradient_cache_valid   stiffness + gradient at the current solution
    cost_cache_valid       cost at the current solution

Both are cleared by invalidate_caches() (the input probabilities were
rebuilt) and refreshed by an accepted step.

===============================================================
"""

import numpy as np

from .exceptions import ConfigurationError
from .gradient import ClassicalGradient, NesterovGradient
from .strategy import OptimizerStrategy


# ============================================================
# DIRECTION
# ============================================================

class SteepestDescent(OptimizerStrategy):
    """p = -g"""

    def calculate(self, opt, inp, out, method, iteration):
        self.value = -opt.gm
        return self.value


# ============================================================
# STEP SIZE
# ============================================================

class ConstantStepSize(OptimizerStrategy):
    """Fixed learning rate."""

    def __init__(self, step=1.0):
        self.step = step

    def calculate(self, opt, inp, out, method, iteration):
        self.value = self.step
        return self.value


class BoldDriver(OptimizerStrategy):
    """
    Bold driver (Battiti, 1989).

    Accept only steps that don't increase the cost; grow the step after an
    accepted one, shrink it after a rejected one.

    Parameters:
    -----------
    initial : float
        Starting step size.
    inc_mult : float
        Growth factor after an accepted step.
    dec_mult : float
        Shrink factor after a rejected step.
    min_step, max_step : float
        Clipping range.
    """

    def __init__(self, initial=1.0, inc_mult=1.1, dec_mult=0.5,
                 min_step=np.sqrt(np.finfo(float).eps), max_step=np.inf):
        self.initial = initial
        self.inc_mult = inc_mult
        self.dec_mult = dec_mult
        self.min_step = min_step
        self.max_step = max_step
        self.validator = CostDecreaseValidator()
        self.value = initial

    def init(self, opt, inp, out, method):
        self.value = self.initial

    def calculate(self, opt, inp, out, method, iteration):
        return self.value

    def validate(self, opt, inp, out, proposed, method):
        return self.validator.validate(opt, inp, out, proposed, method)

    def after_step(self, opt, inp, out, new_out, ok, iteration):
        mult = self.inc_mult if ok else self.dec_mult
        self.value = float(np.clip(self.value * mult, self.min_step, self.max_step))


class JacobsStepSize(OptimizerStrategy):
    """
    Delta-bar-delta (Jacobs, 1988): one adaptive gain per coordinate.

        gradient and previous update disagree in sign → gain + inc
        (still heading downhill, speed up)
        they agree → gain × dec
        (we overshot, slow down)

    Step size = learning_rate × gains. The new gains are proposed in
    calculate and committed only if the step is accepted.
    """

    def __init__(self, learning_rate=200.0, inc=0.2, dec_mult=0.8, min_gain=0.01):
        self.learning_rate = learning_rate
        self.inc = inc
        self.dec_mult = dec_mult
        self.min_gain = min_gain
        self.gains = None
        self._proposed = None

    def init(self, opt, inp, out, method):
        self.gains = np.ones_like(out.ym)
        self._proposed = None

    def calculate(self, opt, inp, out, method, iteration):
        prev = getattr(opt.update, "previous", None)
        if prev is None:
            prev = np.zeros_like(opt.gm)
        inc = (opt.gm > 0) != (prev > 0)
        gains = np.where(inc, self.gains + self.inc, self.gains * self.dec_mult)
        self._proposed = np.maximum(gains, self.min_gain)
        self.value = self.learning_rate * self._proposed
        return self.value

    def after_step(self, opt, inp, out, new_out, ok, iteration):
        if ok and self._proposed is not None:
            self.gains = self._proposed
        self._proposed = None


# ============================================================
# MOMENTUM SCHEDULES
# ============================================================

class ConstantMomentum:
    def __init__(self, momentum=0.9):
        self.momentum = momentum

    def get_momentum(self, iteration):
        return self.momentum


class SwitchMomentum:
    """
    t-SNE's schedule: a gentle momentum while the layout forms, a larger
    one after switch_iter.
    """

    def __init__(self, init=0.5, final=0.8, switch_iter=250):
        self.init = init
        self.final = final
        self.switch_iter = switch_iter

    def get_momentum(self, iteration):
        if iteration < self.switch_iter:
            return self.init
        return self.final


class LinearMomentum:
    """Linear ramp from init to final over max_iter iterations, then flat."""

    def __init__(self, init=0.0, final=0.9, max_iter=1000):
        self.init = init
        self.final = final
        self.max_iter = max_iter

    def get_momentum(self, iteration):
        frac = min(iteration / max(self.max_iter, 1), 1.0)
        return self.init + frac * (self.final - self.init)


class NesterovMomentum:
    """
    μ_t = 1 - 3 / (t + 5), capped at max_momentum.

    The schedule for non-strongly-convex problems (Sutskever et al., 2013).
    """

    def __init__(self, max_momentum=0.99):
        self.max_momentum = max_momentum

    def get_momentum(self, iteration):
        return min(1 - 3.0 / (iteration + 5), self.max_momentum)


# ============================================================
# UPDATE
# ============================================================

class PlainUpdate(OptimizerStrategy):
    """Δ = η ⊙ p"""

    def __init__(self):
        self.previous = None

    def init(self, opt, inp, out, method):
        self.previous = np.zeros_like(out.ym)

    def calculate(self, opt, inp, out, method, iteration):
        self.value = opt.step_size.value * opt.direction.value
        return self.value

    def after_step(self, opt, inp, out, new_out, ok, iteration):
        if ok:
            self.previous = self.value


class MomentumUpdate(PlainUpdate):
    """
    Δ = η ⊙ p + μ(t) × previous Δ

    previous Δ is the last ACCEPTED update. A rejected step restarts the
    momentum: previous Δ is zeroed, so the retry is a plain gradient step
    from the last accepted position.
    """

    def __init__(self, schedule=None):
        super().__init__()
        self.schedule = schedule if schedule is not None else SwitchMomentum()

    def momentum_term(self, opt, iteration):
        if self.previous is None:
            return 0
        return self.schedule.get_momentum(iteration) * self.previous

    def calculate(self, opt, inp, out, method, iteration):
        self.value = (opt.step_size.value * opt.direction.value +
                      self.momentum_term(opt, iteration))
        return self.value

    def after_step(self, opt, inp, out, new_out, ok, iteration):
        if ok:
            self.previous = self.value
        elif self.previous is not None:
            self.previous = np.zeros_like(self.previous)


# ============================================================
# VALIDATORS
# ============================================================

class CostDecreaseValidator(OptimizerStrategy):
    """Reject any step that increases the cost."""

    def calculate(self, opt, inp, out, method, iteration):
        return None

    def validate(self, opt, inp, out, proposed, method):
        return opt.proposed_cost(inp, proposed, method) <= opt.current_cost(inp, out, method)


# ============================================================
# THE OPTIMIZER
# ============================================================

class Optimizer:
    """
    Gradient-based optimizer assembled from four strategies.

    Parameters:
    -----------
    gradient : strategy
        Where (and whether) to recompute the gradient.
    direction : strategy
        Search direction from the gradient.
    step_size : strategy
        Scalar or per-coordinate step size.
    update : strategy
        Combines direction and step size (and momentum) into the update.
    validators : sequence of strategies
        Extra votes on every proposed step.
    """

    def __init__(self, gradient, direction, step_size, update, validators=()):
        self.gradient = gradient
        self.direction = direction
        self.step_size = step_size
        self.update = update
        self.validators = list(validators)

        self.km = None
        self.gm = None
        self.gradient_cache_valid = False
        self.cost = None
        self.cost_cache_valid = False
        self._cost_out = None
        self._proposed = None

        self.n_accepted = 0
        self.n_rejected = 0
        self.iteration = 0
        self._initialized = False

    @property
    def strategies(self):
        return [self.gradient, self.direction, self.step_size, self.update] + self.validators

    def check(self):
        for strategy in self.strategies:
            if not callable(getattr(strategy, "calculate", None)):
                raise ConfigurationError(f"{strategy!r} is not an optimizer strategy")
        if not callable(getattr(self.update, "momentum_term", None)):
            raise ConfigurationError(f"Update strategy {self.update!r} has no momentum_term")

    # ------------------------------------------------------------
    # caches
    # ------------------------------------------------------------

    def store_gradient(self, km, gm, valid=True):
        self.km = km
        self.gm = gm
        self.gradient_cache_valid = valid

    def invalidate_caches(self):
        self.gradient_cache_valid = False
        self.cost_cache_valid = False
        self._proposed = None

    def current_cost(self, inp, out, method):
        """Cost at out, cached until the solution or the input changes."""
        if not (self.cost_cache_valid and self._cost_out is out):
            self.cost = method.cost(inp, out)
            self._cost_out = out
            self.cost_cache_valid = True
        return self.cost

    def proposed_cost(self, inp, proposed, method):
        """Cost at a proposed solution, computed once however many validators ask."""
        if self._proposed is None or self._proposed[0] is not proposed:
            self._proposed = (proposed, method.cost(inp, proposed))
        return self._proposed[1]

    # ------------------------------------------------------------
    # iteration
    # ------------------------------------------------------------

    def init(self, inp, out, method):
        self.check()
        for strategy in self.strategies:
            strategy.init(self, inp, out, method)
        self.invalidate_caches()
        self._initialized = True

    def step(self, inp, out, method):
        """
        One optimization step.

        Returns:
            (new_out, ok): the accepted proposal, or the unchanged pre-step
            output if any strategy rejected it
        """
        if not self._initialized:
            self.init(inp, out, method)
        iteration = self.iteration

        # Snapshot. Proposals are new objects, so out itself is the rollback state
        snapshot = out
        ym_before = out.ym.copy()

        self.gradient.calculate(self, inp, out, method, iteration)
        self.direction.calculate(self, inp, out, method, iteration)
        self.step_size.calculate(self, inp, out, method, iteration)
        self.update.calculate(self, inp, out, method, iteration)
        for validator in self.validators:
            validator.calculate(self, inp, out, method, iteration)

        proposed = method.set_solution(inp, out.ym + self.update.value)

        verdicts = [np.all(np.isfinite(proposed.ym))]
        verdicts += [bool(s.validate(self, inp, out, proposed, method))
                     for s in self.strategies]
        ok = all(verdicts)

        if ok:
            new_out = proposed
            self.n_accepted += 1
            self.gradient_cache_valid = False
            if self._proposed is not None and self._proposed[0] is proposed:
                self.cost = self._proposed[1]
                self._cost_out = proposed
                self.cost_cache_valid = True
        else:
            new_out = snapshot
            new_out.ym[...] = ym_before
            self.n_rejected += 1
        self._proposed = None

        for strategy in self.strategies:
            strategy.after_step(self, inp, out, new_out, ok, iteration)

        self.iteration += 1
        return new_out, ok


# ============================================================
# FACTORIES
# ============================================================

def make_opt(gradient=None, direction=None, step_size=None, update=None,
             validators=()):
    """
    Assemble an optimizer. Defaults: classical gradient, steepest descent,
    bold driver, no momentum.
    """
    return Optimizer(
        gradient=gradient if gradient is not None else ClassicalGradient(),
        direction=direction if direction is not None else SteepestDescent(),
        step_size=step_size if step_size is not None else BoldDriver(),
        update=update if update is not None else PlainUpdate(),
        validators=validators,
    )


def tsne_opt(learning_rate=200.0, momentum_init=0.5, momentum_final=0.8,
             switch_iter=250):
    """The t-SNE recipe: delta-bar-delta gains plus switched momentum."""
    return make_opt(
        step_size=JacobsStepSize(learning_rate=learning_rate),
        update=MomentumUpdate(SwitchMomentum(init=momentum_init, final=momentum_final,
                                             switch_iter=switch_iter)),
    )


def bold_nag_opt(initial_step=1.0, max_momentum=0.99):
    """Nesterov accelerated gradient with a bold-driver step size."""
    return make_opt(
        gradient=NesterovGradient(),
        step_size=BoldDriver(initial=initial_step),
        update=MomentumUpdate(NesterovMomentum(max_momentum=max_momentum)),
    )
