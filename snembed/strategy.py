"""
The shared lifecycle of the four optimizer roles.

    init        once, before iteration 0        allocate state
    calculate   every iteration                 produce self.value
    validate    after the step is proposed      vote on it (True = accept)
    after_step  after ALL votes are in          bookkeeping with the final verdict

Only calculate is mandatory.
"""


class OptimizerStrategy:
    """Base class for gradient, direction, step size and update strategies."""

    value = None

    def init(self, opt, inp, out, method):
        pass

    def calculate(self, opt, inp, out, method, iteration):
        raise NotImplementedError

    def validate(self, opt, inp, out, proposed, method):
        return True

    def after_step(self, opt, inp, out, new_out, ok, iteration):
        pass

    def momentum_term(self, opt, iteration):
        """Pending momentum contribution to the next update. Only updates have one."""
        return 0
