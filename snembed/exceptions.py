"""
Errors and warnings raised by snembed.

Only bad configuration is fatal. Soft numerical failures (a perplexity
search that ran out of iterations) are reported once, in aggregate, as a
warning. Rejected optimization steps are not errors at all: they show up
in the optimizer's reject counter.
"""


class ConfigurationError(ValueError):
    """Raised before the first iteration when inputs or plug-ins don't fit together."""


class ConvergenceWarning(UserWarning):
    """Some rows of a perplexity calibration did not reach the target."""
