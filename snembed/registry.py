"""
INPUT-UPDATE REGISTRY

Callbacks that run every time the input probabilities are rebuilt.

Some output state depends on the input: NeRV copies the input precisions
into the output kernel, multiscale embeddings pick an output precision per
scale. Each such dependency registers ONE callback:

    fn(inp, out, method) → patch

A patch names the attributes to overwrite on each context object:

    {"method": {"kernel_beta": inp.beta}}

Callbacks replay in registration order and their patches are folded left
to right, so the LAST registered callback wins on any attribute two of
them touch. That is the whole conflict resolution rule: detecting which
callbacks interfere is not attempted, and running a callback whose result
is later overwritten is cheap next to an optimization run.
"""

from .exceptions import ConfigurationError

PATCH_TARGETS = ("inp", "out", "method")


class UpdateRegistry:
    """Ordered chain of input-update callbacks."""

    def __init__(self):
        self._callbacks = []

    def __len__(self):
        return len(self._callbacks)

    def __iter__(self):
        return iter(self._callbacks)

    def register(self, fn):
        """Append a callback. It will run after everything registered before it."""
        if fn is None:
            return self
        if not callable(fn):
            raise ConfigurationError("Input-update callbacks must be callable "
                                     "as fn(inp, out, method)")
        self._callbacks.append(fn)
        return self

    def collect(self, inp, out, method):
        """
        Run every callback and fold the patches into one.

        Each callback sees the contexts with all earlier patches already
        applied, the way a chain of in-place updates would.
        """
        merged = {target: {} for target in PATCH_TARGETS}
        contexts = {"inp": inp, "out": out, "method": method}
        for fn in self._callbacks:
            patch = fn(contexts["inp"], contexts["out"], contexts["method"])
            if not patch:
                continue
            for target, fields in patch.items():
                if target not in merged:
                    raise ConfigurationError(f"Unknown patch target: {target}")
                merged[target].update(fields)
                for name, value in fields.items():
                    setattr(contexts[target], name, value)
        return merged

    def replay(self, inp, out, method):
        """Apply every registered callback in order. Returns the merged patch."""
        return self.collect(inp, out, method)
