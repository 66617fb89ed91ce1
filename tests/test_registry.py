from types import SimpleNamespace

import pytest

from snembed.exceptions import ConfigurationError
from snembed.registry import UpdateRegistry


def contexts():
    return (SimpleNamespace(beta=1.0), SimpleNamespace(scale=1.0),
            SimpleNamespace(kernel_beta=1.0))


def test_callbacks_run_in_registration_order():
    calls = []
    registry = UpdateRegistry()
    registry.register(lambda inp, out, method: calls.append("first"))
    registry.register(lambda inp, out, method: calls.append("second"))
    registry.replay(*contexts())
    assert calls == ["first", "second"]


def test_last_write_wins():
    registry = UpdateRegistry()
    registry.register(lambda inp, out, method: {"method": {"kernel_beta": 2.0}})
    registry.register(lambda inp, out, method: {"method": {"kernel_beta": 3.0}})
    inp, out, method = contexts()
    merged = registry.replay(inp, out, method)
    assert method.kernel_beta == 3.0
    assert merged["method"] == {"kernel_beta": 3.0}


def test_later_callbacks_see_earlier_patches():
    registry = UpdateRegistry()
    registry.register(lambda inp, out, method: {"inp": {"beta": 4.0}})
    registry.register(lambda inp, out, method: {"method": {"kernel_beta": inp.beta / 2}})
    inp, out, method = contexts()
    registry.replay(inp, out, method)
    assert inp.beta == 4.0
    assert method.kernel_beta == 2.0


def test_replay_is_repeatable():
    registry = UpdateRegistry()
    registry.register(lambda inp, out, method: {"method": {"kernel_beta": inp.beta * 3}})
    inp, out, method = contexts()
    first = registry.replay(inp, out, method)
    second = registry.replay(inp, out, method)
    assert first == second
    assert method.kernel_beta == 3.0
    assert len(registry) == 1


def test_none_is_ignored():
    registry = UpdateRegistry().register(None)
    assert len(registry) == 0


def test_non_callable_rejected():
    with pytest.raises(ConfigurationError):
        UpdateRegistry().register("kernel_beta")


def test_unknown_patch_target():
    registry = UpdateRegistry()
    registry.register(lambda inp, out, method: {"optimizer": {"step": 1.0}})
    with pytest.raises(ConfigurationError):
        registry.replay(*contexts())
