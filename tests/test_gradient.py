import numpy as np
import pytest

from snembed import costs
from snembed.exceptions import ConfigurationError
from snembed.gradient import gradient, gradient_fd, stiffness_to_gradient
from snembed.inputs import InputData, ProbabilityBuilder
from snembed.methods import METHODS, get_method
from snembed.weights import exp_weight, heavy_tail_weight, tdist_weight


def make_problem(name, n, rng):
    inp = InputData.from_coords(rng.normal(size=(n, 3)))
    method = get_method(name)
    out = method.set_solution(inp, rng.normal(size=(n, 2)) * 0.5)
    if method.is_probability_based:
        ProbabilityBuilder(perplexity=min(3.0, n - 1.5))(inp, out, method)
    return inp, out, method


@pytest.mark.parametrize("name", sorted(METHODS))
@pytest.mark.parametrize("n", [4, 7, 10])
def test_analytic_gradient_matches_finite_differences(name, n):
    rng = np.random.default_rng(n)
    inp, out, method = make_problem(name, n, rng)
    km, gm = gradient(inp, out, method)
    assert gm.shape == out.ym.shape
    assert np.allclose(km, km.T)
    np.testing.assert_allclose(gm, gradient_fd(inp, out, method), atol=1e-4)


def test_hssne_alpha_limits():
    rng = np.random.default_rng(0)
    d2 = rng.uniform(0, 4, size=(5, 5))
    assert np.allclose(heavy_tail_weight(d2, alpha=1.0), tdist_weight(d2))
    assert np.allclose(heavy_tail_weight(d2, alpha=1e-8), exp_weight(d2), atol=1e-6)


def test_stiffness_shape_must_match():
    with pytest.raises(ConfigurationError):
        stiffness_to_gradient(np.zeros((4, 2)), np.zeros((3, 3)))


def test_gradient_is_translation_free(rng):
    # Forces are pairwise: they sum to zero for a symmetric stiffness matrix
    inp, out, method = make_problem("tsne", 8, rng)
    _, gm = gradient(inp, out, method)
    assert np.allclose(gm.sum(axis=0), 0, atol=1e-10)


def test_zero_stress_at_the_input_configuration(rng):
    X = rng.normal(size=(6, 2))
    inp = InputData.from_coords(X)
    method = get_method("mmds")
    out = method.set_solution(inp, X)
    assert costs.metric_stress_cost(inp, out, method) < 1e-20
    _, gm = gradient(inp, out, method)
    assert np.allclose(gm, 0, atol=1e-8)


def test_stress_variants(toy_distances):
    dym = toy_distances * 1.1
    stress = costs.metric_stress(toy_distances, dym)
    assert stress > 0
    assert np.isclose(costs.rms_metric_stress(toy_distances, dym), np.sqrt(stress / 10))
    assert np.isclose(costs.mean_relative_error(toy_distances, dym), 0.1)
    assert np.isclose(costs.kruskal_stress(toy_distances, dym), 0.1 / 1.1)
    assert 0 < costs.normalized_stress(toy_distances, dym) < 0.02
    assert costs.sammon_stress(toy_distances, toy_distances) == 0
