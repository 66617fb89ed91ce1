import warnings

import numpy as np
import pytest
from scipy.spatial.distance import pdist, squareform

from snembed.exceptions import ConfigurationError, ConvergenceWarning
from snembed.matrices import weights_to_prow
from snembed.perplexity import d_to_p_perp_bisect, find_beta, improve_guess, root_bisect
from snembed.weights import (exp_weight, perplexity_rows, prec_to_bandwidth,
                             shannon_entropy_rows, sqrt_exp_weight, tdist_weight)


def random_distances(rng, n=20, p=4):
    return squareform(pdist(rng.normal(size=(n, p))))


# ---------------------------------------------------------------------------
# Bisection mechanics
# ---------------------------------------------------------------------------

def test_improve_guess_doubles_with_infinite_upper_bound():
    lower, upper, mid = improve_guess(0.0, np.inf, 1.0, lower_equal_signs=True)
    assert (lower, upper, mid) == (1.0, np.inf, 2.0)


def test_improve_guess_halves_with_infinite_lower_bound():
    lower, upper, mid = improve_guess(-np.inf, 8.0, 4.0, lower_equal_signs=False)
    assert (lower, upper, mid) == (-np.inf, 4.0, 2.0)


def test_improve_guess_bisects_finite_bracket():
    assert improve_guess(1.0, 4.0, 2.0, True) == (2.0, 4.0, 3.0)
    assert improve_guess(1.0, 4.0, 2.0, False) == (1.0, 2.0, 1.5)


def test_root_bisect_finds_square_root():
    result = root_bisect(lambda x: (x * x - 2.0, x), tol=1e-8, max_iters=200,
                         x_lower=0.0, x_upper=np.inf, x_init=1.0)
    assert abs(result.x - np.sqrt(2.0)) < 1e-6
    assert result.best == result.x


def test_root_bisect_keeps_search_history():
    result = root_bisect(lambda x: (x - 3.0, None), tol=1e-6, max_iters=100,
                         x_init=1.0, keep_search=True)
    assert len(result.xs) == result.iter + 1
    assert result.xs[0] == 1.0
    assert result.xs[-1] == result.x


# ---------------------------------------------------------------------------
# Entropy and per-row search
# ---------------------------------------------------------------------------

def test_entropy_decreases_with_precision(rng):
    for _ in range(5):
        d2 = rng.uniform(0.1, 3.0, size=15)
        betas = np.logspace(-2, 1, 20)
        hs = [shannon_entropy_rows(weights_to_prow(exp_weight(d2, b)[np.newaxis, :]))[0]
              for b in betas]
        assert np.all(np.diff(hs) < 0)


@pytest.mark.parametrize("perplexity", [2.0, 5.0, 10.0])
def test_rows_reach_target_or_hit_max_iters(rng, perplexity):
    dm = random_distances(rng, n=25)
    tol = 1e-5
    max_iters = 50
    for i in range(dm.shape[0]):
        row = find_beta(dm[i] ** 2, i, perplexity, tol=tol, max_iters=max_iters)
        assert abs(np.log2(row.perplexity) - np.log2(perplexity)) < tol or not row.ok
        assert row.pr[i] == 0
        assert np.isclose(row.pr.sum(), 1.0)


def test_colinear_points_perplexity_one():
    x = np.array([[0.0], [1.0], [3.0]])
    dm = squareform(pdist(x))
    with warnings.catch_warnings():
        warnings.simplefilter("error", ConvergenceWarning)
        result = d_to_p_perp_bisect(dm, perplexity=1.0)
    assert result.n_failures == 0
    nearest = [1, 0, 1]
    for i, j in enumerate(nearest):
        assert result.pm[i, j] > 0.99


def test_tied_neighbors_cannot_reach_perplexity_one():
    # The middle point has two neighbors at the same distance: its
    # perplexity never drops below 2, however large beta gets
    x = np.array([[0.0], [1.0], [2.0]])
    with pytest.warns(ConvergenceWarning):
        result = d_to_p_perp_bisect(squareform(pdist(x)), perplexity=1.0)
    assert result.n_failures == 1
    assert np.allclose(result.pm.sum(axis=1), 1.0)
    assert np.allclose(result.pm[1], [0.5, 0.0, 0.5])
    assert result.beta[1] > 0


def test_small_perplexity_rows_are_normalized():
    dm = random_distances(np.random.default_rng(0), n=25)
    result = d_to_p_perp_bisect(dm, perplexity=2.0)
    assert np.allclose(result.pm.sum(axis=1), 1.0)
    assert result.n_failures == 0
    assert np.allclose(perplexity_rows(result.pm), 2.0, atol=1e-3)


def test_far_apart_points_are_normalized():
    # At the starting beta = 1 every neighbor weight underflows to zero
    x = np.array([[0.0], [30.0], [61.0], [93.0]])
    result = d_to_p_perp_bisect(squareform(pdist(x)), perplexity=1.5)
    assert np.allclose(result.pm.sum(axis=1), 1.0)
    assert np.all(np.isfinite(result.beta))


# ---------------------------------------------------------------------------
# Full matrix
# ---------------------------------------------------------------------------

def test_rows_sum_to_one(rng):
    result = d_to_p_perp_bisect(random_distances(rng), perplexity=5.0)
    assert np.allclose(result.pm.sum(axis=1), 1.0)
    assert np.all(np.diag(result.pm) == 0)
    assert result.prob_type == "row"
    assert np.all(result.beta > 0)


def test_intrinsic_dimensionality_of_a_line():
    x = np.linspace(0, 10, 60)[:, np.newaxis]
    result = d_to_p_perp_bisect(squareform(pdist(x)), perplexity=8.0)
    # Interior points of a line: about one dimension
    assert abs(np.median(result.dims[10:-10]) - 1.0) < 0.3


def test_failures_reported_in_one_warning(rng):
    dm = random_distances(rng, n=12)
    with warnings.catch_warnings(record=True) as caught:
        warnings.simplefilter("always")
        result = d_to_p_perp_bisect(dm, perplexity=4.0, max_iters=1)
    convergence = [w for w in caught if issubclass(w.category, ConvergenceWarning)]
    assert len(convergence) == 1
    assert result.n_failures == dm.shape[0]
    assert str(result.n_failures) in str(convergence[0].message)
    # Failed rows are still filled in
    assert np.allclose(result.pm.sum(axis=1), 1.0)


def test_other_weight_functions(rng):
    result = d_to_p_perp_bisect(random_distances(rng), perplexity=5.0, weight_fn=tdist_weight)
    assert np.allclose(result.pm.sum(axis=1), 1.0)


def test_perplexity_too_large(rng):
    with pytest.raises(ConfigurationError):
        d_to_p_perp_bisect(random_distances(rng, n=5), perplexity=5.0)


@pytest.mark.parametrize("perplexity", [0.0, 0.5, -3.0])
def test_perplexity_below_one(rng, perplexity):
    with pytest.raises(ConfigurationError):
        d_to_p_perp_bisect(random_distances(rng, n=5), perplexity=perplexity)


def test_weight_fn_must_be_callable(rng):
    with pytest.raises(ConfigurationError):
        d_to_p_perp_bisect(random_distances(rng, n=5), perplexity=2.0, weight_fn="gaussian")


def test_verbose_prints_summaries(rng, capsys):
    d_to_p_perp_bisect(random_distances(rng, n=10), perplexity=3.0, verbose=True)
    printed = capsys.readouterr().out
    assert "beta" in printed
    assert "sigma" in printed


def test_uniform_row_perplexity_counts_neighbors():
    pm = np.full((2, 4), 0.25)
    assert np.allclose(perplexity_rows(pm), 4.0)
    assert np.allclose(shannon_entropy_rows(pm), 2.0)


def test_sqrt_exp_input_kernel(rng):
    result = d_to_p_perp_bisect(random_distances(rng), perplexity=5.0, weight_fn=sqrt_exp_weight)
    assert np.allclose(result.pm.sum(axis=1), 1.0)
    assert result.n_failures == 0


def test_bandwidth_from_precision():
    assert np.isclose(prec_to_bandwidth(0.5), 1.0)
