import numpy as np
import pytest

from conftest import draw_pseudo
from copula_gof.core import simulate_scores
from copula_gof.fitting import fit_copula
from copula_gof.gof import comonotonic_deviation, gof_statistic, statistic_name, tied_kendall_reference
from copula_gof.pseudo_obs import pseudo_observations


def test_statistic_is_deterministic_and_non_negative(gaussian_sample):
    u, v = gaussian_sample
    for name in ("gaussian", "t", "clayton", "gumbel", "frank"):
        fit = fit_copula(name, u, v)
        for method in ("kendall_cvm", "rosenblatt_cvm"):
            s1 = gof_statistic(fit, u, v, method=method)
            s2 = gof_statistic(fit, u, v, method=method)
            assert s1 == s2
            assert s1 >= 0.0


def test_comonotonic_statistic_is_scaled_diagonal_distance():
    u = np.array([0.1, 0.5, 0.9])
    v = np.array([0.2, 0.5, 0.6])
    assert comonotonic_deviation(u, v) == pytest.approx(3 * np.mean([0.01, 0.0, 0.09]))
    assert comonotonic_deviation(u, u) == 0.0


def test_comonotonic_statistic_exceeds_every_other_family(gaussian_sample):
    u, v = gaussian_sample
    stats = {}
    for name in ("gaussian", "t", "clayton", "gumbel", "frank", "comonotonic"):
        fit = fit_copula(name, u, v)
        assert fit.fit_success
        stats[name] = gof_statistic(fit, u, v)
    como = stats.pop("comonotonic")
    assert all(como > s for s in stats.values())


@pytest.mark.parametrize("method", ["kendall_cvm", "rosenblatt_cvm"])
def test_misspecified_family_scores_worse(clayton_sample, method):
    u, v = clayton_sample
    right = gof_statistic(fit_copula("clayton", u, v), u, v, method=method)
    wrong = gof_statistic(fit_copula("gumbel", u, v), u, v, method=method)
    assert wrong > right


def test_kendall_statistic_handles_heavy_ties():
    rng = np.random.default_rng(31)
    z = rng.standard_normal((300, 2)) @ np.linalg.cholesky([[1.0, 0.5], [0.5, 1.0]]).T
    u, v = pseudo_observations(np.round(z[:, 0] * 2), np.round(z[:, 1] * 2))
    for name in ("gaussian", "frank", "clayton"):
        fit = fit_copula(name, u, v)
        stat = gof_statistic(fit, u, v)
        assert np.isfinite(stat) and stat >= 0.0


def test_statistic_name_and_unknown_method():
    assert statistic_name("comonotonic", "rosenblatt_cvm") == "comonotonic_deviation"
    assert statistic_name("frank") == "kendall_cvm"
    u, v = draw_pseudo("frank", (4.0,), 150, seed=32)
    fit = fit_copula("frank", u, v)
    with pytest.raises(ValueError, match="Unknown GoF statistic"):
        gof_statistic(fit, u, v, method="anderson")


def test_true_family_scores_best_on_coarse_scores():
    # About 20 distinct values per margin.
    x, y = simulate_scores("gaussian", (0.9,), 2000, seed=33, sd=3.0)
    u, v = pseudo_observations(x, y)
    assert np.unique(u).size < 40
    stats = {name: gof_statistic(fit_copula(name, u, v), u, v) for name in ("gaussian", "clayton", "gumbel")}
    assert stats["gaussian"] < stats["clayton"]
    assert stats["gaussian"] < stats["gumbel"]


def test_tied_reference_lives_on_the_observed_grid():
    x, y = simulate_scores("frank", (5.0,), 300, seed=34, sd=4.0)
    u, v = pseudo_observations(x, y)
    fit = fit_copula("frank", u, v)
    ref = tied_kendall_reference(fit, np.sort(u), np.sort(v), reference_size=1000)
    assert ref.size == 4 * 300
    assert np.all(np.diff(ref) >= 0)
    # Counts out of n - 1, exactly as for the data.
    counts = ref * 299
    np.testing.assert_allclose(counts, np.round(counts), atol=1e-9)
    again = tied_kendall_reference(fit, np.sort(u), np.sort(v), reference_size=1000)
    np.testing.assert_array_equal(ref, again)
