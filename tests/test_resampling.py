import numpy as np
import pytest

from copula_gof.core import simulate_scores
from copula_gof.fitting import fit_families
from copula_gof.pseudo_obs import pseudo_observations
from copula_gof.resampling import bootstrap_family_selection, summarize_selection_bootstrap

FAMILIES = ["gaussian", "clayton", "frank"]


@pytest.fixture
def clayton_scores():
    return simulate_scores("clayton", (2.0,), 300, seed=70)


def test_paired_resampling_shapes_and_reproducibility(clayton_scores):
    x, y = clayton_scores
    a = bootstrap_family_selection(x, y, FAMILIES, n_resamples=6, seed=1)
    b = bootstrap_family_selection(x, y, FAMILIES, n_resamples=6, seed=1, n_jobs=2)
    assert a.n_resamples == 6
    assert list(a.kendall_taus.columns) == FAMILIES
    assert a.best_families == b.best_families
    np.testing.assert_allclose(a.kendall_taus.to_numpy(), b.kendall_taus.to_numpy())
    assert a.config["sampling_method"] == "paired"
    assert a.config["sample_size"] == 300


def test_independent_resampling_breaks_dependence(clayton_scores):
    x, y = clayton_scores
    res = bootstrap_family_selection(
        x, y, ["gaussian"], n_resamples=5, seed=2, sampling_method="independent",
    )
    assert res.kendall_taus["gaussian"].abs().max() < 0.2


def test_summary_columns_and_selection_frequency(clayton_scores):
    x, y = clayton_scores
    res = bootstrap_family_selection(x, y, FAMILIES, n_resamples=8, sample_size=200, seed=3)
    u, v = pseudo_observations(x, y)
    summary = summarize_selection_bootstrap(res, reference_fits=fit_families(u, v, FAMILIES))
    assert list(summary["family"]) == FAMILIES
    for col in ("n_successful", "tau_mean", "tau_sd", "tau_median", "tau_q05", "tau_q95",
                "ci_width", "selection_freq", "tau_true", "tau_bias"):
        assert col in summary.columns
    assert summary["selection_freq"].sum() == pytest.approx(1.0)
    assert (summary["tau_q05"] <= summary["tau_q95"]).all()
    np.testing.assert_allclose(summary["tau_bias"], summary["tau_mean"] - summary["tau_true"])


def test_summary_without_reference_has_no_truth_columns(clayton_scores):
    x, y = clayton_scores
    res = bootstrap_family_selection(x, y, ["frank"], n_resamples=3, seed=4)
    summary = summarize_selection_bootstrap(res)
    assert "tau_true" not in summary.columns
    assert summary.loc[0, "selection_freq"] == 1.0


def test_invalid_arguments(clayton_scores):
    x, y = clayton_scores
    with pytest.raises(ValueError):
        bootstrap_family_selection(x, y, FAMILIES, sampling_method="blocked")
    with pytest.raises(ValueError):
        bootstrap_family_selection(x, y, FAMILIES, n_resamples=0)
    with pytest.raises(ValueError):
        bootstrap_family_selection(x, y, FAMILIES, sample_size=400, with_replacement=False)
    with pytest.raises(ValueError):
        bootstrap_family_selection(x[:10], y, FAMILIES)
