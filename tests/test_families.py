import numpy as np
import pytest
from scipy.special import ndtri
from scipy.stats import kendalltau, multivariate_normal, multivariate_t, norm
from scipy.stats import t as student_t

from copula_gof.families import (
    DEFAULT_FAMILIES,
    CopulaFamily,
    _elliptical_reference,
    get_copula,
    reference_sample,
    parse_families,
    t_tail_dependence,
)


def clayton_cdf(u, v, theta):
    return (u ** -theta + v ** -theta - 1.0) ** (-1.0 / theta)


def gumbel_cdf(u, v, theta):
    return np.exp(-(((-np.log(u)) ** theta + (-np.log(v)) ** theta) ** (1.0 / theta)))


def frank_cdf(u, v, theta):
    return -np.log1p(np.expm1(-theta * u) * np.expm1(-theta * v) / np.expm1(-theta)) / theta


ARCHIMEDEAN = [
    ("clayton", 2.5, clayton_cdf),
    ("gumbel", 1.8, gumbel_cdf),
    ("frank", 4.0, frank_cdf),
    ("frank", -3.0, frank_cdf),
]
POINTS = [(0.3, 0.6), (0.7, 0.2), (0.55, 0.45)]


def test_parse_accepts_names_and_members():
    assert CopulaFamily.parse("Gaussian") is CopulaFamily.GAUSSIAN
    assert CopulaFamily.parse(CopulaFamily.T_DF10) is CopulaFamily.T_DF10
    with pytest.raises(ValueError, match="Unknown copula family"):
        CopulaFamily.parse("joe")


def test_family_index_is_distinct_and_stable():
    indices = [f.index for f in CopulaFamily]
    assert indices == list(range(len(CopulaFamily)))


def test_default_families_are_the_six_core_families():
    assert [f.value for f in DEFAULT_FAMILIES] == [
        "gaussian", "t", "clayton", "gumbel", "frank", "comonotonic",
    ]


def test_parse_families_deduplicates_and_rejects_empty():
    assert parse_families(["t", "T", "clayton"]) == (CopulaFamily.T, CopulaFamily.CLAYTON)
    assert parse_families(None) == DEFAULT_FAMILIES
    with pytest.raises(ValueError):
        parse_families([])


def test_fixed_df_variants_have_one_free_parameter():
    for name, df in (("t_df5", 5.0), ("t_df10", 10.0), ("t_df15", 15.0)):
        model = get_copula(name)
        assert model.n_free_params == 1
        assert model.fixed_df == df
    assert get_copula("t").n_free_params == 2
    assert get_copula("comonotonic").n_free_params == 0


@pytest.mark.parametrize("name,theta,cdf", ARCHIMEDEAN)
def test_archimedean_density_matches_mixed_derivative(name, theta, cdf):
    model = get_copula(name)
    h = 1e-4
    for u, v in POINTS:
        numeric = (
            cdf(u + h, v + h, theta) - cdf(u + h, v - h, theta)
            - cdf(u - h, v + h, theta) + cdf(u - h, v - h, theta)
        ) / (4 * h * h)
        dens = np.exp(model.log_density((theta,), np.array([u]), np.array([v])))[0]
        assert dens == pytest.approx(numeric, rel=1e-4)


@pytest.mark.parametrize("name,theta,cdf", ARCHIMEDEAN)
def test_archimedean_conditional_cdf_matches_partial_derivative(name, theta, cdf):
    model = get_copula(name)
    h = 1e-6
    for u, v in POINTS:
        numeric = (cdf(u + h, v, theta) - cdf(u - h, v, theta)) / (2 * h)
        cond = model.conditional_cdf((theta,), np.array([u]), np.array([v]))[0]
        assert cond == pytest.approx(numeric, rel=1e-5)


def test_gaussian_density_matches_bivariate_normal():
    rho = 0.6
    u = np.array([0.3, 0.7, 0.55])
    v = np.array([0.6, 0.2, 0.45])
    x, y = ndtri(u), ndtri(v)
    expected = (
        multivariate_normal(mean=[0, 0], cov=[[1, rho], [rho, 1]]).logpdf(np.column_stack([x, y]))
        - norm.logpdf(x) - norm.logpdf(y)
    )
    np.testing.assert_allclose(get_copula("gaussian").log_density((rho,), u, v), expected, rtol=1e-10)


def test_t_density_matches_bivariate_t():
    rho, df = -0.4, 6.0
    u = np.array([0.3, 0.7, 0.55, 0.05])
    v = np.array([0.6, 0.2, 0.45, 0.97])
    x, y = student_t.ppf(u, df), student_t.ppf(v, df)
    joint = multivariate_t(loc=[0, 0], shape=[[1, rho], [rho, 1]], df=df).logpdf(np.column_stack([x, y]))
    expected = joint - student_t.logpdf(x, df) - student_t.logpdf(y, df)
    np.testing.assert_allclose(get_copula("t").log_density((rho, df), u, v), expected, rtol=1e-8)


@pytest.mark.parametrize("name,params", [
    ("gaussian", (0.5,)),
    ("t", (0.5, 4.0)),
    ("clayton", (2.0,)),
    ("gumbel", (2.0,)),
    ("gumbel", (1.2,)),
    ("frank", (5.0,)),
    ("frank", (-5.0,)),
])
def test_conditional_ppf_inverts_conditional_cdf(name, params):
    model = get_copula(name)
    u = np.array([0.1, 0.4, 0.8, 0.95])
    w = np.array([0.25, 0.5, 0.05, 0.9])
    v = model.conditional_ppf(params, u, w)
    np.testing.assert_allclose(model.conditional_cdf(params, u, v), w, atol=1e-8)


def test_closed_form_kendall_tau():
    assert get_copula("gaussian").kendall_tau((np.sin(np.pi / 4),)) == pytest.approx(0.5)
    assert get_copula("t").kendall_tau((np.sin(np.pi / 4), 4.0)) == pytest.approx(0.5)
    assert get_copula("clayton").kendall_tau((2.0,)) == pytest.approx(0.5)
    assert get_copula("gumbel").kendall_tau((2.0,)) == pytest.approx(0.5)
    assert get_copula("frank").kendall_tau((5.736,)) == pytest.approx(0.5, abs=2e-3)
    assert get_copula("frank").kendall_tau((0.0,)) == 0.0


def test_frank_tau_is_odd_in_theta():
    frank = get_copula("frank")
    assert frank.kendall_tau((-4.0,)) == pytest.approx(-frank.kendall_tau((4.0,)), abs=1e-10)


def test_comonotonic_is_degenerate():
    model = get_copula("comonotonic")
    assert abs(model.kendall_tau(()) - 1.0) < 1e-10
    assert model.tail_dependence(()) == (1.0, 1.0)
    assert model.loglik((), np.array([0.2]), np.array([0.3])) is None
    u, v = model.sample((), 50, np.random.default_rng(0))
    np.testing.assert_array_equal(u, v)


@pytest.mark.parametrize("name,params", [
    ("gaussian", (0.7071,)),
    ("t", (0.7071, 4.0)),
    ("clayton", (2.0,)),
    ("gumbel", (2.0,)),
    ("frank", (5.736,)),
])
def test_sampler_reproduces_kendall_tau(name, params):
    model = get_copula(name)
    u, v = model.sample(params, 3000, np.random.default_rng(5))
    assert u.min() > 0.0 and u.max() < 1.0
    tau, _ = kendalltau(u, v)
    assert tau == pytest.approx(model.kendall_tau(params), abs=0.04)


def test_samplers_are_reproducible_with_same_generator_seed():
    model = get_copula("gumbel")
    a = model.sample((2.0,), 100, np.random.default_rng(9))
    b = model.sample((2.0,), 100, np.random.default_rng(9))
    np.testing.assert_array_equal(a[0], b[0])
    np.testing.assert_array_equal(a[1], b[1])


def test_tail_dependence_closed_forms():
    assert get_copula("clayton").tail_dependence((2.0,)) == pytest.approx((2 ** -0.5, 0.0))
    assert get_copula("gumbel").tail_dependence((2.0,)) == pytest.approx((0.0, 2 - np.sqrt(2)))
    assert get_copula("gaussian").tail_dependence((0.9,)) == (0.0, 0.0)
    assert get_copula("frank").tail_dependence((3.0,)) == (0.0, 0.0)
    lam = 2 * student_t.cdf(-np.sqrt(5 * 0.5 / 1.5), 5)
    assert get_copula("t").tail_dependence((0.5, 4.0)) == pytest.approx((lam, lam))


def test_t_tail_dependence_boundaries():
    assert t_tail_dependence(1.0, 4.0) == 1.0
    assert t_tail_dependence(-1.0, 4.0) == 0.0
    assert t_tail_dependence(0.5, float("inf")) == 0.0
    assert t_tail_dependence(0.5, float("nan")) is None
    assert t_tail_dependence(float("nan"), 4.0) is None
    assert t_tail_dependence(0.5, 3.0) > t_tail_dependence(0.5, 30.0) > 0.0


@pytest.mark.parametrize("name,theta", [("clayton", 2.0), ("gumbel", 2.0), ("frank", 5.0), ("frank", -5.0)])
def test_archimedean_kendall_distribution_endpoints(name, theta):
    model = get_copula(name)
    k = model.kendall_distribution((theta,), np.array([0.0, 1e-9, 0.5, 1.0]))
    assert k[0] == 0.0
    assert k[-1] == pytest.approx(1.0)
    assert np.all(np.diff(k) >= 0)


def test_clayton_kendall_distribution_matches_monte_carlo():
    theta = 2.0
    u, v = get_copula("clayton").sample((theta,), 4000, np.random.default_rng(4))
    c = clayton_cdf(u, v, theta)
    t = np.array([0.1, 0.3, 0.5])
    empirical = np.array([np.mean(c <= s) for s in t])
    np.testing.assert_allclose(get_copula("clayton").kendall_distribution((theta,), t), empirical, atol=0.03)


def test_elliptical_kendall_distribution_is_deterministic_and_monotone():
    model = get_copula("gaussian")
    t = np.linspace(0.0, 1.0, 21)
    k1 = model.kendall_distribution((0.5,), t)
    k2 = model.kendall_distribution((0.5,), t)
    np.testing.assert_array_equal(k1, k2)
    assert np.all(np.diff(k1) >= 0)
    assert 0.0 <= k1[0] and k1[-1] == 1.0


def test_elliptical_reference_mean_matches_tau():
    # E[C(U, V)] = (tau + 1) / 4
    rho = np.sin(np.pi / 4)
    ref = _elliptical_reference("gaussian", (rho,), 2048)
    assert ref.mean() == pytest.approx(0.375, abs=0.01)


def test_comonotonic_conditional_inverse_stays_on_diagonal():
    u = np.array([0.1, 0.5, 0.9])
    v = get_copula("comonotonic").conditional_ppf((), u, np.array([0.3, 0.3, 0.99]))
    np.testing.assert_array_equal(v, u)


@pytest.mark.parametrize("name,params", [("gaussian", (0.6,)), ("t", (0.6, 5.0)), ("gumbel", (2.0,))])
def test_reference_sample_is_deterministic_and_has_the_model_tau(name, params):
    u1, v1 = reference_sample(name, params, 2000)
    u2, v2 = reference_sample(name, list(params), 2000)
    assert u1.size == 2000
    np.testing.assert_array_equal(u1, u2)
    np.testing.assert_array_equal(v1, v2)
    assert not u1.flags.writeable
    tau, _ = kendalltau(u1, v1)
    assert tau == pytest.approx(get_copula(name).kendall_tau(params), abs=0.03)
